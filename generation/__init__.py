"""
Missing-Question Generation Pipeline
generation/

Steps (per blueprint rule):
1. Shortage Detector   — linked questions vs rule target in the exam section
2. Embedding           — topic description → vector
3. Retrieval Engine    — top-k similar reference chunks (RAG context)
4. Question Generator  — GPT call, strict JSON array of the missing questions
5. Section Linker      — insert questions + section links in one transaction
6. Usage Tracker       — increment usage_count on consumed chunks
"""
