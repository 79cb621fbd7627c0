"""
Paragraph chunker for uploaded reference text.

Strategy:
1. Split on blank lines (paragraph boundaries).
2. Drop fragments of MIN_CHUNK_CHARS characters or fewer (headings, page numbers).
3. Paragraphs longer than TARGET_CHUNK_MAX_WORDS are cut into word windows
   with OVERLAP_WORDS overlap so no chunk exceeds the embedding budget.
"""

from dataclasses import dataclass
from typing import List
import re

MIN_CHUNK_CHARS = 50
TARGET_CHUNK_MAX_WORDS = 800   # ~1040 tokens
OVERLAP_WORDS = 100            # ~130 tokens overlap between consecutive windows
PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
WHITESPACE = re.compile(r"[ \t]+")


@dataclass
class TextChunk:
    chunk_index: int
    content: str


def _windows(words: List[str]) -> List[str]:
    step = TARGET_CHUNK_MAX_WORDS - OVERLAP_WORDS
    out = []
    for start in range(0, len(words), step):
        out.append(" ".join(words[start:start + TARGET_CHUNK_MAX_WORDS]))
        if start + TARGET_CHUNK_MAX_WORDS >= len(words):
            break
    return out


def split_into_chunks(text: str) -> List[TextChunk]:
    """Paragraph chunks of `text`, indexed in reading order."""
    pieces: List[str] = []
    for paragraph in PARAGRAPH_BREAK.split(text or ""):
        paragraph = WHITESPACE.sub(" ", paragraph).strip()
        if len(paragraph) <= MIN_CHUNK_CHARS:
            continue
        words = paragraph.split()
        if len(words) > TARGET_CHUNK_MAX_WORDS:
            pieces.extend(_windows(words))
        else:
            pieces.append(paragraph)
    return [TextChunk(chunk_index=i, content=p) for i, p in enumerate(pieces)]
