"""
Question Generation Engine

Generates the missing questions for one blueprint rule in a single GPT call.
The system instruction pins count, topic, type and difficulty and demands a
strict JSON array; the user turn carries the retrieved reference context or,
when there is none, the general-knowledge fallback.

Output parsing is strict: fenced or bare JSON array, every item valid,
exactly the requested number of items. Anything else raises
GenerationParseError / GenerationCountError.
"""

import json
import logging
import re
from typing import List

from pydantic import ValidationError

from database.models import BlueprintRule
from generation.errors import GenerationCountError, GenerationParseError
from generation.retrieval_engine import difficulty_label, topic_label
from generation.schemas import GeneratedItem

log = logging.getLogger("generation.pipeline")


MCQ_OPTION_COUNT = 4


# ─── Prompts ───────────────────────────────────────────────────────────────────

SYSTEM_PROMPT = """You are an expert exam question author. Generate exactly {count} highly original, novel questions.

Topic requirements:
{topic}
Type: {question_type}
Difficulty: {difficulty}

Use the provided reference context if available to fact-check your work, but output novel questions not directly copied.

CRITICAL: Return the questions inside a strict valid JSON array of exactly {count} objects matching this interface:
[
  {{
    "text": "The question text, use HTML exclusively for formatting math or sub/superscripts.",
    "type": "{question_type}",
{type_fields}    "difficulty": {difficulty_value},
    "explanation": "Detailed explanation of why the answer is correct."
  }}
]

DO NOT return markdown codeblocks. Return pure raw JSON ONLY."""

MCQ_FIELDS = """    "options": ["Option A", "Option B", "Option C", "Option D"],
    "correctOption": 1,
"""

PARAGRAPH_FIELDS = """    "paragraphText": "The shared passage the question is based on.",
"""

CONTEXT_PROMPT = "Context Book Knowledge:\n{context}"

GENERAL_KNOWLEDGE_PROMPT = (
    "Generate from your extensive general web knowledge on the topic. "
    "Provide highly accurate, verifiable answers."
)


def is_mcq_type(question_type: str) -> bool:
    return question_type.lower().startswith("mcq")


def is_paragraph_type(question_type: str) -> bool:
    return question_type.lower() == "paragraph"


def build_system_instruction(rule: BlueprintRule, count: int) -> str:
    if is_mcq_type(rule.question_type):
        type_fields = MCQ_FIELDS
    elif is_paragraph_type(rule.question_type):
        type_fields = PARAGRAPH_FIELDS
    else:
        type_fields = ""
    return SYSTEM_PROMPT.format(
        count=count,
        topic=topic_label(rule),
        question_type=rule.question_type,
        difficulty=difficulty_label(rule),
        difficulty_value=rule.difficulty if rule.difficulty is not None else 3,
        type_fields=type_fields,
    )


def build_prompt_body(context_text: str) -> str:
    """User turn: reference context, or the general-knowledge fallback when empty."""
    if context_text:
        return CONTEXT_PROMPT.format(context=context_text)
    return GENERAL_KNOWLEDGE_PROMPT


# ─── JSON extraction ───────────────────────────────────────────────────────────

def _extract_json_array(raw: str) -> list:
    raw = (raw or "").strip()
    raw = re.sub(r"^```(?:json)?\s*", "", raw, flags=re.IGNORECASE)
    raw = re.sub(r"\s*```$", "", raw).strip()
    if not raw:
        raise GenerationParseError("Generator returned an empty response")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"Invalid JSON from generator: {e}") from e
    if not isinstance(data, list):
        raise GenerationParseError("Generator output is not a JSON array")
    return data


def _validate_item(index: int, data: object, rule: BlueprintRule) -> GeneratedItem:
    if not isinstance(data, dict):
        raise GenerationParseError(f"Item {index} is not a JSON object")
    try:
        item = GeneratedItem.model_validate(data)
    except ValidationError as e:
        raise GenerationParseError(f"Item {index} does not match the question schema: {e}") from e

    if is_mcq_type(rule.question_type):
        if len(item.options) != MCQ_OPTION_COUNT:
            raise GenerationParseError(
                f"Item {index}: MCQ needs exactly {MCQ_OPTION_COUNT} options, got {len(item.options)}"
            )
        if any(not str(opt).strip() for opt in item.options):
            raise GenerationParseError(f"Item {index}: MCQ option is blank")
        if item.correct_option is None or not 0 <= item.correct_option < MCQ_OPTION_COUNT:
            raise GenerationParseError(f"Item {index}: correctOption must be 0..{MCQ_OPTION_COUNT - 1}")
    else:
        if item.options:
            raise GenerationParseError(f"Item {index}: options are only allowed for MCQ questions")
        if item.correct_option is not None:
            raise GenerationParseError(f"Item {index}: correctOption is only allowed for MCQ questions")
    return item


def parse_generated_questions(raw: str, rule: BlueprintRule, expected: int) -> List[GeneratedItem]:
    """Parse and validate the model output for a rule; all-or-nothing."""
    data = _extract_json_array(raw)
    if len(data) != expected:
        raise GenerationCountError(expected, len(data))
    return [_validate_item(i, item, rule) for i, item in enumerate(data)]


# ─── Main generator ────────────────────────────────────────────────────────────

def _calculate_max_tokens(count: int, is_mcq: bool) -> int:
    per_question = 450 if is_mcq else 700
    return min(16000, 600 + per_question * count)


async def generate_questions(rule: BlueprintRule, count: int, context_text: str) -> List[GeneratedItem]:
    """
    Generate exactly `count` questions for a rule.

    Raises:
        GenerationServiceError: model call failed / timed out
        GenerationParseError:   output not a valid array of `count` questions
    """
    from generation.gpt_client import call_gpt

    log.info(f"[GENERATE] rule={rule.id} type={rule.question_type} count={count} context={'rag' if context_text else 'general'}")
    raw = await call_gpt(
        build_prompt_body(context_text),
        system=build_system_instruction(rule, count),
        temperature=0.7,
        max_tokens=_calculate_max_tokens(count, is_mcq_type(rule.question_type)),
    )
    return parse_generated_questions(raw, rule, count)
