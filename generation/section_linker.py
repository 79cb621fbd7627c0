"""
Section Linker

Persists one rule's generated questions into the question bank and links each
into the target exam section. The whole batch is a single transaction: either
every Question + SectionQuestion pair of the batch is committed, or none is.

Appended links take order = max(existing order in section) + 1, + 2, ...
"""

import logging
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from database.models import (
    BlueprintRule, ExamSection, Paragraph, Question, SectionQuestion,
    CITATION_INTERNAL, CITATION_RAG,
)
from generation.errors import PersistenceError
from generation.question_generator import is_paragraph_type
from generation.schemas import GeneratedItem
from generation.usage_tracker import increment_usage

log = logging.getLogger("generation.pipeline")

DEFAULT_DIFFICULTY = 3


def citation_for(context_text: str) -> str:
    return CITATION_RAG if context_text else CITATION_INTERNAL


def next_section_order(db: Session, section_id: int) -> int:
    """First free order slot at the end of a section."""
    current = (
        db.query(func.max(SectionQuestion.order))
        .filter(SectionQuestion.section_id == section_id)
        .scalar()
    )
    return 0 if current is None else current + 1


def _build_question(item: GeneratedItem, rule: BlueprintRule, citation: str, order: int) -> Question:
    paragraph = None
    if is_paragraph_type(rule.question_type) and item.paragraph_text:
        paragraph = Paragraph(text={"en": item.paragraph_text})

    if rule.difficulty is not None:
        difficulty = rule.difficulty
    else:
        difficulty = item.difficulty or DEFAULT_DIFFICULTY

    return Question(
        text={"en": item.text},
        # stored under the rule's type so the next shortage count sees it
        type=rule.question_type,
        difficulty=difficulty,
        options=list(item.options),
        correct_answer=item.correct_option,
        explanation=item.explanation,
        paragraph=paragraph,
        is_ai_generated=True,
        citation=citation,
        order=order,
        tags=list(rule.topic_tags),
    )


def persist_rule_batch(
    db: Session,
    exam_section: ExamSection,
    rule: BlueprintRule,
    items: List[GeneratedItem],
    context_text: str,
    context_chunk_ids: List[int] = None,
) -> List[Question]:
    """
    Insert and link all generated questions of one rule atomically.

    Raises:
        PersistenceError: any failure; the batch is rolled back
    """
    if not items:
        return []

    section_id = exam_section.id
    rule_id = rule.id
    citation = citation_for(context_text)

    try:
        start = next_section_order(db, section_id)
        created: List[Question] = []
        for offset, item in enumerate(items):
            question = _build_question(item, rule, citation, start + offset)
            db.add(question)
            db.add(SectionQuestion(
                section_id=section_id,
                question=question,
                marks=rule.marks_per_question if rule.marks_per_question is not None else 1,
                negative_marks=rule.negative_marks if rule.negative_marks is not None else 0,
                order=start + offset,
            ))
            created.append(question)

        db.flush()
        increment_usage(db, context_chunk_ids or [])
        db.commit()
    except Exception as e:
        db.rollback()
        log.error(f"[PERSIST] section={section_id} rule={rule_id} rolled back: {e}")
        raise PersistenceError(f"Failed to persist generated questions: {e}") from e

    log.info(
        f"[PERSIST] section={section_id} rule={rule_id} linked {len(created)} question(s) "
        f"at order {start}..{start + len(created) - 1} ({citation})"
    )
    return created
