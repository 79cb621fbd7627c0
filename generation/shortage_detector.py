"""
Shortage Detector

For each blueprint rule, counts the questions already linked into the exam
section built from the rule's blueprint section and computes the deficit:

    shortage = rule.number_of_questions - linked_count

A question matches a rule when its type equals the rule's question_type, its
difficulty equals the rule's difficulty (when the rule sets one), and it
carries at least one of the rule's topic tags (when the rule has any; a
tag-less rule accepts any tag).

Exam sections are paired with blueprint sections through
ExamSection.blueprint_section_id only.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, Query

from database.models import (
    BlueprintRule, BlueprintSection, Exam, ExamBlueprint, ExamSection,
    Question, SectionQuestion, Tag,
)
from database.schemas import ShortageEntry, ShortageReport

log = logging.getLogger("generation.pipeline")


@dataclass
class RuleShortage:
    """Shortage for one rule against one exam section (exam_section None = unmapped)."""
    blueprint_section: BlueprintSection
    rule: BlueprintRule
    exam_section: Optional[ExamSection]
    linked_count: int
    shortage: int

    @property
    def needs_generation(self) -> bool:
        return self.exam_section is not None and self.shortage > 0


def _apply_rule_filters(query: Query, rule: BlueprintRule) -> Query:
    """Restrict a Question query to questions matching the rule."""
    query = query.filter(Question.type == rule.question_type)
    if rule.difficulty is not None:
        query = query.filter(Question.difficulty == rule.difficulty)
    tag_ids = rule.tag_ids
    if tag_ids:
        query = query.filter(Question.tags.any(Tag.id.in_(tag_ids)))
    return query


def count_linked_questions(db: Session, section_id: int, rule: BlueprintRule) -> int:
    """Number of SectionQuestion rows in the section whose question matches the rule."""
    query = (
        db.query(func.count(SectionQuestion.id))
        .join(Question, Question.id == SectionQuestion.question_id)
        .filter(SectionQuestion.section_id == section_id)
    )
    return _apply_rule_filters(query, rule).scalar() or 0


def find_bank_question_ids(
    db: Session,
    rule: BlueprintRule,
    limit: int,
    exclude_ids: Optional[List[int]] = None,
) -> List[int]:
    """Ids of up to `limit` bank questions matching the rule, oldest first."""
    query = _apply_rule_filters(db.query(Question.id), rule)
    if exclude_ids:
        query = query.filter(Question.id.notin_(exclude_ids))
    return [qid for (qid,) in query.order_by(Question.id).limit(limit).all()]


def map_exam_sections(exam: Exam) -> Dict[int, ExamSection]:
    """blueprint_section_id → ExamSection for every linked section of the exam."""
    mapping: Dict[int, ExamSection] = {}
    for section in exam.sections:
        if section.blueprint_section_id is None:
            continue
        if section.blueprint_section_id in mapping:
            log.warning(
                f"[SHORTAGE] Exam {exam.id}: sections {mapping[section.blueprint_section_id].id} and "
                f"{section.id} both link blueprint section {section.blueprint_section_id}; using the first"
            )
            continue
        mapping[section.blueprint_section_id] = section
    return mapping


def compute_exam_shortages(db: Session, exam: Exam, blueprint: ExamBlueprint) -> List[RuleShortage]:
    """Shortage for every rule of the blueprint against the exam's linked sections."""
    section_map = map_exam_sections(exam)
    results: List[RuleShortage] = []

    for bp_section in blueprint.sections:
        exam_section = section_map.get(bp_section.id)
        if exam_section is None:
            log.warning(f"[SHORTAGE] Blueprint section {bp_section.id} has no linked section in exam {exam.id}")

        for rule in bp_section.rules:
            linked = count_linked_questions(db, exam_section.id, rule) if exam_section else 0
            shortage = rule.number_of_questions - linked
            log.info(
                f"[SHORTAGE] section={bp_section.id} rule={rule.id} type={rule.question_type} "
                f"required={rule.number_of_questions} linked={linked} shortage={shortage}"
            )
            results.append(RuleShortage(
                blueprint_section=bp_section,
                rule=rule,
                exam_section=exam_section,
                linked_count=linked,
                shortage=shortage,
            ))

    return results


def allocate_bank_questions(db: Session, blueprint: ExamBlueprint) -> Dict[int, List[int]]:
    """
    rule id → bank question ids, walking rules in blueprint order.

    A question goes to the first rule that can take it and is never counted
    for a later rule, so availability equals what assembly can link.
    """
    allocation: Dict[int, List[int]] = {}
    used_ids: List[int] = []
    for bp_section in blueprint.sections:
        for rule in bp_section.rules:
            picked = find_bank_question_ids(db, rule, rule.number_of_questions, used_ids)
            allocation[rule.id] = picked
            used_ids.extend(picked)
    return allocation


def check_blueprint_shortage(db: Session, blueprint: ExamBlueprint) -> ShortageReport:
    """Bank-wide availability report for a blueprint (no exam required)."""
    allocation = allocate_bank_questions(db, blueprint)
    total_required = 0
    total_found = 0
    entries: List[ShortageEntry] = []

    for bp_section in blueprint.sections:
        for rule in bp_section.rules:
            required = rule.number_of_questions
            found = len(allocation[rule.id])
            total_required += required
            total_found += found

            if found < required:
                entries.append(ShortageEntry(
                    section=bp_section.name,
                    type=rule.question_type,
                    tags=", ".join(rule.tag_names) or "Any",
                    difficulty=str(rule.difficulty) if rule.difficulty is not None else "Any",
                    required=required,
                    found=found,
                    missing=required - found,
                ))

    return ShortageReport(
        has_shortage=total_found < total_required,
        total_required=total_required,
        total_found=total_found,
        missing_count=total_required - total_found,
        shortages=entries,
    )
