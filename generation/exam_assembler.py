"""
Exam Assembly Engine

Builds an Exam from a blueprint:
  1. Availability check of the question bank per rule
  2. One ExamSection per blueprint section, linked by blueprint_section_id
  3. Up to number_of_questions matching bank questions linked per rule

Rules of 'generate_novel' blueprints take nothing from the bank; their
sections are filled by the generate-missing pipeline afterwards.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from database.models import Exam, ExamBlueprint, ExamSection, SectionQuestion
from database.schemas import ExamFromBlueprintRequest, ShortageReport
from generation.shortage_detector import allocate_bank_questions, check_blueprint_shortage

log = logging.getLogger("generation.pipeline")

GENERATE_NOVEL = "generate_novel"


@dataclass
class AssembledExam:
    exam: Exam
    linked_count: int = 0
    expected_count: int = 0
    missing_rules: List[int] = field(default_factory=list)


def bank_availability(db: Session, blueprint: ExamBlueprint) -> ShortageReport:
    """Shortage report, empty for blueprints that always generate."""
    if blueprint.generation_method == GENERATE_NOVEL:
        return ShortageReport(has_shortage=False, total_required=0, total_found=0, missing_count=0)
    return check_blueprint_shortage(db, blueprint)


def assemble_exam(db: Session, blueprint: ExamBlueprint, request: ExamFromBlueprintRequest) -> AssembledExam:
    """Create and commit the exam skeleton plus bank question links."""
    exam = Exam(
        title=request.title,
        description=request.description,
        duration_minutes=request.duration_minutes,
        blueprint_id=blueprint.id,
    )
    db.add(exam)

    result = AssembledExam(exam=exam)
    # same allocation as the availability check
    allocation = allocate_bank_questions(db, blueprint) if blueprint.generation_method != GENERATE_NOVEL else {}

    for bp_section in blueprint.sections:
        section = ExamSection(
            name=bp_section.name,
            order=bp_section.order,
            blueprint_section_id=bp_section.id,
        )
        exam.sections.append(section)

        order = 0
        for rule in bp_section.rules:
            result.expected_count += rule.number_of_questions
            picked = allocation.get(rule.id, [])
            for question_id in picked:
                section.questions.append(SectionQuestion(
                    question_id=question_id,
                    marks=rule.marks_per_question,
                    negative_marks=rule.negative_marks,
                    order=order,
                ))
                order += 1
            result.linked_count += len(picked)
            if len(picked) < rule.number_of_questions:
                result.missing_rules.append(rule.id)

    db.commit()
    db.refresh(exam)
    log.info(
        f"[ASSEMBLY] exam={exam.id} from blueprint={blueprint.id}: "
        f"linked {result.linked_count}/{result.expected_count}, short rules={result.missing_rules}"
    )
    return result
