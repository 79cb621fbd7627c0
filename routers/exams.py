"""
Exams Router — /exams

Endpoints:
  POST /exams/from-blueprint                 — build an exam from a blueprint + question bank
  GET  /exams/{exam_id}                      — exam with section question counts
  POST /exams/{exam_id}/generate-missing-ai  — AI-fill every rule shortage of the exam
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.schemas import ExamFromBlueprintRequest
from generation.errors import ConfigurationError, NotFoundError
from generation.exam_assembler import GENERATE_NOVEL, assemble_exam, bank_availability
from generation.missing_pipeline import generate_missing_questions

router = APIRouter(prefix="/exams", tags=["exams"])

log = logging.getLogger("generation.pipeline")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.post("/from-blueprint")
async def create_exam_from_blueprint(request: ExamFromBlueprintRequest, db: Session = Depends(get_db)):
    """
    **Create an exam from a blueprint.**

    Sections mirror the blueprint's sections and keep a link to them. Each rule
    is filled with matching questions from the bank.

    When the bank cannot satisfy every rule and neither
    `allow_missing_questions` nor `allow_ai_generation_for_missing` is set,
    nothing is created and the shortage is returned for confirmation.
    """
    blueprint = crud.get_blueprint(db, request.blueprint_id)
    if blueprint is None:
        return _error(404, "Blueprint not found")

    availability = bank_availability(db, blueprint)
    if availability.has_shortage and not (
        request.allow_missing_questions or request.allow_ai_generation_for_missing
    ):
        return {
            "success": False,
            "requiresAiConfirmation": True,
            "missingCount": availability.missing_count,
            "shortageDetails": [s.model_dump() for s in availability.shortages],
            "message": (
                f"Not enough questions in the bank. You are missing {availability.missing_count} "
                f"questions across your blueprint rules.\n\nDo you want to use AI to generate the "
                f"missing questions based on the rule parameters and available RAG context?"
            ),
        }

    assembled = assemble_exam(db, blueprint, request)
    exam_id = assembled.exam.id
    response = {
        "success": True,
        "examId": exam_id,
        "linkedCount": assembled.linked_count,
        "expectedCount": assembled.expected_count,
        "generation": None,
    }

    if assembled.missing_rules and (
        request.allow_ai_generation_for_missing or blueprint.generation_method == GENERATE_NOVEL
    ):
        try:
            summary = await generate_missing_questions(db, exam_id)
        except Exception as e:
            # the exam itself is committed; report generation failure alongside it
            log.exception(f"[ASSEMBLY] exam={exam_id}: generation after assembly failed")
            response["generation"] = {"success": False, "error": str(e)}
        else:
            response["generation"] = summary.to_response()

    return response


@router.get("/{exam_id}")
def get_exam(exam_id: int, db: Session = Depends(get_db)):
    """Exam with its sections, question counts and marks."""
    exam = crud.get_exam(db, exam_id)
    if exam is None:
        return _error(404, "Exam not found")
    return crud.exam_to_summary(exam).model_dump()


@router.post("/{exam_id}/generate-missing-ai")
async def generate_missing_ai(exam_id: int, db: Session = Depends(get_db)):
    """
    **Generate the questions an exam is missing according to its blueprint.**

    For every blueprint rule: count matching questions already linked in the
    exam section built from it; when short, embed a topic description,
    retrieve reference context, generate exactly the missing amount and link
    them (one transaction per rule).

    Rule failures do not abort the run. The response reports the questions
    that were persisted and the rules that failed:

        {"success": true, "generatedCount": 3, "failures": [...], "rules": [...], "runId": 7}
    """
    try:
        summary = await generate_missing_questions(db, exam_id)
    except NotFoundError as e:
        return _error(404, str(e))
    except ConfigurationError as e:
        return _error(400, str(e))
    except Exception as e:
        log.exception(f"[GENERATE MISSING] exam={exam_id}: unexpected error")
        return _error(500, str(e) or "Server error")

    return summary.to_response()
