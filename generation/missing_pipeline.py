"""
Generate-Missing Pipeline

Fills every blueprint rule's shortage in an exam with AI-generated questions.

Per rule:
    IDLE → SHORTAGE_COMPUTED → SKIPPED                      (shortage ≤ 0)
                             → EMBEDDING → RETRIEVING → GENERATING
                               → PARSING → PERSISTING → DONE
    any step → FAILED (only that rule; the run continues)

Embedding, retrieval, generation and parsing run concurrently across rules,
bounded by GENERATION_CONCURRENCY. Persistence runs sequentially on the
request's session, one transaction per rule batch.
"""

import asyncio
import enum
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from database import crud
from database.models import GenerationRun
from embeddings import generate_embedding
from generation.errors import (
    ConfigurationError, GenerationError, GenerationServiceError, NotFoundError,
)
from generation.gpt_client import GPT_MODEL
from generation.question_generator import generate_questions
from generation.retrieval_engine import RetrievedContext, build_topic_description, retrieve_context
from generation.schemas import GeneratedItem, GenerationSummary, RuleFailure, RuleOutcome
from generation.section_linker import citation_for, persist_rule_batch
from generation.shortage_detector import RuleShortage, compute_exam_shortages

log = logging.getLogger("generation.pipeline")

GENERATION_CONCURRENCY = int(os.getenv("GENERATION_CONCURRENCY", "4"))
RULE_TIMEOUT_SECONDS = float(os.getenv("RULE_TIMEOUT_SECONDS", "300"))


class RuleState(str, enum.Enum):
    IDLE = "idle"
    SHORTAGE_COMPUTED = "shortage_computed"
    SKIPPED = "skipped"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    PARSING = "parsing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RuleTask:
    """Mutable per-rule progress through the state machine."""
    shortage: RuleShortage
    state: RuleState = RuleState.SHORTAGE_COMPUTED
    context: RetrievedContext = field(default_factory=RetrievedContext)
    items: List[GeneratedItem] = field(default_factory=list)
    error: Optional[GenerationError] = None

    @property
    def label(self) -> str:
        return f"section={self.shortage.blueprint_section.id} rule={self.shortage.rule.id}"

    def advance(self, state: RuleState) -> None:
        log.info(f"[RULE] {self.label}: {self.state.value} → {state.value}")
        self.state = state

    def fail(self, error: GenerationError) -> None:
        if error.stage == "unknown":
            error.stage = self.state.value
        self.error = error
        log.error(f"[RULE] {self.label}: FAILED at {error.stage}: {error}")
        self.state = RuleState.FAILED

    def to_failure(self) -> RuleFailure:
        exam_section = self.shortage.exam_section
        return RuleFailure(
            section_id=exam_section.id if exam_section is not None else self.shortage.blueprint_section.id,
            rule_id=self.shortage.rule.id,
            stage=self.error.stage,
            error_type=type(self.error).__name__,
            error=str(self.error),
        )

    def to_outcome(self, generated: int = 0) -> RuleOutcome:
        exam_section = self.shortage.exam_section
        return RuleOutcome(
            section_id=exam_section.id if exam_section is not None else self.shortage.blueprint_section.id,
            rule_id=self.shortage.rule.id,
            state=self.state.value,
            requested=max(self.shortage.shortage, 0),
            generated=generated,
            citation=citation_for(self.context.text) if self.state == RuleState.DONE else None,
            context_chunk_ids=self.context.chunk_ids,
        )


# ─── Per-rule preparation (concurrent) ─────────────────────────────────────────

async def _prepare_rule(
    db: Session,
    task: RuleTask,
    material_ids: List[int],
    semaphore: asyncio.Semaphore,
) -> RuleTask:
    """Embed → retrieve → generate → parse. Never raises; failures land on the task."""
    rule = task.shortage.rule
    count = task.shortage.shortage

    async def _run() -> None:
        task.advance(RuleState.EMBEDDING)
        query_vector = await generate_embedding(build_topic_description(rule))

        task.advance(RuleState.RETRIEVING)
        task.context = retrieve_context(db, material_ids, query_vector) if material_ids else RetrievedContext()
        if task.context.is_empty:
            log.info(f"[RETRIEVE] {task.label}: no reference context, using general knowledge")

        task.advance(RuleState.GENERATING)
        task.items = await generate_questions(rule, count, task.context.text)
        task.advance(RuleState.PARSING)

    async with semaphore:
        try:
            await asyncio.wait_for(_run(), timeout=RULE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            task.fail(GenerationServiceError(
                f"Rule timed out after {RULE_TIMEOUT_SECONDS:.0f}s", stage=task.state.value
            ))
        except GenerationError as e:
            task.fail(e)
        except Exception as e:
            log.exception(f"[RULE] {task.label}: unexpected error")
            task.fail(GenerationError(f"{type(e).__name__}: {e}", stage=task.state.value))
    return task


# ─── Run bookkeeping ───────────────────────────────────────────────────────────

def _start_run(db: Session, exam_id: int, tasks: List[RuleTask]) -> GenerationRun:
    run = GenerationRun(
        exam_id=exam_id,
        model=GPT_MODEL,
        status="running",
        counts_requested={
            str(t.shortage.rule.id): t.shortage.shortage
            for t in tasks if t.shortage.needs_generation
        },
        fail_reasons=[],
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def _finish_run(db: Session, run: GenerationRun, summary: GenerationSummary) -> None:
    if not summary.failures:
        status = "completed"
    elif not summary.success:
        status = "failed"
    else:
        status = "partial"
    run.status = status
    run.generated_count = summary.generated_count
    run.fail_reasons = [
        f"rule {f.rule_id} [{f.stage}] {f.error_type}: {f.error}" for f in summary.failures
    ]
    run.finished_at = datetime.now(timezone.utc)
    db.commit()


# ─── Entry point ───────────────────────────────────────────────────────────────

async def generate_missing_questions(
    db: Session,
    exam_id: int,
    concurrency: Union[int, None] = None,
) -> GenerationSummary:
    """
    Generate and link the questions an exam is missing according to its blueprint.

    Raises (before any work):
        NotFoundError:      exam or its blueprint does not exist
        ConfigurationError: exam is not linked to a blueprint

    Every rule-level failure is reported in the returned summary instead.
    """
    log.info("=" * 60)
    log.info(f"[GENERATE MISSING START] exam={exam_id}")

    exam = crud.get_exam(db, exam_id)
    if exam is None:
        raise NotFoundError("Exam not found")
    if exam.blueprint_id is None:
        raise ConfigurationError("Exam was not created with a valid blueprint. Missing blueprint ID.")
    blueprint = crud.get_blueprint(db, exam.blueprint_id)
    if blueprint is None:
        raise NotFoundError("Associated blueprint no longer exists.")

    material_ids = [m.id for m in blueprint.materials]
    tasks = [RuleTask(shortage=s) for s in compute_exam_shortages(db, exam, blueprint)]
    run = _start_run(db, exam_id, tasks)
    summary = GenerationSummary(exam_id=exam_id, run_id=run.id)

    pending: List[RuleTask] = []
    for task in tasks:
        if task.shortage.exam_section is None:
            task.fail(ConfigurationError(
                f"Blueprint section {task.shortage.blueprint_section.id} is not linked to any section of exam {exam_id}"
            ))
        elif task.shortage.shortage <= 0:
            task.advance(RuleState.SKIPPED)
        else:
            pending.append(task)

    log.info(
        f"[PLAN] {len(tasks)} rule(s): {len(pending)} to generate, "
        f"{sum(1 for t in tasks if t.state == RuleState.SKIPPED)} skipped, materials={material_ids}"
    )

    semaphore = asyncio.Semaphore(max(1, concurrency or GENERATION_CONCURRENCY))
    await asyncio.gather(*(_prepare_rule(db, t, material_ids, semaphore) for t in pending))

    # Persist sequentially, in blueprint order
    for task in tasks:
        generated = 0
        if task.state == RuleState.PARSING:
            task.advance(RuleState.PERSISTING)
            try:
                created = persist_rule_batch(
                    db,
                    task.shortage.exam_section,
                    task.shortage.rule,
                    task.items,
                    task.context.text,
                    task.context.chunk_ids,
                )
            except GenerationError as e:
                task.fail(e)
            else:
                generated = len(created)
                summary.generated_count += generated
                task.advance(RuleState.DONE)

        summary.outcomes.append(task.to_outcome(generated))
        if task.state == RuleState.FAILED:
            summary.failures.append(task.to_failure())

    _finish_run(db, run, summary)

    log.info(
        f"[DONE] exam={exam_id} generated={summary.generated_count} "
        f"failed_rules={len(summary.failures)} run={run.id}"
    )
    log.info("=" * 60)
    return summary
