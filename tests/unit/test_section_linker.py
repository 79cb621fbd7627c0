"""
Unit tests for the section linker

- Appended order continues after the section's highest order
- Marks, citation, tags and AI flag on persisted questions
- All-or-nothing batch with usage tracking
"""
import pytest

from conftest import mcq_items
from database.models import (
    CITATION_INTERNAL, CITATION_RAG, DocumentChunk, Question, SectionQuestion,
)
from generation.errors import PersistenceError
from generation.schemas import GeneratedItem
from generation.section_linker import next_section_order, persist_rule_batch


def _items(count):
    return [GeneratedItem.model_validate(d) for d in mcq_items(count)]


@pytest.fixture
def setup(make_blueprint, make_exam):
    blueprint = make_blueprint([("Mathematics", [
        {"type": "mcq_single", "difficulty": 3, "count": 5, "tags": ["Algebra"], "marks": 4, "negative": 1},
    ])])
    exam = make_exam(blueprint)
    return exam.sections[0], blueprint.sections[0].rules[0]


class TestNextOrder:

    def test_empty_section_starts_at_zero(self, db_session, setup):
        section, _ = setup
        assert next_section_order(db_session, section.id) == 0

    def test_continues_after_max_not_count(self, db_session, setup, make_question, link_question):
        section, _ = setup
        link_question(section, make_question(), order=0)
        link_question(section, make_question(), order=7)

        assert next_section_order(db_session, section.id) == 8


class TestPersistRuleBatch:

    def test_links_with_rule_marks_and_order(self, db_session, setup, make_question, link_question):
        section, rule = setup
        link_question(section, make_question(tags=["Algebra"]), order=0)
        link_question(section, make_question(tags=["Algebra"]), order=1)

        created = persist_rule_batch(db_session, section, rule, _items(3), "Some context")

        assert len(created) == 3
        links = (
            db_session.query(SectionQuestion)
            .filter(SectionQuestion.section_id == section.id)
            .order_by(SectionQuestion.order)
            .all()
        )
        assert [sq.order for sq in links] == [0, 1, 2, 3, 4]
        for link in links[2:]:
            assert link.marks == 4
            assert link.negative_marks == 1
            assert link.question.is_ai_generated is True
            assert link.question.citation == CITATION_RAG
            assert link.question.type == "mcq_single"
            assert link.question.difficulty == 3
            assert [t.name for t in link.question.tags] == ["Algebra"]
            assert link.question.correct_answer == 1

    def test_internal_citation_without_context(self, db_session, setup):
        section, rule = setup

        created = persist_rule_batch(db_session, section, rule, _items(1), "")

        assert created[0].citation == CITATION_INTERNAL

    def test_usage_counts_incremented(self, db_session, setup, make_material):
        section, rule = setup
        material = make_material([
            ("Linear equations in one variable have one solution.", [1.0, 0.0, 0.0]),
            ("Quadratic equations can have two real solutions.", [0.0, 1.0, 0.0]),
        ])
        used_id = material.chunks[0].id

        persist_rule_batch(db_session, section, rule, _items(2), "context", [used_id])

        counts = {c.id: c.usage_count for c in db_session.query(DocumentChunk).all()}
        assert counts[used_id] == 1
        assert counts[material.chunks[1].id] == 0

    def test_failure_rolls_back_whole_batch(self, db_session, setup, monkeypatch):
        section, rule = setup

        def _boom(db, chunk_ids):
            raise RuntimeError("disk full")

        monkeypatch.setattr("generation.section_linker.increment_usage", _boom)

        with pytest.raises(PersistenceError) as exc:
            persist_rule_batch(db_session, section, rule, _items(3), "context", [1])

        assert exc.value.stage == "persisting"
        assert db_session.query(Question).count() == 0
        assert db_session.query(SectionQuestion).count() == 0

    def test_empty_batch_is_noop(self, db_session, setup):
        section, rule = setup
        assert persist_rule_batch(db_session, section, rule, [], "") == []
        assert db_session.query(Question).count() == 0
