"""
Pytest configuration and shared fixtures for the generation API tests

Everything runs against in-memory SQLite. The OpenAI embedding and chat
calls are replaced by deterministic fakes; no network access is needed.
"""
import json
import os
import re

# Must be set before the database module builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest
from typing import Any, Callable, Dict, List, Optional
from fastapi.testclient import TestClient

from database import crud
from database.database import Base, engine, SessionLocal, get_db
from database.models import (
    BlueprintRule, BlueprintSection, DocumentChunk, Exam, ExamBlueprint, ExamSection,
    Question, ReferenceMaterial, SectionQuestion,
)
from embeddings.qdrant_manager import QdrantManager


# ─── Database ──────────────────────────────────────────────────────────────────

@pytest.fixture
def db_session():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def qdrant(monkeypatch) -> QdrantManager:
    """In-memory Qdrant (3-dim vectors), fresh per test"""
    manager = QdrantManager(location=":memory:", embedding_dim=len(QUERY_VECTOR))
    monkeypatch.setattr("embeddings.qdrant_manager._qdrant_manager", manager)
    return manager


@pytest.fixture
def client(db_session):
    """FastAPI test client bound to the test session"""
    from exam_api import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ─── Factories ─────────────────────────────────────────────────────────────────

def _rule_from_dict(db, rule_def: Dict[str, Any]) -> BlueprintRule:
    return BlueprintRule(
        question_type=rule_def.get("type", "mcq_single"),
        difficulty=rule_def.get("difficulty"),
        number_of_questions=rule_def["count"],
        marks_per_question=rule_def.get("marks", 1),
        negative_marks=rule_def.get("negative", 0),
        topic_tags=crud.get_or_create_tags(db, rule_def.get("tags", [])),
    )


@pytest.fixture
def make_blueprint(db_session) -> Callable[..., ExamBlueprint]:
    """
    make_blueprint([("Mathematics", [{"type": "mcq_single", "count": 5, "tags": ["Algebra"]}])])
    """
    def _make(
        sections: List[tuple],
        materials: Optional[List[ReferenceMaterial]] = None,
        generation_method: str = "bank",
        name: str = "Entrance Mock",
    ) -> ExamBlueprint:
        blueprint = ExamBlueprint(name=name, generation_method=generation_method)
        for order, (section_name, rules) in enumerate(sections):
            section = BlueprintSection(name=section_name, order=order)
            for rule_def in rules:
                section.rules.append(_rule_from_dict(db_session, rule_def))
            blueprint.sections.append(section)
        blueprint.materials = list(materials or [])
        db_session.add(blueprint)
        db_session.commit()
        return crud.get_blueprint(db_session, blueprint.id)

    return _make


@pytest.fixture
def make_exam(db_session) -> Callable[..., Exam]:
    """Exam with one section per blueprint section, linked by blueprint_section_id"""
    def _make(blueprint: Optional[ExamBlueprint], link_sections: bool = True) -> Exam:
        exam = Exam(
            title="Mock Test 1",
            duration_minutes=90,
            blueprint_id=blueprint.id if blueprint is not None else None,
        )
        if blueprint is not None:
            for bp_section in blueprint.sections:
                exam.sections.append(ExamSection(
                    name=bp_section.name,
                    order=bp_section.order,
                    blueprint_section_id=bp_section.id if link_sections else None,
                ))
        db_session.add(exam)
        db_session.commit()
        return crud.get_exam(db_session, exam.id)

    return _make


@pytest.fixture
def make_question(db_session) -> Callable[..., Question]:
    def _make(
        type: str = "mcq_single",
        difficulty: Optional[int] = 3,
        tags: Optional[List[str]] = None,
        text: str = "What is 2 + 2?",
    ) -> Question:
        question = Question(
            text={"en": text},
            type=type,
            difficulty=difficulty,
            options=["3", "4", "5", "6"] if type.startswith("mcq") else [],
            correct_answer=1 if type.startswith("mcq") else None,
            explanation="Basic arithmetic.",
            tags=crud.get_or_create_tags(db_session, tags or []),
        )
        db_session.add(question)
        db_session.commit()
        return question

    return _make


@pytest.fixture
def link_question(db_session) -> Callable[..., SectionQuestion]:
    def _link(section: ExamSection, question: Question, order: int, marks: float = 1) -> SectionQuestion:
        link = SectionQuestion(section_id=section.id, question_id=question.id, marks=marks, order=order)
        db_session.add(link)
        db_session.commit()
        return link

    return _link


@pytest.fixture
def make_material(db_session, qdrant) -> Callable[..., ReferenceMaterial]:
    """Reference material whose chunks are indexed in Qdrant with the given vectors (None = not indexed)"""
    def _make(chunks: List[tuple], title: str = "Algebra Notes") -> ReferenceMaterial:
        material = ReferenceMaterial(title=title, text_content="\n\n".join(c for c, _ in chunks))
        for index, (content, vector) in enumerate(chunks):
            material.chunks.append(DocumentChunk(
                chunk_index=index,
                content=content,
                embedding_model="fake-embedding",
                embedding_dim=len(vector) if vector else None,
            ))
        db_session.add(material)
        db_session.commit()
        indexed = [(c, v) for c, (_, v) in zip(material.chunks, chunks) if v is not None]
        if indexed:
            qdrant.index_chunks_batch(
                chunk_ids=[c.id for c, _ in indexed],
                embeddings=[v for _, v in indexed],
                metadatas=[{"reference_material_id": material.id, "chunk_index": c.chunk_index} for c, _ in indexed],
            )
        return material

    return _make


# ─── Fake model services ───────────────────────────────────────────────────────

QUERY_VECTOR = [1.0, 0.0, 0.0]


def mcq_items(count: int, prefix: str = "Solve") -> List[Dict[str, Any]]:
    return [
        {
            "text": f"{prefix}: x + {i} = {i + 2}. What is x?",
            "type": "mcq_single",
            "options": ["1", "2", "3", "4"],
            "correctOption": 1,
            "difficulty": 3,
            "explanation": "Subtract from both sides; x = 2.",
        }
        for i in range(count)
    ]


def plain_items(count: int, prefix: str = "Compute") -> List[Dict[str, Any]]:
    return [
        {
            "text": f"{prefix} the value of {i} squared.",
            "difficulty": "medium",
            "explanation": f"{i} squared is {i * i}.",
        }
        for i in range(count)
    ]


class FakeGPT:
    """
    Stand-in for generation.gpt_client.call_gpt.

    By default answers every call with exactly the requested number of valid
    items (read back from the system instruction). Set `responder` to
    override per test: it receives (prompt, system) and returns raw text.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.responder: Optional[Callable[[str, str], str]] = None

    @staticmethod
    def requested_count(system: str) -> int:
        return int(re.search(r"Generate exactly (\d+)", system).group(1))

    def default_response(self, prompt: str, system: str) -> str:
        count = self.requested_count(system)
        if '"options"' in system:
            return json.dumps(mcq_items(count))
        return json.dumps(plain_items(count))

    async def __call__(self, prompt, system="", temperature=0.4, max_tokens=2048):
        self.calls.append({"prompt": prompt, "system": system, "max_tokens": max_tokens})
        responder = self.responder or self.default_response
        return responder(prompt, system)


class FakeEmbedder:
    def __init__(self, vector: Optional[List[float]] = None):
        self.vector = vector or list(QUERY_VECTOR)
        self.texts: List[str] = []

    async def __call__(self, text: str) -> List[float]:
        self.texts.append(text)
        return list(self.vector)


@pytest.fixture
def fake_gpt(monkeypatch) -> FakeGPT:
    fake = FakeGPT()
    monkeypatch.setattr("generation.gpt_client.call_gpt", fake)
    return fake


@pytest.fixture
def fake_embedding(monkeypatch) -> FakeEmbedder:
    fake = FakeEmbedder()
    monkeypatch.setattr("generation.missing_pipeline.generate_embedding", fake)
    return fake
