"""
SQLAlchemy models for the entrance-exam store
Blueprint → Section → Rule, Question Bank, Reference Material → Chunk, Exam → Section → SectionQuestion

Chunk embeddings live in Qdrant (embeddings/qdrant_manager.py), keyed by
document_chunks.id; the table keeps the text and embedding metadata.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Float, JSON, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database.database import Base


CITATION_RAG = "AI Synthesized RAG"
CITATION_INTERNAL = "AI Internal Knowledge Base"


# ==========================================
# ASSOCIATION TABLES
# ==========================================

rule_topic_tags = Table(
    "blueprint_rule_tags",
    Base.metadata,
    Column("rule_id", Integer, ForeignKey("blueprint_rules.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

question_tags = Table(
    "question_tags",
    Base.metadata,
    Column("question_id", Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

blueprint_materials = Table(
    "blueprint_materials",
    Base.metadata,
    Column("blueprint_id", Integer, ForeignKey("exam_blueprints.id", ondelete="CASCADE"), primary_key=True),
    Column("material_id", Integer, ForeignKey("reference_materials.id", ondelete="CASCADE"), primary_key=True),
)


# ==========================================
# TAGS
# ==========================================

class Tag(Base):
    """Topic tag shared by blueprint rules and bank questions (e.g. 'Algebra')."""
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Tag(id={self.id}, name='{self.name}')>"


# ==========================================
# BLUEPRINT: BLUEPRINT → SECTION → RULE
# ==========================================

class ExamBlueprint(Base):
    """
    Reusable exam recipe.
    generation_method: 'bank' = fill from the question bank, 'generate_novel' = always generate.
    materials: reference documents used as RAG context during generation.
    """
    __tablename__ = "exam_blueprints"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    generation_method = Column(String(30), default="bank", nullable=False, server_default="bank")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    sections = relationship(
        "BlueprintSection",
        back_populates="blueprint",
        cascade="all, delete-orphan",
        order_by="BlueprintSection.order",
    )
    materials = relationship("ReferenceMaterial", secondary=blueprint_materials, backref="blueprints")

    def __repr__(self):
        return f"<ExamBlueprint(id={self.id}, name='{self.name}')>"


class BlueprintSection(Base):
    """Ordered section of a blueprint (e.g. 'Mathematics')."""
    __tablename__ = "blueprint_sections"

    id = Column(Integer, primary_key=True, index=True)
    blueprint_id = Column(Integer, ForeignKey("exam_blueprints.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    order = Column(Integer, default=0, nullable=False)

    blueprint = relationship("ExamBlueprint", back_populates="sections")
    rules = relationship(
        "BlueprintRule",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="BlueprintRule.id",
    )

    def __repr__(self):
        return f"<BlueprintSection(id={self.id}, name='{self.name}', order={self.order})>"


class BlueprintRule(Base):
    """
    One shortage unit inside a section: how many questions of a type / difficulty / topic.
    difficulty is a 1–5 level; null means any difficulty.
    """
    __tablename__ = "blueprint_rules"

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("blueprint_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    question_type = Column(String(30), nullable=False)  # mcq_single, mcq_multiple, paragraph, numerical
    difficulty = Column(Integer, nullable=True)
    number_of_questions = Column(Integer, nullable=False)
    marks_per_question = Column(Float, default=1, nullable=False)
    negative_marks = Column(Float, default=0, nullable=False)

    section = relationship("BlueprintSection", back_populates="rules")
    topic_tags = relationship("Tag", secondary=rule_topic_tags, order_by="Tag.id")

    @property
    def tag_ids(self):
        return [t.id for t in self.topic_tags]

    @property
    def tag_names(self):
        return [t.name for t in self.topic_tags]

    def __repr__(self):
        return f"<BlueprintRule(id={self.id}, type='{self.question_type}', n={self.number_of_questions})>"


# ==========================================
# REFERENCE MATERIAL → CHUNKS
# ==========================================

class ReferenceMaterial(Base):
    """Uploaded reference text (book chapter, notes) used as retrieval context."""
    __tablename__ = "reference_materials"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False)
    author = Column(String(255), nullable=True)
    text_content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    chunks = relationship(
        "DocumentChunk",
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="DocumentChunk.chunk_index",
    )

    def __repr__(self):
        return f"<ReferenceMaterial(id={self.id}, title='{self.title}')>"


class DocumentChunk(Base):
    """
    Paragraph-sized slice of a reference material; its vector is stored in Qdrant (point id = id).
    usage_count: how many generation batches used this chunk as context.
    """
    __tablename__ = "document_chunks"

    id = Column(Integer, primary_key=True, index=True)
    reference_material_id = Column(Integer, ForeignKey("reference_materials.id", ondelete="CASCADE"), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)  # Order of chunk within material
    page_number = Column(Integer, nullable=True)
    content = Column(Text, nullable=False)

    embedding_model = Column(String(100), nullable=True)  # text-embedding-3-small
    embedding_dim = Column(Integer, nullable=True)  # 1536
    usage_count = Column(Integer, default=0, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    material = relationship("ReferenceMaterial", back_populates="chunks")

    def __repr__(self):
        return f"<DocumentChunk(id={self.id}, material_id={self.reference_material_id}, chunk_index={self.chunk_index})>"


# ==========================================
# QUESTION BANK
# ==========================================

class Paragraph(Base):
    """Shared passage for paragraph-type (comprehension) questions."""
    __tablename__ = "paragraphs"

    id = Column(Integer, primary_key=True, index=True)
    text = Column(JSON, nullable=False)  # {"en": "..."}
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Question(Base):
    """
    Bank question, authored or AI-generated.
    text is multilingual: {"en": "...", "hi": "..."}.
    correct_answer: 0-based option index for MCQs, free JSON otherwise.
    citation: provenance of AI questions (CITATION_RAG / CITATION_INTERNAL).
    """
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    text = Column(JSON, nullable=False)
    type = Column(String(30), nullable=False, index=True)
    difficulty = Column(Integer, nullable=True, index=True)
    options = Column(JSON, default=list, nullable=False)
    correct_answer = Column(JSON, nullable=True)
    explanation = Column(Text, nullable=True)
    paragraph_id = Column(Integer, ForeignKey("paragraphs.id", ondelete="SET NULL"), nullable=True, index=True)
    is_ai_generated = Column(Boolean, default=False, nullable=False, server_default="false")
    citation = Column(String(100), nullable=True)
    order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    paragraph = relationship("Paragraph", backref="questions")
    tags = relationship("Tag", secondary=question_tags, backref="questions")
    section_links = relationship("SectionQuestion", back_populates="question", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Question(id={self.id}, type='{self.type}', ai={self.is_ai_generated})>"


# ==========================================
# EXAMS: EXAM → SECTION → SECTION QUESTION
# ==========================================

class Exam(Base):
    """Exam instance, optionally created from a blueprint."""
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    blueprint_id = Column(Integer, ForeignKey("exam_blueprints.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    blueprint = relationship("ExamBlueprint", backref="exams")
    sections = relationship(
        "ExamSection",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="ExamSection.order",
    )

    def __repr__(self):
        return f"<Exam(id={self.id}, title='{self.title}', blueprint_id={self.blueprint_id})>"


class ExamSection(Base):
    """
    Section of an exam.
    blueprint_section_id links the section to the blueprint section it was built from;
    shortage detection relies on this link, never on position.
    """
    __tablename__ = "exam_sections"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    blueprint_section_id = Column(Integer, ForeignKey("blueprint_sections.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    order = Column(Integer, default=0, nullable=False)

    exam = relationship("Exam", back_populates="sections")
    blueprint_section = relationship("BlueprintSection")
    questions = relationship(
        "SectionQuestion",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="SectionQuestion.order",
    )

    def __repr__(self):
        return f"<ExamSection(id={self.id}, exam_id={self.exam_id}, order={self.order})>"


class SectionQuestion(Base):
    """Links a bank question into an exam section with instance-specific marks and order."""
    __tablename__ = "section_questions"

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("exam_sections.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    marks = Column(Float, default=1, nullable=False)
    negative_marks = Column(Float, default=0, nullable=False)
    order = Column(Integer, nullable=False)

    section = relationship("ExamSection", back_populates="questions")
    question = relationship("Question", back_populates="section_links")

    def __repr__(self):
        return f"<SectionQuestion(section_id={self.section_id}, question_id={self.question_id}, order={self.order})>"


# ==========================================
# GENERATION RUNS
# ==========================================

class GenerationRun(Base):
    """Tracks each generate-missing run: requested vs generated, fail reasons."""
    __tablename__ = "generation_runs"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    model = Column(String(100), nullable=True)
    status = Column(String(20), default="running", nullable=False, index=True)  # running | completed | partial | failed
    counts_requested = Column(JSON, nullable=True)  # {rule_id: shortage}
    generated_count = Column(Integer, default=0, nullable=False)
    fail_reasons = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
