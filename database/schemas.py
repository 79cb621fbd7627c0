"""
Pydantic schemas for request/response validation
Separate from SQLAlchemy models for clean API contracts
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime


# ==========================================
# BLUEPRINT SCHEMAS
# ==========================================

class BlueprintRuleCreate(BaseModel):
    """One rule inside a blueprint section"""
    question_type: str = Field(..., min_length=1, max_length=30, description="mcq_single, mcq_multiple, paragraph, ...")
    difficulty: Optional[int] = Field(None, ge=1, le=5, description="Exact difficulty level; null = any")
    topic_tags: List[str] = Field(default_factory=list, description="Tag names; created when missing")
    number_of_questions: int = Field(..., ge=1, le=500)
    marks_per_question: float = Field(1, ge=0)
    negative_marks: float = Field(0, ge=0)


class BlueprintSectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    order: int = Field(default=0, ge=0, description="Display order within blueprint")
    rules: List[BlueprintRuleCreate] = Field(default_factory=list)


class BlueprintCreate(BaseModel):
    """Schema for creating a blueprint with its sections and rules in one call"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    generation_method: str = Field("bank", pattern="^(bank|generate_novel)$")
    sections: List[BlueprintSectionCreate] = Field(default_factory=list)
    material_ids: List[int] = Field(default_factory=list, description="Reference materials used as RAG context")


class TagResponse(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class BlueprintRuleResponse(BaseModel):
    id: int
    question_type: str
    difficulty: Optional[int] = None
    topic_tags: List[TagResponse] = Field(default_factory=list)
    number_of_questions: int
    marks_per_question: float
    negative_marks: float

    model_config = ConfigDict(from_attributes=True)


class BlueprintSectionResponse(BaseModel):
    id: int
    name: str
    order: int
    rules: List[BlueprintRuleResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class BlueprintResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    generation_method: str
    sections: List[BlueprintSectionResponse] = Field(default_factory=list)
    material_ids: List[int] = Field(default_factory=list)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==========================================
# SHORTAGE SCHEMAS
# ==========================================

class ShortageEntry(BaseModel):
    section: str
    type: str
    tags: str
    difficulty: str
    required: int
    found: int
    missing: int


class ShortageReport(BaseModel):
    """Bank-wide availability of questions for a blueprint"""
    success: bool = True
    has_shortage: bool
    total_required: int
    total_found: int
    missing_count: int
    shortages: List[ShortageEntry] = Field(default_factory=list)


# ==========================================
# REFERENCE MATERIAL SCHEMAS
# ==========================================

class ReferenceMaterialUpload(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    author: Optional[str] = Field(None, max_length=255)
    text_content: str = Field(..., min_length=1)


class ReferenceMaterialResponse(BaseModel):
    id: int
    title: str
    author: Optional[str] = None
    chunk_count: int
    created_at: datetime


# ==========================================
# EXAM SCHEMAS
# ==========================================

class ExamFromBlueprintRequest(BaseModel):
    """Create an exam from a blueprint, filling sections from the question bank"""
    blueprint_id: int = Field(..., gt=0)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    duration_minutes: int = Field(..., ge=1, le=24 * 60)
    allow_missing_questions: bool = False
    allow_ai_generation_for_missing: bool = False


class ExamSectionSummary(BaseModel):
    id: int
    name: str
    order: int
    blueprint_section_id: Optional[int] = None
    question_count: int
    total_marks: float


class ExamSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    duration_minutes: int
    blueprint_id: Optional[int] = None
    sections: List[ExamSectionSummary] = Field(default_factory=list)
