"""
CRUD operations for the blueprint / exam store
Read paths used by the generation pipeline go through these functions
"""

from sqlalchemy.orm import Session, selectinload
from typing import List, Optional, Iterable
from database import models, schemas


# ==========================================
# TAG CRUD
# ==========================================

def get_or_create_tags(db: Session, names: Iterable[str]) -> List[models.Tag]:
    """Resolve tag names to Tag rows, creating the missing ones (flush only, no commit)"""
    wanted = []
    for name in names:
        name = name.strip()
        if name and name not in wanted:
            wanted.append(name)
    if not wanted:
        return []

    existing = {
        t.name: t
        for t in db.query(models.Tag).filter(models.Tag.name.in_(wanted)).all()
    }
    tags = []
    for name in wanted:
        tag = existing.get(name)
        if tag is None:
            tag = models.Tag(name=name)
            db.add(tag)
        tags.append(tag)
    db.flush()
    return tags


# ==========================================
# BLUEPRINT CRUD
# ==========================================

def create_blueprint(db: Session, blueprint: schemas.BlueprintCreate) -> models.ExamBlueprint:
    """Create a blueprint with nested sections, rules and material links"""
    db_blueprint = models.ExamBlueprint(
        name=blueprint.name,
        description=blueprint.description,
        generation_method=blueprint.generation_method,
    )

    if blueprint.material_ids:
        materials = (
            db.query(models.ReferenceMaterial)
            .filter(models.ReferenceMaterial.id.in_(blueprint.material_ids))
            .all()
        )
        found = {m.id for m in materials}
        missing = [mid for mid in blueprint.material_ids if mid not in found]
        if missing:
            raise ValueError(f"Reference materials not found: {missing}")
        db_blueprint.materials = materials

    for section in blueprint.sections:
        db_section = models.BlueprintSection(name=section.name, order=section.order)
        for rule in section.rules:
            db_section.rules.append(models.BlueprintRule(
                question_type=rule.question_type,
                difficulty=rule.difficulty,
                number_of_questions=rule.number_of_questions,
                marks_per_question=rule.marks_per_question,
                negative_marks=rule.negative_marks,
                topic_tags=get_or_create_tags(db, rule.topic_tags),
            ))
        db_blueprint.sections.append(db_section)

    db.add(db_blueprint)
    db.commit()
    db.refresh(db_blueprint)
    return db_blueprint


def get_blueprint(db: Session, blueprint_id: int) -> Optional[models.ExamBlueprint]:
    """Get blueprint with sections, rules, tags and materials loaded"""
    return db.query(models.ExamBlueprint).options(
        selectinload(models.ExamBlueprint.sections)
        .selectinload(models.BlueprintSection.rules)
        .selectinload(models.BlueprintRule.topic_tags),
        selectinload(models.ExamBlueprint.materials),
    ).filter(models.ExamBlueprint.id == blueprint_id).first()


def get_blueprints(db: Session, skip: int = 0, limit: int = 100) -> List[models.ExamBlueprint]:
    """Get all blueprints with pagination"""
    return (
        db.query(models.ExamBlueprint)
        .order_by(models.ExamBlueprint.id)
        .offset(skip)
        .limit(limit)
        .all()
    )


def blueprint_to_response(blueprint: models.ExamBlueprint) -> schemas.BlueprintResponse:
    return schemas.BlueprintResponse(
        id=blueprint.id,
        name=blueprint.name,
        description=blueprint.description,
        generation_method=blueprint.generation_method,
        sections=[
            schemas.BlueprintSectionResponse.model_validate(s) for s in blueprint.sections
        ],
        material_ids=[m.id for m in blueprint.materials],
        created_at=blueprint.created_at,
    )


# ==========================================
# EXAM CRUD
# ==========================================

def get_exam(db: Session, exam_id: int) -> Optional[models.Exam]:
    """Get exam with its sections loaded"""
    return db.query(models.Exam).options(
        selectinload(models.Exam.sections)
    ).filter(models.Exam.id == exam_id).first()


def exam_to_summary(exam: models.Exam) -> schemas.ExamSummary:
    return schemas.ExamSummary(
        id=exam.id,
        title=exam.title,
        description=exam.description,
        duration_minutes=exam.duration_minutes,
        blueprint_id=exam.blueprint_id,
        sections=[
            schemas.ExamSectionSummary(
                id=s.id,
                name=s.name,
                order=s.order,
                blueprint_section_id=s.blueprint_section_id,
                question_count=len(s.questions),
                total_marks=sum(sq.marks for sq in s.questions),
            )
            for s in exam.sections
        ],
    )


# ==========================================
# REFERENCE MATERIAL CRUD
# ==========================================

def get_reference_material(db: Session, material_id: int) -> Optional[models.ReferenceMaterial]:
    return db.query(models.ReferenceMaterial).filter(models.ReferenceMaterial.id == material_id).first()
