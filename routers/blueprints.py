"""
Blueprints Router — /blueprints

Endpoints:
  POST /blueprints                       — create blueprint with sections, rules, tags, materials
  GET  /blueprints                       — list blueprints
  GET  /blueprints/{id}                  — full blueprint
  GET  /blueprints/{id}/check-shortage   — bank-wide availability per rule
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import crud, schemas
from database.database import get_db
from generation.shortage_detector import check_blueprint_shortage

router = APIRouter(prefix="/blueprints", tags=["blueprints"])


@router.post("/", response_model=schemas.BlueprintResponse, status_code=status.HTTP_201_CREATED)
def create_blueprint(blueprint: schemas.BlueprintCreate, db: Session = Depends(get_db)):
    """
    Create a blueprint in one call.

    Topic tags are given by name and created when they do not exist yet.
    `material_ids` must reference uploaded knowledge-base materials.
    """
    try:
        db_blueprint = crud.create_blueprint(db, blueprint)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    return crud.blueprint_to_response(crud.get_blueprint(db, db_blueprint.id))


@router.get("/", response_model=List[schemas.BlueprintResponse])
def list_blueprints(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [
        crud.blueprint_to_response(crud.get_blueprint(db, b.id))
        for b in crud.get_blueprints(db, skip=skip, limit=limit)
    ]


@router.get("/{blueprint_id}", response_model=schemas.BlueprintResponse)
def get_blueprint(blueprint_id: int, db: Session = Depends(get_db)):
    blueprint = crud.get_blueprint(db, blueprint_id)
    if blueprint is None:
        raise HTTPException(status_code=404, detail="Blueprint not found")
    return crud.blueprint_to_response(blueprint)


@router.get("/{blueprint_id}/check-shortage", response_model=schemas.ShortageReport)
def check_shortage(blueprint_id: int, db: Session = Depends(get_db)):
    """How many questions each rule can draw from the whole bank, and what is missing."""
    blueprint = crud.get_blueprint(db, blueprint_id)
    if blueprint is None:
        raise HTTPException(status_code=404, detail="Blueprint not found")
    return check_blueprint_shortage(db, blueprint)
