"""
Knowledge Base Router — /knowledge-base

Reference material used as RAG context for question generation.
Upload: text → paragraph chunks → embeddings → Qdrant + reference_materials / document_chunks.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.models import DocumentChunk, ReferenceMaterial
from database.schemas import ReferenceMaterialResponse, ReferenceMaterialUpload
from embeddings import generate_embeddings_batch, get_embedding_generator, get_qdrant_manager
from generation.errors import EmbeddingServiceError
from parsing.chunker import split_into_chunks

router = APIRouter(prefix="/knowledge-base", tags=["knowledge-base"])

log = logging.getLogger("knowledge_base")


def _material_response(material: ReferenceMaterial) -> ReferenceMaterialResponse:
    return ReferenceMaterialResponse(
        id=material.id,
        title=material.title,
        author=material.author,
        chunk_count=len(material.chunks),
        created_at=material.created_at,
    )


@router.post("/upload", response_model=ReferenceMaterialResponse, status_code=status.HTTP_201_CREATED)
async def upload_reference_material(request: ReferenceMaterialUpload, db: Session = Depends(get_db)):
    """
    Store a reference text and its embedded chunks.

    Paragraphs of 50 characters or fewer are ignored. Embedding is all-or-nothing:
    if any chunk fails to embed, nothing is stored.
    """
    chunks = split_into_chunks(request.text_content)
    if not chunks:
        raise HTTPException(
            status_code=422,
            detail="Text content has no paragraphs longer than 50 characters to index",
        )

    log.info(f"[UPLOAD] '{request.title}': {len(chunks)} chunk(s) to embed")
    try:
        vectors = await generate_embeddings_batch([c.content for c in chunks])
        model_name = get_embedding_generator().model_name
    except EmbeddingServiceError as e:
        log.error(f"[UPLOAD] Embedding failed for '{request.title}': {e}")
        raise HTTPException(status_code=502, detail=f"Embedding service error: {e}")

    material = ReferenceMaterial(
        title=request.title,
        author=request.author,
        text_content=request.text_content,
    )
    for chunk, vector in zip(chunks, vectors):
        material.chunks.append(DocumentChunk(
            chunk_index=chunk.chunk_index,
            content=chunk.content,
            embedding_model=model_name,
            embedding_dim=len(vector),
        ))
    db.add(material)
    db.flush()

    # Vectors go to Qdrant keyed by chunk id; rows are committed only once indexed
    qdrant = get_qdrant_manager()
    try:
        qdrant.index_chunks_batch(
            chunk_ids=[c.id for c in material.chunks],
            embeddings=vectors,
            metadatas=[
                {"reference_material_id": material.id, "chunk_index": c.chunk_index}
                for c in material.chunks
            ],
        )
    except Exception as e:
        db.rollback()
        log.error(f"[UPLOAD] Vector indexing failed for '{request.title}': {e}")
        raise HTTPException(status_code=502, detail=f"Vector index error: {e}")

    material_id = material.id
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        qdrant.delete_by_material(material_id)
        raise
    db.refresh(material)

    log.info(f"[UPLOAD] Saved material {material.id} with {len(material.chunks)} chunk(s)")
    return _material_response(material)


@router.get("/{material_id}", response_model=ReferenceMaterialResponse)
def get_reference_material(material_id: int, db: Session = Depends(get_db)):
    material = crud.get_reference_material(db, material_id)
    if material is None:
        raise HTTPException(status_code=404, detail="Reference material not found")
    return _material_response(material)
