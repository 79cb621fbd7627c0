"""
Retrieval Engine

Per blueprint rule:
- Builds the natural-language topic description that gets embedded
- Searches the Qdrant chunk index (cosine) for the description's vector,
  restricted to the blueprint's reference materials
- Returns the top RAG_TOP_K chunk texts joined into one context block

No reference materials (or no embedded chunks) → empty context, and the
generator falls back to the model's general knowledge.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import BlueprintRule, DocumentChunk
from embeddings.qdrant_manager import get_qdrant_manager
from generation.errors import RetrievalError

log = logging.getLogger("generation.pipeline")


# ─── Constants ────────────────────────────────────────────────────────────────

RAG_TOP_K = int(os.getenv("RAG_TOP_K", "15"))
CONTEXT_SEPARATOR = "\n\n---\n\n"
DEFAULT_TOPIC = "General Knowledge"


@dataclass
class RetrievedContext:
    text: str = ""
    chunk_ids: List[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text


# ─── Topic description ────────────────────────────────────────────────────────

def topic_label(rule: BlueprintRule) -> str:
    names = rule.tag_names
    return ", ".join(names) if names else DEFAULT_TOPIC


def difficulty_label(rule: BlueprintRule) -> str:
    return str(rule.difficulty) if rule.difficulty is not None else "medium"


def build_topic_description(rule: BlueprintRule) -> str:
    """Text that is embedded as the retrieval query for a rule."""
    return (
        f"Generate a {rule.question_type} question about {topic_label(rule)}. "
        f"Difficulty level: {difficulty_label(rule)}."
    )


# ─── Main retrieval ───────────────────────────────────────────────────────────

def retrieve_context(
    db: Session,
    material_ids: List[int],
    query_vector: List[float],
    top_k: int = RAG_TOP_K,
) -> RetrievedContext:
    """
    Top-k most similar chunks of the given reference materials.

    Vector search runs in Qdrant, restricted to `material_ids`; chunk text is
    read back from document_chunks. Hits whose row no longer exists are dropped.

    Raises:
        RetrievalError: vector search or chunk lookup failed
    """
    if not material_ids:
        return RetrievedContext()

    try:
        hits = get_qdrant_manager().search(
            query_vector=query_vector,
            material_ids=material_ids,
            limit=top_k,
        )
    except Exception as e:
        raise RetrievalError(f"Vector search failed: {e}") from e

    # Score descending; ties resolved by material order then chunk order
    hits.sort(key=lambda h: (-round(h["score"], 6), h["reference_material_id"] or 0, h["chunk_index"]))
    chunk_ids = [h["chunk_id"] for h in hits]
    if not chunk_ids:
        log.info(f"[RETRIEVE] No indexed chunks in material(s) {material_ids}")
        return RetrievedContext()

    try:
        rows = db.query(DocumentChunk).filter(DocumentChunk.id.in_(chunk_ids)).all()
    except SQLAlchemyError as e:
        raise RetrievalError(f"Chunk lookup failed: {e}") from e

    by_id = {row.id: row for row in rows}
    top = [by_id[cid] for cid in chunk_ids if cid in by_id]

    log.info(
        f"[RETRIEVE] {len(hits)} hit(s) in {len(material_ids)} material(s), kept {len(top)}, "
        f"best score {hits[0]['score']:.3f}"
    )
    return RetrievedContext(
        text=CONTEXT_SEPARATOR.join(chunk.content for chunk in top),
        chunk_ids=[chunk.id for chunk in top],
    )
