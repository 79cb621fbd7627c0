"""
Usage Tracker

Increments usage_count on DocumentChunk rows that served as context for a
persisted generation batch. Runs inside the caller's transaction.
"""

from typing import List
from sqlalchemy.orm import Session

from database.models import DocumentChunk


def increment_usage(db: Session, chunk_ids: List[int]) -> None:
    """
    Increment usage_count for each chunk_id used in generation.

    Args:
        db: Database session (not committed here)
        chunk_ids: List of chunk IDs that were used as context for generation
    """
    if not chunk_ids:
        return
    db.query(DocumentChunk).filter(DocumentChunk.id.in_(set(chunk_ids))).update(
        {DocumentChunk.usage_count: DocumentChunk.usage_count + 1},
        synchronize_session=False,
    )
