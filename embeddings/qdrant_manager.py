"""
Qdrant Vector Database Manager
Handles vector storage and retrieval of reference-material chunks

One collection (reference_chunks, cosine distance). Point id = document_chunks.id;
payload carries reference_material_id / chunk_index so searches can be
restricted to the materials attached to a blueprint.
"""

from typing import List, Dict, Optional, Any
import logging
import os

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance, VectorParams, PointStruct,
    Filter, FieldCondition, MatchAny, PayloadSchemaType,
)

log = logging.getLogger("embeddings")


class QdrantManager:
    """
    Manages Qdrant vector database operations for reference chunks.

    Collection dimension must match the embedding model
    (text-embedding-3-small = 1536).
    """

    COLLECTION_CHUNKS = os.getenv("QDRANT_COLLECTION", "reference_chunks")
    EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "1536"))

    def __init__(
        self,
        host: str = None,
        port: int = None,
        url: str = None,
        location: str = None,
        embedding_dim: int = None,
    ):
        """
        Initialize Qdrant client

        Args:
            host: Qdrant host (default: localhost)
            port: Qdrant port (default: 6333)
            url: Full URL (overrides host/port)
            location: Local mode, e.g. ":memory:" (overrides url)
            embedding_dim: Vector size of the collection
        """
        self.embedding_dim = embedding_dim or self.EMBEDDING_DIM
        url = url or os.getenv("QDRANT_URL")
        location = location or os.getenv("QDRANT_LOCATION")

        if location:
            self.client = QdrantClient(location=location)
            target = location
        elif url:
            self.client = QdrantClient(url=url)
            target = url
        else:
            host = host or os.getenv("QDRANT_HOST", "localhost")
            port = port or int(os.getenv("QDRANT_PORT", "6333"))
            self.client = QdrantClient(host=host, port=port)
            target = f"{host}:{port}"

        log.info(f"Connected to Qdrant at {target}")

    def collection_exists(self) -> bool:
        collections = self.client.get_collections().collections
        return any(c.name == self.COLLECTION_CHUNKS for c in collections)

    def create_collection(self, recreate: bool = False):
        """Create the reference_chunks collection with its payload indexes."""
        if self.collection_exists():
            if not recreate:
                return
            self.client.delete_collection(self.COLLECTION_CHUNKS)
            log.info(f"Deleted existing: {self.COLLECTION_CHUNKS}")

        self.client.create_collection(
            collection_name=self.COLLECTION_CHUNKS,
            vectors_config=VectorParams(
                size=self.embedding_dim,
                distance=Distance.COSINE,
            ),
        )
        self.client.create_payload_index(
            collection_name=self.COLLECTION_CHUNKS,
            field_name="reference_material_id",
            field_schema=PayloadSchemaType.INTEGER,
        )
        log.info(f"Created collection: {self.COLLECTION_CHUNKS} (dim={self.embedding_dim})")

    def index_chunks_batch(
        self,
        chunk_ids: List[int],
        embeddings: List[List[float]],
        metadatas: List[Dict[str, Any]]
    ) -> List[str]:
        """
        Index reference chunks. Point id = chunk_id.
        Metadata should include: reference_material_id, chunk_index.
        """
        if not (len(chunk_ids) == len(embeddings) == len(metadatas)):
            raise ValueError("chunk_ids, embeddings, and metadatas must have same length")
        self.create_collection()

        points = [
            PointStruct(
                id=chunk_id,
                vector=emb,
                payload={**meta, "chunk_id": chunk_id}
            )
            for chunk_id, emb, meta in zip(chunk_ids, embeddings, metadatas)
        ]
        self.client.upsert(collection_name=self.COLLECTION_CHUNKS, points=points)
        log.info(f"Indexed {len(points)} chunks to Qdrant")
        return [str(cid) for cid in chunk_ids]

    def search(
        self,
        query_vector: List[float],
        material_ids: List[int],
        limit: int = 10,
        score_threshold: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Nearest chunks of the given materials, best first.
        Returns list of {chunk_id, score, reference_material_id, chunk_index}.
        """
        if not material_ids or not self.collection_exists():
            return []

        response = self.client.query_points(
            collection_name=self.COLLECTION_CHUNKS,
            query=query_vector,
            query_filter=Filter(must=[
                FieldCondition(key="reference_material_id", match=MatchAny(any=list(material_ids))),
            ]),
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        results = []
        for point in response.points:
            payload = point.payload or {}
            results.append({
                "chunk_id": payload.get("chunk_id", point.id),
                "score": point.score,
                "reference_material_id": payload.get("reference_material_id"),
                "chunk_index": payload.get("chunk_index", 0),
            })
        return results

    def delete_by_material(self, material_id: int):
        """Delete all vectors of one reference material."""
        if not self.collection_exists():
            return
        self.client.delete(
            collection_name=self.COLLECTION_CHUNKS,
            points_selector=Filter(must=[
                FieldCondition(key="reference_material_id", match=MatchAny(any=[material_id])),
            ]),
        )
        log.info(f"Deleted vectors for material {material_id}")


# Singleton instance
_qdrant_manager: Optional[QdrantManager] = None


def get_qdrant_manager() -> QdrantManager:
    """Get singleton Qdrant manager instance"""
    global _qdrant_manager
    if _qdrant_manager is None:
        _qdrant_manager = QdrantManager()
    return _qdrant_manager
