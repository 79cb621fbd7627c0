"""
Embeddings package
Handles text-to-vector conversion (OpenAI) and vector storage (Qdrant)
"""

from .generator import (
    EmbeddingGenerator,
    get_embedding_generator,
    generate_embedding,
    generate_embeddings_batch
)
from .qdrant_manager import QdrantManager, get_qdrant_manager

__all__ = [
    "EmbeddingGenerator",
    "get_embedding_generator",
    "generate_embedding",
    "generate_embeddings_batch",
    "QdrantManager",
    "get_qdrant_manager",
]
