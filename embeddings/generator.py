"""
Embedding Generator
Converts text to vector embeddings using OpenAI text-embedding-3-small

Architecture:
- Model: text-embedding-3-small (OpenAI), override with EMBEDDING_MODEL
- Dimensions: 1536
- Failures raise EmbeddingServiceError; callers never receive a zero vector
"""

from typing import List, Optional
import logging
import os

import openai
from openai import AsyncOpenAI
from tqdm import tqdm

from generation.errors import EmbeddingServiceError

log = logging.getLogger("embeddings")


class EmbeddingGenerator:
    """
    Generate embeddings for text using OpenAI text-embedding-3-small

    Model: text-embedding-3-small
    - Dimensions: 1536
    - Cost: $0.02 per 1M tokens
    """

    DEFAULT_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIM = 1536

    def __init__(self, model_name: str = DEFAULT_MODEL, api_key: str = None):
        """
        Initialize embedding generator with OpenAI

        Args:
            model_name: OpenAI model name
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
        """
        self.model_name = model_name
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")

        if not self.api_key:
            raise EmbeddingServiceError(
                "OPENAI_API_KEY not set. Please set environment variable or pass api_key parameter."
            )
        if not self.model_name:
            raise EmbeddingServiceError("Embedding model name is empty")

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            timeout=float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60")),
            max_retries=int(os.getenv("OPENAI_MAX_RETRIES", "2")),
        )
        log.info(f"Embedding model ready: {model_name}")

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a single text

        Args:
            text: Input text

        Returns:
            List of floats (embedding vector)

        Raises:
            EmbeddingServiceError: empty input, API failure or empty response
        """
        if not text or not text.strip():
            raise EmbeddingServiceError("Cannot embed empty text")

        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.model_name
            )
        except openai.OpenAIError as e:
            log.error(f"[EMBED] Embedding call failed: {e}")
            raise EmbeddingServiceError(f"Embedding generation failed: {e}") from e

        if not response.data or not response.data[0].embedding:
            raise EmbeddingServiceError("Embedding API returned an empty vector")
        return list(response.data[0].embedding)

    async def generate_embeddings_batch(
        self,
        texts: List[str],
        batch_size: int = 100,
        show_progress: bool = True
    ) -> List[List[float]]:
        """
        Generate embeddings for multiple texts (batched for efficiency)

        Args:
            texts: List of input texts
            batch_size: Batch size for API calls (max 2048, recommended 100)
            show_progress: Show progress bar

        Returns:
            List of embedding vectors, same order as texts
        """
        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise EmbeddingServiceError("Cannot embed empty text")

        all_embeddings = []

        # Process in batches
        batches = [
            texts[i:i + batch_size]
            for i in range(0, len(texts), batch_size)
        ]

        iterator = tqdm(batches, desc="Batches") if show_progress and len(batches) > 1 else batches

        for batch in iterator:
            try:
                response = await self.client.embeddings.create(
                    input=batch,
                    model=self.model_name
                )
            except openai.OpenAIError as e:
                log.error(f"[EMBED] Batch embedding failed: {e}")
                raise EmbeddingServiceError(f"Batch embedding failed: {e}") from e

            if len(response.data) != len(batch):
                raise EmbeddingServiceError(
                    f"Embedding API returned {len(response.data)} vectors for {len(batch)} inputs"
                )
            # Extract embeddings in order
            ordered = sorted(response.data, key=lambda item: item.index)
            all_embeddings.extend(list(item.embedding) for item in ordered)

        return all_embeddings


# Singleton instance for reuse
_embedding_generator: Optional[EmbeddingGenerator] = None


def get_embedding_generator() -> EmbeddingGenerator:
    """
    Get singleton embedding generator instance
    Lazy initialization - client created on first call
    """
    global _embedding_generator
    if _embedding_generator is None:
        _embedding_generator = EmbeddingGenerator()
    return _embedding_generator


async def generate_embedding(text: str) -> List[float]:
    """Convenience function to generate single embedding"""
    generator = get_embedding_generator()
    return await generator.generate_embedding(text)


async def generate_embeddings_batch(texts: List[str]) -> List[List[float]]:
    """Convenience function to generate batch embeddings"""
    generator = get_embedding_generator()
    return await generator.generate_embeddings_batch(texts)
