"""
Shared OpenAI GPT helper for the generation pipeline.

Used by:
  - question_generator.py   (generate-missing questions)

Model: gpt-4o-mini  (override with GPT_MODEL env var, e.g. "gpt-4o")
Every call carries an explicit timeout and a bounded retry count.
"""

import logging
import os

import openai
from openai import AsyncOpenAI

from generation.errors import GenerationServiceError

log = logging.getLogger("generation.pipeline")

# ── Model config ───────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "2"))

# Lazy singleton
_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise GenerationServiceError(
                "OPENAI_API_KEY is not set. Add it to your .env file."
            )
        _client = AsyncOpenAI(
            api_key=api_key,
            timeout=OPENAI_TIMEOUT_SECONDS,
            max_retries=OPENAI_MAX_RETRIES,
        )
    return _client


async def call_gpt(
    prompt: str,
    system: str = "You are a helpful academic assistant. Output only what is asked.",
    temperature: float = 0.4,
    max_tokens: int = 2048,
) -> str:
    """
    Call OpenAI Chat Completions and return the assistant message text.

    Args:
        prompt:      User-turn message (the actual instruction/question)
        system:      System prompt
        temperature: Sampling temperature (lower = more deterministic)
        max_tokens:  Max response tokens

    Returns:
        Raw string content of the model response

    Raises:
        GenerationServiceError: timeout, API error, or retries exhausted
    """
    client = _get_client()
    try:
        response = await client.chat.completions.create(
            model=GPT_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except openai.APITimeoutError as e:
        log.error(f"[GPT] Timed out after {OPENAI_TIMEOUT_SECONDS}s ({OPENAI_MAX_RETRIES} retries)")
        raise GenerationServiceError(f"Generation timed out: {e}") from e
    except openai.OpenAIError as e:
        log.error(f"[GPT] API error: {e}")
        raise GenerationServiceError(f"Generation API error: {e}") from e

    if not response.choices:
        raise GenerationServiceError("Generation API returned no choices")
    return response.choices[0].message.content or ""
