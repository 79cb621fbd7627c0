"""
Error taxonomy for the generate-missing pipeline.

Setup errors (NotFoundError, ConfigurationError) abort a run before any work.
Every other error is scoped to one blueprint rule and collected as a failure.
"""


class GenerationError(Exception):
    """Base class for pipeline errors. `stage` names the step that failed."""

    stage = "unknown"

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class NotFoundError(GenerationError):
    """Exam or blueprint does not exist (HTTP 404)."""
    stage = "setup"


class ConfigurationError(GenerationError):
    """Exam / section is not linked to a blueprint (HTTP 400)."""
    stage = "setup"


class EmbeddingServiceError(GenerationError):
    stage = "embedding"


class RetrievalError(GenerationError):
    stage = "retrieving"


class GenerationServiceError(GenerationError):
    """Generative model call failed, timed out or exhausted its retries."""
    stage = "generating"


class GenerationParseError(GenerationError):
    """Model output is not a valid JSON array of question objects."""
    stage = "parsing"


class GenerationCountError(GenerationParseError):
    """Model returned a different number of questions than requested."""

    def __init__(self, expected: int, received: int):
        super().__init__(f"Expected {expected} generated questions, received {received}")
        self.expected = expected
        self.received = received


class PersistenceError(GenerationError):
    stage = "persisting"
