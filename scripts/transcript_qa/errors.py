from __future__ import annotations


class TranscriptQaError(Exception):
    """Base class for every error raised by the transcript QA engine."""


class ParseError(TranscriptQaError):
    """Raised when a transcript contains no valid timestamped cues."""

    def __init__(self, message: str, warnings: tuple[str, ...] = ()):
        self.warnings = warnings
        super().__init__(message)


class QueryCancelled(TranscriptQaError):
    """Raised when the caller aborts an in-flight query."""


class ClientError(TranscriptQaError):
    """Transport or response-shape failure inside an LLM / embedding client."""


class ClassificationUnavailable(TranscriptQaError):
    """The model tier of intent classification could not produce a verdict."""


class EmbeddingUnavailable(TranscriptQaError):
    """Query or segment embeddings could not be computed."""


class GenerationUnavailable(TranscriptQaError):
    """The model draft timed out, failed, or was not grounded in the evidence."""
