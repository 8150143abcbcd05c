"""Answer questions about a video strictly from its timestamped transcript."""

from .config import EngineSettings, load_settings
from .engine import answer_query_from_transcript
from .errors import (
    ClassificationUnavailable,
    ClientError,
    EmbeddingUnavailable,
    GenerationUnavailable,
    ParseError,
    QueryCancelled,
    TranscriptQaError,
)
from .interfaces import (
    ChatChunk,
    ChatMessage,
    CompletionClient,
    CompositeClient,
    EmbeddingClient,
    LlmClient,
)
from .models import (
    AbsoluteRange,
    Anchor,
    AnswerResult,
    AnswerStatus,
    CoverageReport,
    EvidenceItem,
    QueryIntent,
    QueryUnderstanding,
    RelativeRange,
    Segment,
    SegmentIndex,
)
from .ollama_client import OllamaClient
from .transcript_utils import parse_transcript

__all__ = [
    "AbsoluteRange",
    "Anchor",
    "AnswerResult",
    "AnswerStatus",
    "ChatChunk",
    "ChatMessage",
    "ClassificationUnavailable",
    "ClientError",
    "CompletionClient",
    "CompositeClient",
    "CoverageReport",
    "EmbeddingClient",
    "EmbeddingUnavailable",
    "EngineSettings",
    "EvidenceItem",
    "GenerationUnavailable",
    "LlmClient",
    "OllamaClient",
    "ParseError",
    "QueryCancelled",
    "QueryIntent",
    "QueryUnderstanding",
    "RelativeRange",
    "Segment",
    "SegmentIndex",
    "TranscriptQaError",
    "answer_query_from_transcript",
    "load_settings",
    "parse_transcript",
]
