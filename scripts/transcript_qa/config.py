from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Load .env from project root (silently ignored if it doesn't exist)
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "gemma3:12b"
DEFAULT_EMBED_MODEL = "nomic-embed-text"
DEFAULT_LOCAL_EMBED_MODEL = "all-MiniLM-L6-v2"

ENV_PREFIX = "TRANSCRIPT_QA_"


def env_or_default(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = env_or_default(name, "")
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = env_or_default(name, "")
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class EngineSettings:
    """Tunables for one engine invocation.

    Timeouts are in seconds and apply to each outbound call separately.
    """

    top_k: int = 6
    min_similarity: float = 0.35
    classification_timeout: float = 30.0
    embedding_timeout: float = 30.0
    generation_timeout: float = 120.0
    summary_max_segments: int = 800
    fallback_summary_segments: int = 12
    coverage_tolerance_seconds: float = 2.0


def load_settings() -> EngineSettings:
    """Build settings from ``TRANSCRIPT_QA_*`` environment variables."""
    base = EngineSettings()
    return EngineSettings(
        top_k=max(1, _env_int(ENV_PREFIX + "TOP_K", base.top_k)),
        min_similarity=_env_float(ENV_PREFIX + "MIN_SIMILARITY", base.min_similarity),
        classification_timeout=_env_float(
            ENV_PREFIX + "CLASSIFICATION_TIMEOUT", base.classification_timeout
        ),
        embedding_timeout=_env_float(ENV_PREFIX + "EMBEDDING_TIMEOUT", base.embedding_timeout),
        generation_timeout=_env_float(ENV_PREFIX + "GENERATION_TIMEOUT", base.generation_timeout),
        summary_max_segments=max(
            1, _env_int(ENV_PREFIX + "SUMMARY_MAX_SEGMENTS", base.summary_max_segments)
        ),
        fallback_summary_segments=max(
            2, _env_int(ENV_PREFIX + "FALLBACK_SUMMARY_SEGMENTS", base.fallback_summary_segments)
        ),
        coverage_tolerance_seconds=_env_float(
            ENV_PREFIX + "COVERAGE_TOLERANCE_SECONDS", base.coverage_tolerance_seconds
        ),
    )
