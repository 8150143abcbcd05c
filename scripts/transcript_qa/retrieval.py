"""Evidence selection: time windows, whole-timeline sampling, and relevance.

Relevance ranking embeds the query together with every segment in a single
batch, scores each segment by cosine similarity against the query vector,
and discounts segments that share no surface text with the query.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .errors import EmbeddingUnavailable, QueryCancelled
from .interfaces import EmbeddingClient, check_cancelled
from .models import AbsoluteRange, Segment, SegmentIndex
from .transcript_utils import bigram_jaccard, has_cjk, tokenize

logger = logging.getLogger(__name__)

LEXICAL_SUPPORT_MIN = 0.05
UNSUPPORTED_DISCOUNT = 0.2


@dataclass(frozen=True)
class ScoredSegment:
    segment: Segment
    score: float
    semantic: float
    supported: bool


# ---------------------------------------------------------------------------
# Time-based selection
# ---------------------------------------------------------------------------

def select_window(index: SegmentIndex, window: AbsoluteRange) -> tuple[Segment, ...]:
    """Segments whose start lies inside ``window`` (both ends inclusive)."""
    return tuple(
        seg
        for seg in index.segments
        if window.start_seconds <= seg.start_seconds <= window.end_seconds
    )


def sample_evenly(segments: Sequence[Segment], count: int) -> tuple[Segment, ...]:
    """Pick ``count`` segments spread evenly over the timeline.

    The first and last segments are always part of the sample.
    """
    items = tuple(segments)
    if count <= 0:
        return ()
    if len(items) <= count:
        return items
    if count == 1:
        return (items[0],)
    last = len(items) - 1
    picked = sorted({round(i * last / (count - 1)) for i in range(count)})
    return tuple(items[i] for i in picked)


def full_timeline(index: SegmentIndex, cap: int) -> tuple[Segment, ...]:
    if len(index) <= cap:
        return index.segments
    logger.info("Transcript has %d segments, sampling %d for summary", len(index), cap)
    return sample_evenly(index.segments, cap)


# ---------------------------------------------------------------------------
# Relevance ranking
# ---------------------------------------------------------------------------

def cosine_scores(query_vector: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of every row in ``matrix`` against ``query_vector``."""
    q_norm = np.linalg.norm(query_vector)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * q_norm
    dots = matrix @ query_vector
    return np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)


def lexical_overlap(query_tokens: Sequence[str], segment_tokens: Sequence[str]) -> float:
    if not query_tokens or not segment_tokens:
        return 0.0
    vocab = set(segment_tokens)
    hits = sum(1 for tok in query_tokens if tok in vocab)
    return hits / len(query_tokens)


def has_lexical_support(query: str, query_tokens: Sequence[str], text: str) -> bool:
    if lexical_overlap(query_tokens, tokenize(text)) >= LEXICAL_SUPPORT_MIN:
        return True
    return bigram_jaccard(query, text) >= LEXICAL_SUPPORT_MIN


def _embed(
    embedder: EmbeddingClient,
    texts: list[str],
    *,
    timeout: float,
    cancel_event: Optional[threading.Event],
) -> np.ndarray:
    t0 = time.time()
    try:
        vectors = embedder.embed_texts(texts, timeout=timeout)
    except QueryCancelled:
        raise
    except Exception as exc:
        raise EmbeddingUnavailable(f"Embedding call failed: {exc}") from exc
    check_cancelled(cancel_event)

    try:
        matrix = np.asarray(vectors, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise EmbeddingUnavailable(f"Embeddings are not a numeric matrix: {exc}") from exc
    if matrix.ndim != 2 or matrix.shape[0] != len(texts) or matrix.shape[1] == 0:
        raise EmbeddingUnavailable(
            f"Expected {len(texts)} embeddings, got array of shape {matrix.shape}"
        )
    logger.debug("Embedded %d texts in %.2fs", len(texts), time.time() - t0)
    return matrix


def score_segments(
    embedder: EmbeddingClient,
    query: str,
    segments: Sequence[Segment],
    *,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> list[ScoredSegment]:
    """Score every segment against the query, in transcript order."""
    if not segments:
        return []
    matrix = _embed(
        embedder,
        [query] + [seg.text for seg in segments],
        timeout=timeout,
        cancel_event=cancel_event,
    )
    semantic = cosine_scores(matrix[0], matrix[1:])

    query_tokens = tokenize(query)
    same_script = has_cjk(query) == any(has_cjk(seg.text) for seg in segments)

    scored = []
    for seg, raw in zip(segments, semantic.tolist()):
        supported = has_lexical_support(query, query_tokens, seg.text)
        score = raw * UNSUPPORTED_DISCOUNT if same_script and not supported else raw
        scored.append(ScoredSegment(segment=seg, score=score, semantic=raw, supported=supported))
    return scored


def rank_by_relevance(
    embedder: EmbeddingClient,
    query: str,
    segments: Sequence[Segment],
    *,
    top_k: int,
    min_similarity: float,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> list[ScoredSegment]:
    """Top-``top_k`` segments scoring at least ``min_similarity``.

    The result is returned in chronological order, not score order.
    Raises :class:`EmbeddingUnavailable` when the embedding backend fails.
    """
    scored = score_segments(
        embedder, query, segments, timeout=timeout, cancel_event=cancel_event
    )
    ranked = sorted(scored, key=lambda s: (-s.score, s.segment.start_seconds))
    kept = [s for s in ranked if s.score >= min_similarity][:top_k]
    if ranked:
        logger.info(
            "Relevance: %d/%d segments kept (best score %.3f, threshold %.2f)",
            len(kept), len(scored), ranked[0].score, min_similarity,
        )
    kept.sort(key=lambda s: (s.segment.start_seconds, s.segment.position))
    return kept
