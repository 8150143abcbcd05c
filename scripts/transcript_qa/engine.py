"""Transcript QA entry point: parse, classify, select evidence, answer.

Every query ends in an :class:`AnswerResult`.  Collaborator failures
(classification, embeddings, generation) degrade to local heuristics or to
the extractive renderer; only malformed transcripts and caller
cancellation surface as exceptions.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Optional, Sequence

from .config import EngineSettings, load_settings
from .coverage import analyze_coverage
from .errors import EmbeddingUnavailable, GenerationUnavailable
from .extractive import (
    article_answer,
    question_answer,
    summary_answer,
    time_range_answer,
    unrelated_answer,
    wants_article,
)
from .interfaces import LlmClient, check_cancelled
from .models import (
    AbsoluteRange,
    AnswerResult,
    AnswerStatus,
    CoverageReport,
    EvidenceItem,
    QueryIntent,
    QueryUnderstanding,
    SegmentIndex,
    number_evidence,
)
from .query_understanding import summary_topic_tokens, understand_query
from .retrieval import full_timeline, rank_by_relevance, sample_evenly, select_window
from .synthesis import generate_draft
from .transcript_utils import format_window, parse_transcript
from .verification import verify_grounding

logger = logging.getLogger(__name__)


def answer_query_from_transcript(
    llm: LlmClient,
    user_query: str,
    transcript_text: str,
    *,
    settings: Optional[EngineSettings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AnswerResult:
    """Answer ``user_query`` strictly from ``transcript_text``.

    Raises :class:`~transcript_qa.errors.ParseError` when the transcript has
    no timestamped cue, and :class:`~transcript_qa.errors.QueryCancelled`
    when ``cancel_event`` is set mid-flight.
    """
    settings = settings or load_settings()
    t0 = time.time()

    check_cancelled(cancel_event)
    index = parse_transcript(transcript_text)
    logger.info(
        "Parsed %d segment(s) spanning %s",
        len(index), format_window(index.min_start, index.max_end),
    )

    if not (user_query or "").strip():
        understanding = QueryUnderstanding(
            raw_query=user_query or "", intent=QueryIntent.UNRELATED, source="empty"
        )
        return _unrelated(understanding, index)

    understanding = understand_query(
        llm,
        user_query,
        index.duration,
        timeout=settings.classification_timeout,
        cancel_event=cancel_event,
    )
    check_cancelled(cancel_event)

    if understanding.intent is QueryIntent.TIME_RANGE:
        result = _answer_time_range(understanding, index, settings)
    elif understanding.intent is QueryIntent.SUMMARY:
        result = _answer_summary(llm, understanding, index, settings, cancel_event)
    else:
        result = _answer_question(llm, understanding, index, settings, cancel_event)

    logger.info(
        "Answered in %.1fs: intent=%s status=%s source=%s evidence=%d",
        time.time() - t0,
        result.intent.value,
        result.status.value,
        result.source,
        len(result.evidence),
    )
    return result


# ---------------------------------------------------------------------------
# Result assembly
# ---------------------------------------------------------------------------

def assemble_result(
    understanding: QueryUnderstanding,
    intent: QueryIntent,
    content: str,
    evidence: Sequence[EvidenceItem],
    index: SegmentIndex,
    *,
    coverage: Optional[CoverageReport] = None,
    source: str = "extractive",
) -> AnswerResult:
    status = (
        AnswerStatus.INSUFFICIENT_EVIDENCE
        if intent is QueryIntent.UNRELATED
        else AnswerStatus.ANSWERED
    )
    return AnswerResult(
        status=status,
        content=content,
        evidence=tuple(evidence),
        intent=intent,
        time_range=understanding.time_range,
        coverage=coverage,
        source=source,
        warnings=index.warnings,
    )


def _unrelated(
    understanding: QueryUnderstanding,
    index: SegmentIndex,
    window: Optional[AbsoluteRange] = None,
) -> AnswerResult:
    content = unrelated_answer(understanding.prefer_chinese, window, index)
    return assemble_result(understanding, QueryIntent.UNRELATED, content, (), index)


# ---------------------------------------------------------------------------
# Per-intent paths
# ---------------------------------------------------------------------------

def _answer_time_range(
    understanding: QueryUnderstanding, index: SegmentIndex, settings: EngineSettings
) -> AnswerResult:
    window = understanding.time_range
    segments = select_window(index, window)
    if not segments:
        logger.info("No segment starts inside %s", format_window(window.start_seconds, window.end_seconds))
        return _unrelated(understanding, index, window)

    coverage = analyze_coverage(window, index, settings.coverage_tolerance_seconds)
    evidence = number_evidence(segments)
    content = time_range_answer(evidence, window, coverage, understanding.prefer_chinese)
    return assemble_result(
        understanding, QueryIntent.TIME_RANGE, content, evidence, index, coverage=coverage
    )


def _answer_summary(
    llm: LlmClient,
    understanding: QueryUnderstanding,
    index: SegmentIndex,
    settings: EngineSettings,
    cancel_event: Optional[threading.Event],
) -> AnswerResult:
    window = understanding.time_range
    coverage = None
    if window is not None:
        segments = select_window(index, window)
        if not segments:
            return _unrelated(understanding, index, window)
        coverage = analyze_coverage(window, index, settings.coverage_tolerance_seconds)
    else:
        needs_gate = understanding.source == "model" or bool(
            summary_topic_tokens(understanding.raw_query)
        )
        if needs_gate and not _passes_relevance_gate(
            llm, understanding, index, settings, cancel_event
        ):
            return _unrelated(understanding, index)
        segments = full_timeline(index, settings.summary_max_segments)

    evidence = number_evidence(segments)
    draft = _grounded_draft(llm, understanding, evidence, settings, cancel_event)
    if draft is not None:
        return assemble_result(
            understanding, QueryIntent.SUMMARY, draft, evidence, index,
            coverage=coverage, source="model",
        )

    if wants_article(understanding.raw_query):
        content = article_answer(evidence, understanding.prefer_chinese)
    else:
        evidence = number_evidence(sample_evenly(segments, settings.fallback_summary_segments))
        content = summary_answer(evidence, window, coverage, understanding.prefer_chinese)
    return assemble_result(
        understanding, QueryIntent.SUMMARY, content, evidence, index, coverage=coverage
    )


def _answer_question(
    llm: LlmClient,
    understanding: QueryUnderstanding,
    index: SegmentIndex,
    settings: EngineSettings,
    cancel_event: Optional[threading.Event],
) -> AnswerResult:
    try:
        ranked = rank_by_relevance(
            llm,
            understanding.raw_query,
            index.segments,
            top_k=settings.top_k,
            min_similarity=settings.min_similarity,
            timeout=settings.embedding_timeout,
            cancel_event=cancel_event,
        )
    except EmbeddingUnavailable as exc:
        logger.warning("Relevance ranking unavailable, treating query as unrelated: %s", exc)
        ranked = []
    if not ranked:
        return _unrelated(understanding, index)

    understanding = replace(understanding, intent=QueryIntent.QUESTION)
    evidence = number_evidence([s.segment for s in ranked], [s.score for s in ranked])
    draft = _grounded_draft(llm, understanding, evidence, settings, cancel_event)
    if draft is not None:
        return assemble_result(
            understanding, QueryIntent.QUESTION, draft, evidence, index, source="model"
        )
    content = question_answer(evidence, understanding.prefer_chinese)
    return assemble_result(understanding, QueryIntent.QUESTION, content, evidence, index)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _passes_relevance_gate(
    llm: LlmClient,
    understanding: QueryUnderstanding,
    index: SegmentIndex,
    settings: EngineSettings,
    cancel_event: Optional[threading.Event],
) -> bool:
    try:
        hits = rank_by_relevance(
            llm,
            understanding.raw_query,
            index.segments,
            top_k=1,
            min_similarity=settings.min_similarity,
            timeout=settings.embedding_timeout,
            cancel_event=cancel_event,
        )
    except EmbeddingUnavailable as exc:
        logger.warning("Summary relevance gate unavailable: %s", exc)
        return False
    return bool(hits)


def _grounded_draft(
    llm: LlmClient,
    understanding: QueryUnderstanding,
    evidence: Sequence[EvidenceItem],
    settings: EngineSettings,
    cancel_event: Optional[threading.Event],
) -> Optional[str]:
    """A verified model draft, or None when the extractive path should answer."""
    try:
        draft = generate_draft(
            llm,
            understanding,
            evidence,
            timeout=settings.generation_timeout,
            cancel_event=cancel_event,
        )
    except GenerationUnavailable as exc:
        logger.warning("Generation unavailable, using extractive answer: %s", exc)
        return None
    check_cancelled(cancel_event)

    verdict = verify_grounding(draft, evidence)
    if not verdict.ok:
        logger.warning(
            "Discarding ungrounded draft (%s, support %.2f)", verdict.reason, verdict.support
        )
        return None
    return draft
