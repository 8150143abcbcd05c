"""Deterministic answers built only from quoted transcript lines.

Used for every time-range request, and whenever a model draft is missing or
fails the grounding check.  Wording follows the query language.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from .coverage import coverage_caveat
from .models import AbsoluteRange, CoverageReport, EvidenceItem, SegmentIndex
from .transcript_utils import format_window

ARTICLE_REQUEST_RE = re.compile(r"文章|长文|500字|五百字|essay|article|detailed", re.IGNORECASE)

ARTICLE_MAX_ITEMS = 120
ARTICLE_ITEMS_PER_PART = 24

NO_EVIDENCE_ZH = "当前 transcript 中没有足够证据回答这个问题。"
NO_EVIDENCE_EN = "There is not enough evidence in the transcript to answer this question."


def wants_article(query: str) -> bool:
    return bool(ARTICLE_REQUEST_RE.search(query or ""))


def quote_lines(evidence: Sequence[EvidenceItem]) -> list[str]:
    return [f"- {item.segment.stamp} {item.segment.text} [{item.label}]" for item in evidence]


def _window_label(window: AbsoluteRange) -> str:
    return format_window(window.start_seconds, window.end_seconds)


# ---------------------------------------------------------------------------
# Per-intent renderers
# ---------------------------------------------------------------------------

def time_range_answer(
    evidence: Sequence[EvidenceItem],
    window: AbsoluteRange,
    coverage: Optional[CoverageReport],
    prefer_chinese: bool,
) -> str:
    label = _window_label(window)
    if prefer_chinese:
        header = f"根据 transcript，{label} 这段主要内容如下："
    else:
        header = f"According to the transcript, this is what is covered in {label}:"
    lines = [coverage_caveat(coverage, prefer_chinese), header, *quote_lines(evidence)]
    return "\n".join(line for line in lines if line)


def summary_answer(
    evidence: Sequence[EvidenceItem],
    window: Optional[AbsoluteRange],
    coverage: Optional[CoverageReport],
    prefer_chinese: bool,
) -> str:
    if window is not None:
        label = _window_label(window)
        header = (
            f"根据 transcript，{label} 这一段的重点是："
            if prefer_chinese
            else f"According to the transcript, key points in {label} are:"
        )
    else:
        header = (
            "根据 transcript，视频重点是："
            if prefer_chinese
            else "According to the transcript, the video highlights are:"
        )
    lines = [coverage_caveat(coverage, prefer_chinese), header, *quote_lines(evidence)]
    return "\n".join(line for line in lines if line)


def _split_thirds(items: Sequence[EvidenceItem]):
    n = len(items)
    first_cut = max(1, n // 3)
    second_cut = max(first_cut, (2 * n) // 3)
    return items[:first_cut], items[first_cut:second_cut], items[second_cut:]


def _digest(chunk: Sequence[EvidenceItem]) -> str:
    if not chunk:
        return ""
    picked = chunk[:ARTICLE_ITEMS_PER_PART]
    text = " ".join(item.segment.text for item in picked)
    return f"{text} [{picked[0].label}]"


def article_answer(evidence: Sequence[EvidenceItem], prefer_chinese: bool) -> str:
    """Opening / middle / ending digest stitched from quoted transcript text."""
    if not evidence:
        return NO_EVIDENCE_ZH if prefer_chinese else NO_EVIDENCE_EN
    opening, middle, ending = _split_thirds(list(evidence[:ARTICLE_MAX_ITEMS]))
    parts = [_digest(opening), _digest(middle), _digest(ending)]
    if prefer_chinese:
        labels = ("开头部分", "中段", "后段")
        lines = ["根据完整 transcript，视频内容可按以下三个阶段整理："]
        lines += [f"{name}：{text}" for name, text in zip(labels, parts) if text]
    else:
        labels = ("Opening", "Middle", "Ending")
        lines = ["According to the full transcript, the video unfolds in three stages:"]
        lines += [f"{name}: {text}" for name, text in zip(labels, parts) if text]
    return "\n".join(lines)


def question_answer(evidence: Sequence[EvidenceItem], prefer_chinese: bool) -> str:
    header = (
        "根据 transcript，相关内容如下："
        if prefer_chinese
        else "According to the transcript, the relevant lines are:"
    )
    return "\n".join([header, *quote_lines(evidence)])


def unrelated_answer(
    prefer_chinese: bool,
    window: Optional[AbsoluteRange] = None,
    index: Optional[SegmentIndex] = None,
) -> str:
    if window is None or index is None:
        return NO_EVIDENCE_ZH if prefer_chinese else NO_EVIDENCE_EN
    requested = _window_label(window)
    span = format_window(index.min_start, index.max_end)
    if prefer_chinese:
        return f"当前 transcript 在 {requested} 没有内容，可覆盖范围只有 {span}。"
    return (
        f"The transcript has no content in {requested}; "
        f"it only covers {span}."
    )
