from __future__ import annotations

from typing import Optional

from .models import AbsoluteRange, CoverageReport, SegmentIndex
from .transcript_utils import format_window

DEFAULT_TOLERANCE_SECONDS = 2.0


def analyze_coverage(
    window: AbsoluteRange,
    index: SegmentIndex,
    tolerance: float = DEFAULT_TOLERANCE_SECONDS,
) -> CoverageReport:
    """Intersect a requested window with the span the transcript covers.

    The report is partial when the intersection is empty, or when it loses
    more than ``tolerance`` seconds at either end of the request.
    """
    req_start, req_end = window.start_seconds, window.end_seconds
    avail_start = max(req_start, index.min_start)
    avail_end = min(req_end, index.max_end)

    if req_end <= req_start:
        return CoverageReport(req_start, req_end, avail_start, avail_end, is_partial=False)
    if avail_end < avail_start:
        return CoverageReport(req_start, req_end, None, None, is_partial=True)

    missing_head = avail_start - req_start > tolerance
    missing_tail = req_end - avail_end > tolerance
    return CoverageReport(
        req_start, req_end, avail_start, avail_end, is_partial=missing_head or missing_tail
    )


def coverage_caveat(report: Optional[CoverageReport], prefer_chinese: bool) -> Optional[str]:
    """One-line notice naming the requested and available windows, if partial."""
    if report is None or not report.is_partial or report.is_empty:
        return None
    requested = format_window(report.requested_start, report.requested_end)
    covered = format_window(report.available_start, report.available_end)
    if prefer_chinese:
        return f"注意：你请求的是 {requested}，但当前 transcript 可覆盖范围只有 {covered}。"
    return f"Note: you requested {requested}, but the available transcript only covers {covered}."
