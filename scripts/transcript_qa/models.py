"""Value types shared by every stage of the transcript QA pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


@dataclass(frozen=True)
class Segment:
    """One timestamped transcript cue."""

    start_seconds: float
    end_seconds: float
    text: str
    stamp: str
    position: int


@dataclass(frozen=True)
class SegmentIndex:
    segments: tuple[Segment, ...]
    warnings: tuple[str, ...] = ()

    @property
    def min_start(self) -> float:
        return min(s.start_seconds for s in self.segments)

    @property
    def max_end(self) -> float:
        return max(s.end_seconds for s in self.segments)

    @property
    def duration(self) -> float:
        return self.max_end

    def __len__(self) -> int:
        return len(self.segments)


# ---------------------------------------------------------------------------
# Time ranges
# ---------------------------------------------------------------------------

class Anchor(str, Enum):
    HEAD = "head"
    TAIL = "tail"


@dataclass(frozen=True)
class AbsoluteRange:
    start_seconds: float
    end_seconds: float


@dataclass(frozen=True)
class RelativeRange:
    """A fraction of the transcript measured from its beginning or its end."""

    anchor: Anchor
    numerator: int
    denominator: int

    def resolve(self, duration: float) -> AbsoluteRange:
        # multiply before dividing so 90 * 1 / 3 lands exactly on 30.0
        span = duration * self.numerator / self.denominator
        if self.anchor is Anchor.HEAD:
            return AbsoluteRange(0.0, span)
        return AbsoluteRange(duration - span, duration)


TimeRangeSpec = Optional[Union[AbsoluteRange, RelativeRange]]


def resolve_range(spec: TimeRangeSpec, duration: float) -> Optional[AbsoluteRange]:
    if spec is None:
        return None
    if isinstance(spec, RelativeRange):
        return spec.resolve(duration)
    return spec


# ---------------------------------------------------------------------------
# Query understanding
# ---------------------------------------------------------------------------

class QueryIntent(str, Enum):
    SUMMARY = "summary"
    TIME_RANGE = "time_range"
    QUESTION = "question"
    UNRELATED = "unrelated"


@dataclass(frozen=True)
class QueryUnderstanding:
    raw_query: str
    intent: QueryIntent
    range_spec: TimeRangeSpec = None
    time_range: Optional[AbsoluteRange] = None
    language: str = "en"
    source: str = "heuristic"

    @property
    def prefer_chinese(self) -> bool:
        return self.language == "zh"


# ---------------------------------------------------------------------------
# Evidence and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EvidenceItem:
    segment: Segment
    index: int
    score: float = 1.0

    @property
    def label(self) -> str:
        return f"E{self.index}"

    @property
    def start_seconds(self) -> float:
        return self.segment.start_seconds


@dataclass(frozen=True)
class CoverageReport:
    requested_start: float
    requested_end: float
    available_start: Optional[float]
    available_end: Optional[float]
    is_partial: bool

    @property
    def is_empty(self) -> bool:
        return self.available_start is None


class AnswerStatus(str, Enum):
    ANSWERED = "answered"
    INSUFFICIENT_EVIDENCE = "insufficient_evidence"


@dataclass(frozen=True)
class AnswerResult:
    status: AnswerStatus
    content: str
    evidence: tuple[EvidenceItem, ...] = ()
    intent: QueryIntent = QueryIntent.UNRELATED
    time_range: Optional[AbsoluteRange] = None
    coverage: Optional[CoverageReport] = None
    source: str = "extractive"
    warnings: tuple[str, ...] = field(default=())


def number_evidence(segments, scores=None) -> tuple[EvidenceItem, ...]:
    """Wrap segments as evidence items numbered E1..En in the given order."""
    items = []
    for i, seg in enumerate(segments):
        score = scores[i] if scores is not None else 1.0
        items.append(EvidenceItem(segment=seg, index=i + 1, score=score))
    return tuple(items)
