"""Decide what a user wants from a transcript: excerpt, summary, or answer.

Classification runs as a cascade.  A fixed chain of regex matchers covers the
common phrasings (absolute clock ranges, fractions such as "first third" or
"后半", whole-video summary requests) in English and Chinese.  Only when none
of them fires is the language model asked, once, for a strict JSON verdict.
A verdict that cannot be parsed is treated as ``UNRELATED``.
"""

from __future__ import annotations

import logging
import math
import re
import threading
import time
from typing import Callable, Optional

from .errors import ClassificationUnavailable, QueryCancelled
from .interfaces import ChatMessage, CompletionClient, collect_stream
from .models import (
    AbsoluteRange,
    Anchor,
    QueryIntent,
    QueryUnderstanding,
    RelativeRange,
    TimeRangeSpec,
    resolve_range,
)
from .ollama_client import extract_json_object
from .transcript_utils import format_clock, has_cjk, parse_hms_to_seconds, tokenize

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Phrase tables
# ---------------------------------------------------------------------------

_ZH_NUMERALS = {
    "一": 1, "二": 2, "两": 2, "三": 3, "四": 4, "五": 5,
    "六": 6, "七": 7, "八": 8, "九": 9, "十": 10,
}

_EN_NUMERATORS = {"a": 1, "one": 1, "two": 2, "three": 3, "four": 4}

_EN_UNITS = {
    "half": 2, "halves": 2,
    "third": 3, "thirds": 3,
    "quarter": 4, "quarters": 4, "fourth": 4, "fourths": 4,
    "fifth": 5, "fifths": 5,
}

_EN_HEAD_WORDS = {"first", "opening", "beginning", "initial", "early"}
_EN_TAIL_WORDS = {"last", "final", "latter", "closing", "ending", "second"}

_ZH_TAIL_WORDS = ("后", "後", "下", "最后", "最後", "末尾", "结尾")

_CLOCK = r"(\d{1,2}(?::\d{2}){1,2})"
_SEP = r"\s*(?:-|~|到|至|\bto\b|\buntil\b|\bthrough\b|\band\b)\s*"
CLOCK_RANGE_RE = re.compile(_CLOCK + _SEP + _CLOCK)

_ZH_POINT = r"第?\s*(\d+)\s*分(?:钟)?\s*(?:(\d+)\s*秒)?"
ZH_CLOCK_RANGE_RE = re.compile(_ZH_POINT + r"\s*(?:到|至|-|~)\s*" + _ZH_POINT)

MINUTE_RANGE_RE = re.compile(
    r"\bminutes?\s+(\d+)\s*(?:-|to|until|through|and)\s*(?:minutes?\s+)?(\d+)\b"
    r"|\b(\d+)\s*(?:-|to)\s*(\d+)\s*(?:minutes?|mins?)\b"
)

ZH_FRACTION_RE = re.compile(
    r"(前面?|开头|后面?|後面?|最后|最後|末尾|结尾)\s*的?\s*(\d+)\s*/\s*(\d+)"
)
ZH_WORD_FRACTION_RE = re.compile(
    r"(前面?|开头|后面?|後面?|最后|最後|末尾|结尾)\s*的?\s*"
    r"([一二两三四五六七八九十\d]+)\s*分之\s*([一二两三四五六七八九十\d]+)"
)
ZH_HALF_RE = re.compile(r"(前|后|後|上|下|最后|最後)\s*面?\s*一?\s*半")

EN_FRACTION_RE = re.compile(
    r"\b(first|opening|beginning|initial|early|last|final|latter|closing|ending|second)\s+"
    r"(?:(a|one|two|three|four|\d+)\s+)?"
    r"(half|halves|thirds?|quarters?|fourths?|fifths?)\b"
)
EN_NUMERIC_FRACTION_RE = re.compile(
    r"\b(first|last|final|latter)\s+(\d+)\s*/\s*(\d+)\b"
)

EN_EDGE_DURATION_RE = re.compile(
    r"\b(first|opening|last|final)\s+(\d+(?:\.\d+)?)\s*(minutes?|mins?|seconds?|secs?)\b"
)
ZH_EDGE_DURATION_RE = re.compile(
    r"(前|最后|最後)\s*(\d+(?:\.\d+)?)\s*(分钟|分|秒钟|秒)"
)

# Strong cues ask for a summary even when a window is attached ("前1/3重点").
STRONG_SUMMARY_RE = re.compile(
    r"总结|概括|概述|归纳|摘要|梳理|重点|要点|核心内容"
    r"|\bsummar(?:y|ies|ize|ise|ized|ised|izing|ising)\b|\boverview\b|\brecap\b"
    r"|\btl;?dr\b|\bkey (?:points|takeaways|ideas)\b|\bhighlights?\b"
    r"|\bmain (?:points|ideas|topics)\b|\bgist\b"
)
# Weak cues only mean "whole video" when no window was given ("讲了啥").
WEAK_SUMMARY_RE = re.compile(
    r"讲了(?:什么|啥)|说了(?:什么|啥)|讲的(?:是)?(?:什么|啥)|讲什么|主要内容|大意"
    r"|\bwhat(?:'s| is| was)? (?:this|the) (?:video|talk|episode|transcript) about\b"
    r"|\bwhat (?:does|did) (?:this|the) (?:video|talk|episode|speaker) "
    r"(?:cover|talk about|say|discuss)\b"
    r"|\bwhat happened\b|\bwhat (?:is|was|gets) (?:covered|discussed|said)\b"
)

# Request wording around a summary cue that says nothing about the topic.
_REQUEST_FILLER_RE = re.compile(
    r"这个|那个|这段|视频|影片|一下|一篇|一段|帮我|给我|帮忙|介绍|讲解?|说|写|请"
    r"|了|的|吧|呢|吗|什么|啥|内容|整体|整个|完整|全部|主要|大概|文章|长文|\d+\s*字"
    r"|\b(?:please|give|me|write|an?|of|for|in|short|quick|brief(?:ly)?|words?"
    r"|entire|whole|full|video|talk|clip|episode|essay|article|detailed"
    r"|can|could|you|i|want|need|\d+)\b"
)


def normalize_query(query: str) -> str:
    text = (query or "").strip().lower()
    return (
        text.replace("：", ":")
        .replace("～", "~")
        .replace("–", "-")
        .replace("—", "-")
        .replace("／", "/")
    )


def summary_topic_tokens(query: str) -> list[str]:
    """Tokens left once summary cues and request wording are removed.

    "summarize the video" and "总结一下" leave nothing; "summarize the
    weather forecast" leaves the topic it names.
    """
    text = normalize_query(query)
    text = STRONG_SUMMARY_RE.sub(" ", text)
    text = WEAK_SUMMARY_RE.sub(" ", text)
    text = _REQUEST_FILLER_RE.sub(" ", text)
    return [tok for tok in tokenize(text) if len(tok) > 1]


def detect_language(query: str) -> str:
    return "zh" if has_cjk(query) else "en"


def _zh_number(raw: str) -> Optional[int]:
    if raw.isdigit():
        return int(raw)
    if len(raw) == 1:
        return _ZH_NUMERALS.get(raw)
    return None


def _fraction(anchor: Anchor, numerator: Optional[int], denominator: Optional[int]) -> Optional[RelativeRange]:
    if not numerator or not denominator:
        return None
    if numerator > denominator or denominator > 100:
        return None
    return RelativeRange(anchor=anchor, numerator=numerator, denominator=denominator)


def _zh_anchor(word: str) -> Anchor:
    return Anchor.TAIL if word.startswith(_ZH_TAIL_WORDS) else Anchor.HEAD


def _absolute(start: float, end: float) -> Optional[AbsoluteRange]:
    if start == end:
        return None
    if start > end:
        start, end = end, start
    return AbsoluteRange(start, end)


# ---------------------------------------------------------------------------
# Range matchers, tried in order
# ---------------------------------------------------------------------------

def match_clock_range(text: str, duration: float) -> TimeRangeSpec:
    m = CLOCK_RANGE_RE.search(text)
    if not m:
        return None
    return _absolute(parse_hms_to_seconds(m.group(1)), parse_hms_to_seconds(m.group(2)))


def match_zh_clock_range(text: str, duration: float) -> TimeRangeSpec:
    m = ZH_CLOCK_RANGE_RE.search(text)
    if not m:
        return None
    start = int(m.group(1)) * 60 + int(m.group(2) or 0)
    end = int(m.group(3)) * 60 + int(m.group(4) or 0)
    return _absolute(start, end)


def match_minute_range(text: str, duration: float) -> TimeRangeSpec:
    m = MINUTE_RANGE_RE.search(text)
    if not m:
        return None
    a, b = (m.group(1), m.group(2)) if m.group(1) else (m.group(3), m.group(4))
    return _absolute(int(a) * 60, int(b) * 60)


def match_zh_fraction(text: str, duration: float) -> TimeRangeSpec:
    m = ZH_FRACTION_RE.search(text)
    if m:
        return _fraction(_zh_anchor(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = ZH_WORD_FRACTION_RE.search(text)
    if m:
        # "三分之一" names the denominator first
        return _fraction(_zh_anchor(m.group(1)), _zh_number(m.group(3)), _zh_number(m.group(2)))
    return None


def match_zh_half(text: str, duration: float) -> TimeRangeSpec:
    m = ZH_HALF_RE.search(text)
    if not m:
        return None
    return RelativeRange(anchor=_zh_anchor(m.group(1)), numerator=1, denominator=2)


def match_en_fraction(text: str, duration: float) -> TimeRangeSpec:
    m = EN_NUMERIC_FRACTION_RE.search(text)
    if m:
        anchor = Anchor.HEAD if m.group(1) == "first" else Anchor.TAIL
        return _fraction(anchor, int(m.group(2)), int(m.group(3)))
    m = EN_FRACTION_RE.search(text)
    if not m:
        return None
    word, raw_num, unit = m.groups()
    denominator = _EN_UNITS[unit]
    if word == "second" and denominator != 2:
        return None
    if raw_num is None:
        numerator = 1
    elif raw_num.isdigit():
        numerator = int(raw_num)
    else:
        numerator = _EN_NUMERATORS[raw_num]
    anchor = Anchor.HEAD if word in _EN_HEAD_WORDS else Anchor.TAIL
    return _fraction(anchor, numerator, denominator)


def match_edge_duration(text: str, duration: float) -> TimeRangeSpec:
    m = EN_EDGE_DURATION_RE.search(text)
    if m:
        word, amount, unit = m.groups()
        head = word in ("first", "opening")
        seconds = float(amount) * (60 if unit.startswith("min") else 1)
    else:
        m = ZH_EDGE_DURATION_RE.search(text)
        if not m:
            return None
        word, amount, unit = m.groups()
        head = word == "前"
        seconds = float(amount) * (60 if unit.startswith("分") else 1)
    if seconds <= 0:
        return None
    if head:
        return AbsoluteRange(0.0, seconds)
    return AbsoluteRange(max(0.0, duration - seconds), duration)


RangeMatcher = Callable[[str, float], TimeRangeSpec]

RANGE_MATCHERS: tuple[RangeMatcher, ...] = (
    match_clock_range,
    match_zh_clock_range,
    match_minute_range,
    match_zh_fraction,
    match_en_fraction,
    match_zh_half,
    match_edge_duration,
)


def match_range(text: str, duration: float) -> TimeRangeSpec:
    for matcher in RANGE_MATCHERS:
        spec = matcher(text, duration)
        if spec is not None:
            return spec
    return None


def match_heuristics(query: str, duration: float) -> Optional[QueryUnderstanding]:
    """Resolve the query locally, or return None when nothing matches."""
    text = normalize_query(query)
    language = detect_language(query)
    spec = match_range(text, duration)

    if spec is not None:
        intent = QueryIntent.SUMMARY if STRONG_SUMMARY_RE.search(text) else QueryIntent.TIME_RANGE
    elif STRONG_SUMMARY_RE.search(text) or WEAK_SUMMARY_RE.search(text):
        intent = QueryIntent.SUMMARY
    else:
        return None

    return QueryUnderstanding(
        raw_query=query,
        intent=intent,
        range_spec=spec,
        time_range=resolve_range(spec, duration),
        language=language,
        source="heuristic",
    )


# ---------------------------------------------------------------------------
# Model tier
# ---------------------------------------------------------------------------

CLASSIFY_SYSTEM_PROMPT = """\
You classify user intent for transcript QA. The user is asking about a video \
whose timestamped transcript is available.

Classify the request as exactly ONE of:
- "summary": an overview of the whole video, or of a part of it.
- "time_range": what is said inside a specific time window.
- "question": a specific question that the transcript might answer.
- "unrelated": anything that is not about the video content.

Describe any time window with "range":
  {"type": "none"}
  {"type": "absolute", "start_seconds": <number>, "end_seconds": <number>}
  {"type": "relative", "anchor": "head" | "tail", "numerator": <int>, "denominator": <int>}
"relative" is a fraction of the video measured from its start (head) or end (tail); \
"the last half" is {"type": "relative", "anchor": "tail", "numerator": 1, "denominator": 2}.

Respond with a JSON object containing exactly three keys:
  {"intent": "...", "range": {...}, "language": "zh" | "en"}

Output only the JSON object, without markdown fencing or commentary.\
"""

_MODEL_INTENTS = {
    "summary": QueryIntent.SUMMARY,
    "time_range": QueryIntent.TIME_RANGE,
    "question": QueryIntent.QUESTION,
    "unrelated": QueryIntent.UNRELATED,
}


def _seconds_value(value: object) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a time")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        raw = value.strip()
        seconds = parse_hms_to_seconds(raw) if ":" in raw else float(raw)
    else:
        raise ValueError(f"not a time value: {value!r}")
    if not math.isfinite(seconds):
        raise ValueError(f"non-finite time value: {value!r}")
    return seconds


def parse_range_payload(payload: object) -> TimeRangeSpec:
    """Convert the model's ``range`` object; raises ValueError when malformed."""
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ValueError("range must be an object")
    kind = str(payload.get("type", "none")).strip().lower()
    if kind == "none":
        return None
    if kind == "absolute":
        start = _seconds_value(payload.get("start_seconds", payload.get("start")))
        end = _seconds_value(payload.get("end_seconds", payload.get("end")))
        spec = _absolute(start, end)
        if spec is None or spec.start_seconds < 0:
            raise ValueError("empty or negative absolute range")
        return spec
    if kind == "relative":
        anchor_raw = str(payload.get("anchor", "")).strip().lower()
        if anchor_raw in ("head", "start", "first"):
            anchor = Anchor.HEAD
        elif anchor_raw in ("tail", "end", "last"):
            anchor = Anchor.TAIL
        else:
            raise ValueError(f"unknown anchor {anchor_raw!r}")
        try:
            numerator = int(payload.get("numerator"))
            denominator = int(payload.get("denominator"))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError("relative range needs integer numerator/denominator") from exc
        spec = _fraction(anchor, numerator, denominator)
        if spec is None:
            raise ValueError("invalid fraction")
        return spec
    raise ValueError(f"unknown range type {kind!r}")


def parse_classification(raw: str, query: str, duration: float) -> QueryUnderstanding:
    """Validate the model's JSON verdict; raises ClassificationUnavailable."""
    parsed = extract_json_object(raw)
    if parsed is None:
        raise ClassificationUnavailable(f"Unparsable classification: {raw[:200]!r}")
    intent = _MODEL_INTENTS.get(str(parsed.get("intent", "")).strip().lower())
    if intent is None:
        raise ClassificationUnavailable(f"Unknown intent in classification: {parsed!r}")
    try:
        spec = parse_range_payload(parsed.get("range"))
    except ValueError as exc:
        raise ClassificationUnavailable(f"Malformed range in classification: {exc}") from exc

    if intent is QueryIntent.TIME_RANGE and spec is None:
        raise ClassificationUnavailable("time_range intent without a usable range")
    if intent in (QueryIntent.QUESTION, QueryIntent.UNRELATED):
        spec = None

    return QueryUnderstanding(
        raw_query=query,
        intent=intent,
        range_spec=spec,
        time_range=resolve_range(spec, duration),
        language=detect_language(query),
        source="model",
    )


def classify_with_model(
    llm: CompletionClient,
    query: str,
    duration: float,
    *,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> QueryUnderstanding:
    user_prompt = (
        f"VIDEO DURATION: {format_clock(duration)} ({duration:.0f} seconds)\n\n"
        f"USER QUERY: {query}"
    )
    messages = [
        ChatMessage("system", CLASSIFY_SYSTEM_PROMPT),
        ChatMessage("user", user_prompt),
    ]
    t0 = time.time()
    try:
        raw = collect_stream(llm, messages, timeout=timeout, cancel_event=cancel_event)
    except QueryCancelled:
        raise
    except Exception as exc:
        raise ClassificationUnavailable(f"Classification call failed: {exc}") from exc
    logger.debug("Classification response in %.1fs: %s", time.time() - t0, raw[:200])
    return parse_classification(raw, query, duration)


def understand_query(
    llm: CompletionClient,
    query: str,
    duration: float,
    *,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> QueryUnderstanding:
    """Heuristics first; the model is consulted only when they find nothing."""
    understanding = match_heuristics(query, duration)
    if understanding is not None:
        logger.info(
            "Query resolved locally: intent=%s window=%s",
            understanding.intent.value,
            understanding.time_range,
        )
        return understanding

    try:
        understanding = classify_with_model(
            llm, query, duration, timeout=timeout, cancel_event=cancel_event
        )
    except ClassificationUnavailable as exc:
        logger.warning("Falling back to 'unrelated': %s", exc)
        return QueryUnderstanding(
            raw_query=query,
            intent=QueryIntent.UNRELATED,
            language=detect_language(query),
            source="fallback",
        )
    logger.info(
        "Query classified by model: intent=%s window=%s",
        understanding.intent.value,
        understanding.time_range,
    )
    return understanding
