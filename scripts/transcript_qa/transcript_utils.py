"""Transcript parsing, timestamp formatting, and tokenization utilities."""

from __future__ import annotations

import logging
import re

from .errors import ParseError
from .models import Segment, SegmentIndex

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Cue parsing
# ---------------------------------------------------------------------------

# HH:MM:SS.mmm, H:MM:SS,mmm (SRT), MM:SS.mmm, with or without milliseconds
_TS = r"\d{1,2}:\d{2}(?::\d{2})?(?:[.,]\d{1,3})?"
_CUE_RE = re.compile(rf"^\s*(\[\s*({_TS})\s*-->\s*({_TS})\s*\])\s*(.*?)\s*$")


def parse_hms_to_seconds(raw: str) -> float:
    """Convert ``HH:MM:SS.mmm`` / ``MM:SS.mmm`` (``,`` allowed) to seconds."""
    parts = raw.strip().replace(",", ".").split(":")
    if len(parts) == 3:
        hours, minutes, seconds = parts
    elif len(parts) == 2:
        hours = "0"
        minutes, seconds = parts
    else:
        raise ValueError(f"Unrecognised timestamp: {raw!r}")
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_transcript(text: str) -> SegmentIndex:
    """Parse raw transcript text into an ordered :class:`SegmentIndex`.

    Each line is parsed independently.  Lines that do not carry a
    ``[start --> end]`` bracket are dropped and recorded as warnings rather
    than glued onto the previous cue, so header lines such as
    ``--- Transcript ---`` never leak into segment text.

    Raises :class:`ParseError` only when no valid cue is found.
    """
    segments: list[Segment] = []
    warnings: list[str] = []

    for lineno, line in enumerate((text or "").splitlines(), 1):
        if not line.strip():
            continue
        match = _CUE_RE.match(line)
        if not match:
            warnings.append(f"line {lineno}: no timestamp bracket, dropped")
            continue
        stamp, raw_start, raw_end, body = match.groups()
        if not body:
            warnings.append(f"line {lineno}: empty cue text, dropped")
            continue
        start = parse_hms_to_seconds(raw_start)
        end = parse_hms_to_seconds(raw_end)
        if end < start:
            warnings.append(f"line {lineno}: end before start, clamped")
            end = start
        segments.append(
            Segment(
                start_seconds=start,
                end_seconds=end,
                text=body,
                stamp=stamp,
                position=len(segments),
            )
        )

    if warnings:
        logger.debug("Transcript parse: %d warning(s), first: %s", len(warnings), warnings[0])
    if not segments:
        raise ParseError("Transcript contains no valid timestamped cues", tuple(warnings))
    return SegmentIndex(segments=tuple(segments), warnings=tuple(warnings))


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_seconds(seconds: float) -> str:
    """``HH:MM:SS.mmm`` rendering of a second offset."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def format_clock(seconds: float) -> str:
    """Short clock label: ``MM:SS``, or ``H:MM:SS`` past the first hour."""
    total = int(round(max(0.0, seconds), 3))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_window(start: float, end: float) -> str:
    return f"{format_clock(start)}-{format_clock(end)}"


def format_plain_transcript(segments) -> str:
    """Timestamped text, one cue per line, in the original bracket format."""
    return "\n".join(f"{seg.stamp} {seg.text}" for seg in segments)


# ---------------------------------------------------------------------------
# Tokenization
# ---------------------------------------------------------------------------

_CJK_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff]")
_CJK_RUN_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff]+")
_LATIN_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9_'-]*")
_CITATION_RE = re.compile(r"\[E\d+\]")

STOPWORDS = {
    "the", "and", "what", "with", "this", "that", "about", "video", "they",
    "them", "their", "is", "are", "was", "were", "of", "to", "in", "on",
    "for", "it", "its", "be", "do", "does", "did", "done", "you", "we", "me",
    "my", "our", "your", "can", "could", "would", "should", "there", "here",
    "from", "at", "by", "as", "an", "or", "if", "so", "not", "no", "yes",
    "how", "why", "when", "where", "who", "which", "have", "has", "had",
    "transcript", "please", "tell", "said", "say", "talk", "talked", "any",
}

CJK_STOP_BIGRAMS = {
    "这个", "那个", "视频", "一下", "什么", "讲了", "说了", "了什", "了啥",
    "里讲", "我们", "你们", "他们", "是不", "不是", "就是", "然后", "一个",
    "这段", "内容", "的是", "有没", "没有", "是什", "请问",
}


def has_cjk(text: str) -> bool:
    return bool(_CJK_RE.search(text or ""))


def strip_citations(text: str) -> str:
    return _CITATION_RE.sub(" ", text or "")


def _stem(token: str) -> str:
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def tokenize(text: str) -> list[str]:
    """Latin word tokens plus CJK character bigrams, stopwords removed."""
    lowered = (text or "").lower()
    tokens: list[str] = []
    for word in _LATIN_TOKEN_RE.findall(lowered):
        word = word.strip("'-_")
        if len(word) < 2 or word in STOPWORDS:
            continue
        tokens.append(_stem(word))
    for run in _CJK_RUN_RE.findall(lowered):
        if len(run) == 1:
            tokens.append(run)
            continue
        for i in range(len(run) - 1):
            gram = run[i : i + 2]
            if gram not in CJK_STOP_BIGRAMS:
                tokens.append(gram)
    return tokens


def char_bigrams(text: str) -> set[str]:
    compact = re.sub(r"\s+", "", (text or "").lower())
    return {compact[i : i + 2] for i in range(len(compact) - 1)}


def bigram_jaccard(a: str, b: str) -> float:
    ag = char_bigrams(a)
    bg = char_bigrams(b)
    if not ag or not bg:
        return 0.0
    inter = len(ag & bg)
    union = len(ag) + len(bg) - inter
    return inter / union if union else 0.0
