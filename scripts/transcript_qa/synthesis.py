"""Model-drafted answers over numbered evidence lines.

The model sees every evidence segment as ``[E#] [stamp] text`` and is told
to cite those tags.  Drafts are checked by
:func:`~transcript_qa.verification.verify_grounding` before they are used.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Sequence

from .errors import GenerationUnavailable, QueryCancelled
from .interfaces import ChatMessage, CompletionClient, collect_stream
from .models import EvidenceItem, QueryIntent, QueryUnderstanding
from .transcript_utils import format_window

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SUMMARY_SYSTEM_PROMPT = """\
You are a transcript-grounded summarization assistant.
Summarize the video using ONLY the evidence lines provided by the user.
You may use general writing knowledge for structure and phrasing, but never \
add facts, names or numbers that do not appear in the evidence.
Append the matching citation tag such as [E3] to every statement.
Only cite tags that appear in the evidence lines.\
"""

QA_SYSTEM_PROMPT = """\
You are a transcript-grounded QA assistant.
Answer ONLY from the evidence lines provided by the user.
Do not use external knowledge, metadata or guesses.
Keep the answer concise and append at least one citation tag such as [E1] \
to every claim. Only cite tags that appear in the evidence lines.
If the evidence does not answer the question, say so explicitly.\
"""


def language_directive(understanding: QueryUnderstanding) -> str:
    if understanding.prefer_chinese:
        return "Respond in Simplified Chinese."
    return "Respond in the same language as the user query."


def format_evidence_lines(evidence: Sequence[EvidenceItem]) -> str:
    return "\n".join(
        f"[{item.label}] {item.segment.stamp} {item.segment.text}" for item in evidence
    )


def build_messages(
    understanding: QueryUnderstanding, evidence: Sequence[EvidenceItem]
) -> list[ChatMessage]:
    if understanding.intent is QueryIntent.SUMMARY:
        system = SUMMARY_SYSTEM_PROMPT
        scope = "the whole video"
        if understanding.time_range is not None:
            window = understanding.time_range
            scope = f"the part of the video from {format_window(window.start_seconds, window.end_seconds)}"
        requirements = (
            f"1) summarize {scope} as coherent prose\n"
            "2) cover the beginning, middle and end of the evidence where relevant\n"
            "3) avoid bullet-only output unless the user explicitly asks for bullets"
        )
        heading = "User request"
    else:
        system = QA_SYSTEM_PROMPT
        requirements = (
            "1) answer the question directly and concisely\n"
            "2) cite evidence tags [E#] for each statement\n"
            "3) if the evidence is insufficient, state that explicitly"
        )
        heading = "User question"

    user = (
        f"{heading}: {understanding.raw_query}\n\n"
        f"Evidence lines:\n{format_evidence_lines(evidence)}\n\n"
        f"Response requirements:\n{requirements}"
    )
    return [
        ChatMessage("system", f"{system}\n{language_directive(understanding)}"),
        ChatMessage("user", user),
    ]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def generate_draft(
    llm: CompletionClient,
    understanding: QueryUnderstanding,
    evidence: Sequence[EvidenceItem],
    *,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Stream one model draft for a summary or question.

    Raises :class:`GenerationUnavailable` on timeout or backend failure.
    """
    if understanding.intent not in (QueryIntent.SUMMARY, QueryIntent.QUESTION):
        raise ValueError(f"No generation path for intent {understanding.intent.value!r}")

    messages = build_messages(understanding, evidence)
    t0 = time.time()
    try:
        draft = collect_stream(llm, messages, timeout=timeout, cancel_event=cancel_event)
    except QueryCancelled:
        raise
    except Exception as exc:
        raise GenerationUnavailable(f"Generation call failed: {exc}") from exc
    logger.info(
        "Drafted %s answer over %d evidence line(s) in %.1fs (%d chars)",
        understanding.intent.value, len(evidence), time.time() - t0, len(draft),
    )
    return draft
