"""Lexical grounding checks for model-drafted answers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .models import EvidenceItem
from .transcript_utils import has_cjk, strip_citations, tokenize

MIN_SAME_SCRIPT_SUPPORT = 0.10

_CITATION_NUM_RE = re.compile(r"\[E(\d+)\]")


@dataclass(frozen=True)
class GroundingVerdict:
    ok: bool
    reason: Optional[str] = None
    support: float = 0.0


def cited_indices(draft: str) -> list[int]:
    return [int(n) for n in _CITATION_NUM_RE.findall(draft or "")]


def verify_grounding(draft: str, evidence: Sequence[EvidenceItem]) -> GroundingVerdict:
    """Decide whether a draft stays close enough to the evidence text.

    A draft is rejected when it is blank, cites an ``[E#]`` that was never
    supplied, shares no token at all with the evidence, or, when written in
    the same script as the evidence, reuses fewer than 10% of its tokens
    from it.  A Chinese answer over an English transcript only needs one
    shared token (names, numbers, loanwords) since translation changes
    nearly every word.
    """
    if not draft or not draft.strip():
        return GroundingVerdict(False, "empty-draft")
    if not evidence:
        return GroundingVerdict(False, "no-evidence")

    bad = [n for n in cited_indices(draft) if n < 1 or n > len(evidence)]
    if bad:
        return GroundingVerdict(False, f"unknown-citation:E{bad[0]}")

    body = strip_citations(draft)
    evidence_text = "\n".join(item.segment.text for item in evidence)
    evidence_vocab = set(tokenize(evidence_text))
    draft_tokens = tokenize(body)
    if not draft_tokens:
        return GroundingVerdict(False, "no-content-tokens")

    shared = sum(1 for tok in draft_tokens if tok in evidence_vocab)
    support = shared / len(draft_tokens)
    if shared == 0:
        return GroundingVerdict(False, "no-shared-tokens", support)

    if has_cjk(body) == has_cjk(evidence_text) and support < MIN_SAME_SCRIPT_SUPPORT:
        return GroundingVerdict(False, "low-lexical-support", support)
    return GroundingVerdict(True, None, support)
