"""Source coverage heuristic.

Estimates how much of the source vocabulary made it into the generated notes.
It is a token-overlap proxy for recall: paraphrases are not detected, and only
ASCII letters and digits form tokens, so text in other scripts (CJK, Thai,
accented words) is ignored. A purely non-ASCII source therefore has no tokens
and scores 100. The score is advisory and only drives a UI warning.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from notecraft.config import COVERAGE_MIN_TOKEN_LENGTH, COVERAGE_WARNING_THRESHOLD

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


@dataclass(frozen=True)
class CoverageReport:
    score: int
    warning: bool


def tokenize(text: str | None) -> set[str]:
    if not text:
        return set()
    words = _NON_ALNUM.sub(" ", text).lower().split()
    return {w for w in words if len(w) >= COVERAGE_MIN_TOKEN_LENGTH}


def estimate_coverage(source_text: str | None, notes_text: str | None) -> int:
    """Percentage (0-100) of distinct source tokens that appear in the notes.

    A source with no qualifying tokens counts as fully covered.
    """
    source_tokens = tokenize(source_text)
    if not source_tokens:
        return 100

    notes_tokens = tokenize(notes_text)
    ratio = len(source_tokens & notes_tokens) / len(source_tokens)
    # Half-up rounding; round() would send 12.5 to 12.
    return min(100, max(0, math.floor(100 * ratio + 0.5)))


def coverage_report(
    source_text: str | None,
    notes_text: str | None,
    threshold: int = COVERAGE_WARNING_THRESHOLD,
) -> CoverageReport:
    score = estimate_coverage(source_text, notes_text)
    return CoverageReport(score=score, warning=score < threshold)
