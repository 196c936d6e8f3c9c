"""Completion marker detection.

Generated notes are asked to finish with a literal END_OF_NOTES line. Its
presence at the very end of the text is the only signal that a model run was
not truncated.
"""

from __future__ import annotations

import re

from notecraft.config import COMPLETION_MARKER

_ENDS_WITH_MARKER = re.compile(rf"\b{re.escape(COMPLETION_MARKER)}\s*\Z")


def is_complete(text: str | None) -> bool:
    """True when the trimmed text ends with the completion marker."""
    if not text:
        return False
    return _ENDS_WITH_MARKER.search(text.strip()) is not None


def strip_marker(text: str | None) -> str:
    """Remove trailing completion marker(s) and trim.

    Text without a trailing marker is returned as-is. Stripping repeats until
    no trailing marker is left, so the function is idempotent.
    """
    if not text:
        return ""
    if not is_complete(text):
        return text

    stripped = text.strip()
    while is_complete(stripped):
        stripped = _ENDS_WITH_MARKER.sub("", stripped).strip()
    return stripped
