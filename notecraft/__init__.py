"""notecraft - finish truncated study notes and build study packs"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports for the notes package
def __getattr__(name: str):
    """
    Lazy imports so importing notecraft.config does not pull in httpx or pydantic.
    """
    if name in ("ContinuationEngine", "ContinuationConfig", "ContinuationResult"):
        from notecraft.notes import continuation

        return getattr(continuation, name)

    if name == "StudyPackGenerator":
        from notecraft.notes.study_pack import StudyPackGenerator

        return StudyPackGenerator

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "ContinuationConfig",
    "ContinuationEngine",
    "ContinuationResult",
    "StudyPackGenerator",
]
