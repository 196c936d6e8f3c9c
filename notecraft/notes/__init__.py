"""Note completion: marker detection, coverage, activity log and the continuation loop."""

from __future__ import annotations

from notecraft.notes.activity_log import ActivityLog, ActivityLogEntry, ActivityStatus
from notecraft.notes.continuation import (
    ContinuationConfig,
    ContinuationEngine,
    ContinuationResult,
    ContinuationState,
)
from notecraft.notes.coverage import CoverageReport, coverage_report, estimate_coverage
from notecraft.notes.marker import is_complete, strip_marker

__all__ = [
    "ActivityLog",
    "ActivityLogEntry",
    "ActivityStatus",
    "ContinuationConfig",
    "ContinuationEngine",
    "ContinuationResult",
    "ContinuationState",
    "CoverageReport",
    "coverage_report",
    "estimate_coverage",
    "is_complete",
    "strip_marker",
]
