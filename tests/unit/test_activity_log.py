"""Unit tests for the per-request activity log

Tests cover:
- Entry serialization (details omitted when absent)
- Non-decreasing timestamps with a clock that goes backwards
- Query helpers
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from notecraft.notes.activity_log import ActivityLog, ActivityStatus


class SteppingClock:
    """Returns the scripted datetimes in order"""

    def __init__(self, *times: datetime):
        self._times = list(times)

    def __call__(self) -> datetime:
        return self._times.pop(0)


T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def test_entries_serialize_to_client_shape():
    log = ActivityLog(clock=SteppingClock(T0, T0))
    log.info("continuation_attempt", "Attempt 1/5")
    log.success("already_complete")

    assert log.to_list() == [
        {
            "timestamp": "2024-05-01T12:00:00+00:00",
            "action": "continuation_attempt",
            "status": "info",
            "details": "Attempt 1/5",
        },
        {
            "timestamp": "2024-05-01T12:00:00+00:00",
            "action": "already_complete",
            "status": "success",
        },
    ]


def test_timestamps_never_go_backwards():
    log = ActivityLog(clock=SteppingClock(T0, T0 - timedelta(seconds=5), T0 + timedelta(seconds=1)))
    log.info("a")
    log.info("b")
    log.info("c")

    stamps = [e.timestamp for e in log]
    assert stamps == sorted(stamps)
    assert stamps[1] == T0
    assert stamps[2] == T0 + timedelta(seconds=1)


def test_default_clock_is_utc():
    log = ActivityLog()
    entry = log.error("gateway_error", "boom")
    assert entry.timestamp.tzinfo is not None
    assert entry.status is ActivityStatus.ERROR


def test_query_helpers():
    log = ActivityLog()
    assert not log
    assert len(log) == 0

    log.info("continuation_attempt")
    log.info("continuation_attempt")
    log.error("malformed_output")

    assert log
    assert len(log) == 3
    assert log.count("continuation_attempt") == 2
    assert log.actions() == ["continuation_attempt", "continuation_attempt", "malformed_output"]
    assert isinstance(log.entries, tuple)


def test_record_accepts_status_strings():
    log = ActivityLog()
    entry = log.record("custom", "success")
    assert entry.status is ActivityStatus.SUCCESS

    with pytest.raises(ValueError):
        log.record("custom", "warning")
