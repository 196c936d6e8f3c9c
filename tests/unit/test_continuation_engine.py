"""Unit tests for the continuation engine

Tests cover:
- Already-complete input (no gateway calls)
- Single successful continuation
- Exhaustion after max attempts
- Hard gateway failure mid-loop
- Oversized and missing input
- Soft failures (malformed, empty) consuming attempts
- Cancellation, unexpected errors, configuration errors
- Tail window, title truncation, injected detector
"""

from __future__ import annotations

import asyncio

import pytest

from notecraft.errors import (
    ConfigurationError,
    ContinuationCancelled,
    GatewayQuotaExceeded,
    GatewayRateLimited,
    MalformedModelOutput,
    NotesError,
    UnexpectedError,
    ValidationError,
)
from notecraft.notes.continuation import (
    ContinuationConfig,
    ContinuationEngine,
    ContinuationState,
)
from notecraft.observability.telemetry import get_counter


def make_engine(gateway, **config):
    config.setdefault("completion_service_credential", "test-key")
    return ContinuationEngine(ContinuationConfig(**config), gateway)


def run(engine, notes, source="Source material about cells", title=None, **kwargs):
    return asyncio.run(engine.continue_notes(notes, source, title, **kwargs))


def assert_chronological(log):
    stamps = [e.timestamp for e in log]
    assert stamps == sorted(stamps)


def test_already_complete_makes_no_calls(scripted_gateway):
    gateway = scripted_gateway()
    engine = make_engine(gateway)

    result = run(engine, "# Title\n\nSome content\n\nEND_OF_NOTES")

    assert result.notes == "# Title\n\nSome content"
    assert result.is_complete is True
    assert result.state is ContinuationState.ALREADY_COMPLETE
    assert result.attempts == 0
    assert gateway.calls == 0
    assert result.activity_log.actions() == ["already_complete"]


def test_already_complete_is_idempotent(scripted_gateway):
    engine = make_engine(scripted_gateway())
    first = run(engine, "notes\nEND_OF_NOTES")
    second = run(engine, first.notes + "\n\nEND_OF_NOTES")
    assert first.notes == second.notes == "notes"


def test_one_successful_continuation(scripted_gateway):
    gateway = scripted_gateway(continuations=["more text\n\nEND_OF_NOTES"])
    engine = make_engine(gateway)

    result = run(engine, "intro text")

    assert result.notes == "intro text\n\nmore text"
    assert result.is_complete is True
    assert result.state is ContinuationState.COMPLETED
    assert result.attempts == 1
    assert result.activity_log.count("continuation_attempt") == 1
    assert result.activity_log.count("continuation_complete") == 1
    assert get_counter("notes.continuation.completed") == 1


def test_exhaustion_returns_partial_notes(scripted_gateway):
    gateway = scripted_gateway(continuations=[f"part {i}" for i in range(1, 6)])
    engine = make_engine(gateway)

    result = run(engine, "intro")

    assert result.notes == "intro\n\npart 1\n\npart 2\n\npart 3\n\npart 4\n\npart 5"
    assert result.is_complete is False
    assert result.state is ContinuationState.EXHAUSTED
    assert gateway.calls == 5
    assert result.activity_log.count("continuation_attempt") == 5
    assert result.activity_log.count("max_continuations_reached") == 1

    response = result.to_response()
    assert "error" not in response
    assert response["isComplete"] is False


def test_attempts_are_bounded_by_config(scripted_gateway):
    gateway = scripted_gateway(continuations=["more"] * 10)
    engine = make_engine(gateway, max_attempts=3)

    result = run(engine, "intro")

    assert gateway.calls == 3
    assert result.attempts == 3
    assert result.is_complete is False


def test_rate_limit_mid_loop_aborts(scripted_gateway):
    gateway = scripted_gateway(continuations=["more", GatewayRateLimited(status_code=429)])
    engine = make_engine(gateway)

    with pytest.raises(GatewayRateLimited) as exc_info:
        run(engine, "intro")

    error = exc_info.value
    assert error.user_message == "Rate limits exceeded, please try again later."
    assert error.attempts == 2
    assert gateway.calls == 2
    log = error.activity_log
    assert log.count("continuation_attempt") == 2
    assert log.count("continuation_appended") == 1
    assert log.count("gateway_error") == 1
    assert_chronological(log)


def test_quota_exceeded_aborts_on_first_attempt(scripted_gateway):
    gateway = scripted_gateway(continuations=[GatewayQuotaExceeded(status_code=402), "unused"])
    engine = make_engine(gateway)

    with pytest.raises(GatewayQuotaExceeded) as exc_info:
        run(engine, "intro")

    assert gateway.calls == 1
    assert "credits" in exc_info.value.user_message


def test_oversized_notes_rejected_without_calls(scripted_gateway):
    gateway = scripted_gateway()
    engine = make_engine(gateway)

    with pytest.raises(ValidationError) as exc_info:
        run(engine, "x" * 200_001)

    assert gateway.calls == 0
    assert exc_info.value.activity_log.count("validation_error") == 1
    assert "200000" in exc_info.value.user_message


def test_notes_at_the_limit_are_accepted(scripted_gateway):
    engine = make_engine(scripted_gateway())
    result = run(engine, "x" * 199_987 + "\nEND_OF_NOTES")
    assert result.is_complete is True


@pytest.mark.parametrize(
    ("notes", "source", "message"),
    [
        ("", "source", "Missing 'currentNotes' in request body"),
        (None, "source", "Missing 'currentNotes' in request body"),
        (42, "source", "Missing 'currentNotes' in request body"),
        ("notes", "", "Missing 'rawText' in request body"),
        ("notes", ["not", "text"], "Missing 'rawText' in request body"),
        ("notes", "s" * 100_001, "'rawText' exceeds 100000 characters"),
    ],
)
def test_invalid_input(scripted_gateway, notes, source, message):
    gateway = scripted_gateway()
    engine = make_engine(gateway)

    with pytest.raises(ValidationError) as exc_info:
        run(engine, notes, source)

    assert exc_info.value.user_message == message
    assert gateway.calls == 0


def test_missing_credential_is_configuration_error(scripted_gateway):
    gateway = scripted_gateway()
    engine = make_engine(gateway, completion_service_credential=None)

    with pytest.raises(ConfigurationError) as exc_info:
        run(engine, "intro")

    assert exc_info.value.user_message == "AI is not configured on the backend"
    assert exc_info.value.activity_log.actions() == ["configuration_error"]
    assert gateway.calls == 0


def test_validation_runs_before_configuration_check(scripted_gateway):
    engine = make_engine(scripted_gateway(), completion_service_credential=None)
    with pytest.raises(ValidationError):
        run(engine, "")


def test_malformed_output_consumes_an_attempt(scripted_gateway):
    gateway = scripted_gateway(continuations=[MalformedModelOutput(), "the end\nEND_OF_NOTES"])
    engine = make_engine(gateway)

    result = run(engine, "intro")

    assert result.notes == "intro\n\nthe end"
    assert result.attempts == 2
    assert result.activity_log.count("malformed_output") == 1
    assert get_counter("notes.continuation.malformed_output") == 1


def test_empty_continuation_is_skipped(scripted_gateway):
    gateway = scripted_gateway(continuations=["   \n", "the end\nEND_OF_NOTES"])
    engine = make_engine(gateway)

    result = run(engine, "intro")

    assert result.notes == "intro\n\nthe end"
    assert result.activity_log.count("empty_continuation") == 1
    assert result.activity_log.count("continuation_appended") == 1


def test_only_empty_continuations_leave_notes_unchanged(scripted_gateway):
    gateway = scripted_gateway(continuations=[""] * 5)
    engine = make_engine(gateway)

    result = run(engine, "intro")

    assert result.notes == "intro"
    assert result.is_complete is False
    assert result.activity_log.count("empty_continuation") == 5


def test_cancellation_returns_log_and_partial_notes(scripted_gateway):
    gateway = scripted_gateway(continuations=["part 1", "part 2"])
    engine = make_engine(gateway)
    checks = []

    async def should_cancel():
        checks.append(True)
        return len(checks) > 1

    with pytest.raises(ContinuationCancelled) as exc_info:
        run(engine, "intro", should_cancel=should_cancel)

    error = exc_info.value
    assert error.partial_notes == "intro\n\npart 1"
    assert error.attempts == 1
    assert error.activity_log.actions()[-1] == "cancelled"
    assert gateway.calls == 1


def test_unexpected_client_error_is_wrapped(scripted_gateway):
    gateway = scripted_gateway(continuations=[RuntimeError("socket exploded")])
    engine = make_engine(gateway)

    with pytest.raises(UnexpectedError) as exc_info:
        run(engine, "intro")

    error = exc_info.value
    assert isinstance(error.__cause__, RuntimeError)
    assert "socket exploded" not in error.user_message
    assert error.activity_log.count("internal_error") == 1


def test_tail_window_is_sent_to_gateway(scripted_gateway):
    gateway = scripted_gateway(continuations=["KLMNO", "done END_OF_NOTES"])
    engine = make_engine(gateway, tail_window_size=10)

    run(engine, "0123456789ABCDEFGHIJ", source="the source", title="Cells")

    assert gateway.continue_calls[0] == {
        "title": "Cells",
        "source_text": "the source",
        "tail": "ABCDEFGHIJ",
    }
    assert gateway.continue_calls[1]["tail"] == "HIJ\n\nKLMNO"


def test_title_is_truncated_and_non_string_ignored(scripted_gateway):
    gateway = scripted_gateway(continuations=["a END_OF_NOTES", "b END_OF_NOTES"])
    engine = make_engine(gateway, max_title_chars=5)

    run(engine, "intro", title="Biochemistry 101")
    run(engine, "intro", title={"nested": "title"})

    assert gateway.continue_calls[0]["title"] == "Bioch"
    assert gateway.continue_calls[1]["title"] is None


def test_injected_detector_and_stripper(scripted_gateway):
    gateway = scripted_gateway(continuations=["finished [DONE]"])
    engine = ContinuationEngine(
        ContinuationConfig(completion_service_credential="k"),
        gateway,
        detector=lambda text: text.rstrip().endswith("[DONE]"),
        stripper=lambda text: text.rstrip().removesuffix("[DONE]").rstrip(),
    )

    result = run(engine, "intro")

    assert result.notes == "intro\n\nfinished"
    assert result.is_complete is True


def test_version_is_passed_through(scripted_gateway):
    engine = make_engine(scripted_gateway())
    result = run(engine, "notes END_OF_NOTES", version="etag-7")
    assert result.version == "etag-7"
    assert result.to_response()["version"] == "etag-7"


def test_caller_supplied_log_is_extended(scripted_gateway):
    from notecraft.notes.activity_log import ActivityLog

    log = ActivityLog()
    log.info("request_received")
    engine = make_engine(scripted_gateway())

    result = run(engine, "notes END_OF_NOTES", activity_log=log)

    assert result.activity_log is log
    assert log.actions() == ["request_received", "already_complete"]


@pytest.mark.parametrize("field", ["max_attempts", "tail_window_size"])
def test_config_rejects_non_positive_bounds(field):
    with pytest.raises(ValueError):
        ContinuationConfig(completion_service_credential="k", **{field: 0})


def test_config_from_settings_reads_credential(gateway_key):
    config = ContinuationConfig.from_settings(max_attempts=2)
    assert config.completion_service_credential == gateway_key
    assert config.max_attempts == 2
    assert config.tail_window_size == 2000


def test_any_soft_error_consumes_an_attempt(scripted_gateway):
    class TransientHiccup(NotesError):
        action = "transient_hiccup"
        soft = True
        log_status = "info"

    gateway = scripted_gateway(continuations=[TransientHiccup(), "the end\nEND_OF_NOTES"])
    engine = make_engine(gateway)

    result = run(engine, "intro")

    assert result.is_complete is True
    assert result.attempts == 2
    entry = next(e for e in result.activity_log if e.action == "transient_hiccup")
    assert entry.status.value == "info"
    assert get_counter("notes.continuation.transient_hiccup") == 1


def test_hard_non_gateway_error_aborts_without_gateway_entry(scripted_gateway):
    gateway = scripted_gateway(continuations=[ConfigurationError(), "unused"])
    engine = make_engine(gateway)

    with pytest.raises(ConfigurationError) as exc_info:
        run(engine, "intro")

    assert gateway.calls == 1
    assert exc_info.value.activity_log.count("gateway_error") == 0
    assert exc_info.value.attempts == 1
