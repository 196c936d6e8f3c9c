"""Continuation engine for truncated notes.

Given notes that stopped before the completion marker, ask the gateway for the
missing tail up to ``max_attempts`` times, appending each usable continuation,
until the marker appears.

    ALREADY_COMPLETE                       (marker present on entry, no calls)
    LOOPING -> COMPLETED                   (marker appeared after an append)
            -> EXHAUSTED                   (attempts used up, partial result)
            -> ABORTED                     (hard error or cancellation, raised)

Soft failures (malformed output, empty continuation) consume an attempt and
the loop moves on. Hard gateway errors abort immediately. Every exit path
carries the request's ActivityLog: returned on the result, or attached to the
raised NotesError.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, NoReturn, Protocol

from notecraft.config import (
    MAX_CONTINUATIONS,
    MAX_NOTES_CHARS,
    MAX_SOURCE_CHARS,
    MAX_TITLE_CHARS,
    TAIL_WINDOW_CHARS,
)
from notecraft.errors import (
    ConfigurationError,
    ContinuationCancelled,
    EmptyContinuation,
    GatewayError,
    NotesError,
    UnexpectedError,
    ValidationError,
)
from notecraft.infrastructure.settings import get_gateway_api_key
from notecraft.notes.activity_log import ActivityLog
from notecraft.notes.marker import is_complete, strip_marker
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter, log_event

logger = get_logger(__name__)

CancelCheck = Callable[[], Awaitable[bool]]


class ContinuationState(str, Enum):
    ALREADY_COMPLETE = "already_complete"
    LOOPING = "looping"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"


class ContinuationClient(Protocol):
    async def continue_notes(self, *, title: str | None, source_text: str, tail: str) -> str: ...


@dataclass(frozen=True)
class ContinuationConfig:
    completion_service_credential: str | None
    max_attempts: int = MAX_CONTINUATIONS
    tail_window_size: int = TAIL_WINDOW_CHARS
    max_notes_chars: int = MAX_NOTES_CHARS
    max_source_chars: int = MAX_SOURCE_CHARS
    max_title_chars: int = MAX_TITLE_CHARS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.tail_window_size < 1:
            raise ValueError("tail_window_size must be at least 1")

    @classmethod
    def from_settings(cls, **overrides: Any) -> ContinuationConfig:
        """Build a config from environment-backed settings."""
        return cls(completion_service_credential=get_gateway_api_key(), **overrides)


@dataclass
class ContinuationResult:
    notes: str
    is_complete: bool
    state: ContinuationState
    activity_log: ActivityLog
    attempts: int = 0
    version: str | None = None

    def to_response(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "notes": self.notes,
            "isComplete": self.is_complete,
            "activityLog": self.activity_log.to_list(),
        }
        if self.version is not None:
            data["version"] = self.version
        return data


class ContinuationEngine:
    """Bounded continuation loop over an injected gateway client."""

    def __init__(
        self,
        config: ContinuationConfig,
        client: ContinuationClient | None = None,
        *,
        detector: Callable[[str], bool] = is_complete,
        stripper: Callable[[str], str] = strip_marker,
    ):
        self.config = config
        self._client = client
        self._detector = detector
        self._stripper = stripper

    def _get_client(self) -> ContinuationClient:
        if self._client is None:
            from notecraft.llm.gateway import GatewayClient

            # Only reached after the credential check in continue_notes().
            self._client = GatewayClient(str(self.config.completion_service_credential))
        return self._client

    async def continue_notes(
        self,
        current_notes: Any,
        source_text: Any,
        title: Any = None,
        *,
        version: str | None = None,
        should_cancel: CancelCheck | None = None,
        activity_log: ActivityLog | None = None,
    ) -> ContinuationResult:
        """Validate the request, then extend the notes until complete.

        Raises:
            NotesError: on validation, configuration, hard gateway failure or
                cancellation, with ``activity_log`` attached.
        """
        log = activity_log if activity_log is not None else ActivityLog()

        notes, source, clean_title = self.validate(current_notes, source_text, title, log)

        if not self.config.completion_service_credential:
            logger.error("AI gateway credential is not configured")
            log.error(ConfigurationError.action, ConfigurationError.default_message)
            raise ConfigurationError().attach(log)

        result = await self.extend(notes, source, clean_title, log, should_cancel=should_cancel)
        result.version = version
        return result

    def validate(
        self, current_notes: Any, source_text: Any, title: Any, log: ActivityLog
    ) -> tuple[str, str, str | None]:
        """Check sizes and types; returns (notes, source, title) or raises ValidationError."""
        if not isinstance(current_notes, str) or not current_notes:
            self._reject(log, "Missing 'currentNotes' in request body")
        if len(current_notes) > self.config.max_notes_chars:
            self._reject(
                log, f"'currentNotes' exceeds {self.config.max_notes_chars} characters"
            )
        if not isinstance(source_text, str) or not source_text:
            self._reject(log, "Missing 'rawText' in request body")
        if len(source_text) > self.config.max_source_chars:
            self._reject(log, f"'rawText' exceeds {self.config.max_source_chars} characters")

        clean_title: str | None = None
        if isinstance(title, str) and title:
            clean_title = title[: self.config.max_title_chars]
        return current_notes, source_text, clean_title

    @staticmethod
    def _reject(log: ActivityLog, message: str) -> NoReturn:
        counter("notes.continuation.validation_error")
        log.error(ValidationError.action, message)
        raise ValidationError(message).attach(log)

    async def extend(
        self,
        notes: str,
        source_text: str,
        title: str | None,
        log: ActivityLog,
        *,
        should_cancel: CancelCheck | None = None,
    ) -> ContinuationResult:
        """Run the entry check and the bounded loop on already-validated input."""
        attempts = 0
        try:
            if self._detector(notes):
                log.success("already_complete", "Notes already end with the completion marker")
                return self._finish(
                    self._stripper(notes), True, ContinuationState.ALREADY_COMPLETE, log, 0
                )

            accumulated = notes
            max_attempts = self.config.max_attempts
            client = self._get_client()

            for attempt in range(1, max_attempts + 1):
                if should_cancel is not None and await should_cancel():
                    log.info("cancelled", f"Stopped before attempt {attempt}/{max_attempts}")
                    raise ContinuationCancelled(partial_notes=accumulated)

                attempts = attempt
                log_event(
                    "notes.continuation", state=ContinuationState.LOOPING.value, attempt=attempt
                )
                log.info("continuation_attempt", f"Attempt {attempt}/{max_attempts}")
                tail = accumulated[-self.config.tail_window_size :]

                try:
                    continuation = await client.continue_notes(
                        title=title, source_text=source_text, tail=tail
                    )
                    if not continuation.strip():
                        raise EmptyContinuation(detail="blank continuation")
                except NotesError as e:
                    if not e.soft:
                        if isinstance(e, GatewayError):
                            logger.error("Gateway failure on attempt %d: %s", attempt, e.detail)
                            log.error(e.action, e.user_message)
                        raise
                    # Soft failures consume the attempt and the loop moves on
                    counter(f"notes.continuation.{e.action}")
                    logger.warning("Attempt %d failed softly (%s): %s", attempt, e.action, e.detail)
                    log.record(e.action, e.log_status, f"Attempt {attempt}: {e.user_message}")
                    continue

                accumulated = f"{accumulated.strip()}\n\n{continuation.strip()}"
                log.success("continuation_appended", f"Notes length is now {len(accumulated)}")

                if self._detector(accumulated):
                    final = self._stripper(accumulated)
                    log.success(
                        "continuation_complete",
                        f"Completed after {attempt} attempt(s), final length {len(final)}",
                    )
                    return self._finish(final, True, ContinuationState.COMPLETED, log, attempts)

            log.info(
                "max_continuations_reached",
                f"Still incomplete after {max_attempts} attempts, length {len(accumulated)}",
            )
            return self._finish(accumulated, False, ContinuationState.EXHAUSTED, log, attempts)

        except NotesError as e:
            counter(f"notes.continuation.{ContinuationState.ABORTED.value}")
            log_event("notes.continuation", state=ContinuationState.ABORTED.value, attempts=attempts)
            e.attach(log, attempts)
            raise
        except Exception as e:
            logger.exception("Unexpected continuation failure")
            log.error(UnexpectedError.action, type(e).__name__)
            raise UnexpectedError(detail=repr(e)).attach(log, attempts) from e

    @staticmethod
    def _finish(
        notes: str,
        complete: bool,
        state: ContinuationState,
        log: ActivityLog,
        attempts: int,
    ) -> ContinuationResult:
        counter(f"notes.continuation.{state.value}")
        log_event("notes.continuation", state=state.value, attempts=attempts)
        return ContinuationResult(
            notes=notes, is_complete=complete, state=state, activity_log=log, attempts=attempts
        )
