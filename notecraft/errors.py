"""
Module: errors
Purpose: Error taxonomy shared by the gateway client, the continuation engine
and the API routes.

Every error carries the user-facing message and the activity-log action it is
recorded under. Aborting code paths attach the request's activity log before
re-raising so routes can always return it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from notecraft.notes.activity_log import ActivityLog


class NotesError(Exception):
    """Base class for every failure the notes pipeline reports to callers."""

    action: str = "error"
    default_message: str = "Something went wrong. Please try again."
    soft: bool = False
    # Activity-log status used when the error is recorded in-loop
    log_status: str = "error"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.user_message = message or self.default_message
        # Server-side diagnostics; never returned to clients.
        self.detail = detail
        self.activity_log: ActivityLog | None = None
        self.attempts: int = 0
        super().__init__(self.user_message)

    def attach(self, activity_log: ActivityLog, attempts: int = 0) -> NotesError:
        self.activity_log = activity_log
        self.attempts = attempts
        return self


class ValidationError(NotesError):
    """Malformed, missing or oversized input. Fix input and retry."""

    action = "validation_error"
    default_message = "Invalid request."


class AuthError(NotesError):
    """Missing or invalid bearer credential."""

    action = "auth_error"
    default_message = "Authentication required."

    def __init__(
        self, message: str | None = None, *, detail: str | None = None, status_code: int = 401
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class ConfigurationError(NotesError):
    """A backend credential or secret is absent. Operator fix required."""

    action = "configuration_error"
    default_message = "AI is not configured on the backend"


class BudgetExceededError(NotesError):
    """Daily AI usage budget exhausted for this user or globally."""

    action = "budget_exceeded"
    default_message = "Daily AI usage limit reached. Please try again tomorrow."


class GatewayError(NotesError):
    """Hard failure reported by the generation gateway."""

    action = "gateway_error"
    default_message = "AI generation failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        detail: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code


class GatewayRateLimited(GatewayError):
    default_message = "Rate limits exceeded, please try again later."


class GatewayQuotaExceeded(GatewayError):
    default_message = "AI credits required. Please add funds to your workspace."


class GatewayUnclassifiedFailure(GatewayError):
    default_message = "AI generation failed"


class MalformedModelOutput(NotesError):
    """Model output did not match the requested schema. Retried in-loop."""

    action = "malformed_output"
    default_message = "Failed to generate notes"
    soft = True


class EmptyContinuation(NotesError):
    """Model returned a schema-valid but blank continuation. Retried in-loop."""

    action = "empty_continuation"
    default_message = "The AI returned an empty continuation"
    soft = True
    log_status = "info"


class IncompleteGenerationError(NotesError):
    action = "generation_incomplete"
    default_message = (
        "Generation was cut off. Please try again (the backend will continue until completion)."
    )


class WebsiteFetchError(NotesError):
    """A page could not be imported: bad or private URL, upstream failure, too little text."""

    action = "scrape_error"
    default_message = "Failed to scrape website"
    status_code = 400


class ContinuationCancelled(NotesError):
    """The caller went away; carries whatever notes were accumulated."""

    action = "cancelled"
    default_message = "Continuation was cancelled"

    def __init__(self, message: str | None = None, *, partial_notes: str = ""):
        super().__init__(message)
        self.partial_notes = partial_notes


class UnexpectedError(NotesError):
    """Anything outside the taxonomy; details stay in server logs."""

    action = "internal_error"
    default_message = "An internal error occurred. Please try again later."
