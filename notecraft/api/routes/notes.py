"""Notes endpoints for notecraft API.

/continue finishes notes that were cut off before the completion marker,
/generate-study-pack builds a full study pack, and /coverage scores how much
of the source vocabulary the notes mention.

Request bodies for the generation endpoints are read leniently: any JSON
object is accepted and type problems come back in-band as validation errors
(HTTP 200 with the activity log), so the web app has a single error shape to
handle. Only authentication failures change the status code.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from notecraft.api.middleware.user_auth import AuthenticatedUser, authenticate_request
from notecraft.config import MAX_NOTES_CHARS, MAX_SOURCE_CHARS
from notecraft.errors import AuthError, BudgetExceededError, NotesError, UnexpectedError
from notecraft.infrastructure.llm_budget import check_budget, record_llm_calls
from notecraft.notes.activity_log import ActivityLog
from notecraft.notes.continuation import (
    ContinuationClient,
    ContinuationConfig,
    ContinuationEngine,
)
from notecraft.notes.coverage import coverage_report
from notecraft.notes.study_pack import StudyPackClient, StudyPackGenerator
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter, time_block
from notecraft.utils.error_sanitizer import get_safe_error_detail

router = APIRouter(tags=["notes"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class ContinueRequest(BaseModel):
    """Body of POST /continue. Fields stay untyped; the engine validates them."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    current_notes: Any = Field(None, alias="currentNotes")
    raw_text: Any = Field(None, alias="rawText")
    title: Any = None
    version: Any = None


class StudyPackRequest(BaseModel):
    """Body of POST /generate-study-pack: {text, title}; rawText is accepted as well."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: Any = None
    raw_text: Any = Field(None, alias="rawText")
    title: Any = None

    @property
    def source(self) -> Any:
        return self.text if self.text is not None else self.raw_text


class CoverageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    raw_text: str = Field("", alias="rawText", max_length=MAX_SOURCE_CHARS)
    notes: str = Field("", max_length=MAX_NOTES_CHARS)


class CoverageResponse(BaseModel):
    coverage: int
    warning: bool


# ============================================================================
# Dependencies
# ============================================================================

# Overridable so tests (and alternative deployments) can inject a client.
_gateway_client: Any = None


def set_gateway_client(client: ContinuationClient | StudyPackClient | None) -> None:
    """Replace the gateway client used by the endpoints (None restores the default)."""
    global _gateway_client
    _gateway_client = client


def get_continuation_engine() -> ContinuationEngine:
    return ContinuationEngine(ContinuationConfig.from_settings(), _gateway_client)


def get_study_pack_generator() -> StudyPackGenerator:
    return StudyPackGenerator(ContinuationConfig.from_settings(), _gateway_client)


async def read_json_body(request: Request) -> dict[str, Any]:
    """Parse the body as a JSON object; anything else is treated as empty."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.info("Request body is not valid JSON; treating as empty")
        return {}
    return body if isinstance(body, dict) else {}


def _error_response(error: NotesError, status_code: int = 200) -> JSONResponse:
    log = error.activity_log if error.activity_log is not None else ActivityLog()
    return JSONResponse(
        status_code=status_code,
        content={"error": error.user_message, "activityLog": log.to_list()},
    )


async def _authenticate(request: Request, log: ActivityLog) -> AuthenticatedUser | JSONResponse:
    """Resolve the caller, or build the error response to return instead."""
    try:
        return await authenticate_request(request)
    except AuthError as e:
        counter("api.auth.rejected")
        log.error(e.action, e.user_message)
        return _error_response(e.attach(log), status_code=e.status_code)
    except NotesError as e:
        log.error(e.action, e.user_message)
        return _error_response(e.attach(log))


def _check_budget(user: AuthenticatedUser, log: ActivityLog) -> JSONResponse | None:
    status = check_budget(user.id)
    if status.is_allowed:
        return None
    logger.warning("LLM budget exceeded for %s: %s", user, status.reason)
    error = BudgetExceededError(detail=status.reason)
    log.error(error.action, error.user_message)
    return _error_response(error.attach(log))


def _unexpected(e: Exception, log: ActivityLog, context: str) -> JSONResponse:
    logger.exception("Unhandled error in %s", context)
    message = get_safe_error_detail(e, 500, context=UnexpectedError.default_message)
    log.error(UnexpectedError.action, message)
    return _error_response(UnexpectedError(message).attach(log))


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/continue")
async def continue_notes(request: Request) -> JSONResponse:
    """
    Continue truncated notes until they end with the completion marker.

    Returns 200 with {notes, isComplete, activityLog[, version]} on success,
    200 with {error, activityLog} for every failure except authentication
    (401, or 503 when the auth service is unreachable).
    """
    log = ActivityLog()
    auth = await _authenticate(request, log)
    if isinstance(auth, JSONResponse):
        return auth
    user = auth

    blocked = _check_budget(user, log)
    if blocked is not None:
        return blocked

    payload = ContinueRequest.model_validate(await read_json_body(request))
    engine = get_continuation_engine()

    try:
        with time_block("api.continue.latency"):
            result = await engine.continue_notes(
                payload.current_notes,
                payload.raw_text,
                payload.title,
                version=payload.version if isinstance(payload.version, str) else None,
                should_cancel=request.is_disconnected,
                activity_log=log,
            )
    except NotesError as e:
        record_llm_calls(user.id, "continuation", calls=e.attempts)
        counter(f"api.continue.error.{e.action}")
        return _error_response(e)
    except Exception as e:
        return _unexpected(e, log, "continue_notes")

    record_llm_calls(user.id, "continuation", calls=result.attempts)
    counter("api.continue.complete" if result.is_complete else "api.continue.incomplete")
    return JSONResponse(content=result.to_response())


@router.post("/generate-study-pack")
async def generate_study_pack(request: Request) -> JSONResponse:
    """
    Generate notes, highlights, flashcards and a quiz from source text.

    Truncated notes are continued server-side; a pack is only returned once
    its notes are complete.
    """
    log = ActivityLog()
    auth = await _authenticate(request, log)
    if isinstance(auth, JSONResponse):
        return auth
    user = auth

    blocked = _check_budget(user, log)
    if blocked is not None:
        return blocked

    payload = StudyPackRequest.model_validate(await read_json_body(request))
    generator = get_study_pack_generator()

    try:
        with time_block("api.study_pack.latency"):
            result = await generator.generate(
                payload.source,
                payload.title,
                should_cancel=request.is_disconnected,
                activity_log=log,
            )
    except NotesError as e:
        record_llm_calls(user.id, "study_pack", calls=e.attempts)
        counter(f"api.study_pack.error.{e.action}")
        return _error_response(e)
    except Exception as e:
        return _unexpected(e, log, "generate_study_pack")

    record_llm_calls(user.id, "study_pack", calls=result.attempts)
    return JSONResponse(content=result.to_response())


@router.post("/coverage", response_model=CoverageResponse)
async def estimate_coverage(request: CoverageRequest) -> CoverageResponse:
    """Score how much of the source's vocabulary the notes mention (0-100)."""
    report = coverage_report(request.raw_text, request.notes)
    return CoverageResponse(coverage=report.score, warning=report.warning)
