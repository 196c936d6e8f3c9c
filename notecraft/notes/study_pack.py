"""Study-pack generation.

One structured call produces notes, highlights, flashcards and a quiz. Long
sources often truncate the notes before the completion marker; those are
finished server-side with the continuation engine, sharing one activity log,
so a pack is only returned when its notes are complete.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from notecraft.config import (
    STUDY_PACK_INITIAL_ATTEMPTS,
    STUDY_PACK_MAX_CONTINUATIONS,
    STUDY_PACK_TAIL_WINDOW,
)
from notecraft.errors import (
    ConfigurationError,
    GatewayError,
    IncompleteGenerationError,
    MalformedModelOutput,
    NotesError,
    ValidationError,
)
from notecraft.llm.prompts import get_study_pack_messages
from notecraft.notes.activity_log import ActivityLog
from notecraft.notes.continuation import (
    CancelCheck,
    ContinuationClient,
    ContinuationConfig,
    ContinuationEngine,
)
from notecraft.notes.marker import is_complete, strip_marker
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter, log_event

logger = get_logger(__name__)

STUDY_PACK_TOOL_NAME = "build_study_pack"
STUDY_PACK_TOOL_DESCRIPTION = (
    "Return complete structured study materials. Notes MUST end with END_OF_NOTES."
)
STUDY_PACK_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "notes": {
            "type": "string",
            "description": "Complete markdown notes. MUST end with END_OF_NOTES on its own line.",
        },
        "highlights": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"text": {"type": "string"}, "why": {"type": "string"}},
                "required": ["text"],
                "additionalProperties": False,
            },
        },
        "flashcards": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"question": {"type": "string"}, "answer": {"type": "string"}},
                "required": ["question", "answer"],
                "additionalProperties": False,
            },
        },
        "quiz": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "question": {"type": "string"},
                    "options": {
                        "type": "array",
                        "items": {"type": "string"},
                        "minItems": 4,
                        "maxItems": 4,
                    },
                    "correctIndex": {"type": "integer", "minimum": 0, "maximum": 3},
                },
                "required": ["question", "options", "correctIndex"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["notes", "highlights", "flashcards", "quiz"],
    "additionalProperties": False,
}


class Highlight(BaseModel):
    text: str
    why: str | None = None


class Flashcard(BaseModel):
    question: str
    answer: str


class QuizQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: list[str] = Field(..., min_length=4, max_length=4)
    correct_index: int = Field(..., alias="correctIndex", ge=0, le=3)


class StudyPack(BaseModel):
    notes: str
    highlights: list[Highlight] = Field(default_factory=list)
    flashcards: list[Flashcard] = Field(default_factory=list)
    quiz: list[QuizQuestion] = Field(default_factory=list)


class StudyPackClient(ContinuationClient, Protocol):
    async def call_tool(
        self,
        messages: list[dict[str, str]],
        *,
        tool_name: str,
        description: str,
        parameters: dict[str, Any],
    ) -> dict[str, Any]: ...


@dataclass
class StudyPackResult:
    pack: StudyPack
    activity_log: ActivityLog
    attempts: int = 0

    def to_response(self) -> dict[str, Any]:
        data = self.pack.model_dump(by_alias=True, exclude_none=True)
        data["activityLog"] = self.activity_log.to_list()
        return data


class StudyPackGenerator:
    """Generate a full study pack, continuing truncated notes until complete."""

    def __init__(
        self,
        config: ContinuationConfig,
        client: StudyPackClient | None = None,
        *,
        initial_attempts: int = STUDY_PACK_INITIAL_ATTEMPTS,
        max_continuations: int = STUDY_PACK_MAX_CONTINUATIONS,
        tail_window_size: int = STUDY_PACK_TAIL_WINDOW,
    ):
        self.config = config
        self._client = client
        self.initial_attempts = initial_attempts
        self.continuation_config = dataclasses.replace(
            config, max_attempts=max_continuations, tail_window_size=tail_window_size
        )

    def _get_client(self) -> StudyPackClient:
        if self._client is None:
            from notecraft.llm.gateway import GatewayClient

            self._client = GatewayClient(str(self.config.completion_service_credential))
        return self._client

    async def generate(
        self,
        raw_text: Any,
        title: Any = None,
        *,
        should_cancel: CancelCheck | None = None,
        activity_log: ActivityLog | None = None,
    ) -> StudyPackResult:
        log = activity_log if activity_log is not None else ActivityLog()

        if not isinstance(raw_text, str) or not raw_text:
            log.error(ValidationError.action, "Missing 'text' in request body")
            raise ValidationError("Missing 'text' in request body").attach(log)
        if len(raw_text) > self.config.max_source_chars:
            message = f"'text' exceeds {self.config.max_source_chars} characters"
            log.error(ValidationError.action, message)
            raise ValidationError(message).attach(log)
        clean_title = title[: self.config.max_title_chars] if isinstance(title, str) and title else None

        if not self.config.completion_service_credential:
            logger.error("AI gateway credential is not configured")
            log.error(ConfigurationError.action, ConfigurationError.default_message)
            raise ConfigurationError().attach(log)

        client = self._get_client()
        pack, attempts = await self._initial_pack(client, raw_text, clean_title, log)

        if is_complete(pack.notes):
            pack.notes = strip_marker(pack.notes)
        else:
            log.info("continuing_notes", f"Notes cut off at {len(pack.notes)} characters")
            engine = ContinuationEngine(self.continuation_config, client)
            try:
                continued = await engine.extend(
                    pack.notes, raw_text, clean_title, log, should_cancel=should_cancel
                )
            except NotesError as e:
                e.attach(log, attempts + e.attempts)
                raise
            attempts += continued.attempts

            if not continued.is_complete:
                counter("notes.study_pack.incomplete")
                log.error(IncompleteGenerationError.action, "Notes still incomplete after continuing")
                raise IncompleteGenerationError().attach(log, attempts)
            pack.notes = continued.notes

        log.success(
            "generation_complete",
            f"{len(pack.notes)} characters, {len(pack.flashcards)} flashcards, "
            f"{len(pack.quiz)} quiz questions",
        )
        counter("notes.study_pack.complete")
        log_event("notes.study_pack", attempts=attempts, notes_length=len(pack.notes))
        return StudyPackResult(pack=pack, activity_log=log, attempts=attempts)

    async def _initial_pack(
        self,
        client: StudyPackClient,
        raw_text: str,
        title: str | None,
        log: ActivityLog,
    ) -> tuple[StudyPack, int]:
        """Request the full pack; keep the last usable one, stop early once complete."""
        pack: StudyPack | None = None
        attempts = 0

        for attempt in range(1, self.initial_attempts + 1):
            attempts = attempt
            log.info("generation_attempt", f"Attempt {attempt}/{self.initial_attempts}")
            try:
                args = await client.call_tool(
                    get_study_pack_messages(title, raw_text),
                    tool_name=STUDY_PACK_TOOL_NAME,
                    description=STUDY_PACK_TOOL_DESCRIPTION,
                    parameters=STUDY_PACK_PARAMETERS,
                )
                candidate = StudyPack.model_validate(args)
            except (MalformedModelOutput, PydanticValidationError) as e:
                counter("notes.study_pack.malformed")
                logger.warning("Malformed study pack on attempt %d: %s", attempt, e)
                log.error(MalformedModelOutput.action, f"Attempt {attempt}: invalid AI response")
                continue
            except GatewayError as e:
                logger.error("Gateway failure on attempt %d: %s", attempt, e.detail)
                log.error(GatewayError.action, e.user_message)
                e.attach(log, attempts)
                raise

            pack = candidate
            if is_complete(pack.notes):
                break
            log.info("generation_incomplete", f"Attempt {attempt}: notes missing completion marker")

        if pack is None:
            log.error(MalformedModelOutput.action, "No usable study pack was generated")
            raise MalformedModelOutput().attach(log, attempts)
        return pack, attempts
