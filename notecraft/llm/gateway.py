"""AI gateway client.

Talks to an OpenAI-compatible chat-completions endpoint and forces the model
to answer through a single tool call, so every response is a JSON object with
a known shape instead of free text.

Status handling:
  429       -> GatewayRateLimited   (do not retry within the request)
  402       -> GatewayQuotaExceeded (billing, terminal)
  other     -> GatewayUnclassifiedFailure
Response shape problems (no tool call, unparsable arguments) raise
MalformedModelOutput, which callers treat as a soft, retryable failure.

Only httpx.ConnectError is retried here: the request never reached the
gateway, so it does not count as a generation attempt.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from notecraft.config import (
    AI_GATEWAY_MAX_TOKENS,
    AI_GATEWAY_MODEL,
    AI_GATEWAY_URL,
    LLM_CONNECT_RETRIES,
    LLM_RETRY_BACKOFF,
    LLM_TIMEOUT_SECONDS,
)
from notecraft.errors import (
    GatewayQuotaExceeded,
    GatewayRateLimited,
    GatewayUnclassifiedFailure,
    MalformedModelOutput,
)
from notecraft.llm.prompts import get_continuation_messages
from notecraft.observability.logging import get_logger
from notecraft.observability.telemetry import counter, time_block

logger = get_logger(__name__)

CONTINUATION_TOOL_NAME = "continue_notes"
CONTINUATION_TOOL_DESCRIPTION = (
    "Return only the continuation of the notes. MUST end with END_OF_NOTES."
)
CONTINUATION_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "continuation": {
            "type": "string",
            "description": "Continuation text only (no repetition). MUST end with END_OF_NOTES.",
        },
    },
    "required": ["continuation"],
    "additionalProperties": False,
}

# Upstream bodies can be large; keep logs readable.
_MAX_LOGGED_BODY = 1000


def parse_tool_arguments(payload: Any) -> dict[str, Any]:
    """Extract the first tool call's arguments from a chat-completion payload.

    Raises:
        MalformedModelOutput: if the payload has no tool call or the arguments
            are not a JSON object.
    """
    try:
        args_str = payload["choices"][0]["message"]["tool_calls"][0]["function"]["arguments"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedModelOutput(detail=f"no tool call in response: {e!r}") from e

    if not isinstance(args_str, str) or not args_str:
        raise MalformedModelOutput(detail="tool call arguments missing or not a string")

    try:
        args = json.loads(args_str)
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(detail=f"tool call arguments are not JSON: {e}") from e

    if not isinstance(args, dict):
        raise MalformedModelOutput(detail="tool call arguments are not an object")
    return args


class GatewayClient:
    """Schema-constrained chat-completion calls against the AI gateway."""

    def __init__(
        self,
        api_key: str,
        *,
        url: str = AI_GATEWAY_URL,
        model: str = AI_GATEWAY_MODEL,
        max_tokens: int = AI_GATEWAY_MAX_TOKENS,
        timeout_seconds: float = LLM_TIMEOUT_SECONDS,
        connect_retries: int = LLM_CONNECT_RETRIES,
        retry_backoff: float = LLM_RETRY_BACKOFF,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.connect_retries = connect_retries
        self.retry_backoff = retry_backoff
        self._transport = transport

    async def call_tool(
        self,
        messages: list[dict[str, str]],
        *,
        tool_name: str,
        description: str,
        parameters: dict[str, Any],
    ) -> dict[str, Any]:
        """Send messages and force a single tool call; return its arguments."""
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "tools": [
                {
                    "type": "function",
                    "function": {
                        "name": tool_name,
                        "description": description,
                        "parameters": parameters,
                    },
                }
            ],
            "tool_choice": {"type": "function", "function": {"name": tool_name}},
        }
        payload = await self._post(body, tool_name)
        return parse_tool_arguments(payload)

    async def continue_notes(self, *, title: str | None, source_text: str, tail: str) -> str:
        """Ask for the missing tail of a notes document.

        Returns the raw continuation string (may be blank; the caller decides
        what an empty continuation means).
        """
        args = await self.call_tool(
            get_continuation_messages(title, source_text, tail),
            tool_name=CONTINUATION_TOOL_NAME,
            description=CONTINUATION_TOOL_DESCRIPTION,
            parameters=CONTINUATION_PARAMETERS,
        )
        continuation = args.get("continuation")
        if not isinstance(continuation, str):
            raise MalformedModelOutput(detail="'continuation' missing or not a string")
        return continuation

    async def _post(self, body: dict[str, Any], tool_name: str) -> Any:
        counter(f"gateway.{tool_name}.requests")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            with time_block(f"gateway.{tool_name}.latency"):
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.connect_retries + 1),
                    wait=wait_exponential(multiplier=self.retry_backoff, max=10),
                    retry=retry_if_exception_type(httpx.ConnectError),
                    reraise=True,
                ):
                    with attempt:
                        async with httpx.AsyncClient(
                            transport=self._transport, timeout=self.timeout_seconds
                        ) as client:
                            response = await client.post(self.url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            counter(f"gateway.{tool_name}.timeout")
            logger.warning("AI gateway timed out after %.0fs", self.timeout_seconds)
            raise GatewayUnclassifiedFailure(detail=f"timeout: {e!r}") from e
        except httpx.HTTPError as e:
            counter(f"gateway.{tool_name}.transport_error")
            logger.error("AI gateway request failed: %r", e)
            raise GatewayUnclassifiedFailure(detail=f"transport error: {e!r}") from e

        if not response.is_success:
            self._raise_for_status(response, tool_name)

        try:
            return response.json()
        except ValueError as e:
            counter(f"gateway.{tool_name}.invalid_body")
            logger.error("AI gateway returned a non-JSON body: %s", response.text[:_MAX_LOGGED_BODY])
            raise GatewayUnclassifiedFailure(
                detail="non-JSON response body", status_code=response.status_code
            ) from e

    def _raise_for_status(self, response: httpx.Response, tool_name: str) -> None:
        status_code = response.status_code
        logger.error(
            "AI gateway error: status=%d body=%s",
            status_code,
            response.text[:_MAX_LOGGED_BODY],
        )
        detail = f"HTTP {status_code}"

        if status_code == 429:
            counter(f"gateway.{tool_name}.rate_limited")
            raise GatewayRateLimited(detail=detail, status_code=status_code)
        if status_code == 402:
            counter(f"gateway.{tool_name}.quota_exceeded")
            raise GatewayQuotaExceeded(detail=detail, status_code=status_code)

        counter(f"gateway.{tool_name}.failed")
        raise GatewayUnclassifiedFailure(detail=detail, status_code=status_code)
