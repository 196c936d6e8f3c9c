"""
Pytest configuration for notecraft tests

Provides a scripted gateway fake and resets module-level state (counters,
budgets, token cache, injected gateway client and website fetcher) between tests.
"""

from __future__ import annotations

import itertools
from typing import Any

import pytest

from notecraft.api.middleware.user_auth import clear_token_cache
from notecraft.api.routes import notes as notes_routes
from notecraft.api.routes import website as website_routes
from notecraft.infrastructure.llm_budget import reset_budget
from notecraft.observability.telemetry import reset_counters, reset_latencies


class ScriptedGateway:
    """
    Gateway fake that replays scripted replies.

    Each reply is either a value to return or an exception instance to raise.
    Calls are recorded so tests can assert on the tail window and call count.
    """

    def __init__(
        self,
        continuations: list[Any] | None = None,
        packs: list[Any] | None = None,
    ):
        self.continuations = list(continuations or [])
        self.packs = list(packs or [])
        self.continue_calls: list[dict[str, Any]] = []
        self.tool_calls: list[dict[str, Any]] = []

    @staticmethod
    def _next(replies: list[Any], kind: str) -> Any:
        if not replies:
            raise AssertionError(f"unexpected {kind} call: script exhausted")
        reply = replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def continue_notes(self, *, title: str | None, source_text: str, tail: str) -> str:
        self.continue_calls.append({"title": title, "source_text": source_text, "tail": tail})
        return self._next(self.continuations, "continue_notes")

    async def call_tool(
        self,
        messages: list[dict[str, str]],
        *,
        tool_name: str,
        description: str,
        parameters: dict[str, Any],
    ) -> dict[str, Any]:
        self.tool_calls.append({"messages": messages, "tool_name": tool_name})
        return self._next(self.packs, "call_tool")

    @property
    def calls(self) -> int:
        return len(self.continue_calls) + len(self.tool_calls)


@pytest.fixture
def scripted_gateway():
    """Factory for ScriptedGateway instances"""
    return ScriptedGateway


@pytest.fixture(autouse=True)
def reset_state():
    """Reset in-memory state shared across modules"""
    reset_counters()
    reset_latencies()
    reset_budget()
    clear_token_cache()
    yield
    notes_routes.set_gateway_client(None)
    website_routes.set_website_fetcher(None)
    clear_token_cache()


@pytest.fixture
def gateway_key(monkeypatch):
    """Configure a gateway credential"""
    monkeypatch.delenv("LOVABLE_API_KEY", raising=False)
    monkeypatch.setenv("AI_GATEWAY_API_KEY", "test-gateway-key")
    return "test-gateway-key"


@pytest.fixture
def no_gateway_key(monkeypatch):
    """Remove every gateway credential"""
    monkeypatch.delenv("AI_GATEWAY_API_KEY", raising=False)
    monkeypatch.delenv("LOVABLE_API_KEY", raising=False)


_client_ips = (f"10.0.{i // 250}.{i % 250 + 1}" for i in itertools.count())


@pytest.fixture
def client_ip():
    """A client IP not used by any other test (rate-limit buckets persist per app)"""
    return next(_client_ips)
