"""Pytest fixtures for Testronaut tests."""
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from message_types import (
    AssistantTextMessage,
    AssistantToolCallsMessage,
    Conversation,
    SystemMessage,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)


class RecordingSleep:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment variables that feed configuration defaults."""
    for var in (
        "TESTRONAUT_PROVIDER",
        "TESTRONAUT_MODEL",
        "TESTRONAUT_TURNS",
        "TESTRONAUT_RETRY_LIMIT",
        "TESTRONAUT_TOKENS_PER_MIN",
        "TESTRONAUT_DOM_LIST_LIMIT",
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "STRICT_LIMITS",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_browser() -> MagicMock:
    """Create a mock browser for testing."""
    browser = MagicMock()
    browser.start = AsyncMock()
    browser.close = AsyncMock()
    browser.navigate = AsyncMock(return_value="Navigated to https://example.com")
    browser.click = AsyncMock(return_value="Clicked #submit")
    browser.click_text = AsyncMock(return_value="Clicked text: Sign in")
    browser.get_dom = AsyncMock(return_value="<html><body><button>Sign in</button></body></html>")
    browser.check_text = AsyncMock(return_value="FOUND: Welcome")
    return browser


@pytest.fixture
def tool_registry() -> Dict[str, Any]:
    """Minimal browser-like registry with the (context, args) signature."""

    async def navigate(ctx, args):
        return f"Navigated to {args['url']}"

    async def click_text(ctx, args):
        return f"Clicked text: {args['text']}"

    async def get_dom(ctx, args):
        return "<html><body><h1>Dashboard</h1></body></html>"

    def check_text(ctx, args):
        return f"FOUND: {args['text']}"

    return {
        "navigate": navigate,
        "click_text": click_text,
        "get_dom": get_dom,
        "check_text": check_text,
    }


@pytest.fixture
def sample_conversation() -> Conversation:
    """A short, protocol-valid conversation with one tool exchange."""
    return [
        SystemMessage(content="You are an autonomous web agent."),
        UserMessage(content="Log in to the demo app"),
        AssistantToolCallsMessage(
            tool_calls=(ToolCall(id="call_1", name="navigate", arguments='{"url": "https://demo.test"}'),)
        ),
        ToolResultMessage(tool_call_id="call_1", name="navigate", content="Navigated to https://demo.test"),
        AssistantTextMessage(content="The login page is open."),
    ]
