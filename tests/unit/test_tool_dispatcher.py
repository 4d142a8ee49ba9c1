"""Unit tests for tool_dispatcher module."""
from __future__ import annotations

import pytest

from exceptions import ElementNotFoundError
from message_types import ToolCall
from tool_dispatcher import ToolDispatcher, serialize_result


class TestSerializeResult:
    """Tests for result serialization."""

    def test_string_passthrough(self):
        assert serialize_result("Clicked") == "Clicked"

    def test_none_is_empty(self):
        assert serialize_result(None) == ""

    def test_dict_is_json(self):
        assert serialize_result({"ok": True}) == '{"ok": true}'


class TestToolDispatcher:
    """Tests for ToolDispatcher."""

    @pytest.mark.asyncio
    async def test_dispatches_async_tool(self, tool_registry):
        dispatcher = ToolDispatcher(tool_registry)
        assert await dispatcher.dispatch("navigate", {"url": "https://demo.test"}) == "Navigated to https://demo.test"

    @pytest.mark.asyncio
    async def test_dispatches_sync_tool_with_raw_json(self, tool_registry):
        dispatcher = ToolDispatcher(tool_registry)
        assert await dispatcher.dispatch("check_text", '{"text": "Welcome"}') == "FOUND: Welcome"

    @pytest.mark.asyncio
    async def test_passes_context(self, mock_browser):
        dispatcher = ToolDispatcher({"navigate": lambda b, args: b.navigate(args["url"])}, context=mock_browser)
        await dispatcher.dispatch("navigate", {"url": "https://demo.test"})
        mock_browser.navigate.assert_awaited_once_with("https://demo.test")

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error(self, tool_registry):
        dispatcher = ToolDispatcher(tool_registry)
        assert await dispatcher.dispatch("teleport", {}) == "ERROR: Unknown tool: teleport"

    @pytest.mark.asyncio
    async def test_invalid_arguments_become_error(self, tool_registry):
        dispatcher = ToolDispatcher(tool_registry)
        result = await dispatcher.dispatch("navigate", "{broken")
        assert result.startswith("ERROR: Invalid JSON arguments for navigate")

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error(self):
        async def click_text(ctx, args):
            raise ElementNotFoundError("no locator", selector="text=Go")

        dispatcher = ToolDispatcher({"click_text": click_text})
        assert await dispatcher.dispatch("click_text", {"text": "Go"}) == "ERROR: no locator"

    @pytest.mark.asyncio
    async def test_plain_exception_message(self):
        def boom(ctx, args):
            raise RuntimeError("kaput")

        dispatcher = ToolDispatcher({"boom": boom})
        assert await dispatcher.dispatch("boom") == "ERROR: kaput"

    @pytest.mark.asyncio
    async def test_non_string_results_serialized(self):
        dispatcher = ToolDispatcher({"info": lambda ctx, args: {"title": "Home"}, "nothing": lambda ctx, args: None})
        assert await dispatcher.dispatch("info") == '{"title": "Home"}'
        assert await dispatcher.dispatch("nothing") == ""

    @pytest.mark.asyncio
    async def test_dispatch_call(self, tool_registry):
        dispatcher = ToolDispatcher(tool_registry)
        call = ToolCall(id="c1", name="click_text", arguments='{"text": "Sign in"}')
        assert await dispatcher.dispatch_call(call) == "Clicked text: Sign in"

    def test_register_and_merge(self, tool_registry):
        dispatcher = ToolDispatcher(tool_registry)
        dispatcher.register("screenshot", lambda ctx, args: "shot")
        dispatcher.update({"record_mission_telemetry": lambda ctx, args: {"ok": True}})
        assert dispatcher.has_tool("screenshot")
        assert "record_mission_telemetry" in dispatcher.names
        assert dispatcher.names == sorted(dispatcher.names)
