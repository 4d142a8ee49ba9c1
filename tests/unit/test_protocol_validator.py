"""Unit tests for protocol_validator module."""
from __future__ import annotations

import pytest

from exceptions import ProtocolError
from message_types import (
    AssistantToolCallsMessage,
    SystemMessage,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from protocol_validator import (
    ProtocolValidator,
    placeholder_content,
    validate_and_insert_missing_tool_responses,
)


def _conversation_missing_one():
    return [
        SystemMessage(content="sys"),
        UserMessage(content="goal"),
        AssistantToolCallsMessage(
            tool_calls=(
                ToolCall(id="a", name="navigate"),
                ToolCall(id="b", name="get_dom"),
            )
        ),
        ToolResultMessage(tool_call_id="a", name="navigate", content="ok"),
    ]


class TestProtocolValidator:
    """Tests for ProtocolValidator."""

    def test_valid_conversation_passes(self, sample_conversation):
        before = list(sample_conversation)
        assert ProtocolValidator().validate(sample_conversation) is True
        assert sample_conversation == before

    def test_find_missing(self):
        assert ProtocolValidator().find_missing(_conversation_missing_one()) == ["b"]

    def test_repair_inserts_one_placeholder(self):
        conversation = _conversation_missing_one()

        assert ProtocolValidator().validate(conversation, insert_placeholders=True) is True

        placeholders = [m for m in conversation if isinstance(m, ToolResultMessage) and m.tool_call_id == "b"]
        assert len(placeholders) == 1
        assert placeholders[0].content == placeholder_content("get_dom")
        assert placeholders[0].name == "get_dom"
        # Directly after the declaring assistant message.
        assert conversation[3] == placeholders[0]
        assert ProtocolValidator().find_missing(conversation) == []

    def test_no_repair_returns_false_and_does_not_mutate(self):
        conversation = _conversation_missing_one()
        before = list(conversation)

        assert ProtocolValidator().validate(conversation, insert_placeholders=False) is False
        assert conversation == before

    def test_result_before_call_does_not_count(self):
        conversation = [
            ToolResultMessage(tool_call_id="x", name="navigate", content="early"),
            AssistantToolCallsMessage(tool_calls=(ToolCall(id="x", name="navigate"),)),
        ]
        assert ProtocolValidator().find_missing(conversation) == ["x"]

    def test_module_level_helper(self):
        conversation = _conversation_missing_one()
        assert validate_and_insert_missing_tool_responses(conversation) is True
        assert len(conversation) == 5

    def test_ensure_valid_repairs_in_place(self):
        conversation = _conversation_missing_one()
        ProtocolValidator().ensure_valid(conversation)
        assert ProtocolValidator().find_missing(conversation) == []

    def test_ensure_valid_without_repair_raises(self):
        conversation = _conversation_missing_one()
        before = list(conversation)

        with pytest.raises(ProtocolError) as exc_info:
            ProtocolValidator().ensure_valid(conversation, insert_placeholders=False)

        assert exc_info.value.missing_ids == ["b"]
        assert conversation == before
