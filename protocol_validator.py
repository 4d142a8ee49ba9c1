"""Detection and repair of unanswered assistant tool calls."""
from __future__ import annotations

import logging
from typing import List, Optional

from exceptions import ProtocolError
from message_types import AssistantToolCallsMessage, Conversation, ToolResultMessage


def placeholder_content(tool_name: str) -> str:
    return f"[auto-inserted placeholder] No result returned for {tool_name}"


class ProtocolValidator:
    """Ensures every assistant tool call is answered before the next model call."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("protocol_validator")

    def find_missing(self, conversation: Conversation) -> List[str]:
        """Return ids of tool calls lacking a later matching tool result."""
        missing: List[str] = []
        for i, msg in enumerate(conversation):
            if not isinstance(msg, AssistantToolCallsMessage):
                continue
            answered = {
                later.tool_call_id
                for later in conversation[i + 1:]
                if isinstance(later, ToolResultMessage)
            }
            missing.extend(call.id for call in msg.tool_calls if call.id not in answered)
        return missing

    def validate(self, conversation: Conversation, insert_placeholders: bool = True) -> bool:
        """
        Check the conversation and optionally repair it.

        With ``insert_placeholders`` a placeholder tool result is inserted
        directly after each assistant message with an unanswered call and True
        is returned. Without it, False is returned and nothing is mutated.
        """
        missing = self.find_missing(conversation)
        if not missing:
            return True

        self.logger.warning(f"Missing tool responses for: {', '.join(missing)}")
        if not insert_placeholders:
            return False

        missing_set = set(missing)
        i = 0
        while i < len(conversation):
            msg = conversation[i]
            if isinstance(msg, AssistantToolCallsMessage):
                offset = 1
                for call in msg.tool_calls:
                    if call.id in missing_set:
                        conversation.insert(
                            i + offset,
                            ToolResultMessage(
                                tool_call_id=call.id,
                                name=call.name,
                                content=placeholder_content(call.name),
                            ),
                        )
                        missing_set.discard(call.id)
                        offset += 1
                        self.logger.warning(f"Inserted placeholder for missing tool_call_id: {call.id}")
                i += offset
                continue
            i += 1
        return True

    def ensure_valid(self, conversation: Conversation, insert_placeholders: bool = True) -> None:
        """Validate (repairing if allowed) and raise ProtocolError if calls remain unanswered."""
        self.validate(conversation, insert_placeholders=insert_placeholders)
        missing = self.find_missing(conversation)
        if missing:
            raise ProtocolError(f"Unanswered tool calls: {', '.join(missing)}", missing_ids=missing)


_default_validator = ProtocolValidator()


def validate_and_insert_missing_tool_responses(
    conversation: Conversation,
    insert_placeholders: bool = True,
) -> bool:
    return _default_validator.validate(conversation, insert_placeholders=insert_placeholders)
