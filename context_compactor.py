"""Protocol-safe compaction of a growing conversation."""
from __future__ import annotations

import dataclasses
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from message_types import (
    AssistantToolCallsMessage,
    Conversation,
    Message,
    SystemMessage,
    ToolResultMessage,
)

# Tools whose output is large (full-page markup); older payloads can be stubbed.
HEAVY_TOOLS: FrozenSet[str] = frozenset({"get_dom"})


def heavy_output_placeholder(tool_name: str) -> str:
    return f"[{tool_name} output omitted for brevity - older snapshot]"


def sanitize_heavy_tool_history(
    conversation: Conversation,
    keep_recent_per_tool: int = 2,
    heavy_tools: Iterable[str] = HEAVY_TOOLS,
) -> int:
    """
    Stub all but the latest ``keep_recent_per_tool`` results of each heavy tool.

    Messages are replaced in place with a shrunk copy; none are removed.
    Returns the number of messages stubbed.
    """
    heavy = set(heavy_tools)
    indices_by_tool: Dict[str, List[int]] = {}
    for idx, msg in enumerate(conversation):
        if isinstance(msg, ToolResultMessage) and msg.name in heavy:
            indices_by_tool.setdefault(msg.name, []).append(idx)

    stubbed = 0
    for tool_name, indices in indices_by_tool.items():
        cutoff = max(0, len(indices) - max(0, keep_recent_per_tool))
        placeholder = heavy_output_placeholder(tool_name)
        for idx in indices[:cutoff]:
            msg = conversation[idx]
            if msg.content != placeholder:
                conversation[idx] = dataclasses.replace(msg, content=placeholder)
                stubbed += 1
    return stubbed


def prune_conversation_context(
    conversation: Conversation,
    max_non_system_messages: int = 40,
) -> List[Message]:
    """
    Keep every system message plus the last N non-system messages.

    Tool results without a ``tool_call_id``, or whose declaring assistant
    message fell outside the window, are dropped so the result never holds
    an orphaned tool response. Returns a new list.
    """
    system_messages = [m for m in conversation if isinstance(m, SystemMessage)]
    non_system = [m for m in conversation if not isinstance(m, SystemMessage)]
    tail = non_system[-max_non_system_messages:] if max_non_system_messages > 0 else []

    declared: Set[str] = set()
    for msg in tail:
        if isinstance(msg, AssistantToolCallsMessage):
            declared.update(call.id for call in msg.tool_calls if call.id)

    cleaned: List[Message] = []
    for msg in tail:
        if isinstance(msg, ToolResultMessage):
            if not msg.tool_call_id or msg.tool_call_id not in declared:
                continue
        cleaned.append(msg)

    return [*system_messages, *cleaned]


class ContextCompactor:
    """Two-phase compaction: heavy-output stubbing, then window pruning."""

    def __init__(
        self,
        max_non_system_messages: int = 40,
        keep_recent_per_tool: int = 2,
        heavy_tools: Iterable[str] = HEAVY_TOOLS,
        logger: Optional[logging.Logger] = None,
    ):
        self.max_non_system_messages = max_non_system_messages
        self.keep_recent_per_tool = keep_recent_per_tool
        self.heavy_tools = frozenset(heavy_tools)
        self.logger = logger or logging.getLogger("context_compactor")

    def compact(self, conversation: Conversation) -> Conversation:
        """Compact ``conversation`` in place and return it."""
        before = len(conversation)
        stubbed = sanitize_heavy_tool_history(
            conversation,
            keep_recent_per_tool=self.keep_recent_per_tool,
            heavy_tools=self.heavy_tools,
        )
        conversation[:] = prune_conversation_context(
            conversation,
            max_non_system_messages=self.max_non_system_messages,
        )
        dropped = before - len(conversation)
        if stubbed or dropped:
            self.logger.debug(f"Compacted context: stubbed={stubbed} dropped={dropped} kept={len(conversation)}")
        return conversation
