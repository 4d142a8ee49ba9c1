"""Canonical chat message shapes exchanged with tool-calling models."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from exceptions import ToolArgumentsError


@dataclass(frozen=True)
class ToolCall:
    """A structured action requested by the model."""

    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> Dict[str, Any]:
        """Decode the raw JSON arguments into a dict."""
        raw = self.arguments
        if isinstance(raw, dict):
            return dict(raw)
        if raw is None or not str(raw).strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ToolArgumentsError(f"Invalid JSON arguments for {self.name}: {e}", raw_arguments=raw) from e
        if not isinstance(parsed, dict):
            raise ToolArgumentsError(
                f"Arguments for {self.name} must be a JSON object, got {type(parsed).__name__}",
                raw_arguments=raw,
            )
        return parsed


@dataclass(frozen=True)
class SystemMessage:
    content: str
    name: Optional[str] = None
    role: ClassVar[str] = "system"


@dataclass(frozen=True)
class UserMessage:
    content: str
    role: ClassVar[str] = "user"


@dataclass(frozen=True)
class AssistantTextMessage:
    content: str
    role: ClassVar[str] = "assistant"


@dataclass(frozen=True)
class AssistantToolCallsMessage:
    tool_calls: Tuple[ToolCall, ...]
    content: Optional[str] = None
    role: ClassVar[str] = "assistant"

    @property
    def tool_call_ids(self) -> List[str]:
        return [call.id for call in self.tool_calls]


@dataclass(frozen=True)
class ToolResultMessage:
    tool_call_id: Optional[str]
    name: str
    content: str = ""
    role: ClassVar[str] = "tool"


Message = Union[
    SystemMessage,
    UserMessage,
    AssistantTextMessage,
    AssistantToolCallsMessage,
    ToolResultMessage,
]

Conversation = List[Message]


def message_to_openai_format(msg: Message) -> Dict[str, Any]:
    """Convert a message to the Chat Completions dict shape."""
    if isinstance(msg, SystemMessage):
        out = {"role": "system", "content": msg.content}
        if msg.name:
            out["name"] = msg.name
        return out
    if isinstance(msg, UserMessage):
        return {"role": "user", "content": msg.content}
    if isinstance(msg, AssistantTextMessage):
        return {"role": "assistant", "content": msg.content}
    if isinstance(msg, AssistantToolCallsMessage):
        return {
            "role": "assistant",
            "content": msg.content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in msg.tool_calls
            ],
        }
    if isinstance(msg, ToolResultMessage):
        return {
            "role": "tool",
            "tool_call_id": msg.tool_call_id,
            "name": msg.name,
            "content": msg.content,
        }
    raise TypeError(f"Unsupported message type: {type(msg).__name__}")


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _tool_call_from_openai(data: Any) -> ToolCall:
    function = _get(data, "function") or {}
    arguments = _get(function, "arguments", "{}")
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ToolCall(
        id=str(_get(data, "id") or ""),
        name=str(_get(function, "name") or ""),
        arguments=arguments,
    )


def message_from_openai_format(data: Any) -> Message:
    """Build a message from a Chat Completions dict or SDK message object."""
    role = _get(data, "role") or "assistant"
    content = _get(data, "content")

    if role == "system":
        return SystemMessage(content=content or "", name=_get(data, "name"))
    if role == "user":
        return UserMessage(content=content or "")
    if role == "tool":
        return ToolResultMessage(
            tool_call_id=_get(data, "tool_call_id"),
            name=_get(data, "name") or "",
            content=content if isinstance(content, str) else json.dumps(content or ""),
        )
    if role == "assistant":
        tool_calls = _get(data, "tool_calls") or []
        if tool_calls:
            return AssistantToolCallsMessage(
                tool_calls=tuple(_tool_call_from_openai(tc) for tc in tool_calls),
                content=content or None,
            )
        return AssistantTextMessage(content=content or "")
    raise ValueError(f"Unsupported message role: {role}")

