"""Human-readable one-line summaries of what the model intends this turn."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional, Sequence

from exceptions import ToolArgumentsError
from message_types import AssistantTextMessage, AssistantToolCallsMessage, Message
from redaction import redact_args, redact_password_in_text


def truncate_middle(text: str, max_len: int = 80) -> str:
    if not text or len(text) <= max_len:
        return text
    half = (max_len - 1) // 2
    return f"{text[:half]}…{text[-half:]}"


def _pick(args: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = args.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def summarize_tool_call(fn_name: str, args: Optional[Dict[str, Any]] = None) -> str:
    safe = redact_args(fn_name, args or {})
    selector = _pick(safe, ("selector", "xpath", "css", "role", "testId"))
    text = _pick(safe, ("text", "value", "keys", "input", "query", "label"))
    url = _pick(safe, ("url", "href", "to"))

    sel = f" ({truncate_middle(selector, 60)})" if selector else ""
    val = f' "{truncate_middle(text, 60)}"' if text else ""

    if fn_name == "navigate":
        return f"Navigate to {truncate_middle(url or '(no url)', 80)}"
    if fn_name == "click_text":
        return f"Click text{val}"
    if fn_name == "click":
        return f"Click element{sel}"
    if fn_name in ("type", "fill"):
        into = f" into {truncate_middle(selector, 60)}" if selector else ""
        return f"Type{val}{into}"
    if fn_name == "get_dom":
        return "Inspect DOM (focused extract)"
    if fn_name == "check_text":
        return f"Check page for{val or ' specific text'}"
    if fn_name == "screenshot":
        return "Capture screenshot"
    if fn_name == "expand_menu":
        return f"Expand menu{sel}"
    if fn_name == "set_ground_control_state":
        return "Update Ground Control state"
    if fn_name == "record_mission_telemetry":
        kind = safe.get("kind") or "note"
        return f"Record {kind}{val}"
    return f"Run {fn_name} with {truncate_middle(json.dumps(safe, default=str), 80)}"


def summarize_turn_intent(msg: Message) -> str:
    if isinstance(msg, AssistantToolCallsMessage):
        parts = []
        for call in msg.tool_calls:
            try:
                args = call.parse_arguments()
            except ToolArgumentsError:
                args = {}
            parts.append(summarize_tool_call(call.name or "unknown", args))
        return " → ".join(parts)
    if isinstance(msg, AssistantTextMessage) and msg.content:
        return f"Reasoning: {truncate_middle(redact_password_in_text(msg.content), 120)}"
    return "No intent detected"
