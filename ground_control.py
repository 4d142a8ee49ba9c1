"""Ground Control: durable mission facts kept outside the pruned chat window.

State is created once per mission, survives context compaction, and is only
changed through the ``set_ground_control_state`` and
``record_mission_telemetry`` tool calls.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

TELEMETRY_KINDS = ("breadcrumb", "assertion", "issue", "note")
TELEMETRY_STATUSES = ("passed", "failed", "n/a")
PROMPT_TELEMETRY_LINES = 5
NOTE_NAME = "ground_control"


@dataclass
class AppState:
    base_url: Optional[str] = None
    current_url: Optional[str] = None
    route_role: Optional[str] = None


@dataclass
class SessionState:
    logged_in: Optional[bool] = None
    user_label: Optional[str] = None
    tenant: Optional[str] = None


@dataclass
class NavigationState:
    current_label: Optional[str] = None


@dataclass
class ConstraintsState:
    stay_within_base_url: Optional[bool] = None


@dataclass(frozen=True)
class TelemetryEntry:
    kind: str
    text: str
    status: str = "n/a"
    timestamp: datetime = field(default_factory=datetime.utcnow)
    turn_index: Optional[int] = None

    def format_line(self) -> str:
        suffix = f" ({self.status})" if self.status and self.status != "n/a" else ""
        return f"- [{self.kind}]{suffix} {self.text}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "text": self.text,
            "status": self.status,
            "ts": self.timestamp.isoformat(),
            "turn": self.turn_index,
        }


@dataclass
class GroundControlState:
    app: AppState = field(default_factory=AppState)
    session: SessionState = field(default_factory=SessionState)
    navigation: NavigationState = field(default_factory=NavigationState)
    constraints: ConstraintsState = field(default_factory=ConstraintsState)
    telemetry: List[TelemetryEntry] = field(default_factory=list)


# section -> {payload key (camelCase and snake_case): attribute}
_SECTION_FIELDS: Dict[str, Dict[str, str]] = {
    "app": {
        "baseUrl": "base_url",
        "base_url": "base_url",
        "currentUrl": "current_url",
        "current_url": "current_url",
        "routeRole": "route_role",
        "route_role": "route_role",
    },
    "session": {
        "loggedIn": "logged_in",
        "logged_in": "logged_in",
        "userLabel": "user_label",
        "user_label": "user_label",
        "tenant": "tenant",
    },
    "navigation": {
        "currentLabel": "current_label",
        "current_label": "current_label",
    },
    "constraints": {
        "stayWithinBaseUrl": "stay_within_base_url",
        "stay_within_base_url": "stay_within_base_url",
    },
}

# Flags take booleans; every other leaf takes a string. None clears either.
_BOOL_ATTRS = frozenset({"logged_in", "stay_within_base_url"})


def _accepts(attr: str, value: Any) -> bool:
    if value is None:
        return True
    if attr in _BOOL_ATTRS:
        return isinstance(value, bool)
    return isinstance(value, str)


class GroundControl:
    """Owner of one mission's GroundControlState."""

    def __init__(
        self,
        state: Optional[GroundControlState] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.state = state or GroundControlState()
        self.logger = logger or logging.getLogger("ground_control")
        self.turn_index: Optional[int] = None

    def apply_update(self, partial: Optional[Dict[str, Any]]) -> GroundControlState:
        """
        Merge a partial update leaf by leaf.

        A key that is present overwrites the stored value, even when it is
        ``False`` or ``None``; absent keys keep their value. Unknown sections
        and keys are ignored, as are values of the wrong type.
        """
        if not isinstance(partial, dict):
            return self.state
        for section_name, fields in _SECTION_FIELDS.items():
            section_update = partial.get(section_name)
            if not isinstance(section_update, dict):
                continue
            section = getattr(self.state, section_name)
            for key, value in section_update.items():
                attr = fields.get(key)
                if attr is None:
                    continue
                if not _accepts(attr, value):
                    self.logger.debug(f"Ignoring {section_name}.{key}={value!r}: wrong type")
                    continue
                setattr(section, attr, value)
        return self.state

    def record_telemetry(
        self,
        entry: Optional[Dict[str, Any]],
        turn_index: Optional[int] = None,
    ) -> Optional[TelemetryEntry]:
        """Append a normalized telemetry entry; malformed entries are rejected."""
        entry = entry or {}
        kind = entry.get("kind")
        text = entry.get("text")
        if not kind or not text:
            return None
        telemetry = TelemetryEntry(
            kind=str(kind),
            text=str(text),
            status=str(entry.get("status") or "n/a"),
            turn_index=turn_index if turn_index is not None else self.turn_index,
        )
        self.state.telemetry.append(telemetry)
        return telemetry

    def summarize(self) -> Optional[Dict[str, Any]]:
        """Compact projection for prompt injection, or None when there is no signal."""
        app = self.state.app
        session = self.state.session
        nav = self.state.navigation
        telemetry = self.state.telemetry

        has_signal = (
            app.base_url
            or app.current_url
            or isinstance(session.logged_in, bool)
            or app.route_role
            or nav.current_label
            or telemetry
        )
        if not has_signal:
            return None

        return {
            "app": {
                "baseUrl": app.base_url or None,
                "currentUrl": app.current_url or None,
            },
            "session": {
                "loggedIn": bool(session.logged_in),
                "userLabel": session.user_label or None,
            },
            "navigation": {
                "routeRole": app.route_role or None,
                "currentLabel": nav.current_label or None,
            },
            "telemetryLines": [t.format_line() for t in telemetry[-PROMPT_TELEMETRY_LINES:]],
        }

    def prompt_note(self) -> Optional[str]:
        summary = self.summarize()
        if summary is None:
            return None
        return (
            "Ground Control (durable mission facts; trust these over older context):\n"
            + json.dumps(summary, indent=2)
        )

    def snapshot(self) -> Dict[str, Any]:
        s = self.state
        return {
            "app": {
                "baseUrl": s.app.base_url,
                "currentUrl": s.app.current_url,
                "routeRole": s.app.route_role,
            },
            "session": {
                "loggedIn": s.session.logged_in,
                "userLabel": s.session.user_label,
                "tenant": s.session.tenant,
            },
            "navigation": {"currentLabel": s.navigation.current_label},
            "constraints": {"stayWithinBaseUrl": s.constraints.stay_within_base_url},
            "telemetry": [t.to_dict() for t in s.telemetry],
        }

    # Tool registry entries, shaped like the browser tools: (context, args).

    def _set_state_tool(self, context: Any, args: Dict[str, Any]) -> Dict[str, Any]:
        self.apply_update(args)
        self.logger.info(f"Ground Control updated: {json.dumps(args)[:200]}")
        return {"ok": True, "groundControl": self.summarize()}

    def _record_telemetry_tool(self, context: Any, args: Dict[str, Any]) -> Dict[str, Any]:
        entry = self.record_telemetry(args)
        if entry is None:
            return {"ok": False, "error": "telemetry entries need both 'kind' and 'text'"}
        return {"ok": True, "recorded": entry.to_dict()}

    def tools(self) -> Dict[str, Callable[[Any, Dict[str, Any]], Any]]:
        return {
            "set_ground_control_state": self._set_state_tool,
            "record_mission_telemetry": self._record_telemetry_tool,
        }
