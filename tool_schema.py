"""Function-calling schemas advertised to the model."""
from __future__ import annotations

from typing import Any, Dict, List, Optional


def _function(name: str, description: str, properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    parameters: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        parameters["required"] = required
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


BROWSER_TOOL_SCHEMAS: List[Dict[str, Any]] = [
    _function(
        "navigate",
        "Navigate to a URL",
        {"url": {"type": "string"}},
        ["url"],
    ),
    _function(
        "fill",
        "Fill in a field by CSS selector",
        {"selector": {"type": "string"}, "text": {"type": "string"}},
        ["selector", "text"],
    ),
    _function(
        "click",
        "Click a button or link by CSS selector",
        {
            "selector": {"type": "string"},
            "waitFor": {
                "type": "string",
                "enum": ["load", "domcontentloaded", "networkidle"],
                "default": "domcontentloaded",
            },
            "delayMs": {
                "type": "number",
                "default": 2000,
                "description": "Milliseconds to wait after click",
            },
        },
        ["selector"],
    ),
    _function(
        "click_text",
        "Clicks an element by visible text content, useful for buttons or links when selector is unknown",
        {"text": {"type": "string", "description": "Visible text to search for and click on the page"}},
        ["text"],
    ),
    _function(
        "expand_menu",
        "Click an element (like a hamburger menu or profile icon) to reveal a dropdown or hidden menu",
        {
            "selector": {"type": "string"},
            "delayMs": {
                "type": "number",
                "default": 1000,
                "description": "Optional delay after expanding menu (in ms)",
            },
        },
        ["selector"],
    ),
    _function(
        "get_dom",
        "Return trimmed HTML from the current page",
        {
            "limit": {"type": "number", "default": 100000, "description": "Max characters to return"},
            "exclude": {
                "type": "boolean",
                "default": True,
                "description": "Whether to exclude noisy tags like script/style/etc.",
            },
        },
    ),
    _function(
        "check_text",
        "Search page HTML for specific text",
        {"text": {"type": "string"}},
        ["text"],
    ),
    _function(
        "screenshot",
        "Takes a screenshot of the current page",
        {"label": {"type": "string", "description": "Optional label for the screenshot filename"}},
    ),
]


GROUND_CONTROL_TOOL_SCHEMAS: List[Dict[str, Any]] = [
    _function(
        "set_ground_control_state",
        "Update stable mission facts for Ground Control: app URL, current page role, login status, "
        "and constraints. Use this when you learn something that should remain true across future turns.",
        {
            "app": {
                "type": "object",
                "description": "App/URL related state. Only send fields you are certain about.",
                "properties": {
                    "baseUrl": {"type": "string", "description": "Canonical base URL of the app under test."},
                    "currentUrl": {"type": "string", "description": "Current page URL after navigation."},
                    "routeRole": {
                        "type": "string",
                        "description": 'Short label for the current page role, e.g. "login", "dashboard".',
                    },
                },
                "additionalProperties": False,
            },
            "session": {
                "type": "object",
                "description": "User/session related facts.",
                "properties": {
                    "loggedIn": {"type": "boolean", "description": "Whether the user is currently logged in."},
                    "userLabel": {"type": "string", "description": "Short label for the user account."},
                    "tenant": {"type": "string", "description": "Tenant or workspace name, if applicable."},
                },
                "additionalProperties": False,
            },
            "navigation": {
                "type": "object",
                "description": "Navigation-related state.",
                "properties": {
                    "currentLabel": {"type": "string", "description": "Short human label for the current page."},
                },
                "additionalProperties": False,
            },
            "constraints": {
                "type": "object",
                "description": "Mission or environment constraints.",
                "properties": {
                    "stayWithinBaseUrl": {
                        "type": "boolean",
                        "description": "If true, do not navigate outside the app base URL unless instructed.",
                    },
                },
                "additionalProperties": False,
            },
        },
    ),
    _function(
        "record_mission_telemetry",
        "Record a small, durable observation for the mission log: breadcrumbs, assertions, issues, or notes.",
        {
            "kind": {"type": "string", "enum": ["breadcrumb", "assertion", "issue", "note"]},
            "text": {"type": "string", "description": "Short description of the observation in 1-2 sentences."},
            "status": {"type": "string", "enum": ["passed", "failed", "n/a"]},
        },
        ["kind", "text"],
    ),
]


TOOL_SCHEMAS: List[Dict[str, Any]] = BROWSER_TOOL_SCHEMAS + GROUND_CONTROL_TOOL_SCHEMAS


def tool_names(schemas: List[Dict[str, Any]] = TOOL_SCHEMAS) -> List[str]:
    return [s["function"]["name"] for s in schemas]
