"""Masking of credentials in tool arguments and mission text before logging."""
from __future__ import annotations

import copy
import re
from typing import Any, Dict

SENSITIVE_KEYWORDS = [
    "pass",
    "password",
    "pwd",
    "passwd",
    "access",
    "secret",
    "token",
    "api-key",
    "apikey",
    "bearer",
    "auth",
    "pin",
    "otp",
]

# "api-key" also matches "api_key" and "api key"
_KW_GROUP = "(" + "|".join(k.replace("-", r"[-_\s]?") for k in SENSITIVE_KEYWORDS) + ")"
_SENSITIVE_RE = re.compile(rf"\b{_KW_GROUP}\b", re.IGNORECASE)
# Identifiers like "apiKey" or "#access-code" split on case changes/punctuation.
_WORD_SPLIT_RE = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")

_QUOTED_AFTER_KW_RE = re.compile(rf"(\b{_KW_GROUP}\b[^\"'\\\n]{{0,80}}[\"'])([^\"']+)([\"'])", re.IGNORECASE)
_ASSIGNED_AFTER_KW_RE = re.compile(
    rf"(\b{_KW_GROUP}\b[^.\n]{{0,80}}?\b(?:with|as|to|=)\s*)([^\s\"'`]+)", re.IGNORECASE
)
_QUOTED_INTO_TARGET_RE = re.compile(r"([\"'`])([^\"'`]+)\1\s+(?:into|in|on|to)\s+([^\s,.;:]+)", re.IGNORECASE)

VALUE_KEYS = ("text", "value", "input", "keys")
TARGET_KEYS = ("selector", "label", "placeholder", "name", "role", "testId")


def mask_preview(value: Any, show_length: bool = True) -> str:
    s = "" if value is None else str(value)
    if not s:
        return "••••••"
    return f"•••••• ({len(s)})" if show_length else "••••••"


def has_sensitive_hint(value: Any) -> bool:
    s = "" if value is None else str(value)
    if _SENSITIVE_RE.search(s):
        return True
    words = " ".join(_WORD_SPLIT_RE.findall(s))
    return bool(_SENSITIVE_RE.search(words))


def _is_sensitive_call(fn_name: str, args: Dict[str, Any]) -> bool:
    if fn_name not in ("type", "fill"):
        return False
    if str(args.get("inputType") or "").lower() == "password":
        return True
    return any(has_sensitive_hint(args.get(key)) for key in TARGET_KEYS)


def redact_args(fn_name: str, args: Dict[str, Any] | None, show_length: bool = True) -> Dict[str, Any]:
    """Copy of ``args`` with secret-looking values masked."""
    args = args or {}
    out = copy.deepcopy(args)
    for key in list(out):
        if has_sensitive_hint(key):
            out[key] = mask_preview(out[key], show_length)
    if _is_sensitive_call(fn_name, args):
        for key in VALUE_KEYS:
            if key in out:
                out[key] = mask_preview(out[key], show_length)
    return out


def redact_password_in_text(text: str, show_length: bool = True) -> str:
    """Mask literals that follow credential keywords in free-form text."""
    s = "" if text is None else str(text)

    s = _QUOTED_AFTER_KW_RE.sub(lambda m: m.group(1) + mask_preview(m.group(3), show_length) + m.group(4), s)
    s = _ASSIGNED_AFTER_KW_RE.sub(lambda m: m.group(1) + mask_preview(m.group(3), show_length), s)

    def _into_target(m: re.Match[str]) -> str:
        quote, value, target = m.group(1), m.group(2), m.group(3)
        if has_sensitive_hint(target):
            return f"{quote}{mask_preview(value, show_length)}{quote} into {target}"
        return m.group(0)

    return _QUOTED_INTO_TARGET_RE.sub(_into_target, s)
