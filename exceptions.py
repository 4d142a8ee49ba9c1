"""Custom exception hierarchy for the Testronaut turn-loop engine."""
from __future__ import annotations

from typing import Any, Mapping, Optional


class TestronautError(Exception):
    """Base exception for all Testronaut errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Browser-related exceptions
class BrowserError(TestronautError):
    """Base exception for browser automation errors."""

    pass


class NavigationError(BrowserError):
    """Raised when page navigation fails."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        details = {}
        if url:
            details["url"] = url
        if timeout:
            details["timeout"] = timeout
        super().__init__(message, details)
        self.url = url
        self.timeout = timeout


class ElementNotFoundError(BrowserError):
    """Raised when no element matches a selector or visible text."""

    def __init__(self, message: str, selector: Optional[str] = None):
        details = {"selector": selector} if selector else {}
        super().__init__(message, details)
        self.selector = selector


class BrowserNotStartedError(BrowserError):
    """Raised when attempting to use browser before starting."""

    def __init__(self):
        super().__init__("Browser has not been started. Call start() first.")


# LLM-related exceptions
class LLMError(TestronautError):
    """Base exception for LLM/provider errors."""

    pass


class LLMStatusError(LLMError):
    """Raised when the provider answers with a non-2xx HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        headers: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code
        self.headers = dict(headers or {})

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_bad_request(self) -> bool:
        return self.status_code == 400


class LLMResponseError(LLMError):
    """Raised when the provider returns an unusable response."""

    def __init__(self, message: str, response: Optional[str] = None):
        details = {"response_preview": response[:200] if response else None}
        super().__init__(message, details)
        self.response = response


# Tool execution exceptions
class ToolError(TestronautError):
    """Base exception for tool lookup and invocation errors."""

    pass


class ToolNotFoundError(ToolError):
    """Raised when the model asks for a tool that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", {"tool": name})
        self.name = name


class ToolArgumentsError(ToolError):
    """Raised when tool-call arguments are not a JSON object."""

    def __init__(self, message: str, raw_arguments: Optional[str] = None):
        details = {"raw_arguments": raw_arguments[:200] if raw_arguments else None}
        super().__init__(message, details)
        self.raw_arguments = raw_arguments


# Conversation protocol exceptions
class ProtocolError(TestronautError):
    """Raised when a conversation violates the tool-calling protocol."""

    def __init__(self, message: str, missing_ids: Optional[list[str]] = None):
        details = {"missing_ids": missing_ids} if missing_ids else {}
        super().__init__(message, details)
        self.missing_ids = missing_ids or []


# Configuration exceptions
class ConfigurationError(TestronautError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a required config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path
