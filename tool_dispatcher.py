"""Routes model tool calls to registered implementations."""
from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from exceptions import ToolNotFoundError
from message_types import ToolCall

ToolFn = Callable[[Any, Dict[str, Any]], Union[Any, Awaitable[Any]]]

PREVIEW_CHARS = 100


def serialize_result(result: Any) -> str:
    """Turn a tool's return value into the text fed back to the model."""
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    try:
        return json.dumps(result)
    except (TypeError, ValueError):
        return str(result)


class ToolDispatcher:
    """Invokes tools by name; failures become ``ERROR:`` observations."""

    def __init__(
        self,
        registry: Optional[Mapping[str, ToolFn]] = None,
        context: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry: Dict[str, ToolFn] = dict(registry or {})
        self.context = context
        self.logger = logger or logging.getLogger("tool_dispatcher")

    @property
    def names(self) -> list[str]:
        return sorted(self.registry)

    def register(self, name: str, fn: ToolFn) -> None:
        self.registry[name] = fn

    def update(self, tools: Mapping[str, ToolFn]) -> None:
        self.registry.update(tools)

    def has_tool(self, name: str) -> bool:
        return name in self.registry

    async def dispatch(self, name: str, args: Union[Dict[str, Any], str, None] = None) -> str:
        """Run tool ``name`` and return its textual result. Never raises."""
        try:
            result = await self._invoke(name, args)
            text = serialize_result(result)
        except Exception as e:
            self.logger.warning(f"Tool {name} failed: {e}")
            text = f"ERROR: {getattr(e, 'message', None) or e}"

        preview = text if len(text) <= PREVIEW_CHARS else text[:PREVIEW_CHARS] + "..."
        self.logger.info(f"[tool] {name} <- {preview}")
        return text

    async def dispatch_call(self, call: ToolCall) -> str:
        return await self.dispatch(call.name, call.arguments)

    async def _invoke(self, name: str, args: Union[Dict[str, Any], str, None]) -> Any:
        fn = self.registry.get(name)
        if fn is None:
            raise ToolNotFoundError(name)
        parsed = self._parse_args(name, args)
        result = fn(self.context, parsed)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _parse_args(self, name: str, args: Union[Dict[str, Any], str, None]) -> Dict[str, Any]:
        if args is None:
            return {}
        if isinstance(args, dict):
            return args
        return ToolCall(id="", name=name, arguments=args).parse_arguments()
