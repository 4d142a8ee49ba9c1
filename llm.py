"""LLM provider adapters exposing a uniform ``chat`` call."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from openai import APIStatusError, AsyncOpenAI

from exceptions import ConfigurationError, LLMResponseError, LLMStatusError
from message_types import Message, message_from_openai_format, message_to_openai_format


@dataclass
class ChatResponse:
    """Normalized result of one chat round-trip."""

    message: Message
    total_tokens: int = 0
    headers: Dict[str, str] = field(default_factory=dict)


class ChatProvider(ABC):
    """Collaborator the turn loop talks to."""

    @abstractmethod
    async def chat(
        self,
        model: str,
        messages: Sequence[Message],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        """Send the conversation and return the model's next message."""


class OpenAIProvider(ChatProvider):
    """Chat Completions adapter built on ``AsyncOpenAI``."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if client is None:
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY is required for the OpenAI provider")
            client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.client = client
        self.logger = logger or logging.getLogger("llm.openai")

    async def chat(
        self,
        model: str,
        messages: Sequence[Message],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> ChatResponse:
        create_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": [message_to_openai_format(m) for m in messages],
        }
        if tools:
            create_kwargs["tools"] = list(tools)

        try:
            raw = await self.client.chat.completions.with_raw_response.create(**create_kwargs)
        except APIStatusError as e:
            raise LLMStatusError(
                f"Provider returned HTTP {e.status_code}: {e.message}",
                status_code=e.status_code,
                headers=dict(e.response.headers),
            ) from e

        completion = raw.parse()
        if not completion.choices:
            raise LLMResponseError("Empty response from model")

        message = message_from_openai_format(completion.choices[0].message)
        total_tokens = getattr(completion.usage, "total_tokens", 0) or 0
        self.logger.debug(f"Chat completion: model={model} total_tokens={total_tokens}")
        return ChatResponse(message=message, total_tokens=total_tokens, headers=dict(raw.headers))


def get_llm(provider_name: str, **opts: Any) -> ChatProvider:
    """Return the adapter registered for ``provider_name``."""
    name = (provider_name or "").strip().lower()
    if name == "openai":
        return OpenAIProvider(**opts)
    raise ConfigurationError(f"Unsupported LLM provider: {provider_name}", {"provider": provider_name})

