"""Anthropic Claude completion provider.

Structured output is obtained by forcing a single tool call whose input
schema is the response schema. Requires the ``anthropic`` extra and
``ANTHROPIC_API_KEY`` env var.
"""

from __future__ import annotations

import logging
from typing import Any

from reportrag.errors import ProviderError, ProviderTransient, SchemaViolation
from reportrag.llm.base import CompletionProvider, Message, split_system

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
TOOL_NAME = "record_extraction"


class AnthropicCompletionProvider(CompletionProvider):
    """Structured completion via the Anthropic Messages API."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        max_tokens: int = 2048,
        timeout: float = 120.0,
        client: Any = None,
    ):
        try:
            import anthropic
        except ImportError as exc:
            raise ImportError(
                "anthropic package required: pip install report-extraction-rag[anthropic]"
            ) from exc

        self.model = model
        self.max_tokens = max_tokens
        self._transient = (
            anthropic.APITimeoutError,
            anthropic.APIConnectionError,
            anthropic.RateLimitError,
            anthropic.InternalServerError,
        )
        self._rejected = anthropic.APIError
        if client is None:
            client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
        self._client: Any = client

    def complete(
        self,
        messages: list[Message],
        *,
        response_schema: dict[str, Any],
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        system, turns = split_system(messages)
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
            "messages": turns,
            "tools": [{
                "name": TOOL_NAME,
                "description": "Record the extracted fields.",
                "input_schema": response_schema,
            }],
            "tool_choice": {"type": "tool", "name": TOOL_NAME},
        }
        if system:
            kwargs["system"] = system

        try:
            response = self._client.messages.create(**kwargs)
        except self._transient as exc:
            raise ProviderTransient(f"Anthropic request failed: {exc}") from exc
        except self._rejected as exc:
            raise ProviderError(f"Anthropic rejected the request: {exc}") from exc

        for block in response.content:
            if getattr(block, "type", None) == "tool_use":
                if not isinstance(block.input, dict):
                    raise SchemaViolation("Tool input is not a JSON object")
                return block.input
        raise SchemaViolation("Anthropic response contained no tool call")
