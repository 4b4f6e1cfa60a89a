"""OpenAI completion provider — GPT-4o and OpenAI-compatible endpoints.

Requires the ``openai`` extra and ``OPENAI_API_KEY`` env var.
"""

from __future__ import annotations

import logging
from typing import Any

from reportrag.errors import ProviderError, ProviderTransient
from reportrag.llm.base import CompletionProvider, Message, parse_json_object

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class OpenAICompletionProvider(CompletionProvider):
    """Structured completion via the OpenAI Chat API (``json_schema`` mode)."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 2048,
        timeout: float = 120.0,
        client: Any = None,
    ):
        try:
            import openai
        except ImportError as exc:
            raise ImportError(
                "openai package required: pip install report-extraction-rag[openai]"
            ) from exc

        self.model = model
        self.max_tokens = max_tokens
        self._transient = (
            openai.APITimeoutError,
            openai.APIConnectionError,
            openai.RateLimitError,
            openai.InternalServerError,
        )
        self._rejected = openai.APIError

        if client is None:
            kwargs: dict[str, Any] = {"timeout": timeout}
            if api_key:
                kwargs["api_key"] = api_key
            if base_url:
                kwargs["base_url"] = base_url
            client = openai.OpenAI(**kwargs)
        self._client: Any = client

    def complete(
        self,
        messages: list[Message],
        *,
        response_schema: dict[str, Any],
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "extraction",
                        "schema": response_schema,
                        "strict": True,
                    },
                },
            )
        except self._transient as exc:
            raise ProviderTransient(f"OpenAI request failed: {exc}") from exc
        except self._rejected as exc:
            raise ProviderError(f"OpenAI rejected the request: {exc}") from exc

        return parse_json_object(response.choices[0].message.content)
