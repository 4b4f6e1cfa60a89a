"""Ollama completion provider — local-first, no API keys.

Structured output uses the ``format`` field of ``/api/chat``, which accepts
a JSON schema on current Ollama releases.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from reportrag.errors import ProviderError, ProviderTransient
from reportrag.llm.base import CompletionProvider, Message, parse_json_object

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama3.1:8b"
DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaCompletionProvider(CompletionProvider):
    """Structured completion via a local Ollama server."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        max_tokens: int = 2048,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def complete(
        self,
        messages: list[Message],
        *,
        response_schema: dict[str, Any],
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": messages,
            "format": response_schema,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": self.max_tokens,
            },
        }

        try:
            resp = self._client.post("/api/chat", json=payload)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ProviderTransient(f"Ollama request failed: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise ProviderTransient(f"Ollama returned HTTP {resp.status_code}")
        if resp.is_error:
            raise ProviderError(f"Ollama returned HTTP {resp.status_code}: {resp.text[:200]}")

        content = resp.json().get("message", {}).get("content")
        return parse_json_object(content)
