"""Ollama embedding provider — local-first, no API keys needed.

Uses the Ollama ``/api/embed`` endpoint (http://localhost:11434) with models
like ``nomic-embed-text`` or ``mxbai-embed-large``.
"""

from __future__ import annotations

import logging

import httpx

from reportrag.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_DIM = 768


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embed text via a local Ollama server."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        dimension: int = DEFAULT_DIM,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._dimension = dimension
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch in one ``/api/embed`` call.

        Raises:
            httpx.HTTPError: If the server is unreachable or rejects the call.
            ValueError: If the response has no ``embeddings`` list.
        """
        if not texts:
            return []
        return self._embed(texts)

    def embed_query(self, query: str) -> list[float]:
        return self._embed([query])[0]

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _embed(self, texts: list[str]) -> list[list[float]]:
        resp = self._client.post(
            "/api/embed",
            json={"model": self.model, "input": texts},
        )
        resp.raise_for_status()
        embeddings = resp.json().get("embeddings")
        if not isinstance(embeddings, list):
            raise ValueError(f"Ollama returned no embeddings for model {self.model}")
        return embeddings
