"""OpenAI embedding provider — text-embedding-3-small/large.

Requires ``openai`` extra and an API key via ``OPENAI_API_KEY`` env var.
"""

from __future__ import annotations

import logging
from typing import Any

from reportrag.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"

_DIMENSION_MAP = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

BATCH_SIZE = 2048  # OpenAI max inputs per request


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embed text via the OpenAI Embeddings API."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        dimension: int | None = None,
        client: Any = None,
    ):
        self.model = model
        # text-embedding-3 models can shorten vectors server-side
        self._request_dimensions = dimension if model.startswith("text-embedding-3") else None
        self._dimension = dimension or _DIMENSION_MAP.get(model, 1536)

        if client is None:
            try:
                import openai
            except ImportError as exc:
                raise ImportError(
                    "openai package required: pip install report-extraction-rag[openai]"
                ) from exc
            client = openai.OpenAI(api_key=api_key)
        self._client: Any = client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        embeddings: list[list[float]] = []
        for i in range(0, len(texts), BATCH_SIZE):
            embeddings.extend(self._create(texts[i : i + BATCH_SIZE]))
        return embeddings

    def embed_query(self, query: str) -> list[float]:
        return self._create([query])[0]

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _create(self, batch: list[str]) -> list[list[float]]:
        kwargs: dict[str, Any] = {"model": self.model, "input": batch}
        if self._request_dimensions:
            kwargs["dimensions"] = self._request_dimensions
        resp = self._client.embeddings.create(**kwargs)
        # Sort by index to guarantee input order
        return [d.embedding for d in sorted(resp.data, key=lambda x: x.index)]
