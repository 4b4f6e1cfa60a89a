"""Abstract base class for embedding providers."""

from __future__ import annotations

import math
import numbers
from abc import ABC, abstractmethod
from typing import Any


class EmbeddingProvider(ABC):
    """Interface for the external text embedding model."""

    @abstractmethod
    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of chunk texts.

        Args:
            texts: Strings to embed.

        Returns:
            List of embedding vectors (same order as input).
        """

    @abstractmethod
    def embed_query(self, query: str) -> list[float]:
        """Embed a single query string.

        Some providers use different models/prefixes for queries vs documents.
        """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimensionality."""

    @classmethod
    def provider_name(cls) -> str:
        """Return human-readable provider name."""
        return cls.__name__


def check_embedding(vector: Any, dimension: int) -> list[float]:
    """Validate one vector returned by a provider.

    Raises:
        ValueError: If the vector has the wrong length or non-finite values.
    """
    if isinstance(vector, (str, bytes, dict)) or not hasattr(vector, "__len__"):
        raise ValueError(f"Embedding is not a sequence: {type(vector).__name__}")
    if len(vector) != dimension:
        raise ValueError(f"Embedding has dimension {len(vector)}, expected {dimension}")
    values: list[float] = []
    for v in vector:
        if isinstance(v, bool) or not isinstance(v, numbers.Real) or not math.isfinite(v):
            raise ValueError(f"Embedding contains a non-finite or non-numeric value: {v!r}")
        values.append(float(v))
    return values
