"""Abstract base class for vector stores."""

from __future__ import annotations

from abc import ABC, abstractmethod

from reportrag.vectorstore.filters import FilterExpr
from reportrag.vectorstore.schemas import SearchResult, VectorRecord


class VectorStore(ABC):
    """Interface for vector store backends."""

    @abstractmethod
    def add(self, records: list[VectorRecord]) -> int:
        """Insert records into the store.

        Args:
            records: Chunks with embeddings.

        Returns:
            Number of records successfully inserted.
        """

    @abstractmethod
    def search(
        self,
        query_embedding: list[float],
        top_k: int = 10,
        metadata_filter: FilterExpr | None = None,
    ) -> list[SearchResult]:
        """Search for similar chunks by cosine similarity.

        The filter is applied before truncating to ``top_k``.

        Returns:
            List of ``SearchResult`` sorted by relevance (highest first).
        """

    @abstractmethod
    def count(self) -> int:
        """Return the number of records in the store."""

    @abstractmethod
    def scan(self) -> list[SearchResult]:
        """Return every stored record in insertion order (score 0)."""

    @abstractmethod
    def clear(self) -> None:
        """Delete all records."""

    def replace(self, records: list[VectorRecord]) -> int:
        """Swap the store contents for ``records``."""
        self.clear()
        return self.add(records)

    @property
    def persistent(self) -> bool:
        """True when the backend keeps its own data between processes."""
        return False

    def save(self, path: str) -> None:
        """Persist the store to disk (optional)."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support save()")

    def load(self, path: str) -> None:
        """Load the store from disk (optional)."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support load()")

    @classmethod
    def store_name(cls) -> str:
        """Return human-readable store name."""
        return cls.__name__
