"""In-memory vector store — exact cosine similarity over a numpy matrix.

Every query scores the full collection, applies the attribute filter, then
takes the top ``k`` with a stable sort, so equal scores keep insertion order.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np

from reportrag.vectorstore.base import VectorStore
from reportrag.vectorstore.filters import FilterExpr
from reportrag.vectorstore.schemas import SearchResult, VectorRecord

logger = logging.getLogger(__name__)


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class MemoryStore(VectorStore):
    """Brute-force numpy store with attribute filtering."""

    def __init__(self, dimension: int = 768):
        self._dimension = dimension
        # (unit vectors, records) swapped as one reference
        self._state: tuple[np.ndarray, list[dict]] = (
            np.empty((0, dimension), dtype=np.float32),
            [],
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0
        vectors, rows = self._state
        new_vectors, new_rows = self._prepare(records, start=len(rows))
        self._state = (np.vstack([vectors, new_vectors]), rows + new_rows)
        logger.info("MemoryStore added %d records (total: %d)", len(records), self.count())
        return len(records)

    def replace(self, records: list[VectorRecord]) -> int:
        if records:
            self._state = self._prepare(records, start=0)
        else:
            self.clear()
        logger.info("MemoryStore replaced contents with %d records", len(records))
        return len(records)

    def search(
        self,
        query_embedding: list[float],
        top_k: int = 10,
        metadata_filter: FilterExpr | None = None,
    ) -> list[SearchResult]:
        vectors, rows = self._state
        if not rows or top_k <= 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float32)
        norm = np.linalg.norm(query)
        if norm > 0:
            query = query / norm
        scores = vectors @ query

        candidates = np.arange(len(rows))
        if metadata_filter is not None:
            candidates = np.array(
                [i for i, row in enumerate(rows) if metadata_filter.matches(row["attributes"])],
                dtype=np.int64,
            )
            if candidates.size == 0:
                return []

        order = candidates[np.argsort(-scores[candidates], kind="stable")][:top_k]
        return [self._to_result(rows[i], float(scores[i])) for i in order]

    def count(self) -> int:
        return len(self._state[1])

    def scan(self) -> list[SearchResult]:
        return [self._to_result(row, 0.0) for row in self._state[1]]

    def clear(self) -> None:
        self._state = (np.empty((0, self._dimension), dtype=np.float32), [])

    def save(self, path: str) -> None:
        """Save vectors (``.npy``) and records (JSON) to a directory."""
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)
        vectors, rows = self._state
        np.save(p / "vectors.npy", vectors)
        with open(p / "records.json", "w", encoding="utf-8") as f:
            json.dump({"dimension": self._dimension, "records": rows}, f)
        logger.info("MemoryStore saved to %s (%d records)", path, len(rows))

    def load(self, path: str) -> None:
        p = Path(path)
        vectors = np.load(p / "vectors.npy")
        with open(p / "records.json", encoding="utf-8") as f:
            data = json.load(f)
        self._dimension = data.get("dimension", self._dimension)
        self._state = (vectors.astype(np.float32), data["records"])
        logger.info("MemoryStore loaded from %s (%d records)", path, self.count())

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _prepare(
        self, records: list[VectorRecord], start: int
    ) -> tuple[np.ndarray, list[dict]]:
        matrix = np.array([r.embedding for r in records], dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self._dimension:
            raise ValueError(
                f"Expected embeddings of dimension {self._dimension}, got shape {matrix.shape}"
            )
        rows = [
            {
                "id": r.id,
                "text": r.text,
                "attributes": dict(r.attributes),
                "position": start + i,
            }
            for i, r in enumerate(records)
        ]
        return _normalize(matrix), rows

    @staticmethod
    def _to_result(row: dict, score: float) -> SearchResult:
        return SearchResult(
            id=row["id"],
            text=row["text"],
            score=score,
            attributes=row["attributes"],
            position=row["position"],
        )
