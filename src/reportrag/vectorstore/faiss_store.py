"""FAISS vector store — local, zero infrastructure.

Uses a flat inner-product index over L2-normalized vectors (cosine
similarity) with a parallel record list for attribute filtering.
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


class FAISSStore(VectorStore):
    """FAISS-backed vector store with attribute filtering."""

    def __init__(self, dimension: int = 768):
        try:
            import faiss
        except ImportError as exc:
            raise ImportError(
                "faiss-cpu required: pip install report-extraction-rag[faiss]"
            ) from exc

        self._faiss = faiss
        self._dimension = dimension
        self._index = faiss.IndexFlatIP(dimension)  # Inner product (cosine after normalization)
        self._records: list[dict] = []  # FAISS int id == list position

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0

        vectors = np.array([r.embedding for r in records], dtype=np.float32)
        self._faiss.normalize_L2(vectors)
        self._index.add(vectors)

        for record in records:
            self._records.append({
                "id": record.id,
                "text": record.text,
                "attributes": dict(record.attributes),
            })

        logger.info("FAISSStore added %d records (total: %d)", len(records), self.count())
        return len(records)

    def search(
        self,
        query_embedding: list[float],
        top_k: int = 10,
        metadata_filter: FilterExpr | None = None,
    ) -> list[SearchResult]:
        if self._index.ntotal == 0 or top_k <= 0:
            return []

        query_vec = np.array([query_embedding], dtype=np.float32)
        self._faiss.normalize_L2(query_vec)

        # Flat index: score every record so the filter runs before truncation
        scores, indices = self._index.search(query_vec, self._index.ntotal)

        hits: list[tuple[float, int]] = []
        for score, idx in zip(scores[0], indices[0], strict=True):
            if idx == -1:
                continue
            record = self._records[int(idx)]
            if metadata_filter and not metadata_filter.matches(record["attributes"]):
                continue
            hits.append((float(score), int(idx)))

        hits.sort(key=lambda h: (-h[0], h[1]))
        return [self._to_result(idx, score) for score, idx in hits[:top_k]]

    def count(self) -> int:
        return self._index.ntotal

    def scan(self) -> list[SearchResult]:
        return [self._to_result(i, 0.0) for i in range(len(self._records))]

    def clear(self) -> None:
        self._index = self._faiss.IndexFlatIP(self._dimension)
        self._records = []

    def save(self, path: str) -> None:
        """Save FAISS index and records to disk."""
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)

        self._faiss.write_index(self._index, str(p / "index.faiss"))
        with open(p / "records.json", "w", encoding="utf-8") as f:
            json.dump({"records": self._records}, f)

        logger.info("FAISSStore saved to %s (%d records)", path, self.count())

    def load(self, path: str) -> None:
        """Load FAISS index and records from disk."""
        p = Path(path)

        self._index = self._faiss.read_index(str(p / "index.faiss"))
        with open(p / "records.json", encoding="utf-8") as f:
            self._records = json.load(f)["records"]

        logger.info("FAISSStore loaded from %s (%d records)", path, self.count())

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _to_result(self, idx: int, score: float) -> SearchResult:
        record = self._records[idx]
        return SearchResult(
            id=record["id"],
            text=record["text"],
            score=score,
            attributes=record["attributes"],
            position=idx,
        )
