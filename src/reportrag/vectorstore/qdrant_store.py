"""Qdrant vector store — production-grade with native attribute filtering.

Requires the ``qdrant`` extra. Supports Qdrant Cloud, a local on-disk path,
and an in-memory instance for testing.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from reportrag.vectorstore.base import VectorStore
from reportrag.vectorstore.filters import FilterExpr
from reportrag.vectorstore.schemas import SearchResult, VectorRecord

logger = logging.getLogger(__name__)

# Payload keys reserved for the store; chunk attributes sit beside them.
_TEXT = "_text"
_RECORD_ID = "_record_id"
_POSITION = "_position"
_RESERVED = {_TEXT, _RECORD_ID, _POSITION}

_ID_NAMESPACE = uuid.UUID("6f1b8d1e-3c1a-4b55-9a0e-5f3c2d7f9a10")


class QdrantStore(VectorStore):
    """Qdrant-backed vector store."""

    def __init__(
        self,
        collection_name: str = "report_chunks",
        dimension: int = 768,
        url: str | None = None,
        api_key: str | None = None,
        path: str | None = None,
    ):
        try:
            from qdrant_client import QdrantClient, models
        except ImportError as exc:
            raise ImportError(
                "qdrant-client required: pip install report-extraction-rag[qdrant]"
            ) from exc

        self._models = models
        self._collection_name = collection_name
        self._dimension = dimension
        self._persistent = bool(url or path)

        if url:
            self._client = QdrantClient(url=url, api_key=api_key)
        elif path:
            self._client = QdrantClient(path=path)
        else:
            # In-memory for testing
            self._client = QdrantClient(":memory:")

        if not self._client.collection_exists(collection_name):
            self._create_collection()
        self._next_position = self.count()

    def _create_collection(self) -> None:
        self._client.create_collection(
            collection_name=self._collection_name,
            vectors_config=self._models.VectorParams(
                size=self._dimension,
                distance=self._models.Distance.COSINE,
            ),
        )
        logger.info(
            "Created Qdrant collection '%s' (dim=%d)", self._collection_name, self._dimension
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0

        points = []
        for i, record in enumerate(records):
            payload: dict[str, Any] = dict(record.attributes)
            payload[_TEXT] = record.text
            payload[_RECORD_ID] = record.id
            payload[_POSITION] = self._next_position + i

            points.append(self._models.PointStruct(
                id=str(uuid.uuid5(_ID_NAMESPACE, record.id)),
                vector=record.embedding,
                payload=payload,
            ))

        self._client.upsert(collection_name=self._collection_name, points=points)
        self._next_position += len(records)

        logger.info("QdrantStore added %d records", len(records))
        return len(records)

    def search(
        self,
        query_embedding: list[float],
        top_k: int = 10,
        metadata_filter: FilterExpr | None = None,
    ) -> list[SearchResult]:
        if top_k <= 0:
            return []

        query_filter = None
        if metadata_filter is not None:
            conditions = [
                self._models.FieldCondition(
                    key=key,
                    match=self._models.MatchValue(value=value),
                )
                for key, value in metadata_filter.equalities()
            ]
            if conditions:
                query_filter = self._models.Filter(must=conditions)

        response = self._client.query_points(
            collection_name=self._collection_name,
            query=query_embedding,
            limit=top_k,
            query_filter=query_filter,
            with_payload=True,
        )

        results = [
            self._to_result(point.payload or {}, point.score or 0.0)
            for point in response.points
        ]
        results.sort(key=lambda r: (-r.score, r.position))
        return results

    def count(self) -> int:
        return self._client.count(collection_name=self._collection_name, exact=True).count

    def scan(self) -> list[SearchResult]:
        results: list[SearchResult] = []
        offset = None
        while True:
            points, offset = self._client.scroll(
                collection_name=self._collection_name,
                limit=256,
                offset=offset,
                with_payload=True,
            )
            results.extend(self._to_result(p.payload or {}, 0.0) for p in points)
            if offset is None:
                break
        results.sort(key=lambda r: r.position)
        return results

    def clear(self) -> None:
        self._client.delete_collection(self._collection_name)
        self._create_collection()
        self._next_position = 0

    @property
    def persistent(self) -> bool:
        return self._persistent

    # ------------------------------------------------------------------
    # Payload serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _to_result(payload: dict[str, Any], score: float) -> SearchResult:
        return SearchResult(
            id=payload.get(_RECORD_ID, ""),
            text=payload.get(_TEXT, ""),
            score=float(score),
            attributes={k: v for k, v in payload.items() if k not in _RESERVED},
            position=int(payload.get(_POSITION, 0)),
        )
