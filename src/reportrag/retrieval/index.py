"""Retrieval index — embed chunks, keep a searchable collection, answer
ranked and filtered queries.

Indexing replaces the contents of the logical service. New contents are
staged and become visible after ``target_lag`` seconds (checked lazily at
query time) or on an explicit ``refresh()``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence

from reportrag.embeddings.base import EmbeddingProvider, check_embedding
from reportrag.errors import IndexingError, InvalidParameter, RetrievalError
from reportrag.retrieval.schemas import IndexRecord, IndexReport, RetrievalResult
from reportrag.vectorstore.base import VectorStore
from reportrag.vectorstore.filters import FilterExpr
from reportrag.vectorstore.schemas import SearchResult, VectorRecord

logger = logging.getLogger(__name__)


class RetrievalIndex:
    """Orchestrates embedding → store → ranked, filtered search."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_store: VectorStore,
        target_lag: float = 0.0,
        batch_size: int = 32,
        clock: Callable[[], float] = time.monotonic,
    ):
        if target_lag < 0:
            raise InvalidParameter(f"target_lag must be non-negative, got {target_lag}")
        if batch_size <= 0:
            raise InvalidParameter(f"batch_size must be positive, got {batch_size}")

        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.target_lag = target_lag
        self.batch_size = batch_size
        self._clock = clock

        self._write_lock = threading.Lock()
        self._pending: list[VectorRecord] | None = None
        self._pending_since = 0.0

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index(self, records: Sequence[IndexRecord]) -> IndexReport:
        """Replace the index contents with ``records``.

        Records whose embedding fails are reported and skipped; the rest
        are indexed.

        Raises:
            IndexingError: If every record failed. Prior contents are kept.
        """
        with self._write_lock:
            vector_records, failures = self._embed(records)

            if records and not vector_records:
                raise IndexingError(
                    f"All {len(records)} records failed to embed",
                    failures=failures,
                )

            self._pending = vector_records
            self._pending_since = self._clock()
            published = False
            if self.target_lag == 0:
                self._publish()
                published = True

        logger.info(
            "Indexed %d/%d records (%d failed, published=%s)",
            len(vector_records), len(records), len(failures), published,
        )
        return IndexReport(
            submitted=len(records),
            indexed=len(vector_records),
            failures=failures,
            published=published,
        )

    def refresh(self) -> bool:
        """Publish staged contents now, regardless of the target lag.

        Returns:
            True if staged contents were published.
        """
        with self._write_lock:
            if self._pending is None:
                return False
            self._publish()
            return True

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    def query(
        self,
        text: str,
        k: int = 1,
        filter: FilterExpr | None = None,
    ) -> RetrievalResult:
        """Return at most ``k`` hits for ``text``.

        The filter is applied before truncation; no match yields an empty
        result.

        Raises:
            RetrievalError: The query text could not be embedded.
        """
        if k <= 0:
            raise InvalidParameter(f"k must be positive, got {k}")

        self._maybe_publish()

        try:
            embedding = check_embedding(
                self.embedding_provider.embed_query(text), self.embedding_provider.dimension
            )
        except Exception as exc:
            raise RetrievalError(f"Failed to embed query: {exc}", query=text) from exc

        hits = self.vector_store.search(
            query_embedding=embedding,
            top_k=k,
            metadata_filter=filter,
        )
        hits = sorted(hits, key=lambda h: (-h.score, h.position))[:k]

        logger.debug("Query %r returned %d hits (filter=%r)", text, len(hits), filter)
        return RetrievalResult(query=text, hits=hits, filter=filter)

    def count(self) -> int:
        return self.vector_store.count()

    def scan(self) -> list[SearchResult]:
        """Rows currently visible to queries, in index order."""
        return self.vector_store.scan()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str) -> None:
        """Persist published contents; a no-op for self-persisting backends."""
        if self.vector_store.persistent:
            logger.info("%s persists itself; skipping save", self.vector_store.store_name())
            return
        self.vector_store.save(path)

    def load(self, path: str) -> None:
        if self.vector_store.persistent:
            return
        self.vector_store.load(path)

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _publish(self) -> None:
        # Caller holds the write lock
        records = self._pending or []
        self.vector_store.replace(records)
        self._pending = None

    def _maybe_publish(self) -> None:
        if self._pending is None:
            return
        if self._clock() - self._pending_since < self.target_lag:
            return
        # A busy writer means the next query will publish
        if not self._write_lock.acquire(blocking=False):
            return
        try:
            if self._pending is not None:
                self._publish()
                logger.info("Published staged index contents after target lag")
        finally:
            self._write_lock.release()

    def _embed(
        self, records: Sequence[IndexRecord]
    ) -> tuple[list[VectorRecord], list[IndexingError]]:
        dim = self.embedding_provider.dimension
        ids = [r.record_id(i) for i, r in enumerate(records)]
        vector_records: list[VectorRecord] = []
        failures: list[IndexingError] = []

        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            batch_ids = ids[start : start + self.batch_size]

            try:
                raw = self.embedding_provider.embed_texts([r.text for r in batch])
                if len(raw) != len(batch):
                    raise ValueError(f"expected {len(batch)} embeddings, got {len(raw)}")
                vectors = [check_embedding(v, dim) for v in raw]
            except Exception as exc:
                logger.warning(
                    "Embedding batch of %d failed (%s); retrying records one by one",
                    len(batch), exc,
                )
                vectors = None

            for offset, record in enumerate(batch):
                record_id = batch_ids[offset]
                if vectors is not None:
                    vector = vectors[offset]
                else:
                    try:
                        single = self.embedding_provider.embed_texts([record.text])
                        if len(single) != 1:
                            raise ValueError(f"expected 1 embedding, got {len(single)}")
                        vector = check_embedding(single[0], dim)
                    except Exception as exc:
                        logger.warning("Failed to embed record %s: %s", record_id, exc)
                        failures.append(IndexingError(str(exc), record_id=record_id))
                        continue

                vector_records.append(VectorRecord(
                    id=record_id,
                    text=record.text,
                    embedding=vector,
                    attributes=dict(record.attributes),
                ))

        return vector_records, failures
