"""Pipeline coordinator — parse → chunk → index → extract, per corpus.

Each document moves through ``DocumentState``. Parsing and chunking run
per document on a worker pool; indexing is a barrier that submits the
chunks of every chunked document in one call and publishes them before
any extraction query runs. Extraction then runs per document, again on
a worker pool.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from reportrag.chunking.base import BaseChunker
from reportrag.chunking.recursive import RecursiveCharacterChunker
from reportrag.chunking.schemas import Chunk
from reportrag.config import Settings, load_settings
from reportrag.documents.parser import (
    DocumentParser,
    LocalDocumentParser,
    parse_document,
    relative_path,
)
from reportrag.documents.schemas import Document
from reportrag.embeddings.base import EmbeddingProvider
from reportrag.embeddings.factory import embedding_provider_from_settings
from reportrag.errors import (
    EmptyContext,
    IndexingError,
    InvalidParameter,
    ReportRAGError,
    RetrievalError,
)
from reportrag.extraction.orchestrator import ExtractionOrchestrator
from reportrag.extraction.schemas import ExtractionRecord, ExtractionTask
from reportrag.llm.base import CompletionProvider
from reportrag.llm.factory import llm_provider_from_settings
from reportrag.pipeline.records import RecordStore
from reportrag.pipeline.schemas import (
    INDEXABLE_STATES,
    TRANSITIONS,
    DocumentState,
    DocumentStatus,
    ExtractionSummary,
    Failure,
    IngestSummary,
)
from reportrag.retrieval.index import RetrievalIndex
from reportrag.retrieval.schemas import IndexRecord
from reportrag.vectorstore.factory import vector_store_from_settings
from reportrag.vectorstore.filters import Eq

logger = logging.getLogger(__name__)


class PipelineCoordinator:
    """Sequences ingestion and extraction for one corpus."""

    def __init__(
        self,
        parser: DocumentParser,
        chunker: BaseChunker,
        index: RetrievalIndex,
        orchestrator: ExtractionOrchestrator | None = None,
        records: RecordStore | None = None,
        max_workers: int = 4,
    ):
        if max_workers <= 0:
            raise InvalidParameter(f"max_workers must be positive, got {max_workers}")

        self.parser = parser
        self.chunker = chunker
        self.index = index
        self.orchestrator = orchestrator
        self.records = records
        self.max_workers = max_workers

        self._lock = threading.Lock()
        self._states: dict[str, DocumentStatus] = {}
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, list[Chunk]] = {}

        if records is not None:
            self._restore()

    @classmethod
    def from_settings(
        cls,
        corpus: str,
        settings: Settings | None = None,
        *,
        embedding_provider: EmbeddingProvider | None = None,
        completion_provider: CompletionProvider | None = None,
        with_extraction: bool = True,
    ) -> PipelineCoordinator:
        """Wire every component from configuration.

        The completion provider is only built when ``with_extraction`` is
        set, so ingestion never needs LLM credentials.
        """
        settings = settings or load_settings()

        embedder = embedding_provider or embedding_provider_from_settings(settings.embedding)
        store = vector_store_from_settings(settings.vectorstore, embedder.dimension, corpus)
        index = RetrievalIndex(
            embedder,
            store,
            target_lag=settings.retrieval.target_lag_seconds,
            batch_size=settings.embedding.batch_size,
        )

        orchestrator = None
        if with_extraction:
            provider = completion_provider or llm_provider_from_settings(settings.llm)
            orchestrator = ExtractionOrchestrator(
                index,
                provider,
                separator=settings.retrieval.separator,
                max_attempts=settings.extraction.max_attempts,
                backoff_multiplier=settings.extraction.backoff_multiplier,
                backoff_max=settings.extraction.backoff_max,
                max_workers=settings.extraction.max_workers,
                temperature=settings.llm.temperature,
            )

        return cls(
            parser=LocalDocumentParser(
                supported_formats=settings.ingestion.supported_formats,
                max_file_size_mb=settings.ingestion.max_file_size_mb,
            ),
            chunker=RecursiveCharacterChunker(
                chunk_size=settings.chunking.chunk_size,
                overlap=settings.chunking.overlap,
            ),
            index=index,
            orchestrator=orchestrator,
            records=RecordStore(settings.pipeline.workspace, corpus),
            max_workers=settings.pipeline.max_workers,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def state(self, path: str) -> DocumentState | None:
        status = self._states.get(path)
        return status.state if status else None

    def statuses(self) -> list[DocumentStatus]:
        with self._lock:
            return [self._states[p] for p in sorted(self._states)]

    def state_counts(self) -> dict[str, int]:
        counts = Counter(str(s.state) for s in self.statuses())
        return dict(sorted(counts.items()))

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_dir(self, source_dir: str | Path, force: bool = False) -> IngestSummary:
        """Ingest every non-hidden file under ``source_dir``."""
        root = Path(source_dir)
        if not root.is_dir():
            raise FileNotFoundError(f"Source directory not found: {source_dir}")

        paths = sorted(
            p for p in root.rglob("*")
            if p.is_file() and not any(part.startswith(".") for part in p.relative_to(root).parts)
        )
        return self.ingest(paths, force=force, root=root)

    def ingest(
        self,
        paths: Iterable[str | Path],
        force: bool = False,
        root: str | Path | None = None,
    ) -> IngestSummary:
        """Parse and chunk new documents, then rebuild the shared index.

        Documents already known to the corpus are skipped unless ``force``
        is set, in which case they are parsed again from scratch.
        """
        summary = IngestSummary()

        todo: dict[str, Path] = {}
        for path in paths:
            rel = relative_path(path, root)
            if rel in todo:
                continue
            status = self._states.get(rel)
            if status is not None and not force:
                logger.info("Skipping %s (already %s)", rel, status.state)
                summary.skipped += 1
                continue
            todo[rel] = Path(path)

        new_documents: list[Document] = []
        if todo:
            workers = min(self.max_workers, len(todo))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                new_documents = list(pool.map(lambda p: self._ingest_one(p, root), todo.values()))

        for document in new_documents:
            summary.ingested += 1
            if document.ok:
                summary.chunked += 1
            else:
                summary.errored += 1
                summary.failures.append(Failure(
                    path=document.path,
                    stage="parse",
                    error=document.error_info or "",
                    error_type="ParseError",
                ))

        if new_documents or self._pending_chunked():
            self._index_barrier(summary)

        if self.records is not None:
            self.records.append_documents(new_documents)
            self._persist()
            if summary.chunks_indexed:
                self.index.save(str(self.records.index_dir))

        logger.info(
            "Ingest: %d ingested, %d errored, %d indexed, %d skipped, %d failures",
            summary.ingested, summary.errored, summary.indexed,
            summary.skipped, len(summary.failures),
        )
        return summary

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(
        self,
        tasks: ExtractionTask | Sequence[ExtractionTask],
        force: bool = False,
    ) -> ExtractionSummary:
        """Run the tasks against every indexed document.

        A document completes when all tasks succeed; any failure marks it
        ``extraction_failed``. Finished documents are skipped unless
        ``force`` is set.
        """
        if self.orchestrator is None:
            raise InvalidParameter("No completion provider configured for extraction")

        task_list = [tasks] if isinstance(tasks, ExtractionTask) else list(tasks)
        if not task_list:
            raise InvalidParameter("At least one extraction task is required")

        summary = ExtractionSummary(tasks=[t.name for t in task_list])

        targets: list[str] = []
        for status in self.statuses():
            if status.state in (DocumentState.INDEXED, DocumentState.EXTRACTION_REQUESTED):
                targets.append(status.path)
            elif status.state in (DocumentState.COMPLETED, DocumentState.EXTRACTION_FAILED):
                if force:
                    targets.append(status.path)
                else:
                    summary.skipped += 1

        summary.requested = len(targets)
        if targets:
            # Staged contents must be visible before the first query
            self.index.refresh()
            workers = min(self.max_workers, len(targets))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                outcomes = list(pool.map(lambda p: self._extract_one(p, task_list), targets))

            for records, failures in outcomes:
                summary.records.extend(records)
                summary.failures.extend(failures)
                if failures:
                    summary.failed += 1
                else:
                    summary.extracted += 1

        if self.records is not None:
            self.records.append_extractions(summary.records)
            self._persist()

        logger.info(
            "Extract: %d requested, %d extracted, %d failed, %d skipped",
            summary.requested, summary.extracted, summary.failed, summary.skipped,
        )
        return summary

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _ingest_one(self, path: Path, root: str | Path | None) -> Document:
        rel = relative_path(path, root)
        self._transition(rel, DocumentState.INGESTED, reset=True, chunk_count=0)

        document = parse_document(self.parser, path, root)
        with self._lock:
            self._documents[rel] = document
            self._chunks.pop(rel, None)

        if not document.ok:
            logger.warning("Parse failed for %s: %s", rel, document.error_info)
            self._transition(rel, DocumentState.ERROR_DURING_EXTRACTION, error=document.error_info)
            return document

        self._transition(rel, DocumentState.TEXT_EXTRACTED)
        chunks = self.chunker.chunk(document.extracted_text, source_path=rel)
        with self._lock:
            self._chunks[rel] = chunks
        self._transition(rel, DocumentState.CHUNKED, chunk_count=len(chunks))
        return document

    def _index_barrier(self, summary: IngestSummary) -> None:
        paths = [s.path for s in self.statuses() if s.state in INDEXABLE_STATES]

        records: list[IndexRecord] = []
        owner: dict[str, str] = {}
        chunk_counts: dict[str, int] = {}
        for path in paths:
            chunks = self._chunks_for(path)
            chunk_counts[path] = len(chunks)
            for chunk in chunks:
                record = IndexRecord.from_chunk(chunk)
                owner[record.id] = path
                records.append(record)

        if not records:
            return

        try:
            report = self.index.index(records)
        except IndexingError as exc:
            logger.warning("Indexing failed for every record: %s", exc)
            for failure in exc.failures:
                summary.failures.append(self._index_failure(owner, failure))
            return

        failed: dict[str, int] = defaultdict(int)
        for failure in report.failures:
            summary.failures.append(self._index_failure(owner, failure))
            failed[owner.get(failure.record_id, "")] += 1

        for path in paths:
            if chunk_counts[path] == 0:
                summary.failures.append(Failure(
                    path=path, stage="chunk", error="Document produced no chunks",
                ))
                continue
            if failed[path] == chunk_counts[path]:
                continue
            if self.state(path) == DocumentState.CHUNKED:
                self._transition(path, DocumentState.INDEXED)
                summary.indexed += 1

        summary.chunks_indexed = report.indexed
        self.index.refresh()

    @staticmethod
    def _index_failure(owner: dict[str, str], failure: IndexingError) -> Failure:
        return Failure(
            path=owner.get(failure.record_id or "", ""),
            stage="index",
            error=str(failure),
            error_type=type(failure).__name__,
            record_id=failure.record_id,
        )

    def _extract_one(
        self, path: str, tasks: list[ExtractionTask]
    ) -> tuple[list[ExtractionRecord], list[Failure]]:
        self._transition(
            path,
            DocumentState.EXTRACTION_REQUESTED,
            reset=self.state(path) != DocumentState.INDEXED,
        )

        doc_filter = Eq("relative_path", path)
        records: list[ExtractionRecord] = []
        failures: list[Failure] = []
        for task in tasks:
            request = task.to_request(source_path=path, filter=doc_filter)
            try:
                record = self.orchestrator.extract(request)
            except ReportRAGError as exc:
                logger.warning("Extraction %r failed for %s: %s", task.name, path, exc)
                failures.append(_extract_failure(path, task.name, exc))
                continue
            except Exception as exc:
                # Unmapped backend errors fail this document only
                logger.exception("Extraction %r crashed for %s", task.name, path)
                failures.append(_extract_failure(path, task.name, exc))
                continue
            record.task = task.name
            records.append(record)

        if failures:
            self._transition(
                path,
                DocumentState.EXTRACTION_FAILED,
                error="; ".join(f"{f.task}: {f.error}" for f in failures),
            )
        else:
            self._transition(path, DocumentState.COMPLETED)
        return records, failures

    def _transition(
        self,
        path: str,
        state: DocumentState,
        error: str | None = None,
        *,
        reset: bool = False,
        chunk_count: int | None = None,
    ) -> None:
        with self._lock:
            current = self._states.get(path)
            if current is not None and not reset and state not in TRANSITIONS[current.state]:
                raise InvalidParameter(
                    f"Illegal state transition for {path}: {current.state} -> {state}"
                )
            if chunk_count is None:
                chunk_count = current.chunk_count if current else 0
            self._states[path] = DocumentStatus(
                path=path, state=state, error=error, chunk_count=chunk_count,
            )
        logger.debug("%s -> %s", path, state)

    def _pending_chunked(self) -> bool:
        return any(s.state == DocumentState.CHUNKED for s in self.statuses())

    def _chunks_for(self, path: str) -> list[Chunk]:
        with self._lock:
            cached = self._chunks.get(path)
            document = self._documents.get(path)
        if cached is not None:
            return cached
        if document is None:
            logger.warning("No stored text for %s; it will not be indexed", path)
            return []

        chunks = self.chunker.chunk(document.extracted_text, source_path=path)
        with self._lock:
            self._chunks[path] = chunks
        return chunks

    def _restore(self) -> None:
        self._states = self.records.load_states()
        self._documents = self.records.latest_documents()
        if self._states:
            logger.info(
                "Restored %d documents for corpus %s", len(self._states), self.records.corpus
            )
        if self.records.index_dir.exists():
            self.index.load(str(self.records.index_dir))

    def _persist(self) -> None:
        self.records.save_states(self.statuses())


def _extract_failure(path: str, task: str, exc: Exception) -> Failure:
    if isinstance(exc, EmptyContext):
        query = " | ".join(exc.queries)
    elif isinstance(exc, RetrievalError):
        query = exc.query
    else:
        query = None
    return Failure(
        path=path,
        stage="extract",
        error=str(exc),
        error_type=type(exc).__name__,
        task=task,
        query=query,
    )
