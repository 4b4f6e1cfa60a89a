"""Data models for the pipeline coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from reportrag.extraction.schemas import ExtractionRecord


class DocumentState(StrEnum):
    """Lifecycle of one document in a corpus."""

    INGESTED = "ingested"
    TEXT_EXTRACTED = "text_extracted"
    ERROR_DURING_EXTRACTION = "error_during_extraction"
    CHUNKED = "chunked"
    INDEXED = "indexed"
    EXTRACTION_REQUESTED = "extraction_requested"
    COMPLETED = "completed"
    EXTRACTION_FAILED = "extraction_failed"


TERMINAL_STATES = frozenset({
    DocumentState.ERROR_DURING_EXTRACTION,
    DocumentState.COMPLETED,
    DocumentState.EXTRACTION_FAILED,
})

# States whose chunks belong in the shared index
INDEXABLE_STATES = frozenset({
    DocumentState.CHUNKED,
    DocumentState.INDEXED,
    DocumentState.EXTRACTION_REQUESTED,
    DocumentState.COMPLETED,
    DocumentState.EXTRACTION_FAILED,
})

TRANSITIONS: dict[DocumentState, frozenset[DocumentState]] = {
    DocumentState.INGESTED: frozenset({
        DocumentState.TEXT_EXTRACTED,
        DocumentState.ERROR_DURING_EXTRACTION,
    }),
    DocumentState.TEXT_EXTRACTED: frozenset({DocumentState.CHUNKED}),
    DocumentState.CHUNKED: frozenset({DocumentState.INDEXED}),
    DocumentState.INDEXED: frozenset({DocumentState.EXTRACTION_REQUESTED}),
    DocumentState.EXTRACTION_REQUESTED: frozenset({
        DocumentState.COMPLETED,
        DocumentState.EXTRACTION_FAILED,
    }),
    DocumentState.ERROR_DURING_EXTRACTION: frozenset(),
    DocumentState.COMPLETED: frozenset(),
    DocumentState.EXTRACTION_FAILED: frozenset(),
}


@dataclass
class DocumentStatus:
    """Current state of one document plus its last error."""

    path: str
    state: DocumentState
    error: str | None = None
    chunk_count: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "state": str(self.state),
            "error": self.error,
            "chunk_count": self.chunk_count,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentStatus:
        return cls(
            path=data["path"],
            state=DocumentState(data["state"]),
            error=data.get("error"),
            chunk_count=int(data.get("chunk_count", 0)),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class Failure:
    """One failed unit of work, tied to the identifier it came from."""

    path: str
    stage: str
    error: str
    error_type: str = ""
    task: str | None = None
    record_id: str | None = None
    query: str | None = None


@dataclass
class IngestSummary:
    """Result of one ``ingest`` run."""

    ingested: int = 0
    errored: int = 0
    chunked: int = 0
    indexed: int = 0
    skipped: int = 0
    chunks_indexed: int = 0
    failures: list[Failure] = field(default_factory=list)


@dataclass
class ExtractionSummary:
    """Result of one ``extract`` run."""

    tasks: list[str] = field(default_factory=list)
    requested: int = 0
    extracted: int = 0
    failed: int = 0
    skipped: int = 0
    records: list[ExtractionRecord] = field(default_factory=list)
    failures: list[Failure] = field(default_factory=list)
