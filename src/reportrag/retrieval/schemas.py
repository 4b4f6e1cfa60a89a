"""Data models for indexing and retrieval."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from reportrag.chunking.schemas import Chunk
from reportrag.errors import IndexingError
from reportrag.vectorstore.filters import FilterExpr
from reportrag.vectorstore.schemas import SearchResult


@dataclass
class IndexRecord:
    """One ``(text, attributes)`` pair submitted to the index."""

    text: str
    attributes: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @classmethod
    def from_chunk(cls, chunk: Chunk, **attributes: Any) -> IndexRecord:
        attrs = {
            "relative_path": chunk.source_path,
            "sequence_index": chunk.sequence_index,
            **attributes,
        }
        return cls(
            text=chunk.text,
            attributes=attrs,
            id=f"{chunk.source_path}#{chunk.sequence_index}",
        )

    def record_id(self, position: int) -> str:
        """Explicit id, else ``relative_path#sequence_index``, else positional."""
        if self.id:
            return self.id
        if "relative_path" in self.attributes and "sequence_index" in self.attributes:
            return f"{self.attributes['relative_path']}#{self.attributes['sequence_index']}"
        return f"record-{position}"


@dataclass
class IndexReport:
    """Outcome of one ``index`` call."""

    submitted: int
    indexed: int
    failures: list[IndexingError] = field(default_factory=list)
    published: bool = False

    @property
    def failed_ids(self) -> list[str]:
        return [f.record_id for f in self.failures if f.record_id is not None]


@dataclass
class RetrievalResult:
    """Hits for one query, by decreasing score with stable ties."""

    query: str
    hits: list[SearchResult] = field(default_factory=list)
    filter: FilterExpr | None = None

    def __len__(self) -> int:
        return len(self.hits)

    def __iter__(self) -> Iterator[SearchResult]:
        return iter(self.hits)

    @property
    def texts(self) -> list[str]:
        return [h.text for h in self.hits]
