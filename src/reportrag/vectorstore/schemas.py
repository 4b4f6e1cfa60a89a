"""Data models for vector store operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class VectorRecord:
    """A chunk with its embedding, ready for storage."""

    id: str
    text: str
    embedding: list[float]
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """A single search hit: chunk text, its attributes and relevance.

    ``position`` is the record's insertion order in the store and breaks
    score ties.
    """

    id: str
    text: str
    score: float
    attributes: dict[str, Any] = field(default_factory=dict)
    position: int = 0
