"""Data models for document ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class ParseMode(StrEnum):
    """How the parser should extract text."""

    OCR = "ocr"
    LAYOUT = "layout"


@dataclass
class ParseResult:
    """Raw output of the parse collaborator for one file.

    Attributes:
        extracted_text: Plain text of the document, empty on failure.
        error_info: Why extraction failed, ``None`` on success.
        metadata: Format, page count and other parser facts.
    """

    extracted_text: str = ""
    error_info: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error_info is None


@dataclass(frozen=True)
class Document:
    """One source file after parsing. Immutable once created."""

    path: str
    file_url: str
    extracted_text: str = ""
    error_info: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    token_count: int = 0

    @property
    def ok(self) -> bool:
        return self.error_info is None

    def to_row(self) -> dict[str, Any]:
        """Flatten to a tabular row for the record store."""
        return {
            "path": self.path,
            "file_url": self.file_url,
            "extracted_text": self.extracted_text,
            "error_info": self.error_info,
            "metadata": dict(self.metadata),
            "processed_at": self.processed_at.isoformat(),
            "token_count": self.token_count,
        }
