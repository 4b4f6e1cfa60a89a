"""Data models for chunks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of one document's text.

    ``start_index`` is the character offset of ``text`` inside the source,
    so consecutive chunks overlap by ``previous.end_index - start_index``.
    """

    source_path: str
    text: str
    sequence_index: int
    start_index: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.text)
