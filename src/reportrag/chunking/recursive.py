"""Recursive character chunker with bounded size and overlap.

Text is split on the coarsest separator that occurs (paragraph, line,
sentence, word), recursing into oversized pieces with finer separators and
falling back to single characters. The pieces are exact, contiguous slices
of the input, which are then merged greedily into windows of at most
``chunk_size`` characters that overlap by at most ``overlap`` characters.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from collections.abc import Sequence
from datetime import datetime, timezone

from reportrag.chunking.base import BaseChunker
from reportrag.chunking.schemas import Chunk
from reportrag.errors import InvalidParameter

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500
OVERLAP = 100

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", "? ", "! ", " ", "")

Span = tuple[int, int]


def _validate(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise InvalidParameter(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise InvalidParameter(f"overlap must be non-negative, got {overlap}")
    if overlap >= chunk_size:
        raise InvalidParameter(
            f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
        )


def _split_on(text: str, start: int, end: int, sep: str) -> list[Span]:
    """Split ``text[start:end]`` after every occurrence of ``sep``."""
    spans: list[Span] = []
    pos = start
    while True:
        idx = text.find(sep, pos, end)
        if idx == -1:
            break
        cut = idx + len(sep)
        spans.append((pos, cut))
        pos = cut
    if pos < end:
        spans.append((pos, end))
    return spans


def _split(
    text: str,
    start: int,
    end: int,
    separators: Sequence[str],
    chunk_size: int,
) -> list[Span]:
    if end - start <= chunk_size:
        return [(start, end)]

    for i, sep in enumerate(separators):
        if sep == "":
            return [(pos, pos + 1) for pos in range(start, end)]

        pieces = _split_on(text, start, end, sep)
        if len(pieces) < 2:
            continue

        spans: list[Span] = []
        for piece_start, piece_end in pieces:
            if piece_end - piece_start > chunk_size:
                spans.extend(
                    _split(text, piece_start, piece_end, separators[i + 1:], chunk_size)
                )
            else:
                spans.append((piece_start, piece_end))
        return spans

    # Only reachable without the "" separator; RecursiveCharacterChunker
    # always appends it.
    return [(pos, min(pos + chunk_size, end)) for pos in range(start, end, chunk_size)]


def _windows(text: str, atoms: list[Span], chunk_size: int, overlap: int) -> list[Span]:
    """Merge contiguous atoms into overlapping windows.

    A window holding only whitespace is widened into the text around it so
    the blank run still lands in some chunk. Only a run too long to share a
    window with any other character stays uncovered.
    """
    length = len(text)
    starts = [s for s, _ in atoms]
    windows: list[Span] = []

    start = 0
    prev_end = 0
    j = 0
    while True:
        while atoms[j][1] <= start:
            j += 1

        end = start
        k = j
        while k < len(atoms) and atoms[k][1] - start <= chunk_size:
            end = atoms[k][1]
            k += 1

        # The next atom is too large to join from this offset
        if end <= prev_end:
            end = min(start + chunk_size, length)

        if text[start:end].isspace():
            end = min(start + chunk_size, length)
            if end == length and text[start:end].isspace() and windows:
                start = _absorb_tail(text, windows, start, chunk_size)

        windows.append((start, end))
        if end >= length:
            return windows

        lower = max(end - overlap, start + 1)
        idx = bisect_left(starts, lower)
        boundary = starts[idx] if idx < len(starts) else length
        start = boundary if boundary < end else lower
        prev_end = end


def _absorb_tail(text: str, windows: list[Span], start: int, chunk_size: int) -> int:
    """Start offset for a final window that would hold only trailing whitespace."""
    length = len(text)
    last_start = windows[-1][0]
    if length - last_start <= chunk_size:
        windows.pop()
        return last_start
    # Reach back to the last non-blank character
    anchor = len(text[:start].rstrip()) - 1
    if anchor >= 0 and length - anchor <= chunk_size:
        return anchor
    return start


class RecursiveCharacterChunker(BaseChunker):
    """Size- and overlap-bounded recursive character splitter."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        overlap: int = OVERLAP,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ):
        _validate(chunk_size, overlap)
        self.chunk_size = chunk_size
        self.overlap = overlap
        seps = [s for s in separators if s]
        self.separators: tuple[str, ...] = (*seps, "")

    def chunk(self, text: str, source_path: str = "") -> list[Chunk]:
        if not text or text.isspace():
            return []

        atoms = _split(text, 0, len(text), self.separators, self.chunk_size)
        windows = _windows(text, atoms, self.chunk_size, self.overlap)

        created_at = datetime.now(timezone.utc)
        chunks: list[Chunk] = []
        for start, end in windows:
            piece = text[start:end]
            if piece.isspace():
                continue
            chunks.append(Chunk(
                source_path=source_path,
                text=piece,
                sequence_index=len(chunks),
                start_index=start,
                created_at=created_at,
            ))

        logger.info(
            "RecursiveCharacterChunker produced %d chunks from %d chars (%s)",
            len(chunks), len(text), source_path or "inline",
        )
        return chunks


def chunk_text(
    text: str,
    chunk_size: int = CHUNK_SIZE,
    overlap: int = OVERLAP,
    source_path: str = "",
) -> list[Chunk]:
    """Split ``text`` into overlapping chunks of at most ``chunk_size`` chars.

    Raises:
        InvalidParameter: If ``chunk_size <= 0`` or ``overlap`` is negative
            or not smaller than ``chunk_size``.
    """
    return RecursiveCharacterChunker(chunk_size, overlap).chunk(text, source_path)


def reconstruct_text(chunks: Sequence[Chunk]) -> str:
    """Rebuild the source text from consecutive chunks.

    Each chunk contributes only the part past the previous chunk's end.
    """
    parts: list[str] = []
    covered = 0
    for c in chunks:
        parts.append(c.text[max(covered - c.start_index, 0):])
        covered = max(covered, c.end_index)
    return "".join(parts)
