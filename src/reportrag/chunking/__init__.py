"""Overlapping, size-bounded text chunking."""

from reportrag.chunking.base import BaseChunker
from reportrag.chunking.recursive import (
    RecursiveCharacterChunker,
    chunk_text,
    reconstruct_text,
)
from reportrag.chunking.schemas import Chunk

__all__ = [
    "BaseChunker",
    "Chunk",
    "RecursiveCharacterChunker",
    "chunk_text",
    "reconstruct_text",
]
