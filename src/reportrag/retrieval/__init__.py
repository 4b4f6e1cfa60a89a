"""Retrieval — chunk indexing and ranked, filtered similarity search."""

from reportrag.retrieval.index import RetrievalIndex
from reportrag.retrieval.schemas import IndexRecord, IndexReport, RetrievalResult

__all__ = ["IndexRecord", "IndexReport", "RetrievalIndex", "RetrievalResult"]
