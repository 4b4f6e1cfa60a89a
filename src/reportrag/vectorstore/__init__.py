"""Vector store backends — in-memory numpy, FAISS (local) and Qdrant."""

from reportrag.vectorstore.base import VectorStore
from reportrag.vectorstore.factory import available_stores, get_vector_store, vector_store_from_settings
from reportrag.vectorstore.filters import And, Eq, FilterExpr, combine, filter_from_dict, where
from reportrag.vectorstore.schemas import SearchResult, VectorRecord

__all__ = [
    "And",
    "Eq",
    "FilterExpr",
    "SearchResult",
    "VectorRecord",
    "VectorStore",
    "available_stores",
    "combine",
    "filter_from_dict",
    "get_vector_store",
    "vector_store_from_settings",
    "where",
]
