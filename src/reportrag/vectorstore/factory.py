"""Vector store backends by name.

A store holds the chunk vectors of one corpus, so every call builds a fresh
instance and the retrieval index owns it from then on. Backend modules are
imported on first use; FAISS and Qdrant stay optional extras.
"""

from __future__ import annotations

import importlib
import logging

from reportrag.config import VectorStoreSettings
from reportrag.vectorstore.base import VectorStore

logger = logging.getLogger(__name__)

# backend -> (module_path, class_name)
_BACKENDS: dict[str, tuple[str, str]] = {
    "memory": ("reportrag.vectorstore.memory_store", "MemoryStore"),
    "faiss": ("reportrag.vectorstore.faiss_store", "FAISSStore"),
    "qdrant": ("reportrag.vectorstore.qdrant_store", "QdrantStore"),
}


def get_vector_store(backend: str = "memory", **kwargs) -> VectorStore:
    """Build an empty store.

    Raises:
        ValueError: If ``backend`` is not registered.
        ImportError: If the backend's optional extra is not installed.
    """
    try:
        module_path, cls_name = _BACKENDS[backend.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown vector store '{backend}'. Available: {available_stores()}"
        ) from None

    cls = getattr(importlib.import_module(module_path), cls_name)
    return cls(**kwargs)


def vector_store_from_settings(
    settings: VectorStoreSettings,
    dimension: int,
    corpus: str | None = None,
) -> VectorStore:
    """Build the configured backend for one corpus.

    Qdrant collections are suffixed with the corpus name so several corpora
    can share one server.
    """
    kwargs: dict = {"dimension": dimension}
    if settings.backend.lower() == "qdrant":
        collection = f"{settings.collection}__{corpus}" if corpus else settings.collection
        kwargs.update(collection_name=collection, url=settings.url, path=settings.path)
    logger.info(
        "Using vector store %s for corpus %s (dimension=%d)",
        settings.backend, corpus or "-", dimension,
    )
    return get_vector_store(settings.backend, **kwargs)


def available_stores() -> list[str]:
    return list(_BACKENDS)
