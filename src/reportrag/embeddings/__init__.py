"""Embedding providers — Ollama, OpenAI, HuggingFace."""

from reportrag.embeddings.base import EmbeddingProvider, check_embedding
from reportrag.embeddings.factory import (
    available_providers,
    embedding_provider_from_settings,
    get_embedding_provider,
)

__all__ = [
    "EmbeddingProvider",
    "available_providers",
    "check_embedding",
    "embedding_provider_from_settings",
    "get_embedding_provider",
]
