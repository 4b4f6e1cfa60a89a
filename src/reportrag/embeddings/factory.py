"""Embedding providers by name.

Chunks and queries of a corpus must be embedded by the same model, so a
provider is cached per (backend, constructor arguments): corpora built from
the same settings share one client. Backend modules are imported on first
use; OpenAI and HuggingFace stay optional extras.
"""

from __future__ import annotations

import importlib
import logging

from reportrag.config import EmbeddingSettings
from reportrag.embeddings.base import EmbeddingProvider

logger = logging.getLogger(__name__)

# backend -> (module_path, class_name)
_BACKENDS: dict[str, tuple[str, str]] = {
    "ollama": ("reportrag.embeddings.ollama_provider", "OllamaEmbeddingProvider"),
    "openai": ("reportrag.embeddings.openai_provider", "OpenAIEmbeddingProvider"),
    "huggingface": ("reportrag.embeddings.huggingface_provider", "HuggingFaceEmbeddingProvider"),
}

_provider_cache: dict[tuple[str, frozenset], EmbeddingProvider] = {}


def get_embedding_provider(provider: str = "ollama", **kwargs) -> EmbeddingProvider:
    """Return the provider for ``provider`` built with ``kwargs``.

    Calls with equal hashable arguments return the same instance; arguments
    such as an injected transport are never cached.

    Raises:
        ValueError: If ``provider`` is not registered.
    """
    key = provider.lower()
    if key not in _BACKENDS:
        raise ValueError(
            f"Unknown embedding provider '{provider}'. Available: {available_providers()}"
        )

    try:
        cache_key: tuple[str, frozenset] | None = (key, frozenset(kwargs.items()))
    except TypeError:
        cache_key = None
    if cache_key is not None and cache_key in _provider_cache:
        return _provider_cache[cache_key]

    module_path, cls_name = _BACKENDS[key]
    instance = getattr(importlib.import_module(module_path), cls_name)(**kwargs)
    if cache_key is not None:
        _provider_cache[cache_key] = instance
    return instance


def embedding_provider_from_settings(settings: EmbeddingSettings) -> EmbeddingProvider:
    """Build the configured provider (model name plus dimension where supported)."""
    kwargs: dict = {"model": settings.model}
    if settings.provider.lower() in ("ollama", "openai"):
        kwargs["dimension"] = settings.dimension
    logger.info("Using embedding provider %s (%s)", settings.provider, settings.model)
    return get_embedding_provider(settings.provider, **kwargs)


def available_providers() -> list[str]:
    return list(_BACKENDS)


def clear_cache() -> None:
    """Forget cached providers (tests switch backends between cases)."""
    _provider_cache.clear()
