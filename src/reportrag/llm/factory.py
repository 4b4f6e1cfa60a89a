"""Completion provider factory — registry, lazy import, singleton cache."""

from __future__ import annotations

import importlib
import logging

from reportrag.config import LLMSettings
from reportrag.llm.base import CompletionProvider

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider registry: (provider_key, module_path, class_name)
# ---------------------------------------------------------------------------

_PROVIDER_REGISTRY: list[tuple[str, str, str]] = [
    ("ollama", "reportrag.llm.ollama_provider", "OllamaCompletionProvider"),
    ("anthropic", "reportrag.llm.anthropic_provider", "AnthropicCompletionProvider"),
    ("openai", "reportrag.llm.openai_provider", "OpenAICompletionProvider"),
]

# Singleton cache
_provider_cache: dict[str, CompletionProvider] = {}


def get_llm_provider(
    provider: str = "ollama",
    **kwargs,
) -> CompletionProvider:
    """Get a completion provider by name.

    Args:
        provider: One of ``ollama``, ``anthropic``, ``openai``.
        **kwargs: Passed to the provider constructor.
    """
    key = provider.lower()

    if not kwargs and key in _provider_cache:
        return _provider_cache[key]

    for reg_key, module_path, cls_name in _PROVIDER_REGISTRY:
        if reg_key == key:
            mod = importlib.import_module(module_path)
            cls = getattr(mod, cls_name)
            instance = cls(**kwargs)
            if not kwargs:
                _provider_cache[key] = instance
            return instance

    raise ValueError(f"Unknown LLM provider '{provider}'. Available: {available_providers()}")


def llm_provider_from_settings(settings: LLMSettings) -> CompletionProvider:
    logger.info("Using completion provider %s (%s)", settings.provider, settings.model)
    return get_llm_provider(
        settings.provider,
        model=settings.model,
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
    )


def available_providers() -> list[str]:
    """Return names of registered completion providers."""
    return [k for k, _, _ in _PROVIDER_REGISTRY]


def clear_cache() -> None:
    """Clear singleton cache (for testing)."""
    _provider_cache.clear()
