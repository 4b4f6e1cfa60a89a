"""Completion providers — Ollama, Anthropic, OpenAI."""

from reportrag.llm.base import CompletionProvider, parse_json_object
from reportrag.llm.factory import available_providers, get_llm_provider, llm_provider_from_settings

__all__ = [
    "CompletionProvider",
    "available_providers",
    "get_llm_provider",
    "llm_provider_from_settings",
    "parse_json_object",
]
