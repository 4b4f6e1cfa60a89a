"""Abstract base class for completion providers."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from reportrag.errors import SchemaViolation

Message = dict[str, str]


class CompletionProvider(ABC):
    """Interface for schema-constrained structured completion."""

    @abstractmethod
    def complete(
        self,
        messages: list[Message],
        *,
        response_schema: dict[str, Any],
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        """Run one completion and return the structured payload.

        Args:
            messages: ``[{"role": ..., "content": ...}]`` in conversation order.
            response_schema: JSON schema the output must follow.
            temperature: Sampling temperature.

        Raises:
            ProviderTransient: Timeout, rate limit, connection error or 5xx.
            ProviderError: Any other rejected request (4xx, auth, bad input).
            SchemaViolation: The output is not a JSON object.
        """

    @classmethod
    def provider_name(cls) -> str:
        """Return human-readable provider name."""
        return cls.__name__


def split_system(messages: list[Message]) -> tuple[str | None, list[Message]]:
    """Separate system messages from the conversation turns."""
    system = [m["content"] for m in messages if m["role"] == "system"]
    rest = [m for m in messages if m["role"] != "system"]
    return ("\n\n".join(system) if system else None), rest


def parse_json_object(text: str | None) -> dict[str, Any]:
    """Decode model text into a JSON object.

    Raises:
        SchemaViolation: On empty, non-JSON or non-object output.
    """
    if not text:
        raise SchemaViolation("Provider returned an empty response")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaViolation("Provider returned non-JSON output", [str(exc)]) from exc
    if not isinstance(payload, dict):
        raise SchemaViolation(
            f"Provider returned a JSON {type(payload).__name__}, expected an object"
        )
    return payload
