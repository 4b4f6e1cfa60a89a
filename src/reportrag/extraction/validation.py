"""Validate provider payloads into typed entity models.

A pydantic model is built per schema: every declared field is required but
nullable, unknown keys are rejected, and numbers are strict (booleans and
numeric strings fail).
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, create_model

from reportrag.errors import SchemaViolation
from reportrag.extraction.schemas import ExtractionSchema

logger = logging.getLogger(__name__)

_STRICT = ConfigDict(extra="forbid", strict=True)


def _reject_bool(value: Any) -> Any:
    # bool is an int subclass; strict float alone would not catch it everywhere
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    return value


Number = Annotated[float | None, BeforeValidator(_reject_bool)]


@lru_cache(maxsize=64)
def entity_model(schema: ExtractionSchema) -> type[BaseModel]:
    """Pydantic model for one ``document_entities`` item.

    Attributes use positional names with the declared field names as
    aliases, so fields such as ``schema`` never shadow ``BaseModel``.
    """
    fields: dict[str, Any] = {
        f"field_{i}": (Number, Field(..., alias=spec.name, description=spec.description))
        for i, spec in enumerate(schema.fields)
    }
    return create_model("DocumentEntity", __config__=_STRICT, **fields)


@lru_cache(maxsize=64)
def payload_model(schema: ExtractionSchema) -> type[BaseModel]:
    entity = entity_model(schema)
    return create_model(
        "ExtractionPayload",
        __config__=_STRICT,
        document_entities=(list[entity], ...),
    )


def validate_payload(
    schema: ExtractionSchema,
    payload: dict[str, Any],
) -> list[dict[str, float | None]]:
    """Check ``payload`` against ``schema`` and normalize values to floats.

    Raises:
        SchemaViolation: Missing ``document_entities``, an omitted or unknown
            field, or a non-numeric value.
    """
    try:
        parsed = payload_model(schema).model_validate(payload)
    except ValidationError as exc:
        details = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        logger.warning("Extraction payload failed validation: %s", "; ".join(details))
        raise SchemaViolation(
            f"Provider output does not match schema ({len(details)} errors)",
            details,
        ) from exc

    entities = []
    for entity in parsed.document_entities:
        row = entity.model_dump(by_alias=True)
        entities.append({
            name: None if row[name] is None else float(row[name]) for name in schema.names
        })
    return entities
