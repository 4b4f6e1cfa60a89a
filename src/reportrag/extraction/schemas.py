"""Data models for structured extraction."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from reportrag.errors import InvalidParameter
from reportrag.vectorstore.filters import FilterExpr, combine

SUPPORTED_FIELD_TYPES = ("number",)


@dataclass(frozen=True)
class FieldSpec:
    """One declared output field: a nullable number."""

    name: str
    description: str
    type: str = "number"
    label: str | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.isidentifier():
            raise InvalidParameter(f"Field name must be an identifier, got {self.name!r}")
        if self.type not in SUPPORTED_FIELD_TYPES:
            raise InvalidParameter(
                f"Field {self.name!r} has unsupported type {self.type!r}; "
                f"supported: {list(SUPPORTED_FIELD_TYPES)}"
            )

    @property
    def display_label(self) -> str:
        return self.label or self.name.replace("_", " ").title()

    def to_json_schema(self) -> dict[str, Any]:
        return {"type": [self.type, "null"], "description": self.description}


@dataclass(frozen=True)
class ExtractionSchema:
    """Ordered set of fields each extracted entity must carry."""

    fields: tuple[FieldSpec, ...]

    def __post_init__(self) -> None:
        if not self.fields:
            raise InvalidParameter("Extraction schema needs at least one field")
        names = [f.name for f in self.fields]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise InvalidParameter(f"Duplicate field names: {dupes}")

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> ExtractionSchema:
        """Build from ``{name: description}`` or ``{name: {description, type, label}}``."""
        specs = []
        for name, value in mapping.items():
            if isinstance(value, str):
                specs.append(FieldSpec(name=name, description=value))
            elif isinstance(value, Mapping):
                specs.append(FieldSpec(
                    name=name,
                    description=value.get("description", ""),
                    type=value.get("type", "number"),
                    label=value.get("label"),
                ))
            else:
                raise InvalidParameter(f"Field {name!r}: expected a description or mapping")
        return cls(fields=tuple(specs))

    def to_json_schema(self) -> dict[str, Any]:
        """Response schema: an object holding a ``document_entities`` array."""
        entity = {
            "type": "object",
            "properties": {f.name: f.to_json_schema() for f in self.fields},
            "required": self.names,
            "additionalProperties": False,
        }
        return {
            "type": "object",
            "properties": {
                "document_entities": {"type": "array", "items": entity},
            },
            "required": ["document_entities"],
            "additionalProperties": False,
        }


@dataclass
class ExtractionRequest:
    """Queries plus schema for one extraction call."""

    queries: list[str]
    schema: ExtractionSchema
    k_per_query: int = 1
    filter: FilterExpr | None = None
    system_prompt: str | None = None
    source_path: str | None = None
    results_per_query: int | None = None  # None = all k hits
    relax_filter_on_empty: bool = False

    def __post_init__(self) -> None:
        if not self.queries:
            raise InvalidParameter("At least one query is required")
        if self.k_per_query <= 0:
            raise InvalidParameter(f"k_per_query must be positive, got {self.k_per_query}")
        if self.results_per_query is not None and not (
            0 < self.results_per_query <= self.k_per_query
        ):
            raise InvalidParameter(
                f"results_per_query must be in 1..{self.k_per_query}, "
                f"got {self.results_per_query}"
            )


@dataclass
class ExtractionRecord:
    """Validated output of one extraction."""

    source_path: str | None
    context: str
    document_entities: list[dict[str, float | None]]
    queries: list[str] = field(default_factory=list)
    model: str = ""
    context_tokens: int = 0
    task: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["created_at"] = self.created_at.isoformat()
        return row


@dataclass
class ExtractionTask:
    """Named, reusable extraction definition (loaded from YAML)."""

    name: str
    queries: list[str]
    schema: ExtractionSchema
    k_per_query: int = 1
    results_per_query: int | None = None
    filter: FilterExpr | None = None
    system_prompt: str | None = None
    relax_filter_on_empty: bool = False

    def __post_init__(self) -> None:
        # Same checks as every request built from this task
        self.to_request()

    def to_request(
        self,
        source_path: str | None = None,
        filter: FilterExpr | None = None,
    ) -> ExtractionRequest:
        """Request for one document; ``filter`` is conjoined with the task filter."""
        return ExtractionRequest(
            queries=list(self.queries),
            schema=self.schema,
            k_per_query=self.k_per_query,
            filter=combine(filter, self.filter),
            system_prompt=self.system_prompt,
            source_path=source_path,
            results_per_query=self.results_per_query,
            relax_filter_on_empty=self.relax_filter_on_empty,
        )
