"""Attribute filter expressions for retrieval queries.

A filter is a small tagged expression: ``Eq`` tests one attribute for exact
equality, ``And`` is the conjunction of sub-expressions. The dict form
mirrors the ``{"@eq": {...}}`` / ``{"@and": [...]}`` JSON used in task files.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Eq:
    """``attributes[field] == value``."""

    field: str
    value: Any

    def matches(self, attributes: Mapping[str, Any]) -> bool:
        return self.field in attributes and attributes[self.field] == self.value

    def equalities(self) -> list[tuple[str, Any]]:
        return [(self.field, self.value)]

    def to_dict(self) -> dict[str, Any]:
        return {"@eq": {self.field: self.value}}

    def __and__(self, other: FilterExpr) -> And:
        return And((self, other))


@dataclass(frozen=True)
class And:
    """All operands must match. An empty conjunction matches everything."""

    operands: tuple[FilterExpr, ...]

    def matches(self, attributes: Mapping[str, Any]) -> bool:
        return all(op.matches(attributes) for op in self.operands)

    def equalities(self) -> list[tuple[str, Any]]:
        pairs: list[tuple[str, Any]] = []
        for op in self.operands:
            pairs.extend(op.equalities())
        return pairs

    def to_dict(self) -> dict[str, Any]:
        return {"@and": [op.to_dict() for op in self.operands]}

    def __and__(self, other: FilterExpr) -> And:
        return And((*self.operands, other))


FilterExpr = Union[Eq, And]


def where(**attributes: Any) -> FilterExpr:
    """Build an equality filter over one or more attributes.

    >>> where(relative_path="Globe-2024-Integrated-Report.pdf")
    Eq(field='relative_path', value='Globe-2024-Integrated-Report.pdf')
    """
    clauses = [Eq(k, v) for k, v in attributes.items()]
    if len(clauses) == 1:
        return clauses[0]
    return And(tuple(clauses))


def combine(*filters: FilterExpr | None) -> FilterExpr | None:
    """Conjoin the non-``None`` filters; ``None`` when there are none."""
    present = [f for f in filters if f is not None]
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return And(tuple(present))


def filter_from_dict(data: Mapping[str, Any] | None) -> FilterExpr | None:
    """Parse the dict form back into an expression.

    Accepts ``{"@eq": {"a": 1, "b": 2}}`` (several keys are conjoined),
    ``{"@and": [...]}`` and a bare ``{"a": 1}`` shorthand.
    """
    if not data:
        return None
    if "@and" in data:
        return And(tuple(
            f for f in (filter_from_dict(item) for item in data["@and"]) if f is not None
        ))
    if "@eq" in data:
        return where(**data["@eq"])
    return where(**data)
