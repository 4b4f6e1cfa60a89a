"""Exception hierarchy for the report extraction pipeline.

Every failure carries the identifier it originated from (document path,
record id, query text) so batch summaries can report it.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class ReportRAGError(Exception):
    """Base class for all pipeline errors."""


class InvalidParameter(ReportRAGError, ValueError):
    """A caller supplied an out-of-range or inconsistent argument."""


class ParseError(ReportRAGError):
    """A document could not be read or is in an unsupported format."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class IndexingError(ReportRAGError):
    """The embedding or index backend failed for a record."""

    def __init__(
        self,
        message: str,
        record_id: str | None = None,
        failures: Sequence[IndexingError] = (),
    ):
        super().__init__(message)
        self.record_id = record_id
        self.failures = list(failures)


class EmptyContext(ReportRAGError):
    """Every retrieval query returned zero hits.

    Recoverable: the caller may retry with a relaxed filter.
    """

    def __init__(self, queries: Sequence[str], filter_: Any = None):
        super().__init__(
            f"No retrieval hits for {len(queries)} queries (filter={filter_!r})"
        )
        self.queries = list(queries)
        self.filter = filter_


class SchemaViolation(ReportRAGError):
    """The provider output does not match the declared extraction schema."""

    def __init__(self, message: str, details: Sequence[str] = ()):
        super().__init__(message)
        self.details = list(details)


class ProviderTransient(ReportRAGError):
    """Timeout, rate limit or other retryable provider failure."""


class ProviderUnavailable(ReportRAGError):
    """Retries against the completion provider were exhausted."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ProviderError(ReportRAGError):
    """The provider rejected a request (bad input, auth, unknown model).

    Not retried; only the call that raised it fails.
    """


class RetrievalError(ReportRAGError):
    """A query could not be embedded or searched."""

    def __init__(self, message: str, query: str | None = None):
        super().__init__(message)
        self.query = query
