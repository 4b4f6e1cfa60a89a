"""Pipeline — per-corpus ingestion and extraction with document state tracking."""

from reportrag.pipeline.coordinator import PipelineCoordinator
from reportrag.pipeline.records import RecordStore
from reportrag.pipeline.schemas import (
    DocumentState,
    DocumentStatus,
    ExtractionSummary,
    Failure,
    IngestSummary,
)

__all__ = [
    "DocumentState",
    "DocumentStatus",
    "ExtractionSummary",
    "Failure",
    "IngestSummary",
    "PipelineCoordinator",
    "RecordStore",
]
