"""Structured extraction — retrieval context to validated numeric fields."""

from reportrag.extraction.orchestrator import ExtractionOrchestrator
from reportrag.extraction.prompts import build_system_prompt
from reportrag.extraction.schemas import (
    ExtractionRecord,
    ExtractionRequest,
    ExtractionSchema,
    ExtractionTask,
    FieldSpec,
)
from reportrag.extraction.tasks import load_tasks, task_from_dict
from reportrag.extraction.validation import validate_payload

__all__ = [
    "ExtractionOrchestrator",
    "ExtractionRecord",
    "ExtractionRequest",
    "ExtractionSchema",
    "ExtractionTask",
    "FieldSpec",
    "build_system_prompt",
    "load_tasks",
    "task_from_dict",
    "validate_payload",
]
