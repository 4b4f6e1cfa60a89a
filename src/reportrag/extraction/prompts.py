"""Prompt templates for structured extraction from annual reports."""

from __future__ import annotations

from reportrag.extraction.schemas import ExtractionSchema

# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

EXTRACTION_SYSTEM_PROMPT = """\
Act as an expert data extraction agent specializing in official annual report \
documents. Carefully read the provided text from a snippet of an annual report \
and extract the precise information for the following fields given. Report \
figures as plain numbers in the stated unit. If the text does not state a \
field, return null for it.

**Extraction Fields:**
{fields}
"""


def format_fields(schema: ExtractionSchema) -> str:
    """Render ``* `Label`: description`` bullets, one per field."""
    return "\n".join(f"* `{f.display_label}`: {f.description}" for f in schema.fields)


def build_system_prompt(
    schema: ExtractionSchema,
    template: str = EXTRACTION_SYSTEM_PROMPT,
) -> str:
    return template.format(fields=format_fields(schema))
