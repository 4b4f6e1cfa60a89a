"""Document ingestion — parsing files into ``Document`` records."""

from reportrag.documents.parser import (
    DocumentParser,
    LocalDocumentParser,
    count_tokens,
    parse_document,
    relative_path,
)
from reportrag.documents.schemas import Document, ParseMode, ParseResult

__all__ = [
    "Document",
    "DocumentParser",
    "LocalDocumentParser",
    "ParseMode",
    "ParseResult",
    "count_tokens",
    "parse_document",
    "relative_path",
]
