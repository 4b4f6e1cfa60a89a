"""Document parsing — PDF, DOCX, TXT, XLSX into a ``ParseResult``.

The parser is the external collaborator of the pipeline: it never raises
for a bad document, it reports the problem in ``error_info`` instead.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path

import tiktoken

from reportrag.documents.schemas import Document, ParseMode, ParseResult
from reportrag.errors import ParseError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".txt", ".pdf", ".docx", ".xlsx"}

_ENCODING = "cl100k_base"


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding | None:
    try:
        return tiktoken.get_encoding(_ENCODING)
    except Exception as exc:
        # Encoding files are fetched on first use; offline hosts may not have them
        logger.warning("tiktoken encoding %s unavailable (%s); estimating tokens", _ENCODING, exc)
        return None


def count_tokens(text: str) -> int:
    """Count tokens with the ``cl100k_base`` encoding."""
    if not text:
        return 0
    enc = _encoding()
    if enc is None:
        # Rough approximation: ~1.33 tokens per word
        return len(text.split()) * 4 // 3
    return len(enc.encode(text))


class DocumentParser(ABC):
    """Interface for the parse collaborator."""

    @abstractmethod
    def parse(self, path: str | Path) -> ParseResult:
        """Extract text and metadata from a file.

        Returns:
            A ``ParseResult``; failures are reported via ``error_info``.
        """

    @classmethod
    def parser_name(cls) -> str:
        """Return human-readable parser name."""
        return cls.__name__


class LocalDocumentParser(DocumentParser):
    """Parse files from the local filesystem."""

    def __init__(
        self,
        mode: ParseMode = ParseMode.OCR,
        supported_formats: list[str] | None = None,
        max_file_size_mb: int = 100,
    ):
        self.mode = ParseMode(mode)
        self.supported = {
            ext.lower() for ext in (supported_formats or SUPPORTED_EXTENSIONS)
        } & SUPPORTED_EXTENSIONS
        self.max_file_size_mb = max_file_size_mb

    def parse(self, path: str | Path) -> ParseResult:
        path = Path(path)
        try:
            text, metadata = self._load(path)
        except ParseError as exc:
            logger.warning("Could not parse %s: %s", path.name, exc)
            return ParseResult(error_info=str(exc), metadata={"format": path.suffix.lstrip(".")})
        return self._finish(text, metadata)

    def parse_bytes(self, data: bytes, filename: str) -> ParseResult:
        """Parse in-memory bytes, using ``filename`` for format detection."""
        ext = Path(filename).suffix.lower()
        try:
            self._check_format(ext)
            text, metadata = self._dispatch(data, ext)
        except ParseError as exc:
            logger.warning("Could not parse %s: %s", filename, exc)
            return ParseResult(error_info=str(exc), metadata={"format": ext.lstrip(".")})
        return self._finish(text, metadata)

    # ------------------------------------------------------------------
    # Private dispatch
    # ------------------------------------------------------------------

    def _finish(self, text: str, metadata: dict) -> ParseResult:
        metadata["mode"] = self.mode.value
        metadata["char_count"] = len(text)
        if not text.strip():
            # Scanned/image-only input
            return ParseResult(
                error_info="Document contains no extractable text",
                metadata=metadata,
            )
        return ParseResult(extracted_text=text, metadata=metadata)

    def _check_format(self, ext: str) -> None:
        if ext not in self.supported:
            raise ParseError(
                f"Unsupported format '{ext}'. Supported: {sorted(self.supported)}"
            )

    def _load(self, path: Path) -> tuple[str, dict]:
        if not path.exists():
            raise ParseError(f"File not found: {path}", path=str(path))

        ext = path.suffix.lower()
        self._check_format(ext)

        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb > self.max_file_size_mb:
            raise ParseError(
                f"File is {size_mb:.1f} MB, limit is {self.max_file_size_mb} MB",
                path=str(path),
            )
        return self._dispatch(path.read_bytes(), ext)

    def _dispatch(self, data: bytes, ext: str) -> tuple[str, dict]:
        handlers = {
            ".txt": self._load_txt,
            ".pdf": self._load_pdf,
            ".docx": self._load_docx,
            ".xlsx": self._load_xlsx,
        }
        text, page_count = handlers[ext](data)
        return text, {"format": ext.lstrip("."), "page_count": page_count}

    # ------------------------------------------------------------------
    # Format-specific loaders
    # ------------------------------------------------------------------

    @staticmethod
    def _load_txt(data: bytes) -> tuple[str, int]:
        try:
            return data.decode("utf-8"), 1
        except UnicodeDecodeError:
            return data.decode("latin-1"), 1

    @staticmethod
    def _load_pdf(data: bytes) -> tuple[str, int]:
        import pdfplumber

        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_texts = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise ParseError(f"PDF extraction error: {exc}") from exc
        return "\n\n".join(page_texts), len(page_texts)

    @staticmethod
    def _load_docx(data: bytes) -> tuple[str, int]:
        from docx import Document as DocxDocument

        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            raise ParseError(f"DOCX extraction error: {exc}") from exc
        paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]
        return "\n\n".join(paragraphs), 1

    @staticmethod
    def _load_xlsx(data: bytes) -> tuple[str, int]:
        import pandas as pd

        sheets: list[str] = []
        try:
            xls = pd.ExcelFile(io.BytesIO(data))
            for sheet_name in xls.sheet_names:
                df = pd.read_excel(xls, sheet_name=sheet_name)
                header = f"## Sheet: {sheet_name} ({len(df)} rows, {len(df.columns)} cols)\n\n"
                sheets.append(header + (df.to_markdown(index=False) or "[empty sheet]"))
        except Exception as exc:
            raise ParseError(f"Excel extraction error: {exc}") from exc
        return "\n\n---\n\n".join(sheets), len(sheets)


def relative_path(path: str | Path, root: str | Path | None = None) -> str:
    """Corpus-relative POSIX path, or the bare file name without a root."""
    path = Path(path)
    return path.relative_to(root).as_posix() if root is not None else path.name


def parse_document(
    parser: DocumentParser,
    path: str | Path,
    root: str | Path | None = None,
) -> Document:
    """Run the parser on one file and wrap the outcome in a ``Document``.

    Args:
        parser: The parse collaborator.
        path: File to parse.
        root: Corpus root; ``Document.path`` is relative to it when given.

    Returns:
        A ``Document``. Parser failures are recorded, never raised.
    """
    path = Path(path)
    relative = relative_path(path, root)

    result = parser.parse(path)
    text = result.extracted_text if result.ok else ""

    document = Document(
        path=relative,
        file_url=path.resolve().as_uri(),
        extracted_text=text,
        error_info=result.error_info,
        metadata=dict(result.metadata),
        processed_at=datetime.now(timezone.utc),
        token_count=count_tokens(text),
    )
    logger.info(
        "Parsed %s: %d chars, %d tokens%s",
        relative,
        len(text),
        document.token_count,
        f" (error: {result.error_info})" if result.error_info else "",
    )
    return document
