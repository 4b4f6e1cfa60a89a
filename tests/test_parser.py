"""Tests for document parsing — all formats, failure reporting, token counts."""

from __future__ import annotations

from pathlib import Path

import pytest

from reportrag.documents import (
    Document,
    LocalDocumentParser,
    ParseMode,
    count_tokens,
    parse_document,
    relative_path,
)


@pytest.fixture
def parser() -> LocalDocumentParser:
    return LocalDocumentParser()


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------


class TestFormats:
    def test_txt(self, parser: LocalDocumentParser, report_dir: Path):
        result = parser.parse(report_dir / "Globe-2024-Integrated-Report.txt")
        assert result.ok
        assert "PHP 163.4 billion" in result.extracted_text
        assert result.metadata["format"] == "txt"
        assert result.metadata["mode"] == "ocr"

    def test_latin1_txt(self, parser: LocalDocumentParser, tmp_path: Path):
        p = tmp_path / "legacy.txt"
        p.write_bytes("Net income: \xa3 5 million".encode("latin-1"))
        assert "5 million" in parser.parse(p).extracted_text

    def test_pdf(self, parser: LocalDocumentParser, sample_pdf_file: Path):
        result = parser.parse(sample_pdf_file)
        assert result.ok
        assert result.metadata["page_count"] == 2
        assert "Net income after tax" in result.extracted_text

    def test_docx(self, parser: LocalDocumentParser, sample_docx_file: Path):
        result = parser.parse(sample_docx_file)
        assert result.ok
        assert "PHP 5.2 billion" in result.extracted_text

    def test_xlsx(self, parser: LocalDocumentParser, sample_xlsx_file: Path):
        result = parser.parse(sample_xlsx_file)
        assert result.ok
        assert "## Sheet: Highlights" in result.extracted_text
        assert "Net income after tax" in result.extracted_text

    def test_parse_bytes(self, parser: LocalDocumentParser):
        result = parser.parse_bytes(b"Service revenues grew 2%.", "note.txt")
        assert result.extracted_text == "Service revenues grew 2%."

    def test_layout_mode_recorded(self, report_dir: Path):
        result = LocalDocumentParser(mode="layout").parse(report_dir / "Acme-2024-Annual-Report.txt")
        assert result.metadata["mode"] == ParseMode.LAYOUT.value


# ---------------------------------------------------------------------------
# Failures are reported, not raised
# ---------------------------------------------------------------------------


class TestFailures:
    def test_unsupported_format(self, parser: LocalDocumentParser, report_dir: Path):
        result = parser.parse(report_dir / "cover.png")
        assert not result.ok
        assert "Unsupported format" in result.error_info
        assert result.extracted_text == ""

    def test_missing_file(self, parser: LocalDocumentParser, tmp_path: Path):
        result = parser.parse(tmp_path / "missing.pdf")
        assert "File not found" in result.error_info

    def test_blank_document(self, parser: LocalDocumentParser, tmp_path: Path):
        p = tmp_path / "blank.txt"
        p.write_text("   \n\n  ", encoding="utf-8")
        result = parser.parse(p)
        assert result.error_info == "Document contains no extractable text"

    def test_corrupt_pdf(self, parser: LocalDocumentParser, tmp_path: Path):
        p = tmp_path / "broken.pdf"
        p.write_bytes(b"not really a pdf")
        assert "PDF extraction error" in parser.parse(p).error_info

    def test_size_limit(self, tmp_path: Path):
        p = tmp_path / "big.txt"
        p.write_bytes(b"x" * (1024 * 1024 + 1))
        result = LocalDocumentParser(max_file_size_mb=1).parse(p)
        assert "limit is 1 MB" in result.error_info

    def test_restricted_formats(self, report_dir: Path):
        parser = LocalDocumentParser(supported_formats=[".pdf"])
        result = parser.parse(report_dir / "Acme-2024-Annual-Report.txt")
        assert "Unsupported format" in result.error_info


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_relative_to_root(self, parser: LocalDocumentParser, report_dir: Path):
        doc = parse_document(parser, report_dir / "Globe-2024-Integrated-Report.txt", root=report_dir)
        assert isinstance(doc, Document)
        assert doc.path == "Globe-2024-Integrated-Report.txt"
        assert doc.file_url.startswith("file://")
        assert doc.ok
        assert doc.token_count > 0

    def test_nested_path(self, parser: LocalDocumentParser, report_dir: Path):
        nested = report_dir / "2024" / "q4"
        nested.mkdir(parents=True)
        (nested / "update.txt").write_text("Net income rose.", encoding="utf-8")
        doc = parse_document(parser, nested / "update.txt", root=report_dir)
        assert doc.path == "2024/q4/update.txt"

    def test_failure_recorded(self, parser: LocalDocumentParser, report_dir: Path):
        doc = parse_document(parser, report_dir / "cover.png", root=report_dir)
        assert not doc.ok
        assert doc.extracted_text == ""
        assert doc.token_count == 0

    def test_to_row(self, parser: LocalDocumentParser, report_dir: Path):
        doc = parse_document(parser, report_dir / "Acme-2024-Annual-Report.txt", root=report_dir)
        row = doc.to_row()
        assert row["path"] == "Acme-2024-Annual-Report.txt"
        assert row["error_info"] is None
        assert isinstance(row["processed_at"], str)

    def test_relative_path_without_root(self):
        assert relative_path("/data/reports/globe.pdf") == "globe.pdf"


class TestCountTokens:
    def test_empty(self):
        assert count_tokens("") == 0

    def test_grows_with_text(self):
        short = count_tokens("Net income after tax.")
        assert 0 < short < count_tokens("Net income after tax. " * 20)
