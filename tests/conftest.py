"""Shared fixtures for tests — synthetic reports and mock providers, no network calls."""

from __future__ import annotations

import hashlib
import re
import textwrap
import threading
from pathlib import Path
from typing import Any

import httpx
import numpy as np
import pytest

from reportrag.embeddings.base import EmbeddingProvider
from reportrag.errors import ProviderTransient
from reportrag.llm.base import CompletionProvider
from reportrag.retrieval.index import RetrievalIndex
from reportrag.vectorstore.memory_store import MemoryStore

DIM = 64

_TOKEN = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Mock providers
# ---------------------------------------------------------------------------


class MockEmbedder(EmbeddingProvider):
    """Deterministic bag-of-words embeddings.

    Each lower-cased token is hashed into one of ``dim`` buckets, so texts
    sharing words score higher than unrelated texts.
    """

    def __init__(self, dim: int = DIM):
        self._dim = dim
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._embed(t) for t in texts]

    def embed_query(self, query: str) -> list[float]:
        return self._embed(query)

    @property
    def dimension(self) -> int:
        return self._dim

    def _embed(self, text: str) -> list[float]:
        vec = np.zeros(self._dim, dtype=np.float32)
        vec[-1] = 0.05  # never all-zero
        for token in _TOKEN.findall(text.lower()):
            h = hashlib.sha256(token.encode()).digest()
            vec[int.from_bytes(h[:4], "big") % (self._dim - 1)] += 1.0
        vec /= np.linalg.norm(vec)
        return vec.tolist()


class FixedEmbedder(EmbeddingProvider):
    """Returns pre-assigned vectors, for exact score control."""

    def __init__(self, vectors: dict[str, list[float]], dim: int = 3):
        self.vectors = vectors
        self._dim = dim

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [self.vectors[t] for t in texts]

    def embed_query(self, query: str) -> list[float]:
        return self.vectors[query]

    @property
    def dimension(self) -> int:
        return self._dim


class QueryOutageEmbedder(MockEmbedder):
    """Embeds documents normally; every query embedding fails to connect."""

    def embed_query(self, query: str) -> list[float]:
        raise httpx.ConnectError("connection refused")


class MockCompletionProvider(CompletionProvider):
    """Scripted completion provider.

    ``responses`` are returned (or raised, for exceptions) in order; the
    last one repeats. Callables are invoked with the messages and the
    response schema. Every call is recorded.
    """

    def __init__(self, responses: list[Any] | None = None, model: str = "mock-llm"):
        self.model = model
        self.responses = list(responses or [{"document_entities": []}])
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def complete(
        self,
        messages: list[dict[str, str]],
        *,
        response_schema: dict[str, Any],
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        with self._lock:
            self.calls.append({
                "messages": messages,
                "response_schema": response_schema,
                "temperature": temperature,
            })
            index = min(len(self.calls) - 1, len(self.responses) - 1)
            response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(messages, response_schema)
        return response


_FIGURES = {
    "services_revenue": re.compile(r"service\s+revenues\s+(?:reached|were)\s+PHP\s+([\d.]+)\s+billion"),
    "net_income": re.compile(r"Net\s+income\s+after\s+tax\s+(?:was|reached)\s+PHP\s+([\d.]+)\s+billion"),
}


def read_figures(messages: list[dict[str, str]], response_schema: dict[str, Any]) -> dict[str, Any]:
    """Answer like a careful model: read each requested figure from the context."""
    context = messages[-1]["content"]
    names = response_schema["properties"]["document_entities"]["items"]["required"]
    entity = {}
    for name in names:
        match = _FIGURES[name].search(context) if name in _FIGURES else None
        entity[name] = float(match.group(1)) * 1e9 if match else None
    return {"document_entities": [entity]}


class FlakyCompletionProvider(MockCompletionProvider):
    """Fails with ``ProviderTransient`` ``failures`` times, then succeeds."""

    def __init__(self, failures: int, payload: dict[str, Any]):
        super().__init__([ProviderTransient("rate limited")] * failures + [payload])


# ---------------------------------------------------------------------------
# Synthetic annual report content
# ---------------------------------------------------------------------------

GLOBE_REPORT = textwrap.dedent("""\
    Globe Telecom 2024 Integrated Report

    Message from the Chairman

    2024 was a year of disciplined growth. We expanded our 5G footprint to
    98% of cities and municipalities and deepened our digital ecosystem.

    Financial Highlights

    Consolidated service revenues reached PHP 163.4 billion in 2024, up 2%
    from the prior year, driven by mobile data and corporate data services.
    Mobile service revenues were PHP 112.5 billion.

    Net income after tax was PHP 23.5 billion, compared with PHP 24.6
    billion in 2023. Core net income was PHP 22.8 billion.

    Sustainability

    We planted 1.2 million trees and reduced Scope 2 emissions intensity.
""")

ACME_REPORT = textwrap.dedent("""\
    Acme Holdings Annual Report 2024

    Operations Review

    Consolidated service revenues were PHP 41.0 billion for the year.
    Net income after tax reached PHP 5.2 billion.

    Outlook

    We expect capital expenditure to remain flat in 2025.
""")


@pytest.fixture
def globe_report_text() -> str:
    return GLOBE_REPORT


@pytest.fixture
def report_dir(tmp_path: Path) -> Path:
    """A corpus directory with two reports and one unsupported file."""
    root = tmp_path / "reports"
    root.mkdir()
    (root / "Globe-2024-Integrated-Report.txt").write_text(GLOBE_REPORT, encoding="utf-8")
    (root / "Acme-2024-Annual-Report.txt").write_text(ACME_REPORT, encoding="utf-8")
    (root / "cover.png").write_bytes(b"\x89PNG\r\n\x1a\n")
    return root


@pytest.fixture
def sample_pdf_file(tmp_path: Path) -> Path:
    """Create a two-page PDF using fpdf2."""
    from fpdf import FPDF

    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)

    pdf.add_page()
    pdf.set_font("Helvetica", size=12)
    pdf.multi_cell(0, 10, text=(
        "Globe Telecom 2024 Integrated Report\n\n"
        "Consolidated service revenues reached PHP 163.4 billion in 2024."
    ))

    pdf.add_page()
    pdf.multi_cell(0, 10, text=(
        "Net income after tax was PHP 23.5 billion, "
        "compared with PHP 24.6 billion in 2023."
    ))

    p = tmp_path / "globe_2024.pdf"
    pdf.output(str(p))
    return p


@pytest.fixture
def sample_docx_file(tmp_path: Path) -> Path:
    """Create a minimal DOCX file."""
    from docx import Document

    doc = Document()
    doc.add_heading("Acme Holdings Annual Report 2024", level=1)
    doc.add_paragraph("Consolidated service revenues were PHP 41.0 billion for the year.")
    doc.add_paragraph("Net income after tax reached PHP 5.2 billion.")

    p = tmp_path / "acme_2024.docx"
    doc.save(str(p))
    return p


@pytest.fixture
def sample_xlsx_file(tmp_path: Path) -> Path:
    """Create a minimal Excel file with financial data."""
    import pandas as pd

    df = pd.DataFrame({
        "Metric": ["Service revenues", "Net income after tax"],
        "2023 (PHP bn)": [160.2, 24.6],
        "2024 (PHP bn)": [163.4, 23.5],
    })

    p = tmp_path / "globe_financials.xlsx"
    with pd.ExcelWriter(str(p), engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Highlights", index=False)
    return p


@pytest.fixture
def tasks_yaml(tmp_path: Path) -> Path:
    """The two extraction tasks of the annual report workflow."""
    p = tmp_path / "tasks.yaml"
    p.write_text(textwrap.dedent("""\
        tasks:
          - name: services_revenue
            queries:
              - What is the consolidated services revenue in 2024?
            k_per_query: 2
            fields:
              services_revenue:
                label: Consolidated Services Revenue
                description: Total consolidated service revenue in philippine pesos.
          - name: revenue_and_income
            queries:
              - What is the consolidated services revenue in 2024?
              - What is the net income after tax in 2024?
            k_per_query: 1
            fields:
              services_revenue:
                label: Consolidated Services Revenue
                description: Total consolidated service revenue in philippine pesos.
              net_income:
                label: Net Income After Tax
                description: Total net income after tax in philippine pesos.
    """), encoding="utf-8")
    return p


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedder() -> MockEmbedder:
    return MockEmbedder()


@pytest.fixture
def index(embedder: MockEmbedder) -> RetrievalIndex:
    return RetrievalIndex(embedder, MemoryStore(dimension=DIM))
