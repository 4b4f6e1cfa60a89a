"""Per-corpus record store — JSON Lines tables plus document state.

Layout under ``<workspace>/<corpus>/``::

    documents.jsonl     one row per parsed document (appended)
    extractions.jsonl   one row per extraction record (appended)
    state.json          current DocumentStatus per path
    index/              saved retrieval index
"""

from __future__ import annotations

import json
import logging
import math
import os
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

import pandas as pd

from reportrag.documents.schemas import Document
from reportrag.errors import InvalidParameter
from reportrag.extraction.schemas import ExtractionRecord
from reportrag.pipeline.schemas import DocumentStatus

logger = logging.getLogger(__name__)

DOCUMENT_COLUMNS = [
    "path", "file_url", "extracted_text", "error_info",
    "metadata", "processed_at", "token_count",
]
EXTRACTION_COLUMNS = [
    "source_path", "task", "context", "document_entities",
    "queries", "model", "context_tokens", "created_at",
]


class RecordStore:
    """Filesystem tables for one named corpus."""

    def __init__(self, workspace: str | Path, corpus: str):
        if not corpus or corpus.startswith(".") or Path(corpus).name != corpus:
            raise InvalidParameter(f"Invalid corpus name: {corpus!r}")
        self.corpus = corpus
        self.root = Path(workspace) / corpus
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def documents_path(self) -> Path:
        return self.root / "documents.jsonl"

    @property
    def extractions_path(self) -> Path:
        return self.root / "extractions.jsonl"

    @property
    def state_path(self) -> Path:
        return self.root / "state.json"

    @property
    def index_dir(self) -> Path:
        return self.root / "index"

    @staticmethod
    def list_corpora(workspace: str | Path) -> list[str]:
        root = Path(workspace)
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if (p / "state.json").exists())

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def append_documents(self, documents: Iterable[Document]) -> int:
        return self._append(self.documents_path, [d.to_row() for d in documents])

    def append_extractions(self, records: Iterable[ExtractionRecord]) -> int:
        return self._append(self.extractions_path, [r.to_row() for r in records])

    def load_documents(self) -> pd.DataFrame:
        return self._load(self.documents_path, DOCUMENT_COLUMNS)

    def load_extractions(self) -> pd.DataFrame:
        return self._load(self.extractions_path, EXTRACTION_COLUMNS)

    def latest_documents(self) -> dict[str, Document]:
        """Most recent row per path, rebuilt as ``Document`` objects."""
        df = self.load_documents()
        if df.empty:
            return {}
        latest = df.drop_duplicates(subset="path", keep="last")

        documents: dict[str, Document] = {}
        for row in latest.to_dict(orient="records"):
            documents[row["path"]] = Document(
                path=row["path"],
                file_url=row["file_url"],
                extracted_text=_value(row, "extracted_text") or "",
                error_info=_value(row, "error_info") or None,
                metadata=_value(row, "metadata") or {},
                processed_at=datetime.fromisoformat(row["processed_at"]),
                token_count=int(_value(row, "token_count") or 0),
            )
        return documents

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def save_states(self, states: Iterable[DocumentStatus]) -> None:
        payload = {"corpus": self.corpus, "documents": [s.to_dict() for s in states]}
        tmp = self.state_path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp, self.state_path)

    def load_states(self) -> dict[str, DocumentStatus]:
        if not self.state_path.exists():
            return {}
        with open(self.state_path, encoding="utf-8") as fh:
            payload = json.load(fh)
        return {
            item["path"]: DocumentStatus.from_dict(item)
            for item in payload.get("documents", [])
        }

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    @staticmethod
    def _append(path: Path, rows: list[dict]) -> int:
        if not rows:
            return 0
        pd.DataFrame(rows).to_json(
            path, orient="records", lines=True, mode="a", double_precision=15
        )
        logger.info("Appended %d rows to %s", len(rows), path.name)
        return len(rows)

    @staticmethod
    def _load(path: Path, columns: list[str]) -> pd.DataFrame:
        if not path.exists() or path.stat().st_size == 0:
            return pd.DataFrame(columns=columns)
        return pd.read_json(path, orient="records", lines=True, dtype=False, convert_dates=False)


def _value(row: dict, key: str):
    """Row value with pandas' NaN placeholders mapped to ``None``."""
    value = row.get(key)
    if isinstance(value, float) and math.isnan(value):
        return None
    return value
