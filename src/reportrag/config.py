"""Application settings loaded from YAML with environment variable overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Settings sections
# ---------------------------------------------------------------------------


class EmbeddingSettings(BaseModel):
    provider: str = "ollama"
    model: str = "nomic-embed-text"
    dimension: int = 768
    batch_size: int = 32


class VectorStoreSettings(BaseModel):
    backend: str = "memory"
    collection: str = "report_chunks"
    url: str | None = None
    path: str | None = None


class LLMSettings(BaseModel):
    provider: str = "ollama"
    model: str = "llama3.1:8b"
    temperature: float = 0.0
    max_tokens: int = 2048
    timeout: float = 120.0


class ChunkingSettings(BaseModel):
    chunk_size: int = 500
    overlap: int = 100


class RetrievalSettings(BaseModel):
    k_per_query: int = 1
    separator: str = " | "
    target_lag_seconds: float = 0.0


class ExtractionSettings(BaseModel):
    max_attempts: int = 4
    backoff_multiplier: float = 1.0
    backoff_max: float = 30.0
    max_workers: int = 4


class IngestionSettings(BaseModel):
    supported_formats: list[str] = Field(
        default_factory=lambda: [".pdf", ".docx", ".txt", ".xlsx"]
    )
    max_file_size_mb: int = 100


class PipelineSettings(BaseModel):
    workspace: str = "local_data/corpora"
    max_workers: int = 4


class LoggingSettings(BaseModel):
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    vectorstore: VectorStoreSettings = Field(default_factory=VectorStoreSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _find_settings_file() -> Path | None:
    """Walk up from cwd looking for settings.yaml."""
    profile = os.getenv("REPORTRAG_PROFILE", "")
    names = [f"settings-{profile}.yaml", "settings.yaml"] if profile else ["settings.yaml"]

    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        for name in names:
            candidate = parent / name
            if candidate.exists():
                return candidate
    return None


def load_settings() -> Settings:
    """Load settings from YAML file, falling back to defaults."""
    path = _find_settings_file()
    raw: dict = {}
    if path is not None:
        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

    settings = Settings(**raw)

    level = os.getenv("REPORTRAG_LOG_LEVEL")
    if level:
        settings.logging.level = level.upper()
    return settings
