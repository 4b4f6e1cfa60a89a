"""CLI entry point — Typer app for reportrag commands.

Usage:
    reportrag ingest annual_reports ./reports
    reportrag extract annual_reports --task tasks.yaml
    reportrag extract annual_reports -q "What is the net income after tax?" \
        -f "net_income:Total net income after tax in philippine pesos."
    reportrag status annual_reports
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="reportrag",
    help="Annual report extraction — ingest, index, extract.",
    no_args_is_help=True,
)

console = Console()

_CORPUS = typer.Argument(..., help="Corpus name (a directory under the workspace)")
_SOURCE_DIR = typer.Argument(..., help="Directory of documents to ingest")


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Override the configured log level",
    ),
) -> None:
    """Configure logging for every command."""
    from reportrag.config import load_settings

    level = (log_level or load_settings().logging.level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.command()
def ingest(
    corpus: Annotated[str, _CORPUS],
    source_dir: Annotated[Path, _SOURCE_DIR],
    force: bool = typer.Option(
        False, "--force", help="Re-parse documents that were already ingested",
    ),
) -> None:
    """Parse, chunk and index every document in SOURCE_DIR."""
    from reportrag.pipeline.coordinator import PipelineCoordinator

    if not source_dir.is_dir():
        raise typer.BadParameter(f"not a directory: {source_dir}", param_hint="SOURCE_DIR")

    coordinator = PipelineCoordinator.from_settings(corpus, with_extraction=False)
    summary = coordinator.ingest_dir(source_dir, force=force)

    table = Table(title=f"Ingest — {corpus}")
    table.add_column("Ingested", justify="right")
    table.add_column("Errored", justify="right")
    table.add_column("Indexed", justify="right")
    table.add_column("Chunks", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_row(
        str(summary.ingested), str(summary.errored), str(summary.indexed),
        str(summary.chunks_indexed), str(summary.skipped),
    )
    console.print(table)
    _print_failures(summary.failures)


@app.command()
def extract(
    corpus: Annotated[str, _CORPUS],
    task_file: Path | None = typer.Option(
        None, "--task", "-t", help="YAML file of extraction tasks",
    ),
    queries: list[str] | None = typer.Option(
        None, "--query", "-q", help="Retrieval query (repeatable, kept in order)",
    ),
    fields: list[str] | None = typer.Option(
        None, "--field", "-f", help="Output field as name:description (repeatable)",
    ),
    k: int | None = typer.Option(
        None, "--k", "-k", help="Hits per query for tasks that do not set k_per_query",
    ),
    force: bool = typer.Option(
        False, "--force", help="Re-extract documents that already finished",
    ),
) -> None:
    """Extract structured fields from every indexed document."""
    from reportrag.config import load_settings
    from reportrag.errors import InvalidParameter
    from reportrag.extraction.schemas import ExtractionSchema, ExtractionTask
    from reportrag.extraction.tasks import load_tasks
    from reportrag.pipeline.coordinator import PipelineCoordinator

    settings = load_settings()
    default_k = k if k is not None else settings.retrieval.k_per_query

    if task_file is not None:
        try:
            tasks = load_tasks(task_file, default_k=default_k)
        except (FileNotFoundError, InvalidParameter) as exc:
            raise typer.BadParameter(str(exc), param_hint="--task") from exc
    elif queries and fields:
        try:
            tasks = [ExtractionTask(
                name="adhoc",
                queries=list(queries),
                schema=ExtractionSchema.from_mapping(_parse_fields(fields)),
                k_per_query=default_k,
            )]
        except InvalidParameter as exc:
            raise typer.BadParameter(str(exc)) from exc
    else:
        raise typer.BadParameter("give --task, or at least one --query and one --field")

    coordinator = PipelineCoordinator.from_settings(corpus, settings)
    summary = coordinator.extract(tasks, force=force)

    table = Table(title=f"Extract — {corpus} ({', '.join(summary.tasks)})")
    table.add_column("Requested", justify="right")
    table.add_column("Extracted", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_row(
        str(summary.requested), str(summary.extracted),
        str(summary.failed), str(summary.skipped),
    )
    console.print(table)

    if summary.records:
        results = Table(title="Extracted values")
        results.add_column("Document", style="cyan")
        results.add_column("Task")
        results.add_column("Entities")
        for record in summary.records:
            results.add_row(
                record.source_path or "", record.task,
                "; ".join(_format_entity(e) for e in record.document_entities) or "—",
            )
        console.print(results)

    _print_failures(summary.failures)


@app.command()
def status(
    corpus: str | None = typer.Argument(None, help="Corpus to inspect (default: list all)"),
) -> None:
    """Show document states for a corpus, or list corpora."""
    from reportrag import __version__
    from reportrag.config import load_settings
    from reportrag.pipeline.records import RecordStore

    settings = load_settings()
    workspace = settings.pipeline.workspace
    console.print(f"\n[bold green]report-extraction-rag[/] v{__version__}  [dim]{workspace}[/]\n")

    if corpus is None:
        table = Table(title="Corpora")
        table.add_column("Corpus", style="cyan")
        table.add_column("Documents", justify="right")
        table.add_column("Extractions", justify="right")
        for name in RecordStore.list_corpora(workspace):
            store = RecordStore(workspace, name)
            table.add_row(name, str(len(store.load_states())), str(len(store.load_extractions())))
        console.print(table)
        return

    if corpus not in RecordStore.list_corpora(workspace):
        console.print(f"[yellow]No records for corpus {corpus!r}[/]")
        raise typer.Exit(code=1)

    store = RecordStore(workspace, corpus)
    table = Table(title=f"Documents — {corpus}")
    table.add_column("Path", style="cyan")
    table.add_column("State")
    table.add_column("Chunks", justify="right")
    table.add_column("Error")
    for path, doc_status in sorted(store.load_states().items()):
        table.add_row(
            path, str(doc_status.state), str(doc_status.chunk_count), doc_status.error or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_fields(specs: list[str]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for spec in specs:
        name, sep, description = spec.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"expected name:description, got {spec!r}", param_hint="--field")
        fields[name.strip()] = description.strip()
    return fields


def _format_entity(entity: dict[str, float | None]) -> str:
    return ", ".join(
        f"{name}={'null' if value is None else f'{value:,.2f}'}" for name, value in entity.items()
    )


def _print_failures(failures) -> None:
    if not failures:
        return
    table = Table(title="Failures", style="red")
    table.add_column("Document", style="cyan")
    table.add_column("Stage")
    table.add_column("Error")
    for f in failures:
        where = f.path
        if f.record_id:
            where = f"{where} ({f.record_id})"
        if f.task:
            where = f"{where} [{f.task}]"
        table.add_row(where, f.stage, f"{f.error_type}: {f.error}" if f.error_type else f.error)
    console.print(table)


if __name__ == "__main__":
    app()
