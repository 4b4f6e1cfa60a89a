"""Load extraction tasks from YAML.

A task file holds a list of tasks (or ``{"tasks": [...]}``)::

    tasks:
      - name: services_revenue
        queries:
          - What is the consolidated services revenue in 2024?
        k_per_query: 2
        fields:
          services_revenue:
            label: Consolidated Services Revenue
            description: Total consolidated service revenue in philippine pesos.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from reportrag.errors import InvalidParameter
from reportrag.extraction.schemas import ExtractionSchema, ExtractionTask
from reportrag.vectorstore.filters import filter_from_dict

logger = logging.getLogger(__name__)


def load_tasks(path: str | Path, default_k: int = 1) -> list[ExtractionTask]:
    """Load tasks from a YAML file or a directory of YAML files.

    ``default_k`` applies to tasks that do not set ``k_per_query``.
    """
    p = Path(path)
    tasks: list[ExtractionTask] = []

    if p.is_file():
        tasks.extend(_parse_yaml(p, default_k))
    elif p.is_dir():
        for yaml_file in sorted(p.glob("*.yaml")) + sorted(p.glob("*.yml")):
            tasks.extend(_parse_yaml(yaml_file, default_k))
    else:
        raise FileNotFoundError(f"Task path not found: {path}")

    logger.info("Loaded %d extraction tasks from %s", len(tasks), path)
    return tasks


def task_from_dict(item: dict, default_name: str = "task", default_k: int = 1) -> ExtractionTask:
    if "fields" not in item or "queries" not in item:
        raise InvalidParameter(f"Task {item.get('name', default_name)!r} needs queries and fields")
    queries = item["queries"]
    if isinstance(queries, str):
        queries = [queries]
    return ExtractionTask(
        name=item.get("name", default_name),
        queries=list(queries),
        schema=ExtractionSchema.from_mapping(item["fields"]),
        k_per_query=int(item.get("k_per_query", default_k)),
        results_per_query=item.get("results_per_query"),
        filter=filter_from_dict(item.get("filter")),
        system_prompt=item.get("system_prompt"),
        relax_filter_on_empty=bool(item.get("relax_filter_on_empty", False)),
    )


def _parse_yaml(path: Path, default_k: int) -> list[ExtractionTask]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return []

    raw_tasks = data if isinstance(data, list) else data.get("tasks", [data])
    return [
        task_from_dict(item, f"{path.stem}_{i}", default_k) for i, item in enumerate(raw_tasks)
    ]
