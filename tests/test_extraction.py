"""Tests for extraction schemas, payload validation and the orchestrator."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from reportrag.errors import (
    EmptyContext,
    InvalidParameter,
    ProviderError,
    ProviderUnavailable,
    SchemaViolation,
)
from reportrag.extraction import (
    ExtractionOrchestrator,
    ExtractionRequest,
    ExtractionSchema,
    FieldSpec,
    build_system_prompt,
    load_tasks,
    task_from_dict,
    validate_payload,
)
from reportrag.retrieval import IndexRecord, RetrievalIndex
from reportrag.vectorstore import Eq

from conftest import FlakyCompletionProvider, MockCompletionProvider

REVENUE = FieldSpec(
    name="services_revenue",
    description="Total consolidated service revenue in philippine pesos.",
    label="Consolidated Services Revenue",
)
NET_INCOME = FieldSpec(
    name="net_income",
    description="Total net income after tax in philippine pesos.",
    label="Net Income After Tax",
)
SCHEMA = ExtractionSchema(fields=(REVENUE, NET_INCOME))

HIT_REVENUE = "Consolidated service revenues reached PHP 163.4 billion in 2024."
HIT_INCOME = "Net income after tax was PHP 23.5 billion."
PAYLOAD = {"document_entities": [{"services_revenue": 163.4e9, "net_income": 23.5e9}]}


@pytest.fixture
def loaded_index(index: RetrievalIndex) -> RetrievalIndex:
    index.index([
        IndexRecord(text=HIT_REVENUE, attributes={"relative_path": "globe.pdf", "sequence_index": 0}),
        IndexRecord(text=HIT_INCOME, attributes={"relative_path": "globe.pdf", "sequence_index": 1}),
        IndexRecord(
            text="We planted 1.2 million trees.",
            attributes={"relative_path": "globe.pdf", "sequence_index": 2},
        ),
    ])
    return index


def _request(**overrides) -> ExtractionRequest:
    kwargs = {
        "queries": [
            "What is the consolidated services revenue in 2024?",
            "What is the net income after tax in 2024?",
        ],
        "schema": SCHEMA,
        "k_per_query": 1,
    }
    kwargs.update(overrides)
    return ExtractionRequest(**kwargs)


class SlowFirstQueryIndex:
    """Delays the first query so later ones finish first."""

    def __init__(self, inner: RetrievalIndex, first: str, delay: float = 0.2):
        self.inner = inner
        self.first = first
        self.delay = delay
        self.finished: list[str] = []
        self._lock = threading.Lock()

    def query(self, text, k=1, filter=None):
        if text == self.first:
            time.sleep(self.delay)
        result = self.inner.query(text, k=k, filter=filter)
        with self._lock:
            self.finished.append(text)
        return result


# ---------------------------------------------------------------------------
# Schema declarations
# ---------------------------------------------------------------------------


class TestFieldSpec:
    @pytest.mark.parametrize("name", ["", "net income", "2024_revenue", "net-income"])
    def test_name_must_be_identifier(self, name: str):
        with pytest.raises(InvalidParameter):
            FieldSpec(name=name, description="x")

    def test_unsupported_type(self):
        with pytest.raises(InvalidParameter, match="unsupported type"):
            FieldSpec(name="ceo", description="Name of the CEO", type="string")

    def test_display_label(self):
        assert REVENUE.display_label == "Consolidated Services Revenue"
        assert FieldSpec(name="net_income", description="x").display_label == "Net Income"

    def test_json_schema_is_nullable_number(self):
        assert NET_INCOME.to_json_schema() == {
            "type": ["number", "null"],
            "description": "Total net income after tax in philippine pesos.",
        }


class TestExtractionSchema:
    def test_empty_rejected(self):
        with pytest.raises(InvalidParameter):
            ExtractionSchema(fields=())

    def test_duplicate_names_rejected(self):
        with pytest.raises(InvalidParameter, match="Duplicate"):
            ExtractionSchema(fields=(REVENUE, REVENUE))

    def test_from_mapping(self):
        schema = ExtractionSchema.from_mapping({
            "services_revenue": "Total service revenue.",
            "net_income": {"description": "Net income.", "label": "Net Income After Tax"},
        })
        assert schema.names == ["services_revenue", "net_income"]
        assert schema.fields[1].display_label == "Net Income After Tax"

    def test_from_mapping_rejects_other_values(self):
        with pytest.raises(InvalidParameter):
            ExtractionSchema.from_mapping({"net_income": 5})

    def test_json_schema_shape(self):
        js = SCHEMA.to_json_schema()
        items = js["properties"]["document_entities"]["items"]
        assert js["required"] == ["document_entities"]
        assert items["required"] == ["services_revenue", "net_income"]
        assert items["additionalProperties"] is False
        assert set(items["properties"]) == {"services_revenue", "net_income"}

    def test_hashable(self):
        assert hash(SCHEMA) == hash(ExtractionSchema(fields=(REVENUE, NET_INCOME)))


class TestExtractionRequest:
    def test_needs_queries(self):
        with pytest.raises(InvalidParameter):
            ExtractionRequest(queries=[], schema=SCHEMA)

    def test_k_positive(self):
        with pytest.raises(InvalidParameter):
            _request(k_per_query=0)

    def test_results_per_query_within_k(self):
        with pytest.raises(InvalidParameter):
            _request(k_per_query=2, results_per_query=3)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestPrompt:
    def test_lists_every_field(self):
        prompt = build_system_prompt(SCHEMA)
        assert "annual report" in prompt
        assert (
            "* `Consolidated Services Revenue`: "
            "Total consolidated service revenue in philippine pesos."
        ) in prompt
        assert "* `Net Income After Tax`: Total net income after tax in philippine pesos." in prompt

    def test_custom_template(self):
        assert build_system_prompt(SCHEMA, "Fields:\n{fields}").startswith("Fields:\n* `Consol")


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------


class TestValidatePayload:
    def test_valid_payload(self):
        assert validate_payload(SCHEMA, PAYLOAD) == [
            {"services_revenue": 163.4e9, "net_income": 23.5e9},
        ]

    def test_missing_field_is_violation(self):
        with pytest.raises(SchemaViolation) as excinfo:
            validate_payload(SCHEMA, {"document_entities": [{"services_revenue": 1.0}]})
        assert any("net_income" in d for d in excinfo.value.details)

    def test_null_value_accepted(self):
        result = validate_payload(
            SCHEMA, {"document_entities": [{"services_revenue": 1.0, "net_income": None}]}
        )
        assert result == [{"services_revenue": 1.0, "net_income": None}]

    def test_unknown_key_rejected(self):
        payload = {"document_entities": [{"services_revenue": 1.0, "net_income": 2.0, "ceo": 3.0}]}
        with pytest.raises(SchemaViolation):
            validate_payload(SCHEMA, payload)

    @pytest.mark.parametrize("value", [True, "23.5", [23.5], {"amount": 23.5}])
    def test_non_numbers_rejected(self, value):
        payload = {"document_entities": [{"services_revenue": 1.0, "net_income": value}]}
        with pytest.raises(SchemaViolation):
            validate_payload(SCHEMA, payload)

    def test_int_normalized_to_float(self):
        result = validate_payload(
            SCHEMA, {"document_entities": [{"services_revenue": 163, "net_income": 23}]}
        )
        assert result == [{"services_revenue": 163.0, "net_income": 23.0}]
        assert isinstance(result[0]["net_income"], float)

    def test_missing_entities_key(self):
        with pytest.raises(SchemaViolation):
            validate_payload(SCHEMA, {"entities": []})

    def test_empty_entity_list_allowed(self):
        assert validate_payload(SCHEMA, {"document_entities": []}) == []

    def test_field_named_like_model_attribute(self):
        schema = ExtractionSchema(fields=(FieldSpec(name="schema", description="x"),))
        assert validate_payload(schema, {"document_entities": [{"schema": 1}]}) == [{"schema": 1.0}]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class TestOrchestratorContext:
    def test_context_in_query_order(self, loaded_index: RetrievalIndex):
        provider = MockCompletionProvider([PAYLOAD])
        record = ExtractionOrchestrator(loaded_index, provider).extract(_request())

        assert record.context == f"{HIT_REVENUE} | {HIT_INCOME}"
        assert record.document_entities == PAYLOAD["document_entities"]
        assert provider.calls[0]["messages"][1]["content"] == record.context

    def test_order_independent_of_completion_order(self, loaded_index: RetrievalIndex):
        request = _request()
        slow = SlowFirstQueryIndex(loaded_index, first=request.queries[0])
        orchestrator = ExtractionOrchestrator(slow, MockCompletionProvider([PAYLOAD]))

        record = orchestrator.extract(request)

        assert slow.finished == list(reversed(request.queries))
        assert record.context == f"{HIT_REVENUE} | {HIT_INCOME}"

    def test_custom_separator(self, loaded_index: RetrievalIndex):
        orchestrator = ExtractionOrchestrator(
            loaded_index, MockCompletionProvider([PAYLOAD]), separator="\n\n"
        )
        assert orchestrator.extract(_request()).context == f"{HIT_REVENUE}\n\n{HIT_INCOME}"

    def test_results_per_query(self, loaded_index: RetrievalIndex):
        orchestrator = ExtractionOrchestrator(loaded_index, MockCompletionProvider([PAYLOAD]))
        record = orchestrator.extract(_request(k_per_query=2, results_per_query=1))
        assert record.context == f"{HIT_REVENUE} | {HIT_INCOME}"

    def test_messages_and_settings(self, loaded_index: RetrievalIndex):
        provider = MockCompletionProvider([PAYLOAD], model="llama3.1:8b")
        record = ExtractionOrchestrator(loaded_index, provider).extract(
            _request(source_path="globe.pdf")
        )
        call = provider.calls[0]

        assert call["temperature"] == 0.0
        assert call["messages"][0] == {"role": "system", "content": build_system_prompt(SCHEMA)}
        assert call["response_schema"] == SCHEMA.to_json_schema()
        assert record.model == "llama3.1:8b"
        assert record.source_path == "globe.pdf"
        assert record.context_tokens > 0

    def test_custom_system_prompt(self, loaded_index: RetrievalIndex):
        provider = MockCompletionProvider([PAYLOAD])
        ExtractionOrchestrator(loaded_index, provider).extract(_request(system_prompt="Be brief."))
        assert provider.calls[0]["messages"][0]["content"] == "Be brief."


class TestOrchestratorFailures:
    def test_empty_context(self, loaded_index: RetrievalIndex):
        provider = MockCompletionProvider([PAYLOAD])
        request = _request(filter=Eq("relative_path", "missing.pdf"))

        with pytest.raises(EmptyContext) as excinfo:
            ExtractionOrchestrator(loaded_index, provider).extract(request)

        assert excinfo.value.queries == request.queries
        assert provider.calls == []

    def test_empty_index(self, index: RetrievalIndex):
        with pytest.raises(EmptyContext):
            ExtractionOrchestrator(index, MockCompletionProvider([PAYLOAD])).extract(_request())

    def test_relaxed_filter_on_empty(self, loaded_index: RetrievalIndex):
        request = _request(filter=Eq("relative_path", "missing.pdf"), relax_filter_on_empty=True)
        record = ExtractionOrchestrator(loaded_index, MockCompletionProvider([PAYLOAD])).extract(request)
        assert record.context == f"{HIT_REVENUE} | {HIT_INCOME}"

    def test_schema_violation_not_retried(self, loaded_index: RetrievalIndex):
        provider = MockCompletionProvider([{"document_entities": [{"services_revenue": 1.0}]}])
        with pytest.raises(SchemaViolation):
            ExtractionOrchestrator(loaded_index, provider, backoff_multiplier=0).extract(_request())
        assert len(provider.calls) == 1

    def test_rejected_request_not_retried(self, loaded_index: RetrievalIndex):
        provider = MockCompletionProvider([ProviderError("HTTP 400: unknown model"), PAYLOAD])
        with pytest.raises(ProviderError):
            ExtractionOrchestrator(loaded_index, provider, backoff_multiplier=0).extract(_request())
        assert len(provider.calls) == 1

    def test_transient_failures_retried(self, loaded_index: RetrievalIndex):
        provider = FlakyCompletionProvider(failures=2, payload=PAYLOAD)
        orchestrator = ExtractionOrchestrator(loaded_index, provider, backoff_multiplier=0)

        record = orchestrator.extract(_request())

        assert len(provider.calls) == 3
        assert record.document_entities == PAYLOAD["document_entities"]

    def test_retries_exhausted(self, loaded_index: RetrievalIndex):
        provider = FlakyCompletionProvider(failures=10, payload=PAYLOAD)
        orchestrator = ExtractionOrchestrator(
            loaded_index, provider, max_attempts=3, backoff_multiplier=0
        )

        with pytest.raises(ProviderUnavailable) as excinfo:
            orchestrator.extract(_request())

        assert excinfo.value.attempts == 3
        assert len(provider.calls) == 3

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"max_workers": 0}])
    def test_invalid_construction(self, index: RetrievalIndex, kwargs):
        with pytest.raises(InvalidParameter):
            ExtractionOrchestrator(index, MockCompletionProvider(), **kwargs)


# ---------------------------------------------------------------------------
# Task files
# ---------------------------------------------------------------------------


class TestTasks:
    def test_load_tasks(self, tasks_yaml: Path):
        tasks = load_tasks(tasks_yaml)
        assert [t.name for t in tasks] == ["services_revenue", "revenue_and_income"]
        assert tasks[0].k_per_query == 2
        assert tasks[1].schema.names == ["services_revenue", "net_income"]
        assert len(tasks[1].queries) == 2

    def test_load_directory(self, tasks_yaml: Path):
        assert len(load_tasks(tasks_yaml.parent)) == 2

    def test_missing_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_tasks(tmp_path / "nope.yaml")

    def test_task_needs_fields(self):
        with pytest.raises(InvalidParameter):
            task_from_dict({"name": "x", "queries": ["q"]})

    def test_task_validated_on_load(self):
        with pytest.raises(InvalidParameter):
            task_from_dict({"queries": ["q"], "fields": {"net_income": "x"}, "k_per_query": 0})

    def test_default_k(self, tasks_yaml: Path):
        tasks_yaml.write_text(
            "- name: income\n  queries: [q]\n  fields:\n    net_income: Net income.\n"
        )
        assert load_tasks(tasks_yaml, default_k=3)[0].k_per_query == 3

    def test_to_request_combines_filters(self):
        task = task_from_dict({
            "name": "income",
            "queries": "What is the net income?",
            "fields": {"net_income": "Net income after tax."},
            "filter": {"year": 2024},
        })
        request = task.to_request("globe.pdf", Eq("relative_path", "globe.pdf"))
        assert request.source_path == "globe.pdf"
        assert request.filter.equalities() == [("relative_path", "globe.pdf"), ("year", 2024)]
