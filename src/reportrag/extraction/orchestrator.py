"""Extraction orchestrator — retrieve context, call the model, validate.

Flow per request:
1. Run every query against the retrieval index (concurrently) and keep the
   results in query order.
2. Join the hit texts into one context string.
3. Ask the completion provider for a schema-constrained payload, retrying
   transient failures with exponential backoff.
4. Validate the payload into typed entities.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from reportrag.documents.parser import count_tokens
from reportrag.errors import EmptyContext, InvalidParameter, ProviderTransient, ProviderUnavailable
from reportrag.extraction.prompts import build_system_prompt
from reportrag.extraction.schemas import ExtractionRecord, ExtractionRequest
from reportrag.extraction.validation import validate_payload
from reportrag.llm.base import CompletionProvider
from reportrag.retrieval.index import RetrievalIndex
from reportrag.retrieval.schemas import RetrievalResult
from reportrag.vectorstore.filters import FilterExpr

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = " | "


class ExtractionOrchestrator:
    """Turns an ``ExtractionRequest`` into a validated ``ExtractionRecord``."""

    def __init__(
        self,
        index: RetrievalIndex,
        provider: CompletionProvider,
        separator: str = DEFAULT_SEPARATOR,
        max_attempts: int = 4,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 30.0,
        max_workers: int = 4,
        temperature: float = 0.0,
    ):
        if max_attempts <= 0:
            raise InvalidParameter(f"max_attempts must be positive, got {max_attempts}")
        if max_workers <= 0:
            raise InvalidParameter(f"max_workers must be positive, got {max_workers}")

        self.index = index
        self.provider = provider
        self.separator = separator
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self.max_workers = max_workers
        self.temperature = temperature

    @property
    def model_name(self) -> str:
        return getattr(self.provider, "model", None) or self.provider.provider_name()

    def extract(self, request: ExtractionRequest) -> ExtractionRecord:
        """Run one extraction.

        Raises:
            EmptyContext: Every query returned zero hits.
            SchemaViolation: The provider output does not match the schema.
            ProviderUnavailable: Transient provider failures outlasted retries.
            ProviderError: The provider rejected the request.
            RetrievalError: A query could not be embedded.
        """
        results = self.retrieve(request.queries, request.k_per_query, request.filter)

        if not any(results) and request.relax_filter_on_empty and request.filter is not None:
            logger.warning(
                "No hits for %s with filter %r; retrying without filter",
                request.source_path or "request", request.filter,
            )
            results = self.retrieve(request.queries, request.k_per_query, None)

        if not any(results):
            raise EmptyContext(request.queries, request.filter)

        context = self.build_context(results, request.results_per_query)
        system_prompt = request.system_prompt or build_system_prompt(request.schema)
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": context},
        ]

        payload = self._complete(messages, request.schema.to_json_schema())
        entities = validate_payload(request.schema, payload)

        logger.info(
            "Extracted %d entities for %s", len(entities), request.source_path or "request"
        )
        return ExtractionRecord(
            source_path=request.source_path,
            context=context,
            document_entities=entities,
            queries=list(request.queries),
            model=self.model_name,
            context_tokens=count_tokens(context),
        )

    def retrieve(
        self,
        queries: list[str],
        k: int,
        filter: FilterExpr | None = None,
    ) -> list[RetrievalResult]:
        """Query the index for each query; results come back in query order."""
        if len(queries) == 1:
            return [self.index.query(queries[0], k=k, filter=filter)]

        workers = min(self.max_workers, len(queries))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order whatever the completion order
            return list(pool.map(lambda q: self.index.query(q, k=k, filter=filter), queries))

    def build_context(
        self,
        results: list[RetrievalResult],
        results_per_query: int | None = None,
    ) -> str:
        texts: list[str] = []
        for result in results:
            hits = result.texts
            texts.extend(hits if results_per_query is None else hits[:results_per_query])
        return self.separator.join(texts)

    def _complete(self, messages: list[dict[str, str]], response_schema: dict) -> dict:
        retrying = Retrying(
            retry=retry_if_exception_type(ProviderTransient),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier, max=self.backoff_max),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            return retrying(
                self.provider.complete,
                messages,
                response_schema=response_schema,
                temperature=self.temperature,
            )
        except ProviderTransient as exc:
            raise ProviderUnavailable(
                f"{self.provider.provider_name()} unavailable after "
                f"{self.max_attempts} attempts: {exc}",
                attempts=self.max_attempts,
            ) from exc
