import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from tooldex.config import Config
from tooldex.dedup import DeduplicationConfig, DeduplicationResult, Deduplicator
from tooldex.dedup.strategies import DedupItem
from tooldex.embedder import Embedder
from tooldex.errors import ConfigurationError
from tooldex.logging import get_logger
from tooldex.overrides import merge_config
from tooldex.registry import PartitionRegistry
from tooldex.routing import QueryAnalysis, QueryRouter, RoutingDecision
from tooldex.search import (
    DeduplicationMonitor,
    FusedResult,
    FusionConfig,
    RankedResultSet,
    RankFusionEngine,
    SearchExecutor,
    SearchMetrics,
    SearchOptions,
)
from tooldex.stores.base import DocumentStore, EmbeddingProvider, VectorStore
from tooldex.stores.sqlite import SqliteStore
from tooldex.utils import Stopwatch
from tooldex.validation import ConsistencyValidator, HealthReport, unavailable_report

_logger = get_logger(__name__)


@dataclass
class SearchResponse:
    results: list[DedupItem]
    routing: RoutingDecision
    analysis: QueryAnalysis
    partition_results: list[RankedResultSet] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    duplicates_removed: int = 0
    total_latency_ms: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.errors)


class SearchEngine:
    """Routing, fan-out search, fusion, dedup and consistency checks behind one object."""

    def __init__(
        self,
        registry: PartitionRegistry,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        document_store: DocumentStore | None = None,
        search_options: SearchOptions | None = None,
        fusion: FusionConfig | None = None,
        deduplication: DeduplicationConfig | None = None,
        sample_size: int | None = None,
        expected_dimension: int | None = None,
    ):
        self.registry = registry
        self.metrics = SearchMetrics()
        self.dedup_monitor = DeduplicationMonitor()
        self.router = QueryRouter(registry)
        self.executor = SearchExecutor(registry, embedder, vector_store, search_options, self.metrics)
        self.fusion = RankFusionEngine(fusion or FusionConfig(source_weights=registry.partition_weights()))
        self.deduplicator = Deduplicator(deduplication, monitor=self.dedup_monitor)

        self.validator: ConsistencyValidator | None = None
        if document_store is not None:
            validator_kwargs: dict[str, Any] = {"expected_dimension": expected_dimension}
            if sample_size is not None:
                validator_kwargs["sample_size"] = sample_size
            self.validator = ConsistencyValidator(
                registry, document_store, vector_store, embedder, **validator_kwargs
            )

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: SqliteStore,
        registry: PartitionRegistry | None = None,
        embedder: EmbeddingProvider | None = None,
    ) -> "SearchEngine":
        registry = registry or PartitionRegistry()
        return cls(
            registry=registry,
            embedder=embedder or Embedder(config.embedding),
            vector_store=store,
            document_store=store,
            search_options=config.search_options,
            fusion=merge_config(config.fusion, {"source_weights": registry.partition_weights()}),
            deduplication=config.deduplication,
            sample_size=config.sample_size,
            expected_dimension=config.embedding.dim,
        )

    def route(
        self,
        query: str,
        partitions: Sequence[str] | None = None,
        vector_types: Sequence[str] | None = None,
    ) -> RoutingDecision:
        return self.router.route(query, partitions, vector_types)

    def analyze(self, query: str) -> QueryAnalysis:
        return self.router.analyze(query)

    async def search(
        self,
        query: str,
        routing: RoutingDecision | Sequence[str],
        options: SearchOptions | Mapping[str, Any] | None = None,
        vector_types: Sequence[str] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[RankedResultSet]:
        return await self.executor.search(query, routing, vector_types, options, cancel)

    def fuse(
        self,
        result_sets: Sequence[RankedResultSet],
        config: FusionConfig | Mapping[str, Any] | None = None,
    ) -> list[FusedResult]:
        return self.fusion.fuse(result_sets, config)

    def deduplicate(
        self,
        results: Sequence[DedupItem],
        config: DeduplicationConfig | Mapping[str, Any] | None = None,
    ) -> DeduplicationResult:
        return self.deduplicator.deduplicate(results, config)

    async def validate_consistency(self) -> HealthReport:
        if self.validator is None:
            _logger.warning("Consistency validation skipped: no document store configured")
            return unavailable_report(self.registry, "No document store configured")
        return await self.validator.validate()

    async def run(
        self,
        query: str,
        partitions: Sequence[str] | None = None,
        vector_types: Sequence[str] | None = None,
        options: SearchOptions | Mapping[str, Any] | None = None,
        fusion: FusionConfig | Mapping[str, Any] | None = None,
        deduplication: DeduplicationConfig | Mapping[str, Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> SearchResponse:
        timer = Stopwatch()
        # hints are checked once, before routing
        for name in vector_types or ():
            if self.registry.vector_type(name, include_deprecated=True) is None:
                raise ConfigurationError(f"Unknown vector type: {name}")
        routing = self.route(query, partitions, vector_types)
        result_sets = await self.search(query, routing, options, vector_types, cancel)

        errors = {rs.source: rs.error for rs in result_sets if rs.error is not None}
        if errors and len(errors) == len(result_sets):
            _logger.warning("All %d partition searches failed for query %r", len(result_sets), query)

        fused = self.fuse(result_sets, fusion)
        deduped = self.deduplicate(fused, deduplication)

        return SearchResponse(
            results=deduped.unique_results,
            routing=routing,
            analysis=self.analyze(query),
            partition_results=result_sets,
            errors=errors,
            duplicates_removed=deduped.duplicates_removed,
            total_latency_ms=timer.elapsed_ms,
        )
