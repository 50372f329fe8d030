import asyncio
import contextlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from tooldex.constants import (
    DEFAULT_CALL_TIMEOUT_MS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_RETRIES,
    DEFAULT_TOP_K,
    MAX_TOP_K,
    RETRY_INITIAL_WAIT,
    RETRY_JITTER,
    RETRY_MAX_WAIT,
)
from tooldex.errors import (
    ConfigurationError,
    StoreError,
    StoreTimeoutError,
    TransientStoreError,
    ValidationError,
    classify_error,
    describe_error,
)
from tooldex.logging import get_logger
from tooldex.overrides import merge_config
from tooldex.registry import PartitionRegistry
from tooldex.routing import RoutingDecision
from tooldex.search.metrics import SearchMetrics
from tooldex.search.types import RankedResultSet, SearchResult
from tooldex.stores.base import EmbeddingProvider, VectorHit, VectorStore
from tooldex.utils import Stopwatch

_logger = get_logger(__name__)

CANCELLED = "cancelled"


class SearchOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    parallel: bool = True
    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1)
    per_call_timeout_ms: int = Field(default=DEFAULT_CALL_TIMEOUT_MS, gt=0)
    retries: int = Field(default=DEFAULT_RETRIES, ge=0)
    top_k: int = Field(default=DEFAULT_TOP_K, ge=1, le=MAX_TOP_K)
    filter: dict[str, Any] | None = None


@dataclass
class Outcome[T]:
    """Result of a collaborator call: a value or the classified error, never raised."""

    value: T | None = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _log_retry(retry_state) -> None:
    _logger.warning(
        "Partition search failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


class SearchExecutor:
    def __init__(
        self,
        registry: PartitionRegistry,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        options: SearchOptions | None = None,
        metrics: SearchMetrics | None = None,
    ):
        self.registry = registry
        self.embedder = embedder
        self.vector_store = vector_store
        self.options = options or SearchOptions()
        self.metrics = metrics

    def resolve_options(self, options: SearchOptions | Mapping[str, Any] | None) -> SearchOptions:
        if options is None:
            return self.options
        if isinstance(options, SearchOptions):
            return options
        return merge_config(self.options, options)

    def resolve_vector_type(self, partition: str, vector_types: Sequence[str] | None = None) -> str:
        """First explicit vector type that targets the partition, else its primary type."""
        for name in vector_types or ():
            metadata = self.registry.vector_type(name, include_deprecated=True)
            if metadata and partition in metadata.target_partitions:
                return name
        return self.registry.primary_vector_type(partition)

    def _validate(self, query: str, partitions: Sequence[str], vector_types: Sequence[str] | None) -> None:
        if not query or not query.strip():
            raise ValidationError("Query must not be empty")
        if not partitions:
            raise ValidationError("At least one partition is required")
        for name in partitions:
            if not self.registry.require(name).enabled:
                raise ConfigurationError(f"Partition is disabled: {name}")
        for name in vector_types or ():
            if self.registry.vector_type(name, include_deprecated=True) is None:
                raise ConfigurationError(f"Unknown vector type: {name}")
        for warning in self.registry.deprecation_warnings(vector_types or ()):
            _logger.warning("Deprecated vector type requested: %s", warning)

    async def search(
        self,
        query: str,
        partitions: RoutingDecision | Sequence[str],
        vector_types: Sequence[str] | None = None,
        options: SearchOptions | Mapping[str, Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[RankedResultSet]:
        """Search every partition and return one result set per partition, in input order.

        Partition failures come back as result sets with `error` set; only
        invalid input (empty query, unknown partition or vector type) raises.
        """
        if isinstance(partitions, RoutingDecision):
            partitions = partitions.selected_partitions
        partitions = list(dict.fromkeys(partitions))
        self._validate(query, partitions, vector_types)
        opts = self.resolve_options(options)

        plan = [(name, self.resolve_vector_type(name, vector_types)) for name in partitions]
        slots: list[RankedResultSet | None] = [None] * len(plan)

        if cancel is not None and cancel.is_set():
            return self._fill_cancelled(plan, slots)

        if opts.parallel:
            run = self._run_parallel(query, plan, opts, slots)
        else:
            run = self._run_sequential(query, plan, opts, slots, cancel)

        if cancel is None:
            await run
        else:
            await self._race_cancel(run, cancel)

        return self._fill_cancelled(plan, slots)

    async def _race_cancel(self, run, cancel: asyncio.Event) -> None:
        run_task = asyncio.ensure_future(run)
        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({run_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (run_task, cancel_task):
                if not task.done():
                    task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cancel_task
            with contextlib.suppress(asyncio.CancelledError):
                await run_task

    def _fill_cancelled(
        self, plan: list[tuple[str, str]], slots: list[RankedResultSet | None]
    ) -> list[RankedResultSet]:
        results: list[RankedResultSet] = []
        for (partition, vector_type), result in zip(plan, slots):
            if result is None:
                result = RankedResultSet(source=partition, error=CANCELLED, vector_type=vector_type)
            results.append(result)
        return results

    async def _run_parallel(
        self,
        query: str,
        plan: list[tuple[str, str]],
        opts: SearchOptions,
        slots: list[RankedResultSet | None],
    ) -> None:
        semaphore = asyncio.Semaphore(opts.max_concurrency)

        async def run_one(index: int, partition: str, vector_type: str) -> None:
            async with semaphore:
                slots[index] = await self._search_partition(query, partition, vector_type, opts)

        async with asyncio.TaskGroup() as tg:
            for index, (partition, vector_type) in enumerate(plan):
                tg.create_task(run_one(index, partition, vector_type))

    async def _run_sequential(
        self,
        query: str,
        plan: list[tuple[str, str]],
        opts: SearchOptions,
        slots: list[RankedResultSet | None],
        cancel: asyncio.Event | None,
    ) -> None:
        for index, (partition, vector_type) in enumerate(plan):
            if cancel is not None and cancel.is_set():
                return
            slots[index] = await self._search_partition(query, partition, vector_type, opts)

    async def _search_partition(
        self, query: str, partition: str, vector_type: str, opts: SearchOptions
    ) -> RankedResultSet:
        try:
            return await self._search_partition_unguarded(query, partition, vector_type, opts)
        except Exception as e:
            _logger.warning("Unexpected failure in partition %s: %s", partition, e)
            return RankedResultSet(source=partition, error=describe_error(e), vector_type=vector_type)

    async def _search_partition_unguarded(
        self, query: str, partition: str, vector_type: str, opts: SearchOptions
    ) -> RankedResultSet:
        timer = Stopwatch()
        outcome = await self._guarded_search(query, vector_type, opts)
        elapsed = timer.elapsed_ms

        if not outcome.ok:
            _logger.warning(
                "Search failed for partition %s (%s): %s", partition, vector_type, outcome.error
            )
            if self.metrics:
                if isinstance(outcome.error, StoreTimeoutError):
                    self.metrics.record_timeout(vector_type)
                else:
                    self.metrics.record_error(vector_type)
            return RankedResultSet(
                source=partition,
                search_time_ms=elapsed,
                error=str(outcome.error) or type(outcome.error).__name__,
                vector_type=vector_type,
            )

        hits = outcome.value or []
        results = [
            SearchResult(id=hit.id, score=hit.score, payload=hit.payload, vector_type=vector_type, rank=i)
            for i, hit in enumerate(hits, start=1)
        ]
        if self.metrics:
            avg_similarity = sum(r.score for r in results) / len(results) if results else 0.0
            self.metrics.record_search(vector_type, elapsed, len(results), avg_similarity)
        return RankedResultSet(
            source=partition,
            results=results,
            total_results=len(results),
            search_time_ms=elapsed,
            vector_type=vector_type,
        )

    async def _guarded_search(self, query: str, vector_type: str, opts: SearchOptions) -> Outcome[list[VectorHit]]:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransientStoreError),
                stop=stop_after_attempt(opts.retries + 1),
                wait=wait_exponential_jitter(initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT, jitter=RETRY_JITTER),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    hits = await self._search_once(query, vector_type, opts)
        except StoreError as e:
            return Outcome(error=e)
        return Outcome(value=hits)

    async def _search_once(self, query: str, vector_type: str, opts: SearchOptions) -> list[VectorHit]:
        timeout_s = opts.per_call_timeout_ms / 1000
        try:
            async with asyncio.timeout(timeout_s):
                vector = await self.embedder.embed_one(query)
                return await self.vector_store.search(vector, opts.top_k, opts.filter, vector_type)
        except TimeoutError as e:
            raise StoreTimeoutError(f"timed out after {opts.per_call_timeout_ms} ms") from e
        except StoreError:
            raise
        except Exception as e:
            raise classify_error(e) from e
