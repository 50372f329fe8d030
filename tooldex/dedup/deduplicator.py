from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from tooldex.dedup.config import DeduplicationConfig, DedupStrategy
from tooldex.dedup.similarity import FieldSimilarity, default_field_similarity
from tooldex.dedup.strategies import DedupItem, DeduplicationStrategy, MergeOutcome, get_strategy
from tooldex.logging import get_logger
from tooldex.overrides import merge_config
from tooldex.search.metrics import DeduplicationMetrics, DeduplicationMonitor
from tooldex.search.types import FusedResult
from tooldex.utils import Stopwatch

_logger = get_logger(__name__)


@dataclass
class DeduplicationResult:
    unique_results: list[DedupItem]
    duplicates_removed: int
    processing_time_ms: int
    average_merged_score: float
    source_attribution_summary: dict[str, int] = field(default_factory=dict)
    total_results_processed: int = 0
    strategy: DedupStrategy = DedupStrategy.HYBRID
    similarity_threshold: float = 0.0
    batch_count: int = 1


def _merged_score(item: DedupItem) -> float:
    if isinstance(item, FusedResult):
        return item.weighted_score or item.score
    return item.score


def average_merged_score(results: Sequence[DedupItem]) -> float:
    if not results:
        return 0.0
    return sum(_merged_score(r) for r in results) / len(results)


def source_attribution_summary(results: Sequence[DedupItem]) -> dict[str, int]:
    summary: Counter[str] = Counter()
    for result in results:
        if isinstance(result, FusedResult):
            summary.update(source.vector_type for source in result.sources)
        elif result.vector_type:
            summary[result.vector_type] += 1
    return dict(summary)


class Deduplicator:
    def __init__(
        self,
        config: DeduplicationConfig | None = None,
        field_similarity: FieldSimilarity = default_field_similarity,
        monitor: DeduplicationMonitor | None = None,
    ):
        self.config = config or DeduplicationConfig()
        self.field_similarity = field_similarity
        self.monitor = monitor

    def resolve_config(self, config: DeduplicationConfig | Mapping[str, Any] | None) -> DeduplicationConfig:
        if config is None:
            return self.config
        if isinstance(config, DeduplicationConfig):
            return config
        return merge_config(self.config, config)

    def deduplicate(
        self,
        results: Sequence[DedupItem],
        config: DeduplicationConfig | Mapping[str, Any] | None = None,
    ) -> DeduplicationResult:
        cfg = self.resolve_config(config)
        strategy = get_strategy(cfg.strategy, self.field_similarity)
        timer = Stopwatch()

        if len(results) > cfg.batch_size:
            outcome, batch_count = self._deduplicate_batched(results, strategy, cfg)
        else:
            outcome, batch_count = strategy.merge(results, cfg), 1
        unique = strategy.finalize(outcome.unique, cfg)

        result = DeduplicationResult(
            unique_results=unique,
            duplicates_removed=outcome.removed,
            processing_time_ms=timer.elapsed_ms,
            average_merged_score=average_merged_score(unique),
            source_attribution_summary=source_attribution_summary(unique),
            total_results_processed=len(results),
            strategy=cfg.strategy,
            similarity_threshold=cfg.similarity_threshold,
            batch_count=batch_count,
        )
        _logger.debug(
            "Deduplicated %d results to %d with %s (%d removed)",
            len(results),
            len(unique),
            cfg.strategy,
            outcome.removed,
        )
        if self.monitor:
            self.monitor.record(
                DeduplicationMetrics(
                    total_processed=result.total_results_processed,
                    unique_results=len(unique),
                    duplicates_removed=result.duplicates_removed,
                    processing_time_ms=result.processing_time_ms,
                    average_merged_score=result.average_merged_score,
                    batch_count=batch_count,
                )
            )
        return result

    def _deduplicate_batched(
        self,
        results: Sequence[DedupItem],
        strategy: DeduplicationStrategy,
        config: DeduplicationConfig,
    ) -> tuple[MergeOutcome, int]:
        kept: list[DedupItem] = []
        removed = 0
        batch_count = 0
        for offset in range(0, len(results), config.batch_size):
            batch = strategy.merge(results[offset : offset + config.batch_size], config)
            batch_count += 1
            removed += batch.removed
            for candidate in batch.unique:
                match = next((k for k in kept if strategy.is_duplicate(k, candidate, config)), None)
                if match is None:
                    kept.append(candidate)
                else:
                    strategy.combine(match, candidate, config)
                    removed += 1
        return MergeOutcome(unique=kept, removed=removed), batch_count
