from collections import deque
from dataclasses import asdict, dataclass

from tooldex.constants import DEDUP_MONITOR_HISTORY, METRICS_EMA_ALPHA


@dataclass
class VectorTypeMetrics:
    vector_type: str
    search_time_ms: float = 0.0
    result_count: float = 0.0
    avg_similarity: float = 0.0
    samples: int = 0
    error_count: int = 0
    timeout_count: int = 0


class SearchMetrics:
    """Per-vector-type moving averages that survive across requests."""

    def __init__(self, alpha: float = METRICS_EMA_ALPHA):
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self._metrics: dict[str, VectorTypeMetrics] = {}

    def _entry(self, vector_type: str) -> VectorTypeMetrics:
        if vector_type not in self._metrics:
            self._metrics[vector_type] = VectorTypeMetrics(vector_type=vector_type)
        return self._metrics[vector_type]

    def _smooth(self, current: float, sample: float, first: bool) -> float:
        if first:
            return sample
        return current * (1 - self.alpha) + sample * self.alpha

    def record_search(self, vector_type: str, search_time_ms: float, result_count: int, avg_similarity: float) -> None:
        entry = self._entry(vector_type)
        first = entry.samples == 0
        entry.search_time_ms = self._smooth(entry.search_time_ms, search_time_ms, first)
        entry.result_count = self._smooth(entry.result_count, result_count, first)
        entry.avg_similarity = self._smooth(entry.avg_similarity, avg_similarity, first)
        entry.samples += 1

    def record_error(self, vector_type: str) -> None:
        self._entry(vector_type).error_count += 1

    def record_timeout(self, vector_type: str) -> None:
        self._entry(vector_type).timeout_count += 1

    def get(self, vector_type: str) -> VectorTypeMetrics | None:
        return self._metrics.get(vector_type)

    def snapshot(self) -> list[VectorTypeMetrics]:
        return [VectorTypeMetrics(**asdict(m)) for m in self._metrics.values()]

    def reset(self) -> None:
        self._metrics.clear()


@dataclass
class DeduplicationMetrics:
    total_processed: int
    unique_results: int
    duplicates_removed: int
    processing_time_ms: float
    average_merged_score: float
    batch_count: int = 1


class DeduplicationMonitor:
    def __init__(self, history: int = DEDUP_MONITOR_HISTORY):
        self._runs: deque[DeduplicationMetrics] = deque(maxlen=history)

    def record(self, metrics: DeduplicationMetrics) -> None:
        self._runs.append(metrics)

    def runs(self) -> list[DeduplicationMetrics]:
        return list(self._runs)

    def average(self) -> DeduplicationMetrics | None:
        if not self._runs:
            return None
        count = len(self._runs)
        return DeduplicationMetrics(
            total_processed=round(sum(m.total_processed for m in self._runs) / count),
            unique_results=round(sum(m.unique_results for m in self._runs) / count),
            duplicates_removed=round(sum(m.duplicates_removed for m in self._runs) / count),
            processing_time_ms=sum(m.processing_time_ms for m in self._runs) / count,
            average_merged_score=sum(m.average_merged_score for m in self._runs) / count,
            batch_count=round(sum(m.batch_count for m in self._runs) / count),
        )

    def clear(self) -> None:
        self._runs.clear()
