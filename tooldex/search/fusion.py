from collections import defaultdict
from collections.abc import Hashable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tooldex.constants import DEFAULT_MAX_RESULTS, DEFAULT_SOURCE_WEIGHT, MAX_RESULTS_LIMIT, MAX_RRF_K, RRF_K
from tooldex.logging import get_logger
from tooldex.overrides import merge_config
from tooldex.search.types import FusedResult, RankedResultSet, SourceAttribution

_logger = get_logger(__name__)


class FusionConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    k_value: int = Field(default=RRF_K, gt=0, le=MAX_RRF_K)
    source_weights: dict[str, float] = Field(default_factory=dict)
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, gt=0, le=MAX_RESULTS_LIMIT)
    default_weight: float = Field(default=DEFAULT_SOURCE_WEIGHT, ge=0)

    @field_validator("source_weights")
    @classmethod
    def validate_weights(cls, v: dict[str, float]) -> dict[str, float]:
        for source, weight in v.items():
            if weight < 0:
                raise ValueError(f"Weight for source '{source}' must be non-negative")
        return v

    def weight_for(self, source: str) -> float:
        return self.source_weights.get(source, self.default_weight)


def rrf_merge[T: Hashable](
    rankings: Sequence[Sequence[tuple[T, float]]],
    k: int = RRF_K,
    weights: Sequence[float] | None = None,
) -> dict[T, float]:
    """Reciprocal Rank Fusion to merge multiple ranked lists.

    Each ranking is a list of (item_id, score) tuples ordered by relevance.
    An item contributes weight / (k + rank) once per ranking, at its first
    (best) position. Returns a dict of item_id -> fused RRF score.
    """
    scores: dict[T, float] = defaultdict(float)
    for i, ranking in enumerate(rankings):
        weight = weights[i] if weights is not None else 1.0
        seen: set[T] = set()
        for rank, (item_id, _) in enumerate(ranking):
            if item_id in seen:
                continue
            seen.add(item_id)
            scores[item_id] += weight / (k + rank + 1)
    return dict(scores)


class RankFusionEngine:
    def __init__(self, config: FusionConfig | None = None):
        self.config = config or FusionConfig()

    def resolve_config(self, config: FusionConfig | Mapping[str, Any] | None) -> FusionConfig:
        if config is None:
            return self.config
        if isinstance(config, FusionConfig):
            return config
        return merge_config(self.config, config)

    def fuse(
        self,
        result_sets: Sequence[RankedResultSet],
        config: FusionConfig | Mapping[str, Any] | None = None,
    ) -> list[FusedResult]:
        cfg = self.resolve_config(config)
        if not result_sets:
            return []

        rankings = [[(r.id, r.score) for r in rs.results] for rs in result_sets]
        weights = [cfg.weight_for(rs.source) for rs in result_sets]
        rrf_scores = rrf_merge(rankings, k=cfg.k_value)
        weighted_scores = rrf_merge(rankings, k=cfg.k_value, weights=weights)

        fused: dict[str, FusedResult] = {}
        first_source: dict[str, int] = {}
        for source_index, (result_set, weight) in enumerate(zip(result_sets, weights)):
            seen: set[str] = set()
            for position, result in enumerate(result_set.results, start=1):
                if result.id in seen:
                    continue
                seen.add(result.id)
                attribution = SourceAttribution(
                    vector_type=result.vector_type or result_set.vector_type or result_set.source,
                    score=result.score,
                    rank=position,
                    weight=weight,
                )
                entry = fused.get(result.id)
                if entry is None:
                    first_source[result.id] = source_index
                    fused[result.id] = FusedResult(
                        id=result.id,
                        payload=dict(result.payload),
                        rrf_score=rrf_scores[result.id],
                        weighted_score=weighted_scores[result.id],
                        sources=[attribution],
                        score=result.score,
                        vector_type=attribution.vector_type,
                    )
                    continue
                entry.sources.append(attribution)
                if result.score > entry.score:
                    entry.score = result.score
                    entry.payload = dict(result.payload)
                    entry.vector_type = attribution.vector_type

        ordered = sorted(fused.values(), key=lambda f: (-f.weighted_score, first_source[f.id], f.id))
        ordered = ordered[: cfg.max_results]
        for rank, result in enumerate(ordered, start=1):
            result.final_rank = rank

        _logger.debug(
            "Fused %d sources into %d results (k=%d)", len(result_sets), len(ordered), cfg.k_value
        )
        return ordered
