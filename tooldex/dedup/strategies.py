from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, replace

from tooldex.dedup.config import DeduplicationConfig, DedupStrategy
from tooldex.dedup.similarity import FieldSimilarity, content_signature, content_similarity, default_field_similarity
from tooldex.search.types import FusedResult, SearchResult, SourceAttribution

type DedupItem = SearchResult | FusedResult

UNKNOWN_VECTOR_TYPE = "unknown"


@dataclass
class MergeOutcome:
    unique: list[DedupItem]
    removed: int = 0


def copy_item[I: (SearchResult, FusedResult)](item: I) -> I:
    if isinstance(item, FusedResult):
        return replace(item, payload=dict(item.payload), sources=list(item.sources))
    return replace(item, payload=dict(item.payload))


def absorb(existing: DedupItem, duplicate: DedupItem) -> None:
    """Fold a duplicate into the kept record: sources add up, scores take the max."""
    if isinstance(existing, FusedResult) and isinstance(duplicate, FusedResult):
        existing.sources.extend(duplicate.sources)
        existing.rrf_score = max(existing.rrf_score, duplicate.rrf_score)
        existing.weighted_score = max(existing.weighted_score, duplicate.weighted_score)
    existing.score = max(existing.score, duplicate.score)


def accumulate(existing: FusedResult, other: FusedResult) -> None:
    """Combine two groups of the same id: RRF contributions add up."""
    existing.rrf_score += other.rrf_score
    existing.weighted_score += other.weighted_score
    existing.sources.extend(other.sources)
    if other.score > existing.score:
        existing.score = other.score
        existing.payload = dict(other.payload)
        existing.vector_type = other.vector_type


class DeduplicationStrategy(ABC):
    name: DedupStrategy

    def __init__(self, field_similarity: FieldSimilarity = default_field_similarity):
        self.field_similarity = field_similarity

    @abstractmethod
    def merge(self, results: Sequence[DedupItem], config: DeduplicationConfig) -> MergeOutcome:
        """Collapse duplicates within one batch. Never mutates the input items."""

    @abstractmethod
    def is_duplicate(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> bool:
        pass

    def combine(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> None:
        absorb(existing, candidate)

    def finalize(self, results: list[DedupItem], config: DeduplicationConfig) -> list[DedupItem]:
        return results

    def similarity(self, a: DedupItem, b: DedupItem, config: DeduplicationConfig) -> float:
        return content_similarity(a, b, config.fields, config.weights, self.field_similarity)


class IdBased(DeduplicationStrategy):
    name = DedupStrategy.ID_BASED

    def merge(self, results: Sequence[DedupItem], config: DeduplicationConfig) -> MergeOutcome:
        kept: dict[str, DedupItem] = {}
        removed = 0
        for item in results:
            existing = kept.get(item.id)
            if existing is None:
                kept[item.id] = copy_item(item)
            else:
                absorb(existing, item)
                removed += 1
        return MergeOutcome(unique=list(kept.values()), removed=removed)

    def is_duplicate(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> bool:
        return existing.id == candidate.id


class ContentBased(DeduplicationStrategy):
    name = DedupStrategy.CONTENT_BASED

    def merge(self, results: Sequence[DedupItem], config: DeduplicationConfig) -> MergeOutcome:
        unique: list[DedupItem] = []
        signatures: dict[str, DedupItem] = {}
        removed = 0
        for item in results:
            signature = content_signature(item, config.fields)
            existing = signatures.get(signature)
            if existing is not None and self.similarity(existing, item, config) >= config.similarity_threshold:
                absorb(existing, item)
                removed += 1
                continue
            kept = copy_item(item)
            signatures[signature] = kept
            unique.append(kept)
        return MergeOutcome(unique=unique, removed=removed)

    def is_duplicate(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> bool:
        if content_signature(existing, config.fields) != content_signature(candidate, config.fields):
            return False
        return self.similarity(existing, candidate, config) >= config.similarity_threshold


class Hybrid(DeduplicationStrategy):
    name = DedupStrategy.HYBRID

    def __init__(self, field_similarity: FieldSimilarity = default_field_similarity):
        super().__init__(field_similarity)
        self._by_id = IdBased(field_similarity)
        self._by_content = ContentBased(field_similarity)

    def merge(self, results: Sequence[DedupItem], config: DeduplicationConfig) -> MergeOutcome:
        first = self._by_id.merge(results, config)
        second = self._by_content.merge(first.unique, config)
        return MergeOutcome(unique=second.unique, removed=first.removed + second.removed)

    def is_duplicate(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> bool:
        return self._by_id.is_duplicate(existing, candidate, config) or self._by_content.is_duplicate(
            existing, candidate, config
        )


class RrfEnhanced(DeduplicationStrategy):
    """Group by id with weighted RRF, then catch near-duplicates that lack a shared id."""

    name = DedupStrategy.RRF_ENHANCED

    def _as_group(self, item: DedupItem, config: DeduplicationConfig) -> FusedResult:
        if isinstance(item, FusedResult):
            return copy_item(item)
        vector_type = item.vector_type or UNKNOWN_VECTOR_TYPE
        rank = item.rank or 1
        weight = config.vector_type_weight(vector_type)
        contribution = 1 / (config.rrf_k_value + rank)
        return FusedResult(
            id=item.id,
            payload=dict(item.payload),
            rrf_score=contribution,
            weighted_score=contribution * weight,
            sources=[SourceAttribution(vector_type=vector_type, score=item.score, rank=rank, weight=weight)],
            score=item.score,
            vector_type=vector_type,
        )

    def merge(self, results: Sequence[DedupItem], config: DeduplicationConfig) -> MergeOutcome:
        groups: dict[str, FusedResult] = {}
        removed = 0
        for item in results:
            group = self._as_group(item, config)
            existing = groups.get(item.id)
            if existing is None:
                groups[item.id] = group
            else:
                accumulate(existing, group)
                removed += 1

        unique: list[DedupItem] = []
        for group in groups.values():
            match = next((kept for kept in unique if self._near_duplicate(kept, group, config)), None)
            if match is None:
                unique.append(group)
            else:
                absorb(match, group)
                removed += 1
        return MergeOutcome(unique=unique, removed=removed)

    def _near_duplicate(self, a: DedupItem, b: DedupItem, config: DeduplicationConfig) -> bool:
        threshold = config.pair_threshold(a.vector_type, b.vector_type)
        return self.similarity(a, b, config) >= threshold

    def is_duplicate(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> bool:
        return existing.id == candidate.id or self._near_duplicate(existing, candidate, config)

    def combine(self, existing: DedupItem, candidate: DedupItem, config: DeduplicationConfig) -> None:
        if existing.id == candidate.id and isinstance(existing, FusedResult) and isinstance(candidate, FusedResult):
            accumulate(existing, candidate)
        else:
            absorb(existing, candidate)

    def finalize(self, results: list[DedupItem], config: DeduplicationConfig) -> list[DedupItem]:
        ordered = sorted(results, key=lambda r: -r.weighted_score if isinstance(r, FusedResult) else -r.score)
        for rank, result in enumerate(ordered, start=1):
            if isinstance(result, FusedResult):
                result.final_rank = rank
        return ordered


STRATEGIES: dict[DedupStrategy, type[DeduplicationStrategy]] = {
    DedupStrategy.ID_BASED: IdBased,
    DedupStrategy.CONTENT_BASED: ContentBased,
    DedupStrategy.HYBRID: Hybrid,
    DedupStrategy.RRF_ENHANCED: RrfEnhanced,
}


def get_strategy(
    name: DedupStrategy | str, field_similarity: FieldSimilarity = default_field_similarity
) -> DeduplicationStrategy:
    return STRATEGIES[DedupStrategy(name)](field_similarity)
