from tooldex.dedup.config import DeduplicationConfig, DedupStrategy
from tooldex.dedup.deduplicator import DeduplicationResult, Deduplicator
from tooldex.dedup.similarity import (
    FieldSimilarity,
    SimilarityBreakdown,
    calculate_result_similarity,
    content_similarity,
    default_field_similarity,
)
from tooldex.dedup.strategies import (
    STRATEGIES,
    ContentBased,
    DeduplicationStrategy,
    Hybrid,
    IdBased,
    RrfEnhanced,
)

__all__ = [
    "STRATEGIES",
    "ContentBased",
    "DedupStrategy",
    "DeduplicationConfig",
    "DeduplicationResult",
    "DeduplicationStrategy",
    "Deduplicator",
    "FieldSimilarity",
    "Hybrid",
    "IdBased",
    "RrfEnhanced",
    "SimilarityBreakdown",
    "calculate_result_similarity",
    "content_similarity",
    "default_field_similarity",
]
