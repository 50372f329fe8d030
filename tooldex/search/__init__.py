from tooldex.search.executor import Outcome, SearchExecutor, SearchOptions
from tooldex.search.fusion import FusionConfig, RankFusionEngine, rrf_merge
from tooldex.search.metrics import DeduplicationMetrics, DeduplicationMonitor, SearchMetrics
from tooldex.search.types import FusedResult, RankedResultSet, SearchResult, SourceAttribution

__all__ = [
    "DeduplicationMetrics",
    "DeduplicationMonitor",
    "FusedResult",
    "FusionConfig",
    "Outcome",
    "RankFusionEngine",
    "RankedResultSet",
    "SearchExecutor",
    "SearchMetrics",
    "SearchOptions",
    "SearchResult",
    "SourceAttribution",
    "rrf_merge",
]
