from dataclasses import dataclass, field
from typing import Any


@dataclass
class SearchResult:
    """One hit from one partition search."""

    id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)
    vector_type: str | None = None
    rank: int | None = None


@dataclass
class RankedResultSet:
    """Outcome of one partition search: either results or an error, never both."""

    source: str
    results: list[SearchResult] = field(default_factory=list)
    total_results: int = 0
    search_time_ms: int = 0
    error: str | None = None
    vector_type: str | None = None

    def __post_init__(self):
        if self.error is not None and self.results:
            raise ValueError(f"Result set for {self.source} carries both results and an error")
        if not self.total_results:
            self.total_results = len(self.results)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SourceAttribution:
    vector_type: str
    score: float
    rank: int
    weight: float = 1.0


@dataclass
class FusedResult:
    """Result combining evidence from one or more ranked sources."""

    id: str
    payload: dict[str, Any]
    rrf_score: float = 0.0
    weighted_score: float = 0.0
    sources: list[SourceAttribution] = field(default_factory=list)

    # best original similarity and where it came from
    score: float = 0.0
    vector_type: str | None = None
    final_rank: int | None = None

    @property
    def merged_from_count(self) -> int:
        return len(self.sources)
