import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from tooldex.constants import KEYWORD_MIN_LENGTH, ROUTING_FALLBACK_CONFIDENCE, ROUTING_HINT_CONFIDENCE
from tooldex.logging import get_logger
from tooldex.registry import PartitionPurpose, PartitionRegistry

_logger = get_logger(__name__)


class RoutingMethod(StrEnum):
    VOCABULARY = "vocabulary"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    MANUAL = "manual"


class QueryIntent(StrEnum):
    LEARNING = "learning"
    RECOMMENDATION = "recommendation"
    PRICING = "pricing"
    TECHNICAL = "technical"
    GENERAL = "general"


class QueryComplexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


@dataclass(frozen=True)
class VocabularyGroup:
    name: str
    purpose: PartitionPurpose
    keywords: tuple[str, ...]
    increment: float

    @property
    def pattern(self) -> re.Pattern[str]:
        return re.compile(r"\b(?:" + "|".join(re.escape(k) for k in self.keywords) + ")")


VOCABULARY: tuple[VocabularyGroup, ...] = (
    VocabularyGroup(
        "industry",
        PartitionPurpose.USECASE,
        ("healthcare", "finance", "education", "technology", "retail", "manufacturing"),
        0.8,
    ),
    VocabularyGroup(
        "userType",
        PartitionPurpose.USECASE,
        ("developer", "designer", "business", "student", "teacher", "manager"),
        0.8,
    ),
    VocabularyGroup(
        "interface",
        PartitionPurpose.TECHNICAL,
        ("api", "sdk", "library", "framework", "cli", "web", "mobile"),
        0.9,
    ),
    VocabularyGroup(
        "functionality",
        PartitionPurpose.CAPABILITY,
        ("feature", "capability", "function", "generate", "analyze", "process"),
        0.7,
    ),
)

FALLBACK_PURPOSES = (PartitionPurpose.IDENTITY, PartitionPurpose.CAPABILITY)

# first match wins
_INTENT_MARKERS: tuple[tuple[QueryIntent, tuple[str, ...]], ...] = (
    (QueryIntent.LEARNING, ("how to", "tutorial")),
    (QueryIntent.RECOMMENDATION, ("best", "top")),
    (QueryIntent.PRICING, ("free", "cost")),
    (QueryIntent.TECHNICAL, ("api", "sdk")),
)

INTENT_PURPOSES: dict[QueryIntent, tuple[PartitionPurpose, ...]] = {
    QueryIntent.LEARNING: (PartitionPurpose.IDENTITY, PartitionPurpose.CAPABILITY),
    QueryIntent.RECOMMENDATION: (PartitionPurpose.IDENTITY, PartitionPurpose.CAPABILITY, PartitionPurpose.USECASE),
    QueryIntent.PRICING: (PartitionPurpose.TECHNICAL, PartitionPurpose.USECASE),
    QueryIntent.TECHNICAL: (PartitionPurpose.TECHNICAL, PartitionPurpose.CAPABILITY),
    QueryIntent.GENERAL: (PartitionPurpose.IDENTITY, PartitionPurpose.CAPABILITY),
}

_QUOTED = re.compile(r'"([^"]+)"')
_OPERATORS = re.compile(r"\b(and|or|not)\b", re.IGNORECASE)


@dataclass(frozen=True)
class RoutingDecision:
    selected_partitions: tuple[str, ...]
    method: RoutingMethod
    confidence: float
    fallback_used: bool = False
    dropped_partitions: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.selected_partitions:
            raise ValueError("Routing decision needs at least one partition")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Routing confidence out of range: {self.confidence}")


@dataclass
class QueryAnalysis:
    intent: QueryIntent
    keywords: list[str]
    entities: list[str]
    complexity: QueryComplexity
    estimated_partitions: list[str]
    recommended_vector_types: list[str] = field(default_factory=list)


def _dedupe(names: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(names))


class QueryRouter:
    def __init__(self, registry: PartitionRegistry, vocabulary: Sequence[VocabularyGroup] = VOCABULARY):
        self.registry = registry
        self.vocabulary = tuple(vocabulary)
        self._patterns = [(group, group.pattern) for group in self.vocabulary]

    def route(
        self,
        query: str,
        partitions: Sequence[str] | None = None,
        vector_types: Sequence[str] | None = None,
    ) -> RoutingDecision:
        dropped: list[str] = []
        if partitions:
            selected, dropped = self._validate_manual(partitions)
            if selected:
                return RoutingDecision(
                    selected_partitions=tuple(selected),
                    method=RoutingMethod.MANUAL,
                    confidence=1.0,
                    dropped_partitions=tuple(dropped),
                )
            _logger.warning("No usable partitions in %s, routing automatically", dropped)

        decision = self._route_auto(query.lower(), vector_types or ())
        if dropped:
            return RoutingDecision(
                selected_partitions=decision.selected_partitions,
                method=decision.method,
                confidence=decision.confidence,
                fallback_used=True,
                dropped_partitions=tuple(dropped),
            )
        return decision

    def _validate_manual(self, partitions: Sequence[str]) -> tuple[list[str], list[str]]:
        selected: list[str] = []
        dropped: list[str] = []
        for name in _dedupe(partitions):
            partition = self.registry.get(name)
            if partition is None:
                _logger.warning("Dropping unknown partition %s", name)
                dropped.append(name)
            elif not partition.enabled:
                _logger.warning("Dropping disabled partition %s", name)
                dropped.append(name)
            else:
                selected.append(name)
        return selected, dropped

    def _purpose_partitions(self, purpose: PartitionPurpose) -> list[str]:
        return [p.name for p in self.registry.by_purpose(purpose)]

    def _route_auto(self, query: str, vector_types: Sequence[str]) -> RoutingDecision:
        selected: list[str] = []
        increments: list[float] = []

        for group, pattern in self._patterns:
            if not pattern.search(query):
                continue
            targets = self._purpose_partitions(group.purpose)
            if targets:
                selected.extend(targets)
                increments.append(group.increment)
        vocabulary_fired = bool(increments)

        hint_fired = False
        for name in vector_types:
            metadata = self.registry.vector_type(name)
            if metadata is None:
                _logger.warning("Ignoring unknown vector type hint %s", name)
                continue
            targets = [p for p in metadata.target_partitions if (cfg := self.registry.get(p)) and cfg.enabled]
            if targets:
                selected.extend(targets)
                increments.append(ROUTING_HINT_CONFIDENCE)
                hint_fired = True

        if not selected:
            selected = [name for purpose in FALLBACK_PURPOSES for name in self._purpose_partitions(purpose)]
            method = RoutingMethod.SEMANTIC
            confidence = ROUTING_FALLBACK_CONFIDENCE
            fallback_used = True
        else:
            if vocabulary_fired and hint_fired:
                method = RoutingMethod.HYBRID
            elif vocabulary_fired:
                method = RoutingMethod.VOCABULARY
            else:
                method = RoutingMethod.SEMANTIC
            confidence = sum(increments) / len(increments)
            fallback_used = False

        identity = self.registry.identity_partition.name
        if identity not in selected:
            selected.insert(0, identity)

        return RoutingDecision(
            selected_partitions=tuple(_dedupe(selected)),
            method=method,
            confidence=min(1.0, confidence),
            fallback_used=fallback_used,
        )

    def analyze(self, query: str) -> QueryAnalysis:
        query_lower = query.lower()
        keywords = [word for word in query_lower.split() if len(word) >= KEYWORD_MIN_LENGTH]
        intent = self._intent(query_lower)
        estimated = _dedupe(
            [name for purpose in INTENT_PURPOSES[intent] for name in self._purpose_partitions(purpose)]
        )
        return QueryAnalysis(
            intent=intent,
            keywords=keywords,
            entities=_QUOTED.findall(query),
            complexity=self._complexity(query),
            estimated_partitions=estimated,
            recommended_vector_types=self.registry.recommended_vector_types(query),
        )

    @staticmethod
    def _intent(query_lower: str) -> QueryIntent:
        for intent, markers in _INTENT_MARKERS:
            if any(marker in query_lower for marker in markers):
                return intent
        return QueryIntent.GENERAL

    @staticmethod
    def _complexity(query: str) -> QueryComplexity:
        word_count = len(query.split())
        has_quotes = '"' in query
        has_operators = bool(_OPERATORS.search(query))
        if word_count <= 3 and not has_quotes and not has_operators:
            return QueryComplexity.SIMPLE
        if word_count <= 8 or has_quotes or has_operators:
            return QueryComplexity.MODERATE
        return QueryComplexity.COMPLEX
