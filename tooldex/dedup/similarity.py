import hashlib
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from tooldex.constants import (
    DEDUP_FIELD_WEIGHTS,
    DEDUP_FIELDS,
    DESCRIPTION_JACCARD_WEIGHT,
    DESCRIPTION_SYNONYM_WEIGHT,
    NAME_EDIT_WEIGHT,
    NAME_JACCARD_WEIGHT,
    SIMILARITY_REASON_THRESHOLD,
)
from tooldex.search.types import FusedResult, SearchResult

type FieldSimilarity = Callable[[str, str, str], float]
type Record = SearchResult | FusedResult | Mapping[str, Any]

# Only equal normalized values may score 1.0
_NEAR_ONE = 1.0 - 1e-9

SYNONYMS: dict[str, tuple[str, ...]] = {
    "js": ("javascript",),
    "ts": ("typescript",),
    "react": ("reactjs",),
    "vue": ("vuejs",),
    "api": ("interface", "endpoint"),
    "lib": ("library",),
    "framework": ("lib", "library"),
}

_SYNONYM_GROUPS: tuple[frozenset[str], ...] = tuple(
    frozenset((base, *others)) for base, others in SYNONYMS.items()
)


def normalize(value: str) -> str:
    return " ".join(value.lower().split())


def _words(value: str) -> set[str]:
    return set(value.split())


def jaccard(a: str, b: str) -> float:
    words_a, words_b = _words(a), _words(b)
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def are_synonyms(a: str, b: str) -> bool:
    if a == b:
        return True
    return any(a in group and b in group for group in _SYNONYM_GROUPS)


def synonym_overlap(a: str, b: str) -> float:
    """Share of tokens on either side that have an equal or synonymous token on the other."""
    words_a, words_b = _words(a), _words(b)
    if not words_a or not words_b:
        return 0.0
    matched_a = sum(1 for w in words_a if any(are_synonyms(w, v) for v in words_b))
    matched_b = sum(1 for w in words_b if any(are_synonyms(w, v) for v in words_a))
    return (matched_a + matched_b) / (len(words_a) + len(words_b))


def default_field_similarity(field_name: str, a: str, b: str) -> float:
    a, b = normalize(a), normalize(b)
    if a == b:
        return 1.0

    match field_name:
        case "name":
            score = NAME_JACCARD_WEIGHT * jaccard(a, b) + NAME_EDIT_WEIGHT * levenshtein_similarity(a, b)
        case "description":
            score = DESCRIPTION_JACCARD_WEIGHT * jaccard(a, b) + DESCRIPTION_SYNONYM_WEIGHT * synonym_overlap(a, b)
        case "category":
            return 0.0
        case _:
            score = jaccard(a, b)
    return min(score, _NEAR_ONE)


def payload_of(record: Record) -> Mapping[str, Any]:
    if isinstance(record, SearchResult | FusedResult):
        return record.payload
    return record


def field_value(record: Record, field_name: str) -> str | None:
    value = payload_of(record).get(field_name)
    if value is None:
        return None
    if isinstance(value, list | tuple | set):
        value = " ".join(str(v) for v in value)
    text = normalize(str(value))
    return text or None


def content_signature(record: Record, fields: Iterable[str]) -> str:
    parts = []
    for name in fields:
        value = field_value(record, name)
        if value is not None:
            parts.append(f"{name}={value}")
    return hashlib.md5("|".join(parts).encode()).hexdigest()


def content_similarity(
    a: Record,
    b: Record,
    fields: Iterable[str],
    weights: Mapping[str, float],
    field_similarity: FieldSimilarity = default_field_similarity,
) -> float:
    """Weighted mean of per-field similarity.

    A field present on one side only counts as 0 at its weight; fields absent
    on both sides are skipped.
    """
    total = 0.0
    total_weight = 0.0
    for name in fields:
        value_a, value_b = field_value(a, name), field_value(b, name)
        if value_a is None and value_b is None:
            continue
        weight = weights.get(name, 1.0)
        total_weight += weight
        if value_a is not None and value_b is not None:
            total += weight * field_similarity(name, value_a, value_b)
    if total_weight == 0:
        return 0.0
    return total / total_weight


@dataclass
class SimilarityBreakdown:
    similarity: float
    reason: str
    fields: dict[str, float] = field(default_factory=dict)


def calculate_result_similarity(
    a: Record,
    b: Record,
    fields: Iterable[str] = DEDUP_FIELDS,
    weights: Mapping[str, float] = DEDUP_FIELD_WEIGHTS,
    field_similarity: FieldSimilarity = default_field_similarity,
) -> SimilarityBreakdown:
    field_scores: dict[str, float] = {}
    reasons: list[str] = []
    total = 0.0
    total_weight = 0.0

    for name in fields:
        value_a, value_b = field_value(a, name), field_value(b, name)
        if value_a is None or value_b is None:
            continue
        weight = weights.get(name, 1.0)
        score = field_similarity(name, value_a, value_b)
        field_scores[name] = score
        total += score * weight
        total_weight += weight
        if score > SIMILARITY_REASON_THRESHOLD:
            reasons.append(f"{name}: {round(score * 100)}% match")

    return SimilarityBreakdown(
        similarity=total / total_weight if total_weight > 0 else 0.0,
        reason=", ".join(reasons) or "Low similarity",
        fields=field_scores,
    )
