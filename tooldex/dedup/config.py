from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tooldex.constants import (
    DEDUP_BATCH_SIZE,
    DEDUP_DEFAULT_VECTOR_TYPE_WEIGHT,
    DEDUP_FIELD_WEIGHTS,
    DEDUP_FIELDS,
    DEDUP_SIMILARITY_THRESHOLD,
    DEDUP_VECTOR_TYPE_THRESHOLDS,
    DEDUP_VECTOR_TYPE_WEIGHTS,
    RRF_K,
)


class DedupStrategy(StrEnum):
    ID_BASED = "id_based"
    CONTENT_BASED = "content_based"
    HYBRID = "hybrid"
    RRF_ENHANCED = "rrf_enhanced"


def _lookup(table: dict[str, float], vector_type: str | None) -> float | None:
    """Full vector-type name first, then each dotted segment (`entities.functionality` -> `functionality`)."""
    if not vector_type:
        return None
    if vector_type in table:
        return table[vector_type]
    for part in vector_type.split("."):
        if part in table:
            return table[part]
    return None


class DeduplicationConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: DedupStrategy = DedupStrategy.HYBRID
    similarity_threshold: float = Field(default=DEDUP_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)
    fields: tuple[str, ...] = DEDUP_FIELDS
    weights: dict[str, float] = Field(default_factory=lambda: dict(DEDUP_FIELD_WEIGHTS))
    rrf_k_value: int = Field(default=RRF_K, gt=0)
    per_partition_thresholds: dict[str, float] = Field(default_factory=lambda: dict(DEDUP_VECTOR_TYPE_THRESHOLDS))
    vector_type_weights: dict[str, float] = Field(default_factory=lambda: dict(DEDUP_VECTOR_TYPE_WEIGHTS))
    default_vector_type_weight: float = Field(default=DEDUP_DEFAULT_VECTOR_TYPE_WEIGHT, ge=0.0)
    batch_size: int = Field(default=DEDUP_BATCH_SIZE, gt=0)

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("At least one dedup field is required")
        return v

    @field_validator("weights", "vector_type_weights")
    @classmethod
    def validate_weights(cls, v: dict[str, float]) -> dict[str, float]:
        for key, weight in v.items():
            if weight < 0:
                raise ValueError(f"Weight for '{key}' must be non-negative")
        return v

    @field_validator("per_partition_thresholds")
    @classmethod
    def validate_thresholds(cls, v: dict[str, float]) -> dict[str, float]:
        for key, threshold in v.items():
            if not 0.0 <= threshold <= 1.0:
                raise ValueError(f"Threshold for '{key}' must be within [0, 1], got {threshold}")
        return v

    def field_weight(self, field: str) -> float:
        return self.weights.get(field, 1.0)

    def threshold_for(self, vector_type: str | None) -> float:
        threshold = _lookup(self.per_partition_thresholds, vector_type)
        return self.similarity_threshold if threshold is None else threshold

    def pair_threshold(self, a: str | None, b: str | None) -> float:
        return max(self.threshold_for(a), self.threshold_for(b))

    def vector_type_weight(self, vector_type: str | None) -> float:
        weight = _lookup(self.vector_type_weights, vector_type)
        return self.default_vector_type_weight if weight is None else weight
