"""Static catalogue of vector partitions and vector types.

Both tables are loaded once at startup and never mutated afterwards, so a
single registry instance can be shared by every component without locking.
Components receive the registry explicitly; there is no module-level instance.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tooldex.errors import ConfigurationError
from tooldex.logging import get_logger

_logger = get_logger(__name__)

DEFAULT_VECTOR_TYPE = "semantic"


class PartitionPurpose(StrEnum):
    IDENTITY = "identity"
    CAPABILITY = "capability"
    USECASE = "usecase"
    TECHNICAL = "technical"


class VectorCategory(StrEnum):
    SEMANTIC = "semantic"
    ENTITY = "entity"
    COMPOSITE = "composite"
    DOMAIN = "domain"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class PartitionConfig(_FrozenModel):
    name: str = Field(min_length=1)
    purpose: PartitionPurpose
    content_fields: tuple[str, ...]
    weightings: dict[str, float]
    vector_types: tuple[str, ...] = (DEFAULT_VECTOR_TYPE,)
    description: str = ""
    enabled: bool = True


class VectorTypeMetadata(_FrozenModel):
    name: str = Field(min_length=1)
    category: VectorCategory
    target_partitions: tuple[str, ...]
    weight: float = Field(default=1.0, ge=0)
    description: str = ""
    deprecated: bool = False
    deprecation_message: str | None = None


class VectorTypeCombination(_FrozenModel):
    types: tuple[str, ...]
    description: str
    use_case: str
    partitions: tuple[str, ...]


DEFAULT_PARTITIONS: tuple[PartitionConfig, ...] = (
    PartitionConfig(
        name="tools",
        description="Core tool identity (name, description, longDescription, tagline)",
        purpose=PartitionPurpose.IDENTITY,
        vector_types=("semantic",),
        content_fields=("name", "description", "longDescription", "tagline"),
        weightings={"name": 3.0, "description": 2.0, "longDescription": 1.5, "tagline": 1.0},
    ),
    PartitionConfig(
        name="functionality",
        description="Tool capabilities and features (functionality, categories)",
        purpose=PartitionPurpose.CAPABILITY,
        vector_types=("semantic", "entities.functionality"),
        content_fields=("functionality", "categories"),
        weightings={"functionality": 2.5, "categories": 2.0},
    ),
    PartitionConfig(
        name="usecases",
        description="Industry and deployment targeting (industries, userTypes, deployment)",
        purpose=PartitionPurpose.USECASE,
        vector_types=("semantic", "entities.industries", "entities.userTypes"),
        content_fields=("industries", "userTypes", "deployment"),
        weightings={"industries": 2.0, "userTypes": 2.0, "deployment": 1.5},
    ),
    PartitionConfig(
        name="interface",
        description="Technical implementation details (interface, pricingModel, status)",
        purpose=PartitionPurpose.TECHNICAL,
        vector_types=("semantic", "entities.interface"),
        content_fields=("interface", "pricingModel", "status"),
        weightings={"interface": 2.0, "pricingModel": 1.5, "status": 1.0},
    ),
)

DEFAULT_VECTOR_TYPES: tuple[VectorTypeMetadata, ...] = (
    VectorTypeMetadata(
        name="semantic",
        description="Core semantic understanding of tool content",
        category=VectorCategory.SEMANTIC,
        target_partitions=("tools", "functionality", "usecases", "interface"),
        weight=1.0,
    ),
    VectorTypeMetadata(
        name="entities.functionality",
        description="Specific functionality and feature entities",
        category=VectorCategory.ENTITY,
        target_partitions=("functionality",),
        weight=1.2,
    ),
    VectorTypeMetadata(
        name="entities.industries",
        description="Industry and sector entities",
        category=VectorCategory.ENTITY,
        target_partitions=("usecases",),
        weight=1.1,
    ),
    VectorTypeMetadata(
        name="entities.userTypes",
        description="User type and role entities",
        category=VectorCategory.ENTITY,
        target_partitions=("usecases",),
        weight=1.1,
    ),
    VectorTypeMetadata(
        name="entities.interface",
        description="Technical interface entities",
        category=VectorCategory.ENTITY,
        target_partitions=("interface",),
        weight=1.1,
    ),
    VectorTypeMetadata(
        name="composites.identity",
        description="Combined identity information (name + description)",
        category=VectorCategory.COMPOSITE,
        target_partitions=("tools",),
        weight=1.3,
    ),
    VectorTypeMetadata(
        name="composites.capabilities",
        description="Combined capabilities and features",
        category=VectorCategory.COMPOSITE,
        target_partitions=("functionality",),
        weight=1.4,
    ),
    VectorTypeMetadata(
        name="composites.usecase",
        description="Combined use case information",
        category=VectorCategory.COMPOSITE,
        target_partitions=("usecases",),
        weight=1.3,
    ),
    VectorTypeMetadata(
        name="composites.technical",
        description="Combined technical specifications",
        category=VectorCategory.COMPOSITE,
        target_partitions=("interface",),
        weight=1.2,
    ),
    VectorTypeMetadata(
        name="domain.pricing",
        description="Pricing and business model information",
        category=VectorCategory.DOMAIN,
        target_partitions=("interface",),
        weight=0.8,
    ),
    VectorTypeMetadata(
        name="domain.deployment",
        description="Deployment and infrastructure information",
        category=VectorCategory.DOMAIN,
        target_partitions=("usecases", "interface"),
        weight=0.9,
    ),
    VectorTypeMetadata(
        name="legacy.categories",
        description="Legacy category-based vectors",
        category=VectorCategory.ENTITY,
        target_partitions=("functionality",),
        weight=0.5,
        deprecated=True,
        deprecation_message="Use entities.functionality instead",
    ),
)

DEFAULT_COMBINATIONS: tuple[VectorTypeCombination, ...] = (
    VectorTypeCombination(
        types=("semantic", "composites.identity"),
        description="General tool discovery",
        use_case="Users searching for tools by name or general description",
        partitions=("tools",),
    ),
    VectorTypeCombination(
        types=("semantic", "entities.functionality", "composites.capabilities"),
        description="Feature-specific search",
        use_case="Users looking for specific capabilities or features",
        partitions=("functionality",),
    ),
    VectorTypeCombination(
        types=("semantic", "entities.industries", "entities.userTypes", "composites.usecase"),
        description="Industry and role-based search",
        use_case="Users in specific industries or roles looking for relevant tools",
        partitions=("usecases",),
    ),
    VectorTypeCombination(
        types=("semantic", "entities.interface", "composites.technical"),
        description="Technical implementation search",
        use_case="Developers looking for specific technical requirements",
        partitions=("interface",),
    ),
)

# query keyword -> vector types worth searching
_VECTOR_TYPE_HINTS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("feature", "functionality", "capability", "can ", "able to"), ("entities.functionality", "composites.capabilities")),
    (("industry", "sector", "healthcare", "finance", "education"), ("entities.industries",)),
    (("developer", "designer", "business", "student", "teacher"), ("entities.userTypes",)),
    (("api", "sdk", "library", "framework", "interface"), ("entities.interface", "composites.technical")),
    (("price", "cost", "free", "pricing", "subscription"), ("domain.pricing",)),
    (("deploy", "host", "cloud", "on-premise", "server"), ("domain.deployment",)),
)


class PartitionRegistry:
    def __init__(
        self,
        partitions: Iterable[PartitionConfig] = DEFAULT_PARTITIONS,
        vector_types: Iterable[VectorTypeMetadata] = DEFAULT_VECTOR_TYPES,
        combinations: Iterable[VectorTypeCombination] = DEFAULT_COMBINATIONS,
    ):
        self._partitions: dict[str, PartitionConfig] = {}
        for partition in partitions:
            if partition.name in self._partitions:
                raise ConfigurationError(f"Duplicate partition: {partition.name}")
            self._check_partition(partition)
            self._partitions[partition.name] = partition

        self._vector_types: dict[str, VectorTypeMetadata] = {}
        for vector_type in vector_types:
            if vector_type.name in self._vector_types:
                raise ConfigurationError(f"Duplicate vector type: {vector_type.name}")
            unknown = [p for p in vector_type.target_partitions if p not in self._partitions]
            if unknown:
                raise ConfigurationError(
                    f"Vector type {vector_type.name} targets unknown partitions: {', '.join(unknown)}"
                )
            self._vector_types[vector_type.name] = vector_type

        for partition in self._partitions.values():
            unknown = [t for t in partition.vector_types if t not in self._vector_types]
            if unknown:
                raise ConfigurationError(
                    f"Partition {partition.name} references unknown vector types: {', '.join(unknown)}"
                )

        if not any(p.purpose == PartitionPurpose.IDENTITY and p.enabled for p in self._partitions.values()):
            raise ConfigurationError("Registry needs at least one enabled identity partition")

        self._combinations = tuple(combinations)

    @classmethod
    def from_dicts(
        cls,
        partitions: Sequence[dict[str, Any]],
        vector_types: Sequence[dict[str, Any]],
    ) -> "PartitionRegistry":
        try:
            return cls(
                partitions=[PartitionConfig.model_validate(p) for p in partitions],
                vector_types=[VectorTypeMetadata.model_validate(v) for v in vector_types],
                combinations=(),
            )
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid registry table: {e}") from e

    @staticmethod
    def _check_partition(partition: PartitionConfig) -> None:
        if not partition.content_fields:
            raise ConfigurationError(f"Partition {partition.name} has no content fields")
        if not partition.vector_types:
            raise ConfigurationError(f"Partition {partition.name} has no vector types")
        for field in partition.content_fields:
            weight = partition.weightings.get(field)
            if weight is None:
                raise ConfigurationError(f"Partition {partition.name}: content field '{field}' has no weighting")
            if weight < 0:
                raise ConfigurationError(f"Partition {partition.name}: weighting for '{field}' is negative")

    # --- Partitions ---

    def partitions(self) -> list[PartitionConfig]:
        return list(self._partitions.values())

    def enabled_partitions(self) -> list[PartitionConfig]:
        return [p for p in self._partitions.values() if p.enabled]

    def partition_names(self, enabled_only: bool = False) -> list[str]:
        source = self.enabled_partitions() if enabled_only else self.partitions()
        return [p.name for p in source]

    def get(self, name: str) -> PartitionConfig | None:
        return self._partitions.get(name)

    def require(self, name: str) -> PartitionConfig:
        partition = self._partitions.get(name)
        if partition is None:
            raise ConfigurationError(f"Unknown partition: {name}")
        return partition

    def by_purpose(self, purpose: PartitionPurpose | str, enabled_only: bool = True) -> list[PartitionConfig]:
        source = self.enabled_partitions() if enabled_only else self.partitions()
        return [p for p in source if p.purpose == purpose]

    @property
    def identity_partition(self) -> PartitionConfig:
        return self.by_purpose(PartitionPurpose.IDENTITY)[0]

    def validate_names(self, names: Iterable[str]) -> tuple[list[str], list[str]]:
        valid: list[str] = []
        invalid: list[str] = []
        for name in names:
            (valid if name in self._partitions else invalid).append(name)
        return valid, invalid

    def primary_vector_type(self, partition_name: str) -> str:
        """Most specific vector type of a partition: first `entities.*`, else the first listed."""
        partition = self.get(partition_name)
        if partition is None or not partition.vector_types:
            return DEFAULT_VECTOR_TYPE
        for vector_type in partition.vector_types:
            if vector_type.startswith("entities."):
                return vector_type
        return partition.vector_types[0]

    def partition_weights(self) -> dict[str, float]:
        """Fusion weight per partition, taken from its primary vector type."""
        weights: dict[str, float] = {}
        for partition in self._partitions.values():
            metadata = self._vector_types.get(self.primary_vector_type(partition.name))
            weights[partition.name] = metadata.weight if metadata else 1.0
        return weights

    # --- Vector types ---

    def vector_types(self, include_deprecated: bool = False) -> list[VectorTypeMetadata]:
        return [v for v in self._vector_types.values() if include_deprecated or not v.deprecated]

    def vector_type(self, name: str, include_deprecated: bool = False) -> VectorTypeMetadata | None:
        metadata = self._vector_types.get(name)
        if metadata is None or (metadata.deprecated and not include_deprecated):
            return None
        return metadata

    def is_valid_vector_type(self, name: str) -> bool:
        return self.vector_type(name) is not None

    def vector_types_for_partition(self, partition_name: str) -> list[VectorTypeMetadata]:
        return [v for v in self.vector_types() if partition_name in v.target_partitions]

    def vector_types_by_category(self, category: VectorCategory | str) -> list[VectorTypeMetadata]:
        return [v for v in self.vector_types() if v.category == category]

    def vector_type_weights(self, names: Iterable[str] | None = None) -> dict[str, float]:
        if names is None:
            return {v.name: v.weight for v in self.vector_types()}
        weights: dict[str, float] = {}
        for name in names:
            metadata = self.vector_type(name)
            if metadata:
                weights[name] = metadata.weight
        return weights

    def deprecation_warnings(self, names: Iterable[str]) -> list[str]:
        warnings: list[str] = []
        for name in names:
            metadata = self._vector_types.get(name)
            if metadata and metadata.deprecated and metadata.deprecation_message:
                warnings.append(f"{name}: {metadata.deprecation_message}")
        return warnings

    def validate_combination(self, names: Sequence[str]) -> tuple[bool, list[str]]:
        issues: list[str] = []
        if not names:
            return False, ["Vector type combination cannot be empty"]

        for name in names:
            if not self.is_valid_vector_type(name):
                issues.append(f"Vector type '{name}' not found or is deprecated")

        if len(set(names)) != len(names):
            issues.append("Duplicate vector types in combination")

        if len(names) > 1 and not any(name.startswith(DEFAULT_VECTOR_TYPE) for name in names):
            issues.append("Multi-vector combinations should include semantic type for best results")

        target_sets = []
        for name in names:
            metadata = self.vector_type(name)
            target_sets.append(set(metadata.target_partitions) if metadata else set())
        if not set.intersection(*target_sets):
            issues.append("Vector types have no common target partitions")

        return not issues, issues

    def combinations(self) -> list[VectorTypeCombination]:
        return list(self._combinations)

    def combination_for_use_case(self, use_case: str) -> VectorTypeCombination | None:
        needle = use_case.lower()
        for combination in self._combinations:
            if needle in combination.use_case.lower():
                return combination
        return None

    def recommended_vector_types(self, query: str, partitions: Sequence[str] | None = None) -> list[str]:
        query_lower = query.lower()
        recommended = [DEFAULT_VECTOR_TYPE]
        for keywords, types in _VECTOR_TYPE_HINTS:
            if any(keyword in query_lower for keyword in keywords):
                recommended.extend(types)

        recommended = [name for name in dict.fromkeys(recommended) if self.is_valid_vector_type(name)]
        if partitions:
            recommended = [
                name
                for name in recommended
                if any(p in partitions for p in self._vector_types[name].target_partitions)
            ]
        return recommended

    def summary(self) -> dict[str, Any]:
        active = self.vector_types()
        return {
            "total_partitions": len(self._partitions),
            "enabled_partitions": len(self.enabled_partitions()),
            "partitions_by_purpose": dict(Counter(str(p.purpose) for p in self._partitions.values())),
            "total_vector_types": len(active),
            "vector_types_by_category": dict(Counter(str(v.category) for v in active)),
            "deprecated_vector_types": sum(1 for v in self._vector_types.values() if v.deprecated),
            "total_content_fields": len({f for p in self._partitions.values() for f in p.content_fields}),
        }
