from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from tooldex.constants import HEALTHY_SYNC_PERCENT, VALIDATION_SAMPLE_SIZE, WARNING_SYNC_PERCENT
from tooldex.errors import describe_error
from tooldex.indexing import build_partition_text
from tooldex.logging import get_logger
from tooldex.registry import PartitionConfig, PartitionRegistry
from tooldex.stores.base import Document, DocumentStore, EmbeddingProvider, VectorStore

_logger = get_logger(__name__)


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.WARNING: 1, HealthStatus.ERROR: 2}


def classify_sync(sync_percentage: float) -> HealthStatus:
    if sync_percentage >= HEALTHY_SYNC_PERCENT:
        return HealthStatus.HEALTHY
    if sync_percentage >= WARNING_SYNC_PERCENT:
        return HealthStatus.WARNING
    return HealthStatus.ERROR


def sync_percentage(vector_count: int, expected_count: int) -> float:
    if expected_count <= 0:
        return 100.0
    return min(100.0, vector_count / expected_count * 100)


@dataclass
class PartitionHealth:
    name: str
    vector_type: str
    vector_count: int = 0
    expected_count: int = 0
    missing_vectors: int = 0
    orphaned_vectors: int = 0
    sync_percentage: float = 0.0
    status: HealthStatus = HealthStatus.ERROR
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    sample_validation_passed: bool | None = None
    dimension: int | None = None


@dataclass
class HealthReport:
    partitions: dict[str, PartitionHealth]
    document_count: int = 0
    vector_count: int = 0
    missing_vectors: int = 0
    orphaned_vectors: int = 0
    sample_validation_passed: bool = True
    status: HealthStatus = HealthStatus.HEALTHY
    recommendations: list[str] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY and self.sample_validation_passed


def unavailable_report(registry: PartitionRegistry, reason: str) -> HealthReport:
    """Every enabled partition in `error`, for when the stores cannot be read at all."""
    return HealthReport(
        partitions={
            p.name: PartitionHealth(
                name=p.name,
                vector_type=registry.primary_vector_type(p.name),
                issues=[reason],
            )
            for p in registry.enabled_partitions()
        },
        sample_validation_passed=False,
        status=HealthStatus.ERROR,
        recommendations=["Index validation failed due to errors"],
    )


class ConsistencyValidator:
    """Compares the document store against the vector index, one partition at a time.

    The two stores may be written concurrently by an indexing job, so counts
    are read without any cross-store lock and small skews are expected.
    `validate()` never raises: failures degrade the affected partition to
    `error` and the rest are still evaluated.
    """

    def __init__(
        self,
        registry: PartitionRegistry,
        document_store: DocumentStore,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        sample_size: int = VALIDATION_SAMPLE_SIZE,
        expected_dimension: int | None = None,
    ):
        self.registry = registry
        self.document_store = document_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.sample_size = sample_size
        self.expected_dimension = expected_dimension

    async def validate(self) -> HealthReport:
        try:
            documents = await self.document_store.get_all()
        except Exception as e:
            _logger.warning("Could not read document store: %s", e)
            return unavailable_report(self.registry, f"Document store unavailable: {describe_error(e)}")

        partitions: dict[str, PartitionHealth] = {}
        for partition in self.registry.enabled_partitions():
            partitions[partition.name] = await self._validate_partition(partition, documents)

        return self._aggregate(partitions, len(documents))

    async def _validate_partition(self, partition: PartitionConfig, documents: list[Document]) -> PartitionHealth:
        vector_type = self.registry.primary_vector_type(partition.name)
        health = PartitionHealth(name=partition.name, vector_type=vector_type, expected_count=len(documents))
        try:
            await self._check_counts(health)
            if health.vector_count > 0 and documents:
                health.sample_validation_passed = await self._check_samples(partition, vector_type, documents, health)
        except Exception as e:
            _logger.warning("Validation failed for partition %s: %s", partition.name, e)
            health.status = HealthStatus.ERROR
            health.issues.append(f"Validation error: {describe_error(e)}")
            health.recommendations.append(f"{partition.name}: check vector store connectivity and re-run validation")
            return health

        if health.status != HealthStatus.HEALTHY:
            _logger.warning(
                "Partition %s is %s (%.1f%% in sync)", partition.name, health.status, health.sync_percentage
            )
        else:
            _logger.info("Partition %s is healthy (%d vectors)", partition.name, health.vector_count)
        return health

    async def _check_counts(self, health: PartitionHealth) -> None:
        info = await self.vector_store.collection_info(health.vector_type)
        health.vector_count = info.points_count or 0
        health.dimension = info.dimension
        health.missing_vectors = max(0, health.expected_count - health.vector_count)
        health.orphaned_vectors = max(0, health.vector_count - health.expected_count)
        health.sync_percentage = sync_percentage(health.vector_count, health.expected_count)
        health.status = classify_sync(health.sync_percentage)

        if not info.exists:
            health.issues.append(f"Vector space '{health.vector_type}' does not exist")
        if health.missing_vectors:
            health.issues.append(f"{health.missing_vectors} documents have no vector")
            health.recommendations.append(
                f"{health.name}: {health.missing_vectors} documents are missing from vector index - run indexing process"
            )
        if health.orphaned_vectors:
            health.issues.append(f"{health.orphaned_vectors} vectors have no document")
            health.recommendations.append(
                f"{health.name}: {health.orphaned_vectors} orphaned vectors found - consider cleanup"
            )
        if self.expected_dimension and info.dimension and info.dimension != self.expected_dimension:
            health.status = HealthStatus.ERROR
            health.issues.append(
                f"Vector dimension mismatch: expected {self.expected_dimension}, got {info.dimension}"
            )
            health.recommendations.append(f"{health.name}: rebuild the index with the configured embedding model")

    async def _check_samples(
        self,
        partition: PartitionConfig,
        vector_type: str,
        documents: list[Document],
        health: PartitionHealth,
    ) -> bool:
        for document in documents[: self.sample_size]:
            text = build_partition_text(partition, document)
            if not text:
                continue
            try:
                vector = await self.embedder.embed_one(text)
                hits = await self.vector_store.search(vector, 1, None, vector_type)
            except Exception as e:
                health.issues.append(f"Embedding validation error for document {document.id}: {describe_error(e)}")
                health.recommendations.append(f"{partition.name}: embedding validation errored - check the embedding provider")
                return False
            if not hits or hits[0].id != document.id:
                found = hits[0].id if hits else "nothing"
                health.issues.append(f"Sample document {document.id} resolved to {found}")
                health.recommendations.append(
                    f"{partition.name}: embedding validation failed for document {document.id} - re-index partition"
                )
                return False
        return True

    def _aggregate(self, partitions: dict[str, PartitionHealth], document_count: int) -> HealthReport:
        values = list(partitions.values())
        status = HealthStatus.HEALTHY
        for health in values:
            if _SEVERITY[health.status] > _SEVERITY[status]:
                status = health.status

        report = HealthReport(
            partitions=partitions,
            document_count=document_count,
            vector_count=sum(h.vector_count for h in values),
            missing_vectors=sum(h.missing_vectors for h in values),
            orphaned_vectors=sum(h.orphaned_vectors for h in values),
            sample_validation_passed=all(h.sample_validation_passed is not False for h in values),
            status=status,
            recommendations=[r for h in values for r in h.recommendations],
        )
        if not values:
            report.recommendations.append("No enabled partitions to validate")
        return report
