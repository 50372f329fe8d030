import pytest

from tooldex.errors import TransientStoreError
from tooldex.indexing import PartitionIndexer
from tooldex.registry import PartitionRegistry
from tooldex.stores import CollectionInfo, Document, InMemoryDocumentStore, InMemoryVectorStore, VectorHit
from tooldex.validation import ConsistencyValidator, HealthStatus, classify_sync, sync_percentage
from tests.conftest import TOOL_DOCUMENTS, TEST_EMBEDDING_DIM, FakeEmbedder


def _documents(count: int) -> list[Document]:
    return [
        Document(id=f"tool-{i}", fields={"name": f"Tool {i}", "description": f"Does thing number {i}"})
        for i in range(count)
    ]


class FailingInfoStore(InMemoryVectorStore):
    def __init__(self, failing: str):
        super().__init__(TEST_EMBEDDING_DIM)
        self.failing = failing

    async def collection_info(self, name: str) -> CollectionInfo:
        if name == self.failing:
            raise TransientStoreError("connection reset")
        return await super().collection_info(name)


class WrongHitStore(InMemoryVectorStore):
    async def search(self, vector, top_k, filter=None, vector_type=None):
        return [VectorHit(id="someone-else", score=1.0)]


class BrokenDocumentStore:
    async def get_all(self) -> list[Document]:
        raise OSError("disk gone")

    async def count(self) -> int:
        raise OSError("disk gone")


async def _validator(
    registry: PartitionRegistry,
    documents: list[Document],
    indexed: list[Document] | None = None,
    vector_store: InMemoryVectorStore | None = None,
    **kwargs,
) -> ConsistencyValidator:
    embedder = FakeEmbedder()
    vector_store = vector_store or InMemoryVectorStore(TEST_EMBEDDING_DIM)
    await PartitionIndexer(registry, embedder, vector_store).index_all(documents if indexed is None else indexed)
    return ConsistencyValidator(registry, InMemoryDocumentStore(documents), vector_store, embedder, **kwargs)


class TestClassification:
    @pytest.mark.parametrize(
        "percentage,status",
        [
            (100.0, HealthStatus.HEALTHY),
            (95.0, HealthStatus.HEALTHY),
            (94.9, HealthStatus.WARNING),
            (70.0, HealthStatus.WARNING),
            (69.9, HealthStatus.ERROR),
            (0.0, HealthStatus.ERROR),
        ],
    )
    def test_thresholds(self, percentage: float, status: HealthStatus):
        assert classify_sync(percentage) == status

    def test_sync_percentage(self):
        assert sync_percentage(80, 100) == 80.0
        assert sync_percentage(120, 100) == 100.0
        assert sync_percentage(5, 0) == 100.0


class TestConsistency:
    @pytest.mark.asyncio
    async def test_missing_vectors_warn(self, registry: PartitionRegistry):
        documents = _documents(100)
        validator = await _validator(registry, documents, indexed=documents[:80])

        report = await validator.validate()

        tools = report.partitions["tools"]
        assert tools.vector_count == 80
        assert tools.expected_count == 100
        assert tools.missing_vectors == 20
        assert tools.sync_percentage == 80.0
        assert tools.status == HealthStatus.WARNING
        assert tools.sample_validation_passed is True
        assert "tools: 20 documents are missing from vector index - run indexing process" in tools.recommendations

    @pytest.mark.asyncio
    async def test_fully_indexed_is_healthy(self, registry: PartitionRegistry):
        validator = await _validator(registry, TOOL_DOCUMENTS)

        report = await validator.validate()

        assert report.status == HealthStatus.HEALTHY
        assert report.healthy
        assert report.document_count == 3
        assert report.vector_count == 12
        assert report.recommendations == []
        assert all(h.sample_validation_passed for h in report.partitions.values())

    @pytest.mark.asyncio
    async def test_orphaned_vectors(self, registry: PartitionRegistry):
        validator = await _validator(registry, TOOL_DOCUMENTS[:2], indexed=TOOL_DOCUMENTS)

        report = await validator.validate()

        tools = report.partitions["tools"]
        assert tools.orphaned_vectors == 1
        assert tools.sync_percentage == 100.0
        assert tools.status == HealthStatus.HEALTHY
        assert any("orphaned" in r for r in tools.recommendations)

    @pytest.mark.asyncio
    async def test_missing_space_is_error(self, registry: PartitionRegistry):
        validator = await _validator(registry, _documents(10))

        report = await validator.validate()

        functionality = report.partitions["functionality"]
        assert functionality.vector_count == 0
        assert functionality.status == HealthStatus.ERROR
        assert "Vector space 'entities.functionality' does not exist" in functionality.issues
        assert functionality.sample_validation_passed is None
        assert report.status == HealthStatus.ERROR

    @pytest.mark.asyncio
    async def test_empty_document_store(self, registry: PartitionRegistry):
        validator = await _validator(registry, [])

        report = await validator.validate()

        assert all(h.sync_percentage == 100.0 for h in report.partitions.values())
        assert report.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self, registry: PartitionRegistry):
        validator = await _validator(registry, TOOL_DOCUMENTS, expected_dimension=TEST_EMBEDDING_DIM * 2)

        report = await validator.validate()

        assert report.status == HealthStatus.ERROR
        assert any("dimension mismatch" in issue for issue in report.partitions["tools"].issues)


class TestSampleValidation:
    @pytest.mark.asyncio
    async def test_mismatched_sample(self, registry: PartitionRegistry):
        validator = await _validator(registry, TOOL_DOCUMENTS, vector_store=WrongHitStore(TEST_EMBEDDING_DIM))

        report = await validator.validate()

        tools = report.partitions["tools"]
        assert tools.sample_validation_passed is False
        assert "Sample document postman resolved to someone-else" in tools.issues
        assert not report.sample_validation_passed
        assert not report.healthy

    @pytest.mark.asyncio
    async def test_sample_size_limits_probes(self, registry: PartitionRegistry):
        documents = _documents(20)
        validator = await _validator(registry, documents, sample_size=3)
        validator.embedder.calls.clear()

        await validator.validate()

        # only the tools partition has content for these documents
        assert len(validator.embedder.calls) == 3


class TestDegradation:
    @pytest.mark.asyncio
    async def test_one_partition_fails(self, registry: PartitionRegistry):
        validator = await _validator(registry, TOOL_DOCUMENTS, vector_store=FailingInfoStore("entities.interface"))

        report = await validator.validate()

        interface = report.partitions["interface"]
        assert interface.status == HealthStatus.ERROR
        assert interface.issues == ["Validation error: TransientStoreError: connection reset"]
        assert report.partitions["tools"].status == HealthStatus.HEALTHY
        assert report.status == HealthStatus.ERROR

    @pytest.mark.asyncio
    async def test_document_store_unavailable(self, registry: PartitionRegistry):
        validator = ConsistencyValidator(
            registry, BrokenDocumentStore(), InMemoryVectorStore(TEST_EMBEDDING_DIM), FakeEmbedder()
        )

        report = await validator.validate()

        assert report.status == HealthStatus.ERROR
        assert not report.sample_validation_passed
        assert set(report.partitions) == {"tools", "functionality", "usecases", "interface"}
        assert all(h.status == HealthStatus.ERROR for h in report.partitions.values())
