from pathlib import Path

import pytest

from tooldex.config import Config
from tooldex.dedup import DeduplicationConfig, DedupStrategy
from tooldex.engine import SearchEngine
from tooldex.errors import ConfigurationError, PermanentStoreError
from tooldex.indexing import PartitionIndexer
from tooldex.registry import PartitionRegistry
from tooldex.routing import RoutingMethod
from tooldex.search import FusedResult, SearchOptions
from tooldex.stores import InMemoryDocumentStore, InMemoryVectorStore, SqliteStore
from tooldex.validation import HealthStatus
from tests.conftest import TOOL_DOCUMENTS, TEST_EMBEDDING_DIM, FakeEmbedder


class BrokenTypeStore(InMemoryVectorStore):
    def __init__(self, broken: str):
        super().__init__(TEST_EMBEDDING_DIM)
        self.broken = broken

    async def search(self, vector, top_k, filter=None, vector_type=None):
        if vector_type == self.broken:
            raise PermanentStoreError("index offline")
        return await super().search(vector, top_k, filter, vector_type)


@pytest.fixture
def engine(
    registry: PartitionRegistry,
    embedder: FakeEmbedder,
    indexed_store: InMemoryVectorStore,
    document_store: InMemoryDocumentStore,
) -> SearchEngine:
    return SearchEngine(
        registry,
        embedder,
        indexed_store,
        document_store,
        search_options=SearchOptions(retries=0),
    )


class TestRun:
    @pytest.mark.asyncio
    async def test_end_to_end(self, engine: SearchEngine):
        response = await engine.run("healthcare api")

        assert response.routing.selected_partitions == ("tools", "usecases", "interface")
        assert response.routing.method == RoutingMethod.VOCABULARY
        assert len(response.partition_results) == 3
        assert not response.partial
        # every tool is indexed in every partition, so fused ids collapse to the three tools
        assert {r.id for r in response.results} == {"postman", "insomnia", "epic-fhir"}
        assert all(isinstance(r, FusedResult) for r in response.results)
        assert all(r.merged_from_count == 3 for r in response.results)

    @pytest.mark.asyncio
    async def test_results_ranked(self, engine: SearchEngine):
        response = await engine.run("Postman", partitions=["tools"], deduplication={"strategy": "id_based"})

        scores = [r.weighted_score for r in response.results]
        assert scores == sorted(scores, reverse=True)
        assert response.routing.method == RoutingMethod.MANUAL

    @pytest.mark.asyncio
    async def test_partial_failure(
        self, registry: PartitionRegistry, embedder: FakeEmbedder, document_store: InMemoryDocumentStore
    ):
        store = BrokenTypeStore("entities.industries")
        await PartitionIndexer(registry, embedder, store).index_all(TOOL_DOCUMENTS)
        engine = SearchEngine(registry, embedder, store, document_store, SearchOptions(retries=0))

        response = await engine.run("healthcare api")

        assert response.partial
        assert response.errors == {"usecases": "index offline"}
        assert len(response.results) == 3

    @pytest.mark.asyncio
    async def test_all_failed(self, registry: PartitionRegistry, embedder: FakeEmbedder):
        store = BrokenTypeStore("semantic")
        engine = SearchEngine(registry, embedder, store, search_options=SearchOptions(retries=0))

        response = await engine.run("Postman", partitions=["tools"])

        assert response.results == []
        assert response.errors == {"tools": "index offline"}

    @pytest.mark.asyncio
    async def test_unknown_vector_type_rejected_before_search(self, engine: SearchEngine, embedder: FakeEmbedder):
        embedder.calls.clear()
        with pytest.raises(ConfigurationError, match="entities.nope"):
            await engine.run("healthcare api", vector_types=["entities.interface", "entities.nope"])
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_analysis_attached(self, engine: SearchEngine):
        response = await engine.run("how to test an api")
        assert response.analysis.intent == "learning"

    @pytest.mark.asyncio
    async def test_metrics_collected(self, engine: SearchEngine):
        await engine.run("healthcare api")
        assert engine.metrics.get("entities.interface").samples == 1
        assert len(engine.dedup_monitor.runs()) == 1


class TestComponents:
    def test_default_fusion_weights_from_registry(self, engine: SearchEngine, registry: PartitionRegistry):
        assert engine.fusion.config.source_weights == registry.partition_weights()

    def test_deduplicate_passthrough(self, engine: SearchEngine):
        result = engine.deduplicate([], DeduplicationConfig(strategy=DedupStrategy.ID_BASED))
        assert result.unique_results == []

    @pytest.mark.asyncio
    async def test_validate_consistency(self, engine: SearchEngine):
        report = await engine.validate_consistency()
        assert report.status == HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_validate_without_document_store(self, registry: PartitionRegistry, embedder: FakeEmbedder):
        engine = SearchEngine(registry, embedder, InMemoryVectorStore(TEST_EMBEDDING_DIM))

        report = await engine.validate_consistency()

        assert report.status == HealthStatus.ERROR
        assert not report.sample_validation_passed
        assert set(report.partitions) == {p.name for p in registry.enabled_partitions()}
        assert all(h.issues == ["No document store configured"] for h in report.partitions.values())


class TestFromConfig:
    @pytest.mark.asyncio
    async def test_sqlite_backed_engine(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        config = Config(db_path=tmp_path / "index.db", top_k=2, retries=0)
        embedder = FakeEmbedder(config.embedding.dim)

        async with SqliteStore(config.db_path, config.embedding.dim) as store:
            await store.put_documents(TOOL_DOCUMENTS)
            await PartitionIndexer(PartitionRegistry(), embedder, store).index_all(TOOL_DOCUMENTS)
            engine = SearchEngine.from_config(config, store, embedder=embedder)

            response = await engine.run("Postman", partitions=["tools"])
            report = await engine.validate_consistency()

        assert len(response.results) == 2
        assert {r.id for r in response.results} <= {"postman", "insomnia", "epic-fhir"}
        assert report.status == HealthStatus.HEALTHY
        assert engine.executor.options.top_k == 2
