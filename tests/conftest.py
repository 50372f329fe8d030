import hashlib
from collections.abc import AsyncGenerator
from pathlib import Path

import numpy as np
import pytest
import pytest_asyncio

from tooldex.indexing import PartitionIndexer
from tooldex.registry import PartitionRegistry
from tooldex.stores import Document, InMemoryDocumentStore, InMemoryVectorStore, SqliteStore

TEST_EMBEDDING_DIM = 64


def mock_embedding(text: str, dim: int = TEST_EMBEDDING_DIM) -> np.ndarray:
    h = hashlib.md5(text.encode()).hexdigest()
    # MD5 is 32 chars, repeat to get the requested dimension
    arr = np.array([int(c, 16) / 15.0 - 0.5 for c in h] * (dim // 32))
    norm = np.linalg.norm(arr)
    return arr / norm if norm > 0 else arr


class FakeEmbedder:
    def __init__(self, dim: int = TEST_EMBEDDING_DIM):
        self.dim = dim
        self.calls: list[str] = []

    async def embed(self, texts: list[str]) -> np.ndarray:
        self.calls.extend(texts)
        if not texts:
            return np.empty((0, self.dim))
        return np.stack([mock_embedding(t, self.dim) for t in texts])

    async def embed_one(self, text: str) -> np.ndarray:
        return (await self.embed([text]))[0]


def make_tool(id: str, name: str, description: str, **fields) -> Document:
    return Document(id=id, fields={"name": name, "description": description, **fields})


TOOL_DOCUMENTS = [
    make_tool(
        "postman",
        "Postman",
        "API platform for building and testing APIs",
        category="api",
        tagline="Build APIs together",
        functionality=["api testing", "mock servers", "documentation"],
        categories=["developer tools"],
        industries=["technology"],
        userTypes=["developer"],
        deployment=["cloud"],
        interface=["web", "desktop"],
        pricingModel="freemium",
        status="active",
    ),
    make_tool(
        "insomnia",
        "Insomnia",
        "Open source API client for REST and GraphQL",
        category="api",
        functionality=["api testing", "graphql"],
        categories=["developer tools"],
        industries=["technology"],
        userTypes=["developer"],
        deployment=["desktop"],
        interface=["desktop"],
        pricingModel="free",
        status="active",
    ),
    make_tool(
        "epic-fhir",
        "Epic FHIR",
        "Healthcare interoperability API for patient records",
        category="healthcare",
        functionality=["patient records", "fhir"],
        categories=["healthcare"],
        industries=["healthcare"],
        userTypes=["developer", "business"],
        deployment=["cloud", "on-premise"],
        interface=["api"],
        pricingModel="enterprise",
        status="active",
    ),
]


@pytest.fixture
def registry() -> PartitionRegistry:
    return PartitionRegistry()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore(TEST_EMBEDDING_DIM)


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(TOOL_DOCUMENTS)


@pytest_asyncio.fixture
async def indexed_store(
    registry: PartitionRegistry, embedder: FakeEmbedder, vector_store: InMemoryVectorStore
) -> InMemoryVectorStore:
    await PartitionIndexer(registry, embedder, vector_store).index_all(TOOL_DOCUMENTS)
    return vector_store


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path) -> AsyncGenerator[SqliteStore]:
    store = SqliteStore(tmp_path / "test_index.db", TEST_EMBEDDING_DIM)
    await store.connect()
    yield store
    await store.close()
