from tooldex.stores.base import (
    CollectionInfo,
    Document,
    DocumentStore,
    EmbeddingProvider,
    VectorHit,
    VectorStore,
)
from tooldex.stores.memory import InMemoryDocumentStore, InMemoryVectorStore
from tooldex.stores.sqlite import SqliteStore

__all__ = [
    "CollectionInfo",
    "Document",
    "DocumentStore",
    "EmbeddingProvider",
    "InMemoryDocumentStore",
    "InMemoryVectorStore",
    "SqliteStore",
    "VectorHit",
    "VectorStore",
]
