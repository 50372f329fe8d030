from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np


@dataclass
class Document:
    """Canonical record from the document store."""

    id: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass
class VectorHit:
    id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class CollectionInfo:
    name: str
    exists: bool
    points_count: int | None = None
    dimension: int | None = None


class EmbeddingProvider(Protocol):
    async def embed(self, texts: list[str]) -> np.ndarray: ...

    async def embed_one(self, text: str) -> np.ndarray: ...


class DocumentStore(Protocol):
    async def get_all(self) -> list[Document]: ...

    async def count(self) -> int: ...


class VectorStore(Protocol):
    async def upsert(
        self,
        id: str,
        vector: np.ndarray,
        payload: dict[str, Any],
        vector_type: str,
    ) -> None: ...

    async def search(
        self,
        vector: np.ndarray,
        top_k: int,
        filter: dict[str, Any] | None = None,
        vector_type: str | None = None,
    ) -> list[VectorHit]: ...

    async def collection_info(self, name: str) -> CollectionInfo: ...


def matches_filter(payload: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    """Equality filter; a list value matches when it contains the wanted value."""
    if not filter:
        return True
    for key, wanted in filter.items():
        value = payload.get(key)
        if isinstance(value, list | tuple | set):
            if wanted not in value:
                return False
        elif value != wanted:
            return False
    return True
