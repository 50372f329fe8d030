from collections.abc import Iterable
from typing import Any

import numpy as np

from tooldex.errors import PermanentStoreError
from tooldex.stores.base import CollectionInfo, Document, VectorHit, matches_filter


class InMemoryDocumentStore:
    def __init__(self, documents: Iterable[Document] = ()):
        self._documents: dict[str, Document] = {}
        for document in documents:
            self.put(document)

    def put(self, document: Document) -> None:
        self._documents[document.id] = document

    def delete(self, doc_id: str) -> bool:
        return self._documents.pop(doc_id, None) is not None

    async def get(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    async def get_all(self) -> list[Document]:
        return list(self._documents.values())

    async def count(self) -> int:
        return len(self._documents)


class InMemoryVectorStore:
    """Brute-force cosine search over named vector spaces, one per vector type."""

    def __init__(self, dimension: int | None = None):
        self.dimension = dimension
        self._spaces: dict[str, dict[str, tuple[np.ndarray, dict[str, Any]]]] = {}

    @staticmethod
    def _unit(vector: np.ndarray) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float64)
        norm = np.linalg.norm(arr)
        return arr / norm if norm > 0 else arr

    async def upsert(self, id: str, vector: np.ndarray, payload: dict[str, Any], vector_type: str) -> None:
        arr = self._unit(vector)
        if self.dimension is None:
            self.dimension = arr.shape[0]
        elif arr.shape[0] != self.dimension:
            raise PermanentStoreError(f"Vector dimension {arr.shape[0]} does not match store dimension {self.dimension}")
        self._spaces.setdefault(vector_type, {})[id] = (arr, dict(payload))

    async def delete(self, id: str, vector_type: str | None = None) -> int:
        spaces = [vector_type] if vector_type else list(self._spaces)
        removed = 0
        for name in spaces:
            if self._spaces.get(name, {}).pop(id, None) is not None:
                removed += 1
        return removed

    async def search(
        self,
        vector: np.ndarray,
        top_k: int,
        filter: dict[str, Any] | None = None,
        vector_type: str | None = None,
    ) -> list[VectorHit]:
        if vector_type is not None:
            points = list(self._spaces.get(vector_type, {}).items())
        else:
            points = [item for space in self._spaces.values() for item in space.items()]
        points = [(id, (vec, payload)) for id, (vec, payload) in points if matches_filter(payload, filter)]
        if not points or top_k <= 0:
            return []

        query = self._unit(vector)
        if self.dimension is not None and query.shape[0] != self.dimension:
            raise PermanentStoreError(f"Query dimension {query.shape[0]} does not match store dimension {self.dimension}")

        matrix = np.stack([vec for _, (vec, _) in points])
        scores = matrix @ query
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            VectorHit(id=points[i][0], score=float(scores[i]), payload=dict(points[i][1][1]))
            for i in order
        ]

    async def collection_info(self, name: str) -> CollectionInfo:
        space = self._spaces.get(name)
        if space is None:
            return CollectionInfo(name=name, exists=False)
        return CollectionInfo(name=name, exists=True, points_count=len(space), dimension=self.dimension)
