from collections.abc import Callable, Iterable, Sequence
from typing import Any, NamedTuple

from tooldex.constants import INDEX_BATCH_SIZE
from tooldex.logging import get_logger
from tooldex.registry import PartitionConfig, PartitionRegistry
from tooldex.stores.base import Document, EmbeddingProvider, VectorStore

_logger = get_logger(__name__)

# Carried on every point so results from any partition can be deduplicated on content
PAYLOAD_IDENTITY_FIELDS = ("name", "description", "category")


class IndexStats(NamedTuple):
    indexed: int
    skipped: int
    failed: int


type ProgressCallback = Callable[[str, int, int], None]


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list | tuple | set):
        return ", ".join(str(v) for v in value if v is not None and str(v).strip())
    return str(value).strip()


def build_partition_text(partition: PartitionConfig, document: Document) -> str:
    """Partition content for embedding, highest-weighted fields first."""
    order = sorted(
        enumerate(partition.content_fields),
        key=lambda pair: (-partition.weightings.get(pair[1], 0.0), pair[0]),
    )
    lines = []
    for _, name in order:
        text = _render(document.get(name))
        if text:
            lines.append(text)
    return "\n".join(lines)


def build_payload(partition: PartitionConfig, document: Document) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": document.id,
        "partition": partition.name,
        "purpose": str(partition.purpose),
    }
    for name in (*PAYLOAD_IDENTITY_FIELDS, *partition.content_fields):
        value = document.get(name)
        if value is not None:
            payload[name] = value
    return payload


class PartitionIndexer:
    def __init__(
        self,
        registry: PartitionRegistry,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        batch_size: int = INDEX_BATCH_SIZE,
    ):
        self.registry = registry
        self.embedder = embedder
        self.vector_store = vector_store
        self.batch_size = batch_size

    def _targets(self, partitions: Iterable[str] | None) -> list[PartitionConfig]:
        if partitions is None:
            return self.registry.enabled_partitions()
        return [self.registry.require(name) for name in partitions]

    def affected_partitions(self, changed_fields: Iterable[str]) -> list[str]:
        changed = set(changed_fields)
        return [p.name for p in self.registry.enabled_partitions() if changed & set(p.content_fields)]

    async def index_all(
        self,
        documents: Sequence[Document],
        partitions: Iterable[str] | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> IndexStats:
        indexed = skipped = failed = 0
        for partition in self._targets(partitions):
            stats = await self._index_partition(partition, documents, progress_callback)
            indexed += stats.indexed
            skipped += stats.skipped
            failed += stats.failed
        return IndexStats(indexed, skipped, failed)

    async def _index_partition(
        self,
        partition: PartitionConfig,
        documents: Sequence[Document],
        progress_callback: ProgressCallback | None,
    ) -> IndexStats:
        vector_type = self.registry.primary_vector_type(partition.name)
        pending: list[tuple[Document, str]] = []
        skipped = 0
        for document in documents:
            text = build_partition_text(partition, document)
            if text:
                pending.append((document, text))
            else:
                skipped += 1

        indexed = failed = 0
        total = len(pending)
        for batch_start in range(0, total, self.batch_size):
            batch = pending[batch_start : batch_start + self.batch_size]
            done = 0
            try:
                embeddings = await self.embedder.embed([text for _, text in batch])
                for (document, _), embedding in zip(batch, embeddings):
                    await self.vector_store.upsert(
                        document.id, embedding, build_payload(partition, document), vector_type
                    )
                    done += 1
            except Exception as e:
                _logger.warning("Indexing batch failed for partition %s: %s", partition.name, e)
                failed += len(batch) - done
            indexed += done
            if progress_callback:
                progress_callback(partition.name, min(batch_start + len(batch), total), total)

        return IndexStats(indexed, skipped, failed)

    async def index_document(self, document: Document, partitions: Iterable[str] | None = None) -> list[str]:
        done: list[str] = []
        for partition in self._targets(partitions):
            stats = await self._index_partition(partition, [document], None)
            if stats.indexed:
                done.append(partition.name)
        return done

    async def reindex(self, document: Document, changed_fields: Iterable[str]) -> list[str]:
        affected = self.affected_partitions(changed_fields)
        if not affected:
            return []
        return await self.index_document(document, affected)
