import hashlib
import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import numpy as np
import sqlite_vec

from tooldex.constants import VECTOR_OVERFETCH_FACTOR
from tooldex.errors import PermanentStoreError, classify_error
from tooldex.logging import get_logger
from tooldex.stores.base import CollectionInfo, Document, VectorHit, matches_filter

_logger = get_logger(__name__)


def serialize_embedding(embedding: np.ndarray | list[float]) -> bytes:
    arr = embedding if isinstance(embedding, np.ndarray) else np.array(embedding)
    return arr.astype(np.float32).tobytes()


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise classify_error(e) from e


class SqliteStore:
    """Document store and vector store sharing one sqlite-vec database."""

    def __init__(self, db_path: Path, embedding_dim: int):
        self.db_path = db_path
        self.embedding_dim = embedding_dim
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        await self._open()
        await self._check_integrity()
        await self._init_schema()

    async def _open(self) -> None:
        self._conn = await aiosqlite.connect(self.db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.enable_load_extension(True)
        await self._conn.load_extension(sqlite_vec.loadable_path())
        await self._conn.enable_load_extension(False)

        await self._conn.execute("PRAGMA journal_mode=WAL;")
        await self._conn.execute("PRAGMA synchronous=NORMAL;")
        await self._conn.execute("PRAGMA busy_timeout=30000;")

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "SqliteStore":
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SqliteStore not connected")
        return self._conn

    async def _check_integrity(self) -> None:
        try:
            rows = await self.conn.execute_fetchall("PRAGMA integrity_check;")
            if not rows or rows[0][0] != "ok":
                raise sqlite3.DatabaseError("Integrity check failed")
        except sqlite3.DatabaseError as e:
            _logger.warning("Index database corrupt, recreating: %s", e)
            await self.conn.close()
            self.db_path.unlink(missing_ok=True)
            Path(str(self.db_path) + "-wal").unlink(missing_ok=True)
            Path(str(self.db_path) + "-shm").unlink(missing_ok=True)
            await self._open()

    async def _init_schema(self) -> None:
        with _store_errors():
            await self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    fields TEXT NOT NULL,
                    content_hash TEXT,
                    updated_at TEXT
                );

                CREATE TABLE IF NOT EXISTS points (
                    id INTEGER PRIMARY KEY,
                    point_id TEXT NOT NULL,
                    vector_type TEXT NOT NULL,
                    payload TEXT,
                    indexed_at TEXT,
                    UNIQUE(point_id, vector_type)
                );

                CREATE INDEX IF NOT EXISTS idx_points_type ON points(vector_type);
            """)
            await self.conn.execute(f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS points_vec USING vec0(
                    point_rowid INTEGER PRIMARY KEY,
                    vector_type text partition key,
                    embedding float[{self.embedding_dim}] distance_metric=cosine
                );
            """)
            await self.conn.commit()

    @staticmethod
    def hash_content(content: str) -> str:
        return hashlib.md5(content.encode()).hexdigest()

    # --- Documents ---

    async def put_document(self, document: Document) -> bool:
        await self.put_documents([document])
        return True

    async def put_documents(self, documents: Iterable[Document]) -> int:
        now = datetime.now().isoformat()
        rows = []
        for document in documents:
            fields_json = json.dumps(document.fields, sort_keys=True, default=str)
            rows.append((document.id, fields_json, self.hash_content(fields_json), now))
        if not rows:
            return 0
        with _store_errors():
            await self.conn.executemany(
                """
                INSERT INTO documents (id, fields, content_hash, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    fields = excluded.fields,
                    content_hash = excluded.content_hash,
                    updated_at = excluded.updated_at
                """,
                rows,
            )
            await self.conn.commit()
        return len(rows)

    async def get(self, doc_id: str) -> Document | None:
        with _store_errors():
            rows = await self.conn.execute_fetchall("SELECT id, fields FROM documents WHERE id = ?", (doc_id,))
        if not rows:
            return None
        return Document(id=rows[0]["id"], fields=json.loads(rows[0]["fields"]))

    async def get_all(self) -> list[Document]:
        with _store_errors():
            rows = await self.conn.execute_fetchall("SELECT id, fields FROM documents ORDER BY rowid")
        return [Document(id=row["id"], fields=json.loads(row["fields"])) for row in rows]

    async def count(self) -> int:
        with _store_errors():
            rows = await self.conn.execute_fetchall("SELECT COUNT(*) FROM documents")
        return rows[0][0]

    async def delete_document(self, doc_id: str) -> bool:
        with _store_errors():
            await self._delete_points(doc_id)
            cursor = await self.conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
            await self.conn.commit()
        return cursor.rowcount > 0

    # --- Vectors ---

    async def upsert(self, id: str, vector: np.ndarray, payload: dict[str, Any], vector_type: str) -> None:
        arr = np.asarray(vector)
        if arr.shape != (self.embedding_dim,):
            raise PermanentStoreError(f"Vector shape {arr.shape} does not match dimension {self.embedding_dim}")

        now = datetime.now().isoformat()
        payload_json = json.dumps(payload, default=str)
        embedding = serialize_embedding(arr)

        with _store_errors():
            existing = await self.conn.execute_fetchall(
                "SELECT id FROM points WHERE point_id = ? AND vector_type = ?",
                (id, vector_type),
            )
            if existing:
                row_id = existing[0]["id"]
                await self.conn.execute(
                    "UPDATE points SET payload = ?, indexed_at = ? WHERE id = ?",
                    (payload_json, now, row_id),
                )
                await self.conn.execute("DELETE FROM points_vec WHERE point_rowid = ?", (row_id,))
            else:
                cursor = await self.conn.execute(
                    "INSERT INTO points (point_id, vector_type, payload, indexed_at) VALUES (?, ?, ?, ?)",
                    (id, vector_type, payload_json, now),
                )
                row_id = cursor.lastrowid
            await self.conn.execute(
                "INSERT INTO points_vec(point_rowid, vector_type, embedding) VALUES (?, ?, ?)",
                (row_id, vector_type, embedding),
            )
            await self.conn.commit()

    async def _delete_points(self, point_id: str, vector_type: str | None = None) -> int:
        if vector_type:
            rows = await self.conn.execute_fetchall(
                "SELECT id FROM points WHERE point_id = ? AND vector_type = ?", (point_id, vector_type)
            )
        else:
            rows = await self.conn.execute_fetchall("SELECT id FROM points WHERE point_id = ?", (point_id,))
        if not rows:
            return 0
        row_ids = [row["id"] for row in rows]
        placeholders = ",".join("?" * len(row_ids))
        await self.conn.execute(f"DELETE FROM points_vec WHERE point_rowid IN ({placeholders})", row_ids)
        await self.conn.execute(f"DELETE FROM points WHERE id IN ({placeholders})", row_ids)
        return len(row_ids)

    async def delete(self, id: str, vector_type: str | None = None) -> int:
        with _store_errors():
            removed = await self._delete_points(id, vector_type)
            await self.conn.commit()
        return removed

    async def clear_vector_type(self, vector_type: str) -> int:
        with _store_errors():
            rows = await self.conn.execute_fetchall("SELECT id FROM points WHERE vector_type = ?", (vector_type,))
            if not rows:
                return 0
            row_ids = [row["id"] for row in rows]
            placeholders = ",".join("?" * len(row_ids))
            await self.conn.execute(f"DELETE FROM points_vec WHERE point_rowid IN ({placeholders})", row_ids)
            cursor = await self.conn.execute("DELETE FROM points WHERE vector_type = ?", (vector_type,))
            await self.conn.commit()
        return cursor.rowcount

    async def search(
        self,
        vector: np.ndarray,
        top_k: int,
        filter: dict[str, Any] | None = None,
        vector_type: str | None = None,
    ) -> list[VectorHit]:
        if top_k <= 0:
            return []
        arr = np.asarray(vector)
        if arr.shape != (self.embedding_dim,):
            raise PermanentStoreError(f"Query shape {arr.shape} does not match dimension {self.embedding_dim}")

        # k applies within the vector_type partition; payload filters and
        # cross-type duplicate ids are trimmed afterwards
        k = top_k * VECTOR_OVERFETCH_FACTOR * (4 if filter else 1)
        query_embedding = serialize_embedding(arr)

        with _store_errors():
            if vector_type:
                rows = await self.conn.execute_fetchall(
                    """
                    SELECT p.point_id, p.payload, v.distance
                    FROM points_vec v
                    JOIN points p ON v.point_rowid = p.id
                    WHERE v.embedding MATCH ? AND k = ?
                      AND v.vector_type = ?
                    ORDER BY v.distance
                    """,
                    (query_embedding, k, vector_type),
                )
            else:
                rows = await self.conn.execute_fetchall(
                    """
                    SELECT p.point_id, p.payload, v.distance
                    FROM points_vec v
                    JOIN points p ON v.point_rowid = p.id
                    WHERE v.embedding MATCH ? AND k = ?
                    ORDER BY v.distance
                    """,
                    (query_embedding, k),
                )

        hits: list[VectorHit] = []
        seen: set[str] = set()
        for row in rows:
            payload = json.loads(row["payload"]) if row["payload"] else {}
            if row["point_id"] in seen or not matches_filter(payload, filter):
                continue
            seen.add(row["point_id"])
            hits.append(VectorHit(id=row["point_id"], score=1 - row["distance"], payload=payload))
            if len(hits) == top_k:
                break
        return hits

    async def collection_info(self, name: str) -> CollectionInfo:
        with _store_errors():
            rows = await self.conn.execute_fetchall("SELECT COUNT(*) FROM points WHERE vector_type = ?", (name,))
        count = rows[0][0]
        if count == 0:
            return CollectionInfo(name=name, exists=False, points_count=0)
        return CollectionInfo(name=name, exists=True, points_count=count, dimension=self.embedding_dim)

    async def get_stats(self) -> dict[str, int]:
        with _store_errors():
            rows = await self.conn.execute_fetchall(
                "SELECT vector_type, COUNT(*) AS cnt FROM points GROUP BY vector_type"
            )
        return {row["vector_type"]: row["cnt"] for row in rows}
