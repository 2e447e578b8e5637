"""
SQLite-backed repositories: embedding rows, source documents and graph snapshot records.
Blocking sqlite3 calls run in the default executor.
"""

import asyncio
import sqlite3
from datetime import datetime
from functools import wraps
from typing import Dict, Iterable, List, Optional

from ..core.db import get_db, init_db
from ..core.errors import TransientStoreError
from .codec import blob_to_vec, vec_to_blob
from .index import IDocumentSource, IVectorStore
from .persistence import ISnapshotIndex
from .types import DocumentEmbedding, GraphSnapshot, SourceDocument

EMBEDDING_COLUMNS = "document_id, title, text, vec_data, vec_dim, cluster_id, created_at, updated_at"


def _transient(func):
    """Surface a locked or unavailable database as a retryable error."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.OperationalError as e:
            raise TransientStoreError(f"{func.__name__} failed: {e}") from e
    return wrapper


def _row_to_embedding(row) -> DocumentEmbedding:
    document_id, title, text, vec_data, vec_dim, cluster_id, created_at, updated_at = row
    return DocumentEmbedding(
        document_id=document_id,
        title=title or "",
        text=text or "",
        vector=blob_to_vec(vec_data, vec_dim),
        cluster_id=cluster_id,
        created_at=datetime.fromisoformat(created_at),
        updated_at=datetime.fromisoformat(updated_at),
    )


class SQLiteVectorStore(IVectorStore):
    """Embedding rows in the `embeddings` table, vectors stored as big-endian float32 blobs."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        init_db(db_path)

    @_transient
    def _insert_or_update(self, row: DocumentEmbedding) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                f'''
                INSERT INTO embeddings ({EMBEDDING_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(document_id) DO UPDATE SET
                    title = excluded.title,
                    text = excluded.text,
                    vec_data = excluded.vec_data,
                    vec_dim = excluded.vec_dim,
                    cluster_id = excluded.cluster_id,
                    updated_at = excluded.updated_at
                ''',
                (
                    row.document_id,
                    row.title,
                    row.text,
                    vec_to_blob(row.vector),
                    len(row.vector),
                    row.cluster_id,
                    row.created_at.isoformat(),
                    row.updated_at.isoformat(),
                )
            )
            conn.commit()

    @_transient
    def _delete(self, document_id: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("DELETE FROM embeddings WHERE document_id = ?", (document_id,))
            conn.commit()

    @_transient
    def _get(self, document_id: str) -> Optional[DocumentEmbedding]:
        with get_db(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {EMBEDDING_COLUMNS} FROM embeddings WHERE document_id = ?",
                (document_id,)
            ).fetchone()
        return _row_to_embedding(row) if row else None

    @_transient
    def _select_all(self) -> List[DocumentEmbedding]:
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT {EMBEDDING_COLUMNS} FROM embeddings ORDER BY created_at, document_id"
            ).fetchall()
        return [_row_to_embedding(row) for row in rows]

    @_transient
    def _select_by_cluster_ids(self, cluster_ids: List[int]) -> List[DocumentEmbedding]:
        if not cluster_ids:
            return []
        placeholders = ", ".join("?" for _ in cluster_ids)
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT {EMBEDDING_COLUMNS} FROM embeddings WHERE cluster_id IN ({placeholders})",
                cluster_ids
            ).fetchall()
        return [_row_to_embedding(row) for row in rows]

    @_transient
    def _count(self) -> int:
        with get_db(self.db_path) as conn:
            (count,) = conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
        return count

    @_transient
    def _clear_cluster_assignments(self) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("UPDATE embeddings SET cluster_id = NULL")
            conn.commit()

    @_transient
    def _assign_clusters(self, assignments: Dict[int, List[str]]) -> None:
        with get_db(self.db_path) as conn:
            conn.executemany(
                "UPDATE embeddings SET cluster_id = ? WHERE document_id = ?",
                [
                    (cluster_id, document_id)
                    for cluster_id, document_ids in assignments.items()
                    for document_id in document_ids
                ]
            )
            conn.commit()

    async def insert_or_update(self, row: DocumentEmbedding) -> None:
        await asyncio.to_thread(self._insert_or_update, row)

    async def delete(self, document_id: str) -> None:
        await asyncio.to_thread(self._delete, document_id)

    async def get(self, document_id: str) -> Optional[DocumentEmbedding]:
        return await asyncio.to_thread(self._get, document_id)

    async def select_all(self) -> List[DocumentEmbedding]:
        return await asyncio.to_thread(self._select_all)

    async def select_by_cluster_ids(self, cluster_ids: Iterable[int]) -> List[DocumentEmbedding]:
        return await asyncio.to_thread(self._select_by_cluster_ids, [int(c) for c in cluster_ids])

    async def count(self) -> int:
        return await asyncio.to_thread(self._count)

    async def clear_cluster_assignments(self) -> None:
        await asyncio.to_thread(self._clear_cluster_assignments)

    async def assign_clusters(self, assignments: Dict[int, List[str]]) -> None:
        await asyncio.to_thread(self._assign_clusters, assignments)


class SQLiteDocumentSource(IDocumentSource):
    """Source documents in the `documents` table."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        init_db(db_path)

    @_transient
    def upsert(self, document_id: str, title: str, text: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                '''
                INSERT INTO documents (id, title, text, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    text = excluded.text,
                    updated_at = CURRENT_TIMESTAMP
                ''',
                (document_id, title, text)
            )
            conn.commit()

    @_transient
    def remove(self, document_id: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            conn.commit()

    @_transient
    def _list_all(self) -> List[SourceDocument]:
        with get_db(self.db_path) as conn:
            rows = conn.execute("SELECT id, title, text FROM documents ORDER BY id").fetchall()
        return [SourceDocument(id=row[0], title=row[1], text=row[2]) for row in rows]

    async def list_all(self) -> List[SourceDocument]:
        return await asyncio.to_thread(self._list_all)


class SQLiteSnapshotIndex(ISnapshotIndex):
    """Graph snapshot records in the `graph_snapshots` table."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        init_db(db_path)

    @_transient
    def record(self, snapshot: GraphSnapshot) -> None:
        with get_db(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO graph_snapshots (file_name, checksum, created_at) VALUES (?, ?, ?)",
                (snapshot.file_name, snapshot.checksum, snapshot.created_at.isoformat())
            )
            conn.commit()

    @_transient
    def list_snapshots(self) -> List[GraphSnapshot]:
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT file_name, checksum, created_at FROM graph_snapshots ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [
            GraphSnapshot(file_name=row[0], checksum=row[1], created_at=datetime.fromisoformat(row[2]))
            for row in rows
        ]

    @_transient
    def delete(self, file_name: str) -> None:
        with get_db(self.db_path) as conn:
            conn.execute("DELETE FROM graph_snapshots WHERE file_name = ?", (file_name,))
            conn.commit()
