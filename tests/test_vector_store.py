"""
Contract tests shared by the in-memory and SQLite vector stores,
plus SQLite-specific document source and snapshot index behavior.
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta
from unittest.mock import patch

import numpy as np
import pytest

from spannlite.core.errors import TransientStoreError
from spannlite.vector.index import InMemoryVectorStore, InMemoryDocumentSource
from spannlite.vector.sqlite_store import SQLiteVectorStore, SQLiteDocumentSource, SQLiteSnapshotIndex
from spannlite.vector.types import DocumentEmbedding, GraphSnapshot, SourceDocument


def _row(document_id, vector=(1.0, 0.0, 0.0), cluster_id=None, created_at=None):
    now = created_at or datetime.now()
    return DocumentEmbedding(
        document_id=document_id,
        title=f"Title {document_id}",
        text=f"Text {document_id}",
        vector=np.asarray(vector, dtype=np.float32),
        cluster_id=cluster_id,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryVectorStore()
    return SQLiteVectorStore(str(tmp_path / "test.db"))


class TestVectorStoreContract:

    def test_insert_and_get(self, store):
        asyncio.run(store.insert_or_update(_row("a", (0.6, 0.8, 0.0))))

        row = asyncio.run(store.get("a"))

        assert row.document_id == "a"
        assert row.title == "Title a"
        assert np.allclose(row.vector, [0.6, 0.8, 0.0])
        assert row.cluster_id is None

    def test_missing_row(self, store):
        assert asyncio.run(store.get("nope")) is None

    def test_update_preserves_created_at(self, store):
        created = datetime(2025, 1, 1, 12, 0, 0)
        asyncio.run(store.insert_or_update(_row("a", created_at=created)))

        updated = _row("a", (0.0, 1.0, 0.0), cluster_id=None)
        asyncio.run(store.insert_or_update(updated))

        row = asyncio.run(store.get("a"))
        assert row.created_at == created
        assert np.allclose(row.vector, [0.0, 1.0, 0.0])
        assert asyncio.run(store.count()) == 1

    def test_delete(self, store):
        asyncio.run(store.insert_or_update(_row("a")))
        asyncio.run(store.delete("a"))
        asyncio.run(store.delete("never-existed"))

        assert asyncio.run(store.count()) == 0

    def test_cluster_assignment_round_trip(self, store):
        for document_id in ["a", "b", "c", "d"]:
            asyncio.run(store.insert_or_update(_row(document_id)))

        asyncio.run(store.assign_clusters({0: ["a", "b"], 1: ["c"]}))

        in_zero = asyncio.run(store.select_by_cluster_ids([0]))
        in_both = asyncio.run(store.select_by_cluster_ids([0, 1]))
        assert sorted(r.document_id for r in in_zero) == ["a", "b"]
        assert sorted(r.document_id for r in in_both) == ["a", "b", "c"]
        assert asyncio.run(store.select_by_cluster_ids([])) == []

        asyncio.run(store.clear_cluster_assignments())
        assert all(r.cluster_id is None for r in asyncio.run(store.select_all()))

    def test_select_all(self, store):
        for document_id in ["a", "b"]:
            asyncio.run(store.insert_or_update(_row(document_id)))

        assert sorted(r.document_id for r in asyncio.run(store.select_all())) == ["a", "b"]


class TestSQLiteVectorStore:

    def test_rows_survive_reopen(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        asyncio.run(SQLiteVectorStore(db_path).insert_or_update(_row("a", (0.0, 0.0, 1.0), cluster_id=2)))

        row = asyncio.run(SQLiteVectorStore(db_path).get("a"))

        assert row.cluster_id == 2
        assert row.vector.dtype == np.float32
        assert np.allclose(row.vector, [0.0, 0.0, 1.0])

    def test_operational_error_is_transient(self, tmp_path):
        store = SQLiteVectorStore(str(tmp_path / "test.db"))

        with patch("spannlite.vector.sqlite_store.get_db", side_effect=sqlite3.OperationalError("database is locked")):
            with pytest.raises(TransientStoreError):
                asyncio.run(store.count())


class TestSQLiteDocumentSource:

    def test_upsert_list_remove(self, tmp_path):
        source = SQLiteDocumentSource(str(tmp_path / "test.db"))
        source.upsert("b", "B", "bravo")
        source.upsert("a", "A", "alpha")
        source.upsert("a", "A2", "alpha two")

        documents = asyncio.run(source.list_all())
        assert documents == [SourceDocument("a", "A2", "alpha two"), SourceDocument("b", "B", "bravo")]

        source.remove("a")
        assert [d.id for d in asyncio.run(source.list_all())] == ["b"]


def test_in_memory_document_source():
    source = InMemoryDocumentSource([SourceDocument("a", "A", "alpha")])
    source.upsert("b", "B", "bravo")
    source.remove("a")

    assert [d.id for d in asyncio.run(source.list_all())] == ["b"]


class TestSQLiteSnapshotIndex:

    def test_newest_first_and_delete(self, tmp_path):
        index = SQLiteSnapshotIndex(str(tmp_path / "test.db"))
        now = datetime.now()
        index.record(GraphSnapshot("old.bin", "aa", now - timedelta(minutes=1)))
        index.record(GraphSnapshot("new.bin", "bb", now))

        snapshots = index.list_snapshots()
        assert [s.file_name for s in snapshots] == ["new.bin", "old.bin"]
        assert snapshots[0].checksum == "bb"
        assert snapshots[0].created_at == now

        index.delete("new.bin")
        assert [s.file_name for s in index.list_snapshots()] == ["old.bin"]
