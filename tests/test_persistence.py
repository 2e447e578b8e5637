"""
Tests for snapshot persistence: checksums, latest-snapshot loading and garbage collection.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from spannlite.core.errors import ConfigurationError, CorruptionError
from spannlite.vector.hnsw import HNSWIndex
from spannlite.vector.persistence import GraphPersistence, InMemorySnapshotIndex, calculate_checksum
from spannlite.vector.types import GraphSnapshot


def _graph(n=8, seed=0):
    rng = np.random.default_rng(seed)
    index = HNSWIndex(m=4, ef_construction=32, seed=seed)
    index.build_index([(i, rng.normal(size=4)) for i in range(n)])
    return index


@pytest.fixture
def persistence(tmp_path):
    return GraphPersistence(tmp_path / "graphs", InMemorySnapshotIndex())


def test_persist_writes_file_and_checksum(persistence):
    snapshot = persistence.persist_graph(_graph())
    path = persistence.graph_dir / snapshot.file_name

    assert path.exists()
    assert snapshot.file_name.startswith("snap-") and snapshot.file_name.endswith(".bin")
    assert snapshot.checksum == calculate_checksum(path.read_bytes())
    assert persistence.snapshot_index.list_snapshots()[0] == snapshot


def test_snapshot_timestamps_are_utc(persistence):
    before = datetime.now(timezone.utc)
    snapshot = persistence.persist_graph(_graph())

    assert snapshot.created_at.tzinfo == timezone.utc
    assert before <= snapshot.created_at <= datetime.now(timezone.utc)
    assert snapshot.file_name.startswith(f"snap-{snapshot.created_at.strftime('%Y%m%dT%H%M%S%f')}-")


def test_persist_refuses_empty_graph(persistence):
    with pytest.raises(ConfigurationError):
        persistence.persist_graph(HNSWIndex(m=4))


def test_file_names_are_unique(persistence):
    names = {persistence.persist_graph(_graph()).file_name for _ in range(5)}

    assert len(names) == 5


def test_load_latest_without_snapshots(persistence):
    assert persistence.load_latest_graph() is None


def test_load_latest_returns_newest(persistence):
    persistence.persist_graph(_graph(n=5, seed=1))
    persistence.persist_graph(_graph(n=9, seed=2))

    graph = persistence.load_latest_graph()

    assert len(graph) == 9


def test_every_flipped_byte_is_detected(persistence):
    snapshot = persistence.persist_graph(_graph(n=3))
    path = persistence.graph_dir / snapshot.file_name
    original = path.read_bytes()

    for position in range(len(original)):
        corrupted = bytearray(original)
        corrupted[position] ^= 0x01
        path.write_bytes(bytes(corrupted))

        with pytest.raises(CorruptionError):
            persistence.load_latest_graph()

    path.write_bytes(original)
    assert len(persistence.load_latest_graph()) == 3


def test_missing_file_is_corruption(persistence):
    snapshot = persistence.persist_graph(_graph())
    (persistence.graph_dir / snapshot.file_name).unlink()

    with pytest.raises(CorruptionError):
        persistence.load_latest_graph()
    assert not persistence.verify_snapshot(snapshot)


def test_verify_snapshot(persistence):
    snapshot = persistence.persist_graph(_graph())

    assert persistence.verify_snapshot(snapshot)


def test_gc_keeps_most_recent(persistence):
    snapshots = [persistence.persist_graph(_graph(seed=i)) for i in range(4)]

    removed = persistence.gc_old_snapshots(keep_last=2)

    remaining = persistence.snapshot_index.list_snapshots()
    assert removed == 2
    assert [s.file_name for s in remaining] == [snapshots[3].file_name, snapshots[2].file_name]
    assert not (persistence.graph_dir / snapshots[0].file_name).exists()
    assert (persistence.graph_dir / snapshots[3].file_name).exists()


def test_gc_removes_rows_for_missing_files(persistence):
    snapshots = [persistence.persist_graph(_graph(seed=i)) for i in range(3)]
    (persistence.graph_dir / snapshots[0].file_name).unlink()

    assert persistence.gc_old_snapshots(keep_last=1) == 2
    assert len(persistence.snapshot_index.list_snapshots()) == 1


def test_gc_nothing_to_do(persistence):
    persistence.persist_graph(_graph())

    assert persistence.gc_old_snapshots(keep_last=2) == 0


def test_snapshot_info(persistence):
    assert persistence.get_snapshot_info() == {"count": 0, "latest_date": None, "total_size": None}

    first = persistence.persist_graph(_graph())
    second = persistence.persist_graph(_graph())
    info = persistence.get_snapshot_info()

    assert info["count"] == 2
    assert info["latest_date"] == second.created_at
    expected_size = sum((persistence.graph_dir / s.file_name).stat().st_size for s in (first, second))
    assert info["total_size"] == expected_size


def test_in_memory_index_orders_newest_first():
    index = InMemorySnapshotIndex()
    now = datetime.now()
    index.record(GraphSnapshot("old.bin", "a", now - timedelta(seconds=5)))
    index.record(GraphSnapshot("new.bin", "b", now))

    assert [s.file_name for s in index.list_snapshots()] == ["new.bin", "old.bin"]

    index.delete("new.bin")
    assert [s.file_name for s in index.list_snapshots()] == ["old.bin"]


def test_failed_record_removes_written_file(tmp_path):
    class FailingIndex(InMemorySnapshotIndex):
        def record(self, snapshot):
            raise RuntimeError("disk full")

    persistence = GraphPersistence(tmp_path, FailingIndex())

    with pytest.raises(RuntimeError):
        persistence.persist_graph(_graph())
    assert list(tmp_path.iterdir()) == []
