"""
Tests for maintenance operations: database integrity, snapshot verification,
stale cleanup and rebuilds.
"""

import asyncio
from datetime import datetime

import pytest

from spannlite.core import config
from spannlite.core.maintenance import (
    MaintenanceReport,
    MaintenanceError,
    check_database_integrity,
    verify_graph_snapshots,
    validate_search_index,
    cleanup_stale_embeddings,
    rebuild_search_index,
    perform_full_maintenance
)
from spannlite.vector.embeddings import DeterministicHashEmbedding
from spannlite.vector.engine import HybridSearchEngine, SearchConfig
from spannlite.vector.persistence import GraphPersistence
from spannlite.vector.sqlite_store import SQLiteVectorStore, SQLiteDocumentSource, SQLiteSnapshotIndex


TEXTS = [
    "solar panels convert sunlight into electricity",
    "a recipe for sourdough bread with a crispy crust",
    "migratory birds travel thousands of miles each autumn",
    "jazz musicians improvise over chord changes",
]


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "maintenance.db")


def _engine(db_path, graph_dir):
    return HybridSearchEngine(
        embedding_provider=DeterministicHashEmbedding(dimension=32),
        vector_store=SQLiteVectorStore(db_path),
        document_source=SQLiteDocumentSource(db_path),
        persistence=GraphPersistence(graph_dir, SQLiteSnapshotIndex(db_path)),
        config=SearchConfig(num_clusters=2),
        seed=5,
    )


@pytest.fixture
def engine(db_path, tmp_path):
    engine = _engine(db_path, tmp_path / "graphs")
    for i, text in enumerate(TEXTS):
        engine.document_source.upsert(f"doc{i}", f"Doc {i}", text)
    return engine


class TestMaintenanceReport:
    """Test maintenance report functionality."""

    def test_report_defaults(self):
        report = MaintenanceReport(operation="test_operation", started_at=datetime.now())

        assert report.actions_taken == []
        assert report.errors == []
        assert report.metadata == {}

    def test_report_to_dict(self):
        report = MaintenanceReport(
            operation="test_op",
            started_at=datetime(2025, 1, 1, 12, 0, 0),
            completed_at=datetime(2025, 1, 1, 12, 1, 0),
            issues_found=1,
            metadata={"key": "value"}
        )

        data = report.to_dict()
        assert data["operation"] == "test_op"
        assert data["issues_found"] == 1
        assert data["completed_at"] == "2025-01-01T12:01:00"
        assert data["metadata"]["key"] == "value"


class TestDatabaseIntegrity:

    def test_missing_database(self, tmp_path):
        report = check_database_integrity(str(tmp_path / "absent.db"))

        assert report.errors
        assert "not found" in report.errors[0]

    def test_unclustered_embeddings_are_flagged(self, engine, db_path):
        asyncio.run(engine.add_or_update_document("doc0", "Doc 0", TEXTS[0]))

        report = check_database_integrity(db_path)

        assert report.metadata["integrity_status"] == "passed"
        assert report.metadata["embeddings"] == 1
        assert report.metadata["unclustered_embeddings"] == 1
        assert report.metadata["dimensions"] == [32]
        assert report.issues_found == 1
        assert not report.errors

    def test_clean_after_rebuild(self, engine, db_path):
        asyncio.run(engine.rebuild_index())

        report = check_database_integrity(db_path)

        assert report.issues_found == 0
        assert report.metadata["documents"] == 4


class TestSnapshotVerification:

    def test_no_snapshots(self, engine):
        report = verify_graph_snapshots(engine.persistence)

        assert report.metadata["snapshots"] == 0
        assert report.recommendations

    def test_corrupt_snapshot_detected(self, engine):
        asyncio.run(engine.rebuild_index())
        snapshot = engine.persistence.snapshot_index.list_snapshots()[0]
        path = engine.persistence.graph_dir / snapshot.file_name
        path.write_bytes(path.read_bytes()[:-1])

        report = verify_graph_snapshots(engine.persistence)

        assert report.issues_found == 1
        assert snapshot.file_name in report.errors[0]
        assert any("rebuild" in rec for rec in report.recommendations)


def test_validate_unbuilt_index(engine):
    report = validate_search_index(engine)

    assert report.metadata["index_built"] is False
    assert report.issues_found == 1


def test_cleanup_stale_embeddings(engine):
    asyncio.run(engine.add_or_update_document("gone", "Gone", "not in the document table"))
    asyncio.run(engine.add_or_update_document("doc1", "Doc 1", TEXTS[1]))

    report = cleanup_stale_embeddings(engine)

    assert report.issues_resolved == 1
    assert report.metadata == {"total_before": 2, "total_after": 1}
    assert report.actions_taken == ["Removed 1 stale embeddings"]


def test_rebuild_reports_failure(db_path, tmp_path):
    engine = _engine(db_path, tmp_path / "graphs")

    report = rebuild_search_index(engine)

    assert report.errors
    assert "Rebuild failed" in report.errors[0]


def test_full_maintenance_rebuilds_when_needed(engine, db_path):
    reports = perform_full_maintenance(db_path, engine)

    operations = [r.operation for r in reports]
    assert operations[:4] == ["database_integrity_check", "snapshot_verification", "stale_cleanup", "index_validation"]
    assert operations[-1] == "index_rebuild"
    assert not reports[-1].errors
    assert reports[-1].metadata["centroids"] == 2


def test_full_maintenance_unusable_database(tmp_path, engine):
    with pytest.raises(MaintenanceError):
        perform_full_maintenance(str(tmp_path / "absent.db"), engine)


def test_engine_factory_uses_configured_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "configured.db"))
    monkeypatch.setattr(config, "GRAPH_DIR", str(tmp_path / "configured_graphs"))

    engine = config.create_search_engine()

    assert engine.persistence.graph_dir == tmp_path / "configured_graphs"
    assert (tmp_path / "configured.db").exists()
