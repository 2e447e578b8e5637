"""
Maintenance routines for the hybrid index: database integrity, snapshot
verification, stale-embedding cleanup and index rebuilds.
"""

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from util.logging import logger, audit_event

from . import config
from .db import get_db
from .errors import SearchEngineError


@dataclass
class MaintenanceReport:
    """Comprehensive maintenance operation report."""
    operation: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    issues_found: int = 0
    issues_resolved: int = 0
    actions_taken: List[str] = None
    recommendations: List[str] = None
    errors: List[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.actions_taken is None:
            self.actions_taken = []
        if self.recommendations is None:
            self.recommendations = []
        if self.errors is None:
            self.errors = []
        if self.metadata is None:
            self.metadata = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "issues_found": self.issues_found,
            "issues_resolved": self.issues_resolved,
            "actions_taken": self.actions_taken,
            "recommendations": self.recommendations,
            "errors": self.errors,
            "metadata": self.metadata
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


class MaintenanceError(Exception):
    """Custom exception for maintenance operations."""
    pass


def check_database_integrity(db_path: Optional[str] = None) -> MaintenanceReport:
    """
    Check SQLite integrity plus the consistency of stored embeddings.

    Returns:
        MaintenanceReport: Detailed integrity check results
    """
    report = MaintenanceReport(
        operation="database_integrity_check",
        started_at=datetime.now()
    )

    path = Path(db_path or config.DB_PATH)
    if not path.exists():
        report.errors.append(f"Database file not found: {path}")
        report.completed_at = datetime.now()
        return report

    report.metadata["file_size"] = path.stat().st_size

    try:
        with get_db(str(path)) as conn:
            cursor = conn.cursor()

            cursor.execute("PRAGMA integrity_check")
            integrity_result = cursor.fetchone()
            if integrity_result and integrity_result[0] == "ok":
                report.metadata["integrity_status"] = "passed"
            else:
                report.issues_found += 1
                report.errors.append(f"Integrity check failed: {integrity_result}")
                report.recommendations.append("Restore the database or re-ingest the corpus")

            cursor.execute("SELECT COUNT(*) FROM documents")
            document_count = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM embeddings")
            embedding_count = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM embeddings WHERE cluster_id IS NULL")
            unclustered = cursor.fetchone()[0]
            cursor.execute("SELECT DISTINCT vec_dim FROM embeddings")
            dimensions = sorted(row[0] for row in cursor.fetchall())
            cursor.execute("SELECT COUNT(*) FROM embeddings WHERE length(vec_data) != vec_dim * 4")
            malformed = cursor.fetchone()[0]

            report.metadata.update({
                "documents": document_count,
                "embeddings": embedding_count,
                "unclustered_embeddings": unclustered,
                "dimensions": dimensions,
            })

            if len(dimensions) > 1:
                report.issues_found += 1
                report.errors.append(f"Embeddings have mixed dimensions: {dimensions}")
                report.recommendations.append("Rebuild the index so every document is re-embedded")

            if malformed:
                report.issues_found += 1
                report.errors.append(f"{malformed} embeddings have blobs that do not match their dimension")

            if unclustered:
                report.issues_found += 1
                report.recommendations.append(
                    f"{unclustered} embeddings are not searchable until the next rebuild"
                )

    except sqlite3.Error as e:
        report.errors.append(f"Database error: {e}")

    report.completed_at = datetime.now()
    logger.log_operation("maintenance.integrity_check", "success" if not report.errors else "failed", {
        "issues": report.issues_found,
        "errors": len(report.errors),
    })
    return report


def verify_graph_snapshots(persistence=None) -> MaintenanceReport:
    """Verify every recorded snapshot against its checksum and the binary format."""
    report = MaintenanceReport(
        operation="snapshot_verification",
        started_at=datetime.now()
    )

    persistence = persistence or config.get_graph_persistence()

    try:
        snapshots = persistence.snapshot_index.list_snapshots()
    except SearchEngineError as e:
        report.errors.append(f"Failed to list snapshots: {e}")
        report.completed_at = datetime.now()
        return report

    corrupt = []
    for snapshot in snapshots:
        if not persistence.verify_snapshot(snapshot):
            corrupt.append(snapshot.file_name)

    report.metadata.update({
        "snapshots": len(snapshots),
        "corrupt": len(corrupt),
    })
    report.metadata.update(persistence.get_snapshot_info())

    if corrupt:
        report.issues_found += len(corrupt)
        report.errors.extend(f"Corrupt snapshot: {name}" for name in corrupt)
        if snapshots and snapshots[0].file_name in corrupt:
            report.recommendations.append("Latest snapshot is corrupt; run a rebuild to write a fresh one")

    if not snapshots:
        report.recommendations.append("No graph snapshot recorded; run a rebuild")

    report.completed_at = datetime.now()
    return report


async def _index_status(engine) -> Dict[str, Any]:
    await engine.initialize()
    return {
        "index_built": engine.is_index_built(),
        "centroids": engine.get_centroid_count(),
        "embeddings": await engine.get_embedding_count(),
    }


def validate_search_index(engine=None) -> MaintenanceReport:
    """Check that the engine loads a graph and that it covers the stored embeddings."""
    report = MaintenanceReport(
        operation="index_validation",
        started_at=datetime.now()
    )

    engine = engine or config.create_search_engine()

    try:
        status = asyncio.run(_index_status(engine))
        report.metadata.update(status)

        if not status["index_built"]:
            report.issues_found += 1
            report.recommendations.append("Index is not built; run a rebuild")
        elif status["centroids"] > status["embeddings"]:
            report.issues_found += 1
            report.recommendations.append("More centroids than embeddings; the corpus shrank since the last rebuild")

    except SearchEngineError as e:
        report.errors.append(f"Index validation failed: {e}")

    report.completed_at = datetime.now()
    return report


def cleanup_stale_embeddings(engine=None) -> MaintenanceReport:
    """Remove embeddings whose source document no longer exists."""
    report = MaintenanceReport(
        operation="stale_cleanup",
        started_at=datetime.now()
    )

    engine = engine or config.create_search_engine()

    try:
        result = asyncio.run(engine.cleanup_stale_embeddings())
        report.metadata.update({
            "total_before": result["total_before"],
            "total_after": result["total_after"],
        })
        report.issues_found = result["removed"] + len(result["errors"])
        report.issues_resolved = result["removed"]
        report.errors.extend(result["errors"])
        if result["removed"]:
            report.actions_taken.append(f"Removed {result['removed']} stale embeddings")

    except SearchEngineError as e:
        report.errors.append(f"Cleanup failed: {e}")

    report.completed_at = datetime.now()
    return report


def rebuild_search_index(engine=None) -> MaintenanceReport:
    """Run a full rebuild and report its outcome."""
    report = MaintenanceReport(
        operation="index_rebuild",
        started_at=datetime.now()
    )

    engine = engine or config.create_search_engine()

    try:
        centroids = asyncio.run(engine.rebuild_index())
        report.actions_taken.append(f"Rebuilt index with {centroids} centroids")
        if engine.last_rebuild is not None:
            report.metadata.update(engine.last_rebuild.to_dict())
            report.errors.extend(engine.last_rebuild.errors)

    except SearchEngineError as e:
        report.errors.append(f"Rebuild failed: {e}")
        if engine.last_rebuild is not None:
            report.metadata.update(engine.last_rebuild.to_dict())

    report.completed_at = datetime.now()
    audit_event(
        event_type="maintenance_rebuild",
        identifiers={"operation": report.operation},
        payload={"errors": len(report.errors), "actions": len(report.actions_taken)}
    )
    return report


def perform_full_maintenance(db_path: Optional[str] = None, engine=None) -> List[MaintenanceReport]:
    """
    Run every maintenance routine in order. The rebuild only runs when
    validation or snapshot verification found something to fix.
    """
    engine = engine or config.create_search_engine(db_path)

    reports = [check_database_integrity(db_path)]
    if reports[0].errors and "integrity_status" not in reports[0].metadata:
        raise MaintenanceError("Database is not usable: " + "; ".join(reports[0].errors))

    reports.append(verify_graph_snapshots(engine.persistence))
    reports.append(cleanup_stale_embeddings(engine))
    reports.append(validate_search_index(engine))

    needs_rebuild = (
        reports[1].issues_found > 0 or
        reports[2].issues_resolved > 0 or
        reports[3].issues_found > 0 or
        reports[0].metadata.get("unclustered_embeddings", 0) > 0
    )
    if needs_rebuild:
        reports.append(rebuild_search_index(engine))

    return reports
