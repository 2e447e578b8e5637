"""
Snapshot lifecycle for the centroid graph: write, load-latest with checksum
verification, and garbage collection of superseded snapshots.
"""

import hashlib
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from util.logging import logger, audit_event

from ..core.errors import ConfigurationError, CorruptionError
from .hnsw import HNSWIndex
from .serialize import decode_graph, encode_graph
from .types import GraphSnapshot


def calculate_checksum(data: bytes) -> str:
    """Calculate SHA-256 checksum of data."""
    return hashlib.sha256(data).hexdigest()


class ISnapshotIndex(ABC):
    """Durable record of persisted graph snapshots."""

    @abstractmethod
    def record(self, snapshot: GraphSnapshot) -> None:
        """Record a newly written snapshot."""
        pass

    @abstractmethod
    def list_snapshots(self) -> List[GraphSnapshot]:
        """All recorded snapshots, newest first."""
        pass

    @abstractmethod
    def delete(self, file_name: str) -> None:
        """Forget a snapshot record."""
        pass


class InMemorySnapshotIndex(ISnapshotIndex):
    """Snapshot index kept in process memory."""

    def __init__(self):
        self._snapshots: List[GraphSnapshot] = []

    def record(self, snapshot: GraphSnapshot) -> None:
        self._snapshots = [s for s in self._snapshots if s.file_name != snapshot.file_name]
        self._snapshots.append(snapshot)

    def list_snapshots(self) -> List[GraphSnapshot]:
        # Stable sort keeps later records ahead of earlier ones on equal timestamps
        ordered = list(reversed(self._snapshots))
        return sorted(ordered, key=lambda s: s.created_at, reverse=True)

    def delete(self, file_name: str) -> None:
        self._snapshots = [s for s in self._snapshots if s.file_name != file_name]


class GraphPersistence:
    """Writes graph snapshots to a directory and tracks them in a snapshot index."""

    def __init__(self, graph_dir: Union[str, Path], snapshot_index: Optional[ISnapshotIndex] = None):
        self.graph_dir = Path(graph_dir)
        self.snapshot_index = snapshot_index or InMemorySnapshotIndex()

    def _path_for(self, file_name: str) -> Path:
        return self.graph_dir / Path(file_name).name

    def persist_graph(self, index: HNSWIndex) -> GraphSnapshot:
        """Serialize the graph to a uniquely named file and record its checksum."""
        if not index.nodes:
            raise ConfigurationError("Refusing to persist an empty graph")

        data = encode_graph(index)
        created_at = datetime.now(timezone.utc)
        file_name = f"snap-{created_at.strftime('%Y%m%dT%H%M%S%f')}-{secrets.token_hex(4)}.bin"

        self.graph_dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(file_name)
        with open(path, 'wb') as f:
            f.write(data)

        snapshot = GraphSnapshot(
            file_name=file_name,
            checksum=calculate_checksum(data),
            created_at=created_at,
        )

        try:
            self.snapshot_index.record(snapshot)
        except Exception:
            # An unrecorded file would never be loaded or collected
            path.unlink(missing_ok=True)
            raise

        logger.log_snapshot_operation("persisted", file_name, {
            "bytes": len(data),
            "nodes": len(index.nodes),
            "checksum": snapshot.checksum[:12],
        })
        audit_event(
            event_type="graph_snapshot_created",
            identifiers={"file_name": file_name},
            payload={"nodes": len(index.nodes), "bytes": len(data)}
        )

        return snapshot

    def read_snapshot(self, snapshot: GraphSnapshot) -> bytes:
        """Read snapshot bytes, raising CorruptionError on missing file or checksum mismatch."""
        path = self._path_for(snapshot.file_name)
        try:
            with open(path, 'rb') as f:
                data = f.read()
        except FileNotFoundError:
            raise CorruptionError(f"Snapshot file missing: {snapshot.file_name}")

        actual = calculate_checksum(data)
        if actual != snapshot.checksum:
            raise CorruptionError(
                f"Graph checksum mismatch for {snapshot.file_name}: "
                f"expected {snapshot.checksum}, got {actual}"
            )
        return data

    def load_latest_graph(self) -> Optional[HNSWIndex]:
        """Load the most recent snapshot, or None when nothing has been persisted."""
        snapshots = self.snapshot_index.list_snapshots()
        if not snapshots:
            logger.info("No graph snapshots found")
            return None

        latest = snapshots[0]
        data = self.read_snapshot(latest)
        graph = decode_graph(data)

        logger.log_snapshot_operation("loaded", latest.file_name, {
            "bytes": len(data),
            "nodes": len(graph.nodes),
        })
        return graph

    def verify_snapshot(self, snapshot: GraphSnapshot) -> bool:
        """True when the snapshot file exists, matches its checksum and decodes."""
        try:
            decode_graph(self.read_snapshot(snapshot))
            return True
        except CorruptionError as e:
            logger.warning(f"Snapshot {snapshot.file_name} failed verification: {e}")
            return False

    def gc_old_snapshots(self, keep_last: int = 2) -> int:
        """Delete all but the most recent keep_last snapshots; returns the number removed."""
        if keep_last < 0:
            raise ConfigurationError(f"keep_last must be non-negative, got {keep_last}")

        snapshots = self.snapshot_index.list_snapshots()
        if len(snapshots) <= keep_last:
            return 0

        deleted = 0
        for snapshot in snapshots[keep_last:]:
            self.snapshot_index.delete(snapshot.file_name)
            path = self._path_for(snapshot.file_name)
            if path.exists():
                path.unlink()
            else:
                logger.warning(f"Snapshot file already gone: {snapshot.file_name}")
            deleted += 1

        logger.log_snapshot_operation("gc", "*", {"deleted": deleted, "kept": keep_last})
        return deleted

    def get_snapshot_info(self) -> Dict[str, Any]:
        snapshots = self.snapshot_index.list_snapshots()
        if not snapshots:
            return {"count": 0, "latest_date": None, "total_size": None}

        total_size = 0
        for snapshot in snapshots:
            path = self._path_for(snapshot.file_name)
            if path.exists():
                total_size += path.stat().st_size

        return {
            "count": len(snapshots),
            "latest_date": snapshots[0].created_at,
            "total_size": total_size or None,
        }
