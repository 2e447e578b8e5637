"""
Hybrid (SPANN-style) search engine.

A small HNSW graph over sampled centroids picks the clusters worth probing;
the full document vectors of those clusters are then fetched from the vector
store and re-scored exactly. The graph is a derived cache: rebuild_index()
recreates it from the store and persists it as a snapshot.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from util.logging import logger, audit_event

from ..core.errors import ConfigurationError, CorruptionError, InsufficientDataError, SearchEngineError
from .codec import l2_normalize, validate_embedding
from .embeddings import IEmbeddingProvider
from .exact import FaissExactIndex
from .hnsw import HNSWIndex
from .index import IDocumentSource, IVectorStore
from .persistence import GraphPersistence
from .types import Centroid, DocumentEmbedding, SearchHit


@dataclass
class SearchConfig:
    """Tuning knobs for clustering, probing and snapshot retention."""

    num_clusters: int = 5
    """Upper bound on sampled centroids per rebuild"""

    search_probe_count: int = 3
    """Centroids probed per query in phase 1"""

    min_embeddings: int = 3
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    snapshot_keep_last: int = 2

    def validate(self) -> List[str]:
        """Return a list of configuration issues, empty when valid."""
        issues = []

        if self.num_clusters < 1:
            issues.append("num_clusters must be at least 1")
        if self.search_probe_count < 1:
            issues.append("search_probe_count must be at least 1")
        if self.min_embeddings < 1:
            issues.append("min_embeddings must be at least 1")
        if self.hnsw_m < 2:
            issues.append("hnsw_m must be at least 2")
        if self.hnsw_ef_construction < 1:
            issues.append("hnsw_ef_construction must be at least 1")
        if self.snapshot_keep_last < 1:
            issues.append("snapshot_keep_last must be at least 1")

        return issues


@dataclass
class RebuildReport:
    """Outcome of the most recent rebuild or stale-embedding cleanup."""

    synced: int = 0
    failed: int = 0
    removed_stale: int = 0
    centroids: int = 0
    assigned: int = 0
    errors: List[str] = field(default_factory=list)
    snapshot: Optional[str] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "removed_stale": self.removed_stale,
            "centroids": self.centroids,
            "assigned": self.assigned,
            "errors": list(self.errors),
            "snapshot": self.snapshot,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def _valid_document_id(document_id: Any) -> bool:
    return isinstance(document_id, str) and bool(document_id.strip())


class HybridSearchEngine:
    """Two-phase approximate search over a mutating document corpus."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStore,
        document_source: IDocumentSource,
        persistence: GraphPersistence,
        config: Optional[SearchConfig] = None,
        seed: Optional[int] = None,
    ):
        self.config = config or SearchConfig()
        issues = self.config.validate()
        if issues:
            raise ConfigurationError("; ".join(issues))

        self.embedding_provider = embedding_provider
        self.vector_store = vector_store
        self.document_source = document_source
        self.persistence = persistence

        self.state = EngineState.UNINITIALIZED
        self.graph: Optional[HNSWIndex] = None
        self.last_rebuild: Optional[RebuildReport] = None

        self._rng = np.random.default_rng(seed)
        self._init_lock = asyncio.Lock()
        self._rebuild_lock = asyncio.Lock()

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Wait for the embedding model and load the latest graph snapshot, if any."""
        async with self._init_lock:
            if self.state == EngineState.READY:
                return

            self.state = EngineState.INITIALIZING
            try:
                await self.embedding_provider.ready()
                self.graph = await self._load_graph()
            except Exception:
                self.state = EngineState.UNINITIALIZED
                raise

            self.state = EngineState.READY
            logger.log_operation("engine.initialize", "success", {
                "index_built": self.is_index_built(),
                "centroids": self.get_centroid_count(),
            })

    async def _load_graph(self) -> Optional[HNSWIndex]:
        try:
            graph = await asyncio.to_thread(self.persistence.load_latest_graph)
        except CorruptionError as e:
            logger.error(f"Failed to load graph snapshot, index left unbuilt: {e}")
            return None

        if graph is None:
            return None

        if await self.vector_store.count() == 0:
            logger.warning("Graph snapshot found but vector store is empty; index left unbuilt")
            return None

        expected = self.embedding_provider.get_dimension()
        if graph.dimension != expected:
            logger.warning(
                f"Snapshot dimension {graph.dimension} does not match embedding dimension {expected}; "
                "index left unbuilt until the next rebuild"
            )
            return None

        return graph

    def _require_ready(self) -> None:
        if self.state != EngineState.READY:
            raise ConfigurationError("Search engine not initialized; call initialize() first")

    # --- Document updates ---

    async def _embed_one(self, text: str, check_index: bool = True) -> np.ndarray:
        batch = await self.embedding_provider.embed([text])
        if len(batch.vectors) != 1:
            raise ConfigurationError(
                f"Embedding provider returned {len(batch.vectors)} vectors for 1 text"
            )
        vector = l2_normalize(batch.vectors[0])

        if check_index and self.graph is not None and len(vector) != self.graph.dimension:
            raise ConfigurationError(
                f"Embedding dimension {len(vector)} does not match index dimension {self.graph.dimension}"
            )
        return vector

    async def add_or_update_document(self, document_id: str, title: str, text: str) -> bool:
        """Embed and store a document; empty text removes it instead.

        The row is written unclustered and becomes searchable after the next rebuild.
        Returns True when a row was written, False when treated as a removal.
        """
        if not _valid_document_id(document_id):
            raise ConfigurationError(f"Invalid document id: {document_id!r}")

        if not text or not text.strip():
            await self.remove_document(document_id)
            return False

        vector = await self._embed_one(text)
        now = datetime.now()
        await self.vector_store.insert_or_update(DocumentEmbedding(
            document_id=document_id,
            title=title or "",
            text=text,
            vector=vector,
            cluster_id=None,
            created_at=now,
            updated_at=now,
        ))

        logger.log_index_operation("upsert", document_id, {"dim": len(vector)})
        return True

    async def remove_document(self, document_id: str) -> None:
        """Delete the stored embedding; the centroid graph is left as is."""
        await self.vector_store.delete(document_id)
        logger.log_index_operation("remove", document_id)

    # --- Rebuild ---

    async def _remove_stale(self, report: RebuildReport) -> Dict[str, Any]:
        """Delete rows whose document is gone or whose id is invalid."""
        documents = await self.document_source.list_all()
        live_ids = {doc.id for doc in documents if _valid_document_id(doc.id) and doc.text and doc.text.strip()}

        rows = await self.vector_store.select_all()
        total_before = len(rows)

        for row in rows:
            if row.document_id in live_ids and _valid_document_id(row.document_id):
                continue
            try:
                await self.vector_store.delete(row.document_id)
                report.removed_stale += 1
            except SearchEngineError as e:
                report.errors.append(f"{row.document_id}: {e}")
                logger.warning(f"Failed to remove stale embedding {row.document_id!r}: {e}")

        return {"documents": documents, "total_before": total_before}

    async def _sync_documents(self, documents, report: RebuildReport) -> Set[str]:
        """Re-embed every current document, keeping cluster ids until the new assignment.

        Returns the ids whose embedding failed.
        """
        failed = set()
        for doc in documents:
            if not _valid_document_id(doc.id) or not doc.text or not doc.text.strip():
                continue
            try:
                vector = await self._embed_one(doc.text, check_index=False)
                existing = await self.vector_store.get(doc.id)
                now = datetime.now()
                await self.vector_store.insert_or_update(DocumentEmbedding(
                    document_id=doc.id,
                    title=doc.title or "",
                    text=doc.text,
                    vector=vector,
                    cluster_id=existing.cluster_id if existing else None,
                    created_at=existing.created_at if existing else now,
                    updated_at=now,
                ))
                report.synced += 1
            except Exception as e:
                failed.add(doc.id)
                report.failed += 1
                report.errors.append(f"{doc.id}: {e}")
                logger.warning(f"Failed to re-embed document {doc.id!r}, skipping: {e}")
        return failed

    async def _drop_mismatched(self, rows: Sequence[DocumentEmbedding], failed: Set[str],
                               report: RebuildReport) -> List[DocumentEmbedding]:
        """Delete rows left at a stale dimension; they cannot join the new graph."""
        expected = self.embedding_provider.get_dimension()
        kept = []
        for row in rows:
            if validate_embedding(row.vector, expected):
                kept.append(row)
                continue
            await self.vector_store.delete(row.document_id)
            if row.document_id not in failed:
                report.failed += 1
                report.errors.append(f"{row.document_id}: stored dimension {len(row.vector)} != {expected}")
            logger.warning(
                f"Dropped embedding {row.document_id!r} with dimension {len(row.vector)}; expected {expected}"
            )
        return kept

    async def _unchanged_assignments(self, rows: Sequence[DocumentEmbedding],
                                     assignments: Dict[int, List[str]]) -> Dict[int, List[str]]:
        """Keep only rows not rewritten or removed since they were read for assignment."""
        seen = {row.document_id: row.updated_at for row in rows}
        current = {row.document_id: row.updated_at for row in await self.vector_store.select_all()}
        kept = {}
        for cluster_id, document_ids in assignments.items():
            ids = [doc_id for doc_id in document_ids if doc_id in current and current[doc_id] == seen[doc_id]]
            if ids:
                kept[cluster_id] = ids
        return kept

    def _sample_centroids(self, rows: Sequence[DocumentEmbedding]) -> Tuple[List[Centroid], Dict[str, int]]:
        """Uniform sample without replacement; ids follow sampling order.

        Also returns document_id -> cluster_id for the sampled rows themselves.
        """
        size = min(self.config.num_clusters, len(rows))
        picks = self._rng.choice(len(rows), size=size, replace=False)

        centroids = []
        centroid_rows = {}
        for cluster_id, position in enumerate(picks):
            row = rows[int(position)]
            centroids.append(Centroid(id=cluster_id, vector=l2_normalize(row.vector)))
            centroid_rows[row.document_id] = cluster_id
        return centroids, centroid_rows

    def _assign(self, graph: HNSWIndex, rows: Sequence[DocumentEmbedding], centroid_rows: Dict[str, int]) -> Dict[int, List[str]]:
        """Nearest-centroid assignment, one graph query per stored vector."""
        assignments: Dict[int, List[str]] = {}
        for row in rows:
            cluster_id = centroid_rows.get(row.document_id)
            if cluster_id is None:
                hits = graph.search_knn(row.vector, 1)
                if not hits:
                    continue
                cluster_id = hits[0].id
            assignments.setdefault(cluster_id, []).append(row.document_id)
        return assignments

    async def rebuild_index(self) -> int:
        """Rebuild the centroid graph from the vector store and persist it.

        The in-memory graph is replaced only after the new snapshot is written,
        so any failure leaves the previous graph serving queries.
        Returns the number of centroids.
        """
        async with self._rebuild_lock:
            report = RebuildReport()
            self.last_rebuild = report

            start = time.time()
            stale = await self._remove_stale(report)
            failed = await self._sync_documents(stale["documents"], report)
            rows = await self._drop_mismatched(await self.vector_store.select_all(), failed, report)
            logger.log_rebuild_phase("reconcile", start, time.time(), details={
                "synced": report.synced,
                "failed": report.failed,
                "removed_stale": report.removed_stale,
            })

            if len(rows) < self.config.min_embeddings:
                logger.log_rebuild_phase("check_size", start, time.time(), status="failed", details={
                    "count": len(rows),
                    "required": self.config.min_embeddings,
                })
                raise InsufficientDataError(len(rows), self.config.min_embeddings)

            start = time.time()
            centroids, centroid_rows = self._sample_centroids(rows)
            graph = HNSWIndex(
                m=self.config.hnsw_m,
                ef_construction=self.config.hnsw_ef_construction,
                seed=int(self._rng.integers(0, 2**32)),
            )
            graph.build_index(centroids)
            logger.log_rebuild_phase("build_graph", start, time.time(), details={
                "centroids": len(centroids),
                "max_level": graph.max_level,
            })

            start = time.time()
            assignments = self._assign(graph, rows, centroid_rows)
            logger.log_rebuild_phase("assign", start, time.time(), details={
                "clusters": len(assignments),
                "rows": sum(len(ids) for ids in assignments.values()),
            })

            start = time.time()
            snapshot = await asyncio.to_thread(self.persistence.persist_graph, graph)
            try:
                await asyncio.to_thread(self.persistence.gc_old_snapshots, self.config.snapshot_keep_last)
            except OSError as e:
                logger.warning(f"Snapshot garbage collection failed: {e}")
            logger.log_rebuild_phase("persist", start, time.time(), details={"file_name": snapshot.file_name})

            assignments = await self._unchanged_assignments(rows, assignments)
            await self.vector_store.clear_cluster_assignments()
            await self.vector_store.assign_clusters(assignments)
            self.graph = graph

            report.centroids = len(centroids)
            report.assigned = sum(len(ids) for ids in assignments.values())
            report.snapshot = snapshot.file_name
            report.finished_at = datetime.now()

            audit_event(
                event_type="index_rebuild_completed",
                identifiers={"snapshot": snapshot.file_name},
                payload={"centroids": report.centroids, "assigned": report.assigned}
            )
            return report.centroids

    async def cleanup_stale_embeddings(self) -> Dict[str, Any]:
        """Remove embeddings whose source document no longer exists."""
        async with self._rebuild_lock:
            report = RebuildReport()
            stale = await self._remove_stale(report)
            total_after = await self.vector_store.count()

            result = {
                "removed": report.removed_stale,
                "errors": report.errors,
                "total_before": stale["total_before"],
                "total_after": total_after,
            }
            logger.log_operation("index.cleanup_stale", "success", {
                "removed": report.removed_stale,
                "errors": len(report.errors),
            })
            return result

    # --- Query ---

    async def _embed_query(self, query: str) -> np.ndarray:
        batch = await self.embedding_provider.embed([query])
        return l2_normalize(batch.vectors[0])

    async def _search_vector(self, query_vector: np.ndarray, k: int, probe_count: int) -> Dict[str, Any]:
        graph = self.graph
        probes = graph.search_knn(query_vector, probe_count)
        cluster_ids = [hit.id for hit in probes]

        rows = await self.vector_store.select_by_cluster_ids(cluster_ids)
        rows = [row for row in rows if len(row.vector) == len(query_vector)]

        hits: List[SearchHit] = []
        if rows:
            matrix = np.vstack([row.vector for row in rows]).astype(np.float32)
            scores = matrix @ query_vector
            order = np.argsort(-scores, kind="stable")[:k]
            hits = [
                SearchHit(
                    document_id=rows[i].document_id,
                    title=rows[i].title,
                    text=rows[i].text,
                    score=float(scores[i]),
                )
                for i in order
            ]

        return {"hits": hits, "probed": cluster_ids, "candidates": len(rows)}

    async def search(self, query: str, k: int = 10) -> List[SearchHit]:
        """Probe the closest centroids, then exactly re-score their clusters.

        Returns an empty list for a blank query, k <= 0, or an unbuilt index.
        """
        self._require_ready()

        if not query or not query.strip() or k <= 0 or not self.is_index_built():
            return []

        query_vector = await self._embed_query(query)
        if len(query_vector) != self.graph.dimension:
            raise ConfigurationError(
                f"Query dimension {len(query_vector)} does not match index dimension {self.graph.dimension}"
            )

        result = await self._search_vector(query_vector, k, self.config.search_probe_count)
        logger.log_search(query, result["probed"], result["candidates"], len(result["hits"]))
        return result["hits"]

    async def evaluate_recall(self, queries: Sequence[str], k: int = 10, probe_count: Optional[int] = None) -> float:
        """Mean overlap between hybrid top-k and exact brute-force top-k."""
        self._require_ready()
        if not self.is_index_built():
            raise ConfigurationError("Index not built; run rebuild_index() first")
        if not queries:
            raise ConfigurationError("evaluate_recall needs at least one query")

        rows = await self.vector_store.select_all()
        exact = FaissExactIndex.from_embeddings(rows)
        probes = probe_count or self.config.search_probe_count

        recalls = []
        for query in queries:
            query_vector = await self._embed_query(query)
            expected = exact.search_ids(query_vector, k)
            if not expected:
                continue
            result = await self._search_vector(query_vector, k, probes)
            found = {hit.document_id for hit in result["hits"]}
            recalls.append(len(found & set(expected)) / len(expected))

        recall = float(np.mean(recalls)) if recalls else 0.0
        logger.log_operation("index.evaluate_recall", "success", {
            "queries": len(queries),
            "k": k,
            "probe_count": probes,
            "recall": round(recall, 4),
        })
        return recall

    # --- Introspection ---

    def is_index_built(self) -> bool:
        return self.graph is not None and len(self.graph) > 0

    async def get_embedding_count(self) -> int:
        return await self.vector_store.count()

    def get_centroid_count(self) -> int:
        return len(self.graph) if self.graph is not None else 0

    async def get_snapshot_info(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self.persistence.get_snapshot_info)
