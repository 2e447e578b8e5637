"""
Repository interfaces the engine talks to, with in-memory implementations.
The vector store is the sole source of truth for document vectors.
"""

import copy
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .types import DocumentEmbedding, SourceDocument


class IVectorStore(ABC):
    """Abstract interface for per-document embedding storage."""

    @abstractmethod
    async def insert_or_update(self, row: DocumentEmbedding) -> None:
        """Upsert a row keyed by document_id, keeping the original created_at."""
        pass

    @abstractmethod
    async def delete(self, document_id: str) -> None:
        """Delete a row by document id. Missing ids are ignored."""
        pass

    @abstractmethod
    async def get(self, document_id: str) -> Optional[DocumentEmbedding]:
        pass

    @abstractmethod
    async def select_all(self) -> List[DocumentEmbedding]:
        pass

    @abstractmethod
    async def select_by_cluster_ids(self, cluster_ids: Iterable[int]) -> List[DocumentEmbedding]:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def clear_cluster_assignments(self) -> None:
        """Set cluster_id to None on every row."""
        pass

    @abstractmethod
    async def assign_clusters(self, assignments: Dict[int, List[str]]) -> None:
        """Apply cluster_id -> [document_id] assignments."""
        pass


class IDocumentSource(ABC):
    """Current corpus snapshot used by the rebuild reconciliation step."""

    @abstractmethod
    async def list_all(self) -> List[SourceDocument]:
        pass


class InMemoryVectorStore(IVectorStore):
    """Simple in-memory implementation of IVectorStore."""

    def __init__(self):
        self._rows: Dict[str, DocumentEmbedding] = {}

    async def insert_or_update(self, row: DocumentEmbedding) -> None:
        existing = self._rows.get(row.document_id)
        stored = copy.copy(row)
        if existing is not None:
            stored.created_at = existing.created_at
        self._rows[row.document_id] = stored

    async def delete(self, document_id: str) -> None:
        self._rows.pop(document_id, None)

    async def get(self, document_id: str) -> Optional[DocumentEmbedding]:
        row = self._rows.get(document_id)
        return copy.copy(row) if row is not None else None

    async def select_all(self) -> List[DocumentEmbedding]:
        return [copy.copy(row) for row in self._rows.values()]

    async def select_by_cluster_ids(self, cluster_ids: Iterable[int]) -> List[DocumentEmbedding]:
        wanted = set(cluster_ids)
        return [copy.copy(row) for row in self._rows.values() if row.cluster_id in wanted]

    async def count(self) -> int:
        return len(self._rows)

    async def clear_cluster_assignments(self) -> None:
        for row in self._rows.values():
            row.cluster_id = None

    async def assign_clusters(self, assignments: Dict[int, List[str]]) -> None:
        for cluster_id, document_ids in assignments.items():
            for document_id in document_ids:
                row = self._rows.get(document_id)
                if row is not None:
                    row.cluster_id = cluster_id


class InMemoryDocumentSource(IDocumentSource):
    """Mutable in-memory corpus, handy for tests and embedding the engine in scripts."""

    def __init__(self, documents: Optional[Iterable[SourceDocument]] = None):
        self._documents: Dict[str, SourceDocument] = {}
        for document in documents or []:
            self.upsert(document.id, document.title, document.text)

    def upsert(self, document_id: str, title: str, text: str) -> None:
        self._documents[document_id] = SourceDocument(id=document_id, title=title, text=text)

    def remove(self, document_id: str) -> None:
        self._documents.pop(document_id, None)

    async def list_all(self) -> List[SourceDocument]:
        return list(self._documents.values())
