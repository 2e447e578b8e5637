"""
Records shared by the graph index, the vector store and the hybrid search engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class Centroid:
    """A sampled document vector acting as a cluster representative."""

    id: int
    """Cluster id, equal to the graph node id"""

    vector: np.ndarray
    """Unit-normalized float32 vector"""


@dataclass
class DocumentEmbedding:
    """Represents a stored per-document embedding row."""

    document_id: str
    """Unique identifier of the source document"""

    title: str
    text: str

    vector: np.ndarray
    """Unit-normalized float32 vector"""

    cluster_id: Optional[int] = None
    """Assigned centroid id, None until the next rebuild"""

    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class SourceDocument:
    """A document as provided by the document source."""

    id: str
    title: str
    text: str


@dataclass
class KNNResult:
    """A graph index hit."""

    id: int
    score: float


@dataclass
class SearchHit:
    """Represents a hybrid search result."""

    document_id: str
    title: str
    text: str

    score: float
    """Exact cosine similarity between query and document (-1 to 1)"""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "title": self.title,
            "text": self.text,
            "score": self.score,
        }


@dataclass
class GraphSnapshot:
    """Record of a persisted graph blob."""

    file_name: str
    checksum: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "checksum": self.checksum,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class EmbeddingBatch:
    """Output of an embedding provider call."""

    vectors: np.ndarray
    """Array of shape (len(texts), dim)"""

    dim: int
