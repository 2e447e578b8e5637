"""
Exact brute-force top-k over stored embeddings, used to measure hybrid recall.
Never consulted on the query path.
"""

from typing import List, Sequence

import faiss
import numpy as np

from .codec import l2_normalize
from .types import DocumentEmbedding, KNNResult


class FaissExactIndex:
    """Flat inner-product index over unit vectors (inner product == cosine)."""

    def __init__(self, dimension: int):
        self.dimension = dimension
        self.index = faiss.IndexFlatIP(dimension)
        self.document_ids: List[str] = []

    @classmethod
    def from_embeddings(cls, rows: Sequence[DocumentEmbedding]) -> "FaissExactIndex":
        if not rows:
            raise ValueError("Cannot build an exact index without embeddings")
        exact = cls(len(rows[0].vector))
        exact.add(rows)
        return exact

    def add(self, rows: Sequence[DocumentEmbedding]) -> None:
        if not rows:
            return

        for row in rows:
            if len(row.vector) != self.dimension:
                raise ValueError(
                    f"Vector dimension {len(row.vector)} does not match expected dimension {self.dimension}"
                )

        matrix = np.vstack([l2_normalize(row.vector) for row in rows]).astype(np.float32)
        self.index.add(matrix)
        self.document_ids.extend(row.document_id for row in rows)

    def search(self, query: np.ndarray, k: int) -> List[KNNResult]:
        """Top-k document positions by exact cosine similarity."""
        if k <= 0 or self.index.ntotal == 0:
            return []

        q = l2_normalize(query).reshape(1, -1)
        scores, positions = self.index.search(q, min(k, self.index.ntotal))

        return [
            KNNResult(id=int(position), score=float(score))
            for score, position in zip(scores[0], positions[0])
            if position != -1
        ]

    def search_ids(self, query: np.ndarray, k: int) -> List[str]:
        return [self.document_ids[hit.id] for hit in self.search(query, k)]

    def __len__(self) -> int:
        return self.index.ntotal
