"""
Tests for the faiss-backed exact reference search.
"""

import numpy as np
import pytest

from spannlite.vector.exact import FaissExactIndex
from spannlite.vector.types import DocumentEmbedding


def _rows(vectors):
    return [
        DocumentEmbedding(document_id=f"d{i}", title="", text="", vector=np.asarray(v, dtype=np.float32))
        for i, v in enumerate(vectors)
    ]


def test_exact_top_k():
    exact = FaissExactIndex.from_embeddings(_rows([[1, 0], [0, 1], [0.9, 0.1], [-1, 0]]))

    assert len(exact) == 4
    assert exact.search_ids(np.array([1.0, 0.0]), 2) == ["d0", "d2"]


def test_scores_are_cosine():
    exact = FaissExactIndex.from_embeddings(_rows([[3, 4]]))

    hits = exact.search(np.array([3.0, 4.0]), 1)

    assert hits[0].id == 0
    assert hits[0].score == pytest.approx(1.0, abs=1e-6)


def test_k_larger_than_index():
    exact = FaissExactIndex.from_embeddings(_rows([[1, 0], [0, 1]]))

    assert len(exact.search(np.array([1.0, 1.0]), 10)) == 2
    assert exact.search(np.array([1.0, 1.0]), 0) == []


def test_dimension_mismatch():
    exact = FaissExactIndex(3)

    with pytest.raises(ValueError):
        exact.add(_rows([[1, 0]]))


def test_requires_embeddings():
    with pytest.raises(ValueError):
        FaissExactIndex.from_embeddings([])
