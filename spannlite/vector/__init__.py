"""
Hybrid ANN search: centroid graph, snapshot persistence, vector stores and the search engine.
"""

# Package initialization for vector module
from .index import IVectorStore, IDocumentSource, InMemoryVectorStore, InMemoryDocumentSource
from .sqlite_store import SQLiteVectorStore, SQLiteDocumentSource, SQLiteSnapshotIndex
from .types import Centroid, DocumentEmbedding, SourceDocument, KNNResult, SearchHit, GraphSnapshot, EmbeddingBatch
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding
from .hnsw import HNSWIndex
from .persistence import GraphPersistence, ISnapshotIndex, InMemorySnapshotIndex
from .engine import HybridSearchEngine, SearchConfig, RebuildReport, EngineState

__all__ = [
    'IVectorStore',
    'IDocumentSource',
    'InMemoryVectorStore',
    'InMemoryDocumentSource',
    'SQLiteVectorStore',
    'SQLiteDocumentSource',
    'SQLiteSnapshotIndex',
    'Centroid',
    'DocumentEmbedding',
    'SourceDocument',
    'KNNResult',
    'SearchHit',
    'GraphSnapshot',
    'EmbeddingBatch',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'HNSWIndex',
    'GraphPersistence',
    'ISnapshotIndex',
    'InMemorySnapshotIndex',
    'HybridSearchEngine',
    'SearchConfig',
    'RebuildReport',
    'EngineState'
]
