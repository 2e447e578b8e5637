"""
Runtime configuration for spannlite.
Every knob is read from the environment (or a local .env file) with a safe default.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# Storage locations
DB_PATH = os.getenv("DB_PATH", "./data/spannlite.db")
GRAPH_DIR = os.getenv("GRAPH_DIR", "./data/graphs")

DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Embedding configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformers
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))

# Hybrid index configuration
NUM_CLUSTERS = int(os.getenv("NUM_CLUSTERS", "5"))
SEARCH_PROBE_COUNT = int(os.getenv("SEARCH_PROBE_COUNT", "3"))
MIN_EMBEDDINGS = int(os.getenv("MIN_EMBEDDINGS", "3"))
HNSW_M = int(os.getenv("HNSW_M", "16"))
HNSW_EF_CONSTRUCTION = int(os.getenv("HNSW_EF_CONSTRUCTION", "200"))
SNAPSHOT_KEEP_LAST = int(os.getenv("SNAPSHOT_KEEP_LAST", "2"))
RANDOM_SEED = os.getenv("RANDOM_SEED")  # unset -> fresh entropy per engine

VERSION = "0.3.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def get_random_seed() -> Optional[int]:
    """Seed for centroid sampling and level assignment, None when unset."""
    seed = os.getenv("RANDOM_SEED", RANDOM_SEED)
    if seed is None or seed == "":
        return None
    return int(seed)


def ensure_data_directories():
    """Ensure the database and graph snapshot directories exist."""
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    Path(GRAPH_DIR).mkdir(parents=True, exist_ok=True)


def get_search_config():
    """Build a SearchConfig from the environment settings."""
    from spannlite.vector.engine import SearchConfig
    return SearchConfig(
        num_clusters=NUM_CLUSTERS,
        search_probe_count=SEARCH_PROBE_COUNT,
        min_embeddings=MIN_EMBEDDINGS,
        hnsw_m=HNSW_M,
        hnsw_ef_construction=HNSW_EF_CONSTRUCTION,
        snapshot_keep_last=SNAPSHOT_KEEP_LAST,
    )


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "sentence_transformers":
        from spannlite.vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)
    from spannlite.vector.embeddings import DeterministicHashEmbedding
    return DeterministicHashEmbedding(dimension=EMBED_DIM)


def validate_search_config() -> List[str]:
    """Validate hybrid index configuration and return any issues."""
    issues = []

    if EMBED_PROVIDER not in ["hash", "sentence_transformers"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_DIM < 1 or EMBED_DIM > 65535:
        issues.append("EMBED_DIM must be between 1 and 65535")

    issues.extend(get_search_config().validate())

    return issues


def get_vector_store(db_path: Optional[str] = None):
    """Get the SQLite-backed vector store."""
    from spannlite.vector.sqlite_store import SQLiteVectorStore
    return SQLiteVectorStore(db_path)


def get_document_source(db_path: Optional[str] = None):
    """Get the SQLite-backed document source."""
    from spannlite.vector.sqlite_store import SQLiteDocumentSource
    return SQLiteDocumentSource(db_path)


def get_graph_persistence(db_path: Optional[str] = None, graph_dir: Optional[str] = None):
    """Get snapshot persistence writing to GRAPH_DIR and recording snapshots in SQLite."""
    from spannlite.vector.persistence import GraphPersistence
    from spannlite.vector.sqlite_store import SQLiteSnapshotIndex
    return GraphPersistence(graph_dir or GRAPH_DIR, SQLiteSnapshotIndex(db_path))


def create_search_engine(db_path: Optional[str] = None, graph_dir: Optional[str] = None):
    """Wire a HybridSearchEngine from the environment settings."""
    from spannlite.vector.engine import HybridSearchEngine
    return HybridSearchEngine(
        embedding_provider=get_embedding_provider(),
        vector_store=get_vector_store(db_path),
        document_source=get_document_source(db_path),
        persistence=get_graph_persistence(db_path, graph_dir),
        config=get_search_config(),
        seed=get_random_seed(),
    )
