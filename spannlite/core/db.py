"""
SQLite persistence for documents, per-document embeddings and graph snapshot records.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from . import config


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path or config.DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    if db_path is None:
        config.ensure_data_directories()

    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Source documents (id, title, already-extracted text)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                text TEXT NOT NULL DEFAULT '',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # One row per embedded document, cluster_id NULL until the next rebuild
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS embeddings (
                document_id TEXT PRIMARY KEY,
                title TEXT,
                text TEXT,
                vec_data BLOB NOT NULL,
                vec_dim INTEGER NOT NULL,
                cluster_id INTEGER,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS graph_snapshots (
                file_name TEXT PRIMARY KEY,
                checksum TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_embeddings_cluster ON embeddings(cluster_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_snapshots_created ON graph_snapshots(created_at DESC)')

        conn.commit()


def health_check(db_path: Optional[str] = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            table_names = [table[0] for table in tables]
            required_tables = ['documents', 'embeddings', 'graph_snapshots']

            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
