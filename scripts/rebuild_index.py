#!/usr/bin/env python3
"""
Index Rebuild Utility
Re-embeds the document corpus, samples fresh centroids and writes a new graph snapshot.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from spannlite.core.config import create_search_engine, validate_search_config
from spannlite.core.db import init_db
from spannlite.core.errors import InsufficientDataError, SearchEngineError


async def rebuild(engine) -> int:
    await engine.initialize()

    before = await engine.get_embedding_count()
    print(f"Found {before} stored embeddings")

    try:
        centroids = await engine.rebuild_index()
    except InsufficientDataError as e:
        print(f"ERROR: {e}")
        return 1
    except SearchEngineError as e:
        print(f"ERROR: Rebuild failed: {e}")
        return 1

    report = engine.last_rebuild
    print(f"✓ Re-embedded {report.synced} documents ({report.failed} failed)")
    if report.removed_stale:
        print(f"✓ Removed {report.removed_stale} stale embeddings")
    print(f"✓ Built centroid graph with {centroids} centroids")
    print(f"✓ Assigned {report.assigned} embeddings to clusters")
    print(f"✓ Persisted snapshot {report.snapshot}")

    for error in report.errors[:10]:
        print(f"WARNING: {error}")

    # Quick smoke test - search for something
    try:
        results = await engine.search("test", k=3)
        print(f"✓ Verification search returned {len(results)} results")
    except SearchEngineError as e:
        print(f"WARNING: Verification search failed: {e}")

    return 0


def main():
    """Rebuild the hybrid index from the document store."""
    issues = validate_search_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    # Initialize database
    init_db()

    print("Starting index rebuild...")
    engine = create_search_engine()

    code = asyncio.run(rebuild(engine))
    if code:
        sys.exit(code)

    print("Index rebuild complete!")


if __name__ == "__main__":
    main()
