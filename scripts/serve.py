#!/usr/bin/env python3
"""
Start the search API on a local port.
"""

import argparse
import sys
from pathlib import Path

import uvicorn

sys.path.insert(0, str(Path(__file__).parent.parent))

from spannlite.core.config import DEBUG, validate_search_config


def main():
    parser = argparse.ArgumentParser(description="Serve the spannlite search API")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=8000, help="Port to listen on (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    issues = validate_search_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    print(f"Serving search API on http://{args.host}:{args.port}")
    uvicorn.run(
        "spannlite.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if DEBUG else "info",
    )


if __name__ == "__main__":
    main()
