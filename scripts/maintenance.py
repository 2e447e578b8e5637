#!/usr/bin/env python3
"""
Command-line maintenance utility for the database, graph snapshots and search index.
"""

import argparse
import sys
import json
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from spannlite.core.maintenance import (
    check_database_integrity,
    verify_graph_snapshots,
    validate_search_index,
    cleanup_stale_embeddings,
    rebuild_search_index,
    perform_full_maintenance,
    MaintenanceReport,
    MaintenanceError
)


def format_report(report: MaintenanceReport) -> str:
    """Format a maintenance report for display."""
    lines = []

    lines.append(f"Operation: {report.operation}")
    if report.completed_at and report.started_at:
        duration = report.completed_at - report.started_at
        lines.append(f"Duration: {duration.total_seconds():.2f} seconds")

    if report.errors:
        lines.append(f"Status: FAILED ({len(report.errors)} errors)")
    elif report.issues_found > 0:
        lines.append(f"Status: ISSUES FOUND ({report.issues_found} issues)")
    else:
        lines.append("Status: SUCCESS")

    if report.issues_resolved > 0:
        lines.append(f"Issues Resolved: {report.issues_resolved}")

    if report.metadata:
        lines.append("Details:")
        for key, value in report.metadata.items():
            lines.append(f"  {key}: {value}")

    if report.errors:
        lines.append("Errors:")
        for error in report.errors:
            lines.append(f"  - {error}")

    if report.recommendations:
        lines.append("Recommendations:")
        for rec in report.recommendations:
            lines.append(f"  - {rec}")

    if report.actions_taken:
        lines.append("Actions Taken:")
        for action in report.actions_taken[:5]:
            lines.append(f"  - {action}")

    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Database, snapshot and search index maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --check-integrity         # Check database integrity
  %(prog)s --verify-snapshots        # Verify graph snapshot checksums
  %(prog)s --cleanup-stale           # Remove embeddings of deleted documents
  %(prog)s --full-maintenance --json # Run everything, output JSON

Environment variables:
- DB_PATH=./data/spannlite.db (database location)
- GRAPH_DIR=./data/graphs (snapshot directory)
        """
    )

    parser.add_argument("--check-integrity", "-i", action="store_true",
                        help="Check SQLite integrity and embedding consistency")
    parser.add_argument("--verify-snapshots", "-s", action="store_true",
                        help="Verify every recorded graph snapshot")
    parser.add_argument("--validate-index", "-v", action="store_true",
                        help="Check that the search index loads and covers the corpus")
    parser.add_argument("--cleanup-stale", "-c", action="store_true",
                        help="Remove embeddings whose document no longer exists")
    parser.add_argument("--rebuild-index", "-r", action="store_true",
                        help="Rebuild the centroid graph from stored embeddings")
    parser.add_argument("--full-maintenance", "-f", action="store_true",
                        help="Perform all maintenance operations in sequence")
    parser.add_argument("--json", "-j", action="store_true",
                        help="Output results as JSON instead of human-readable text")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Suppress non-error output")

    args = parser.parse_args(argv)

    individual = [args.check_integrity, args.verify_snapshots, args.validate_index,
                  args.cleanup_stale, args.rebuild_index]

    if not args.full_maintenance and not any(individual):
        parser.error("Must specify at least one maintenance operation")

    if args.full_maintenance and any(individual):
        parser.error("--full-maintenance cannot be combined with individual operations")

    try:
        reports = []

        if args.full_maintenance:
            if not args.quiet:
                print("Running full maintenance suite...")
            reports = perform_full_maintenance()
        else:
            if args.check_integrity:
                reports.append(check_database_integrity())
            if args.verify_snapshots:
                reports.append(verify_graph_snapshots())
            if args.validate_index:
                reports.append(validate_search_index())
            if args.cleanup_stale:
                reports.append(cleanup_stale_embeddings())
            if args.rebuild_index:
                reports.append(rebuild_search_index())

        if args.json:
            json_output = {
                "maintenance_run": {
                    "timestamp": str(reports[0].started_at) if reports else None,
                    "operations": len(reports),
                    "total_issues_found": sum(r.issues_found for r in reports),
                    "total_issues_resolved": sum(r.issues_resolved for r in reports),
                    "errors": sum(len(r.errors) for r in reports)
                },
                "reports": [report.to_dict() for report in reports]
            }
            print(json.dumps(json_output, indent=2, default=str))
        else:
            for i, report in enumerate(reports, 1):
                if not args.quiet or report.errors:
                    if len(reports) > 1:
                        print(f"\nOperation {i}: {report.operation.upper()}")
                        print("-" * 40)
                    print(format_report(report))

        if any(r.errors for r in reports):
            return 1
        elif any(r.issues_found > 0 for r in reports):
            return 2
        else:
            return 0

    except MaintenanceError as e:
        print(f"ERROR: Maintenance operation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
