"""
Tests for the maintenance command-line script.
"""

import json
from datetime import datetime
from unittest.mock import patch

import pytest

from scripts.maintenance import main, format_report
from spannlite.core.maintenance import MaintenanceReport


def test_format_report_success():
    report = MaintenanceReport(
        operation="stale_cleanup",
        started_at=datetime(2025, 1, 1, 12, 0, 0),
        completed_at=datetime(2025, 1, 1, 12, 0, 2),
        actions_taken=["Removed 2 stale embeddings"],
        metadata={"total_after": 8}
    )

    output = format_report(report)

    assert "Operation: stale_cleanup" in output
    assert "Duration: 2.00 seconds" in output
    assert "Status: SUCCESS" in output
    assert "  total_after: 8" in output
    assert "  - Removed 2 stale embeddings" in output


def test_format_report_errors():
    report = MaintenanceReport(operation="index_rebuild", started_at=datetime.now(), errors=["boom"])

    assert "Status: FAILED (1 errors)" in format_report(report)


def test_requires_an_operation():
    with pytest.raises(SystemExit):
        main([])


def test_full_maintenance_cannot_combine():
    with pytest.raises(SystemExit):
        main(["--full-maintenance", "--cleanup-stale"])


def test_json_output_and_exit_code(capfd):
    report = MaintenanceReport(
        operation="snapshot_verification",
        started_at=datetime.now(),
        completed_at=datetime.now(),
        issues_found=1,
        recommendations=["No graph snapshot recorded; run a rebuild"]
    )

    with patch("scripts.maintenance.verify_graph_snapshots", return_value=report):
        code = main(["--verify-snapshots", "--json"])

    assert code == 2
    data = json.loads(capfd.readouterr().out)
    assert data["maintenance_run"]["operations"] == 1
    assert data["reports"][0]["operation"] == "snapshot_verification"
