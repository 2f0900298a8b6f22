"""Tests for the plain-text status report."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from core.acquisition import AcquisitionOutcome
from core.manifest import ManifestIssue
from core.pipeline import PipelineSummary
from core.tool_registry import ToolStatus
from extractors.carvers.cache_carver import CarvedArtifact, CarveResult, SkippedCandidate
from reports import render_status_report, write_status_report


@pytest.fixture
def summary(app_config):
    return PipelineSummary(
        run_id="20260101_1200_abcd1234",
        config=app_config,
        started=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


def test_ready_toolchain(summary):
    summary.final_statuses = [
        ToolStatus("sqlite3", True, True, target_path=Path("tools/bin/sqlite3")),
        ToolStatus("viewer", False, False, required=False, detail="Not found at target path"),
    ]

    text = render_status_report(summary)

    assert "Run ID:        20260101_1200_abcd1234" in text
    assert "sqlite3" in text
    assert "READY" in text
    assert "Not found at target path" in text
    assert "Required ready: 1/1" in text
    assert "Optional ready: 0/1" in text
    assert "All required tools ready: yes" in text
    assert "Acquisition" not in text
    assert "Carving" not in text


def test_failures_are_listed(summary):
    summary.final_statuses = [
        ToolStatus("exiftool", True, False, detail="Verification failed: exit code 1"),
    ]
    summary.acquisitions = [
        AcquisitionOutcome("exiftool", False, "Download failed for https://example.org/x: 404"),
    ]
    summary.manifest_issues = [
        ManifestIssue(7, "SIGNATURES", "JPEG|0xZZ|.jpg|0", "invalid hex byte '0xZZ'"),
    ]

    text = render_status_report(summary)

    assert "PRESENT_NOT_FUNCTIONAL" in text
    assert "All required tools ready: NO" in text
    assert "[FAILED] exiftool: Download failed" in text
    assert "Manifest issues (1 dropped lines)" in text
    assert "line 7 [SIGNATURES]: invalid hex byte '0xZZ'" in text


def test_no_tools_defined(summary):
    text = render_status_report(summary)

    assert "(no tools defined)" in text
    assert "Required ready: 0/0" in text


def test_carving_section(summary, tmp_path):
    summary.carve_result = CarveResult(
        artifacts=[
            CarvedArtifact(tmp_path / "f_1", tmp_path / "a.png", "PNG", 100, "a" * 64),
            CarvedArtifact(tmp_path / "f_2", tmp_path / "b.png", "PNG", 120, "b" * 64),
            CarvedArtifact(tmp_path / "f_3", tmp_path / "c.jpg", "JPEG", 90, "c" * 64),
        ],
        skipped=[SkippedCandidate(tmp_path / "f_4", "Permission denied")],
        scanned=6,
        unmatched=1,
        duplicates=1,
    )
    summary.provenance_path = tmp_path / "carving_manifest.json"

    text = render_status_report(summary)

    assert "Candidates scanned: 6" in text
    assert "Artifacts carved:   3" in text
    assert "Unreadable:         1" in text
    assert "skipped " in text and "Permission denied" in text
    assert f"Provenance manifest: {summary.provenance_path}" in text
    lines = [line.strip() for line in text.splitlines()]
    assert any(line.startswith("JPEG") and line.endswith(" 1") for line in lines)
    assert any(line.startswith("PNG") and line.endswith(" 2") for line in lines)


def test_write_status_report(summary, tmp_path):
    dest = tmp_path / "evidence" / "status_report.txt"

    written = write_status_report(summary, dest)

    assert written == dest
    assert dest.read_text(encoding="utf-8").startswith("CacheSift status report")
    assert sorted(p.name for p in dest.parent.iterdir()) == ["status_report.txt"]
