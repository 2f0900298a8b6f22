"""Tests for the end-to-end toolchain and carving pipeline."""

from __future__ import annotations

import json
from dataclasses import replace

import pytest

from core.enums import NextAction, Readiness
from core.exceptions import ManifestReadError, OutputRootError
from core.manifest import parse_manifest
from core.pipeline import PipelineOptions, run_pipeline, signature_registry_for
from tests.fixtures.helpers import FakeFetcher, make_zip

MANIFEST = """\
# [REQUIRED_TOOLS]
present|https://example.org/present|bin/present|direct||Already installed
fetchme|https://example.org/fetchme|bin/fetchme|direct||Fetched on demand
zipped|https://example.org/pkg.zip|bin/zipped|archive|zipped|Fetched from an archive

# [OPTIONAL_TOOLS]
vendor||bin/vendor.exe|manual||Vendor tool

# [SIGNATURES]
PNGTOOL|0x89 0x50 0x4E 0x47|.png|0|0
broken line
"""


@pytest.fixture
def manifest_file(app_config):
    app_config.manifest_path.write_text(MANIFEST, encoding="utf-8")
    present = app_config.tools_dir / "bin" / "present"
    present.parent.mkdir(parents=True)
    present.write_bytes(b"#!/bin/sh\n")
    return app_config.manifest_path


@pytest.fixture
def fetcher():
    return FakeFetcher({
        "https://example.org/fetchme": b"#!/bin/sh\n",
        "https://example.org/pkg.zip": make_zip({"dist/zipped": b"#!/bin/sh\n"}),
    })


def test_check_only_warns_without_acquiring(app_config, manifest_file, fetcher):
    options = PipelineOptions(carve=False)

    summary = run_pipeline(app_config, options, fetcher=fetcher)

    assert summary.action is NextAction.WARN
    assert fetcher.calls == []
    assert not summary.all_required_ready
    readiness = {s.name: s.readiness for s in summary.final_statuses}
    assert readiness == {
        "present": Readiness.READY,
        "fetchme": Readiness.MISSING,
        "zipped": Readiness.MISSING,
        "vendor": Readiness.MISSING,
    }
    assert len(summary.manifest_issues) == 1
    assert summary.report_path == app_config.status_report_path
    assert summary.report_path.exists()


def test_acquisition_then_recheck(app_config, manifest_file, fetcher):
    options = PipelineOptions(auto_acquire=True, carve=False)

    summary = run_pipeline(app_config, options, fetcher=fetcher)

    assert summary.action is NextAction.ACQUIRE
    assert sorted(fetcher.calls) == ["https://example.org/fetchme", "https://example.org/pkg.zip"]
    assert [o.success for o in summary.acquisitions] == [True, True]
    assert summary.all_required_ready
    # Optional tools are never acquired and stay missing
    vendor = next(s for s in summary.final_statuses if s.name == "vendor")
    assert vendor.readiness is Readiness.MISSING
    assert list(app_config.work_dir.iterdir()) == []


def test_failed_acquisition_is_reported_not_raised(app_config, manifest_file):
    fetcher = FakeFetcher({"https://example.org/fetchme": b"x"})

    summary = run_pipeline(app_config, PipelineOptions(auto_acquire=True, carve=False), fetcher=fetcher)

    outcomes = {o.tool: o for o in summary.acquisitions}
    assert outcomes["fetchme"].success
    assert not outcomes["zipped"].success
    assert not summary.all_required_ready
    report = summary.report_path.read_text(encoding="utf-8")
    assert "[FAILED] zipped" in report
    assert "All required tools ready: NO" in report


def test_carving_writes_artifacts_and_provenance(app_config, manifest_file, png_bytes, jpeg_bytes):
    cache = app_config.candidate_dir
    (cache / "f_1").write_bytes(png_bytes(100))
    (cache / "f_2").write_bytes(png_bytes(100))
    # Manifest signatures replace the built-in set, so JPEG is not recognised
    (cache / "f_3").write_bytes(jpeg_bytes(100))

    summary = run_pipeline(app_config, PipelineOptions(check_tools=False))

    assert len(summary.carve_result.artifacts) == 1
    assert summary.carve_result.duplicates == 1
    assert summary.carve_result.unmatched == 1
    assert [p.suffix for p in app_config.carved_dir.iterdir()] == [".png"]
    document = json.loads(summary.provenance_path.read_text(encoding="utf-8"))
    assert document["run_id"] == summary.run_id
    assert document["stats"]["carved"] == 1
    report = summary.report_path.read_text(encoding="utf-8")
    assert "Artifacts carved:   1" in report


def test_options_override_carving_config(app_config, manifest_file, png_bytes):
    (app_config.candidate_dir / "img").write_bytes(png_bytes(100))

    summary = run_pipeline(
        app_config,
        PipelineOptions(check_tools=False, min_size=500, write_report=False),
    )

    assert summary.carve_result.artifacts == []
    assert summary.carve_result.too_small == 1
    assert summary.report_path is None


def test_carving_skipped_without_candidate_dir(app_config, manifest_file):
    config = replace(app_config, candidate_dir=None)

    summary = run_pipeline(config, PipelineOptions(check_tools=False))

    assert summary.carve_result is None
    assert summary.provenance_path is None


def test_manifest_can_be_passed_in(app_config):
    manifest = parse_manifest("# [TOOLS]\n")

    summary = run_pipeline(app_config, PipelineOptions(carve=False, write_report=False), manifest=manifest)

    assert summary.final_statuses == []
    assert summary.action is NextAction.PROCEED


def test_missing_manifest_is_fatal(app_config):
    with pytest.raises(ManifestReadError):
        run_pipeline(app_config)


def test_unwritable_evidence_root_is_fatal(app_config, manifest_file):
    blocker = app_config.base_dir / "blocker"
    blocker.write_text("not a directory")
    config = replace(app_config, evidence_root=blocker / "evidence")

    with pytest.raises(OutputRootError):
        run_pipeline(config, PipelineOptions(check_tools=False))


def test_built_in_signatures_when_manifest_has_none():
    registry = signature_registry_for(parse_manifest("# [SIGNATURES]\n"))

    assert registry.get("JPEG") is not None
