"""
Toolchain preparation and carving pipeline.

One run does, in order:

1. read the manifest (fatal if unreadable)
2. check tool readiness
3. optionally acquire required tools that are not ready, then check again
4. optionally carve a candidate directory into the evidence root
5. optionally write the plain-text status report

Partial failures (dropped manifest lines, failed acquisitions, unreadable
candidates) are collected into ``PipelineSummary`` rather than raised.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .acquisition import AcquisitionEngine, AcquisitionOutcome
from .commands import CommandRunner
from .config import AppConfig
from .enums import NextAction
from .exceptions import OutputRootError
from .logging import get_logger
from .manifest import ManifestIssue, ParsedManifest, load_manifest
from .provenance import build_carving_manifest, generate_run_id, write_carving_manifest
from .tool_registry import ReadinessSummary, ToolRegistry, ToolStatus, summarize
from .transport import ArchiveExpander, Fetcher, HttpFetcher

from extractors.carvers.cache_carver import CacheCarver, CarveResult
from extractors.signatures import SignatureRegistry
from reports.status_report import write_status_report

LOGGER = get_logger("core.pipeline")


@dataclass(slots=True)
class PipelineOptions:
    """Switches for a pipeline run; ``None`` falls back to the config value."""

    check_tools: bool = True
    auto_acquire: bool = False
    carve: bool = True
    write_report: bool = True
    candidate_dir: Optional[Path] = None
    min_size: Optional[int] = None
    max_candidates: Optional[int] = None


@dataclass(slots=True)
class PipelineSummary:
    """Everything a caller needs to present one coherent status."""

    run_id: str
    config: AppConfig
    started: datetime
    finished: Optional[datetime] = None
    manifest_issues: List[ManifestIssue] = field(default_factory=list)
    initial_statuses: List[ToolStatus] = field(default_factory=list)
    final_statuses: List[ToolStatus] = field(default_factory=list)
    acquisitions: List[AcquisitionOutcome] = field(default_factory=list)
    action: Optional[NextAction] = None
    carve_result: Optional[CarveResult] = None
    provenance_path: Optional[Path] = None
    report_path: Optional[Path] = None

    @property
    def readiness(self) -> ReadinessSummary:
        return summarize(self.final_statuses)

    @property
    def all_required_ready(self) -> bool:
        return self.readiness.all_required_ready


def ensure_output_root(path: Path) -> None:
    """Create the evidence output root; failure aborts the run."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputRootError(path, exc.strerror or str(exc)) from exc
    if not os.access(path, os.W_OK):
        raise OutputRootError(path, "permission denied")


def build_registry(config: AppConfig, manifest: ParsedManifest,
                   runner: Optional[CommandRunner] = None) -> ToolRegistry:
    return ToolRegistry(
        manifest.tools,
        manifest.verification_by_tool,
        tools_root=config.tools_dir,
        runner=runner,
        probe_timeout=config.tools.probe_timeout,
        strict_probe_status=config.tools.strict_probe_status,
    )


def signature_registry_for(manifest: ParsedManifest) -> SignatureRegistry:
    """Signatures from the manifest, or the built-in image set when it has none."""
    registry = SignatureRegistry.from_records(manifest.signatures)
    if not registry:
        LOGGER.info("Manifest defines no signatures; using built-in image signatures")
        registry = SignatureRegistry.default()
    return registry


def prepare_toolchain(
    config: AppConfig,
    manifest: ParsedManifest,
    summary: PipelineSummary,
    *,
    auto_acquire: bool,
    runner: Optional[CommandRunner] = None,
    fetcher: Optional[Fetcher] = None,
    expander: Optional[ArchiveExpander] = None,
) -> None:
    """Check readiness, acquire what is missing if allowed, and check again."""
    registry = build_registry(config, manifest, runner)
    summary.initial_statuses = registry.check_all()
    summary.final_statuses = summary.initial_statuses

    action = summarize(summary.initial_statuses).next_action(auto_acquire)
    summary.action = action

    if action is NextAction.PROCEED:
        return
    missing = registry.get_missing_tools(summary.initial_statuses)
    if action is NextAction.WARN:
        LOGGER.warning(
            "Required tools not ready: %s (automatic acquisition disabled)",
            ", ".join(d.name for d in missing),
        )
        return

    engine = AcquisitionEngine(
        config.work_dir,
        tools_root=config.tools_dir,
        fetcher=fetcher or HttpFetcher(
            timeout=config.acquisition.fetch_timeout,
            user_agent=config.acquisition.user_agent,
        ),
        expander=expander,
    )
    summary.acquisitions = engine.acquire_all(missing, max_workers=config.acquisition.max_workers)
    summary.final_statuses = registry.check_all()

    still_missing = [s.name for s in summary.final_statuses if s.required and not s.ready]
    if still_missing:
        LOGGER.warning("Required tools still not ready after acquisition: %s", ", ".join(still_missing))


def carve_candidates(
    config: AppConfig,
    manifest: ParsedManifest,
    summary: PipelineSummary,
    *,
    candidate_dir: Path,
    min_size: int,
    max_candidates: int,
) -> None:
    """Carve ``candidate_dir`` into the evidence root and write provenance."""
    registry = signature_registry_for(manifest)
    carver = CacheCarver(
        registry,
        config.carved_dir,
        min_size=min_size,
        max_candidates=max_candidates,
        max_workers=config.carving.max_workers,
    )
    started = datetime.now(timezone.utc)
    result = carver.run(candidate_dir)
    summary.carve_result = result

    document = build_carving_manifest(
        result,
        registry,
        run_id=summary.run_id,
        started=started,
        finished=datetime.now(timezone.utc),
        candidate_dir=candidate_dir,
        carved_dir=config.carved_dir,
        min_size=min_size,
        max_candidates=max_candidates,
    )
    summary.provenance_path = write_carving_manifest(document, config.provenance_path)


def run_pipeline(
    config: AppConfig,
    options: Optional[PipelineOptions] = None,
    *,
    manifest: Optional[ParsedManifest] = None,
    runner: Optional[CommandRunner] = None,
    fetcher: Optional[Fetcher] = None,
    expander: Optional[ArchiveExpander] = None,
) -> PipelineSummary:
    """
    Run the pipeline.

    Raises:
        ManifestReadError: the manifest cannot be read
        OutputRootError: the evidence root cannot be written
    """
    options = options or PipelineOptions()
    summary = PipelineSummary(
        run_id=generate_run_id(),
        config=config,
        started=datetime.now(timezone.utc),
    )
    LOGGER.info("Pipeline run %s starting", summary.run_id)

    manifest = manifest if manifest is not None else load_manifest(config.manifest_path)
    summary.manifest_issues = list(manifest.issues)

    candidate_dir = options.candidate_dir or config.candidate_dir
    do_carve = options.carve and candidate_dir is not None
    if options.carve and candidate_dir is None:
        LOGGER.warning("No candidate directory configured; carving skipped")

    if do_carve or options.write_report:
        ensure_output_root(config.evidence_root)

    if options.check_tools:
        prepare_toolchain(
            config,
            manifest,
            summary,
            auto_acquire=options.auto_acquire,
            runner=runner,
            fetcher=fetcher,
            expander=expander,
        )

    if do_carve:
        carve_candidates(
            config,
            manifest,
            summary,
            candidate_dir=candidate_dir,
            min_size=options.min_size if options.min_size is not None else config.carving.min_size,
            max_candidates=(
                options.max_candidates if options.max_candidates is not None
                else config.carving.max_candidates
            ),
        )

    summary.finished = datetime.now(timezone.utc)

    if options.write_report:
        summary.report_path = write_status_report(summary, config.status_report_path)

    LOGGER.info(
        "Pipeline run %s finished: required tools %s, %d manifest issues, %d acquisitions, %d artifacts",
        summary.run_id,
        "ready" if summary.all_required_ready else "NOT ready",
        len(summary.manifest_issues),
        len(summary.acquisitions),
        len(summary.carve_result.artifacts) if summary.carve_result else 0,
    )
    return summary
