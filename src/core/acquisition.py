"""
Tool acquisition.

Obtains tools that are not ready, dispatching on the manifest's extraction
strategy. Failures never propagate: each attempt ends in an
``AcquisitionOutcome`` and the batch moves on. Readiness after acquisition is
established by re-running the resolver, not by trusting these outcomes.
"""

from __future__ import annotations

import os
import shutil
import stat
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from .enums import ExtractionStrategy
from .exceptions import AcquisitionError
from .logging import get_logger
from .manifest import ToolDefinition
from .transport import ArchiveError, ArchiveExpander, Fetcher, HttpFetcher, TransportError, expand_archive

LOGGER = get_logger("core.acquisition")

SCRATCH_PREFIX = ".acquire-"


@dataclass(frozen=True, slots=True)
class AcquisitionOutcome:
    """Result of one acquisition attempt."""

    tool: str
    success: bool
    message: str


def _archive_suffix(source: str) -> str:
    name = PurePosixPath(urlparse(source).path or source).name.lower()
    for suffix in (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".zip", ".tar"):
        if name.endswith(suffix):
            return suffix
    return ".archive"


def _make_executable(path: Path) -> None:
    try:
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except OSError as exc:
        LOGGER.debug("Could not mark %s executable: %s", path, exc)


def _install(payload: Path, target: Path) -> None:
    """Move ``payload`` to ``target`` through a temporary sibling."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_target = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.part")
    try:
        shutil.move(str(payload), str(tmp_target))
        _make_executable(tmp_target)
        os.replace(tmp_target, target)
    finally:
        tmp_target.unlink(missing_ok=True)


def locate_payload(extract_dir: Path, artifact: str) -> Optional[Path]:
    """
    Find the wanted file in an expanded archive.

    The declared relative path is tried first, then a recursive search by
    file name (first hit in sorted order).
    """
    relative = Path(artifact.replace("\\", "/"))
    direct = extract_dir / relative
    if direct.is_file():
        return direct
    for candidate in sorted(extract_dir.rglob(relative.name)):
        if candidate.is_file():
            return candidate
    return None


class AcquisitionEngine:
    """Fetches, expands and installs tools described by the manifest."""

    def __init__(
        self,
        work_dir: Path,
        *,
        tools_root: Optional[Path] = None,
        fetcher: Optional[Fetcher] = None,
        expander: Optional[ArchiveExpander] = None,
    ):
        self.work_dir = work_dir
        self.tools_root = tools_root
        self.fetcher = fetcher or HttpFetcher()
        self.expander = expander or expand_archive

    def acquire(self, definition: ToolDefinition) -> AcquisitionOutcome:
        """Attempt to obtain one tool. Never raises for acquisition problems."""
        strategy = definition.extraction_strategy
        LOGGER.info("Acquiring %s (strategy=%s)", definition.name, definition.strategy)

        if strategy is ExtractionStrategy.MANUAL:
            return AcquisitionOutcome(
                definition.name,
                False,
                f"Manual installation required: obtain {definition.name} from "
                f"{definition.source or 'the vendor'} and place it at {definition.resolve_target(self.tools_root)}",
            )
        if strategy is None:
            return AcquisitionOutcome(
                definition.name,
                False,
                f"Unknown extraction strategy '{definition.strategy}' "
                f"(expected one of: {', '.join(ExtractionStrategy.known_tokens())})",
            )
        if not definition.source:
            return AcquisitionOutcome(definition.name, False, "No download source configured")

        try:
            if strategy is ExtractionStrategy.ARCHIVE:
                target = self._acquire_archive(definition)
            else:
                target = self._acquire_direct(definition)
        except (AcquisitionError, TransportError, ArchiveError) as exc:
            LOGGER.warning("Acquisition of %s failed: %s", definition.name, exc)
            return AcquisitionOutcome(definition.name, False, str(exc))
        except OSError as exc:
            LOGGER.warning("Acquisition of %s failed with filesystem error: %s", definition.name, exc)
            return AcquisitionOutcome(definition.name, False, f"Filesystem error: {exc}")

        LOGGER.info("Installed %s at %s", definition.name, target)
        return AcquisitionOutcome(definition.name, True, f"Installed to {target}")

    def _acquire_direct(self, definition: ToolDefinition) -> Path:
        target = definition.resolve_target(self.tools_root)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_target = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.part")
        try:
            self.fetcher(definition.source, tmp_target)
            _make_executable(tmp_target)
            os.replace(tmp_target, target)
        finally:
            tmp_target.unlink(missing_ok=True)
        return target

    def _acquire_archive(self, definition: ToolDefinition) -> Path:
        if not definition.verify_artifact:
            raise AcquisitionError(
                definition.name,
                "Archive strategy needs a verification artifact naming the file to install",
            )

        self.work_dir.mkdir(parents=True, exist_ok=True)
        scratch_root = self.work_dir / f"{SCRATCH_PREFIX}{definition.name}-{uuid.uuid4().hex[:8]}"
        archive_path = self.work_dir / f"{scratch_root.name}{_archive_suffix(definition.source)}"
        extract_dir = scratch_root / "extracted"
        try:
            self.fetcher(definition.source, archive_path)
            self.expander(archive_path, extract_dir)

            payload = locate_payload(extract_dir, definition.verify_artifact)
            if payload is None:
                available = sorted(p.name for p in extract_dir.rglob("*") if p.is_file())
                raise AcquisitionError(
                    definition.name,
                    f"'{definition.verify_artifact}' not found in archive "
                    f"(contains: {', '.join(available[:10]) or 'nothing'})",
                )

            target = definition.resolve_target(self.tools_root)
            _install(payload, target)
            return target
        finally:
            archive_path.unlink(missing_ok=True)
            shutil.rmtree(scratch_root, ignore_errors=True)

    def acquire_all(
        self,
        definitions: Iterable[ToolDefinition],
        *,
        max_workers: int = 2,
    ) -> List[AcquisitionOutcome]:
        """
        Acquire several tools, optionally in parallel.

        Results follow the order of ``definitions``.
        """
        pending = list(definitions)
        if not pending:
            return []
        workers = max(1, min(max_workers, len(pending)))
        if workers == 1:
            outcomes = [self.acquire(definition) for definition in pending]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="acquire") as pool:
                outcomes = list(pool.map(self.acquire, pending))

        succeeded = sum(1 for outcome in outcomes if outcome.success)
        LOGGER.info("Acquisition complete: %d succeeded, %d failed", succeeded, len(outcomes) - succeeded)
        return outcomes


def acquire(
    definition: ToolDefinition,
    work_dir: Path,
    *,
    tools_root: Optional[Path] = None,
    fetcher: Optional[Fetcher] = None,
    expander: Optional[ArchiveExpander] = None,
) -> AcquisitionOutcome:
    """Acquire a single tool with a one-off engine."""
    engine = AcquisitionEngine(work_dir, tools_root=tools_root, fetcher=fetcher, expander=expander)
    return engine.acquire(definition)
