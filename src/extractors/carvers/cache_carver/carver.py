"""
Signature-based cache carver.

Scans the files directly inside a candidate directory (browser cache entries,
thumbnail stores, ...), keeps those whose bytes match a signature rule and
exceed a minimum size, and copies them into the output directory under a name
derived from their SHA-256. Identical content always lands on the same output
path, so re-running over the same candidates overwrites instead of
duplicating.
"""

from __future__ import annotations

import os
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Iterable, Iterator, List, Optional, Tuple

from core.exceptions import CandidateReadError, OutputRootError
from core.hashing import hash_bytes
from core.logging import get_logger
from extractors.signatures import MatchResult, SignatureRule, classify

LOGGER = get_logger("extractors.carvers.cache_carver")

HASH_ALGORITHM = "sha256"


@dataclass(frozen=True, slots=True)
class CarvedArtifact:
    """An artifact written to the output directory."""

    source_path: Path
    output_path: Path
    signature: str
    size: int
    sha256: str
    offset: int = 0


@dataclass(frozen=True, slots=True)
class SkippedCandidate:
    """A candidate that could not be read."""

    path: Path
    reason: str


@dataclass(slots=True)
class CarveResult:
    """Artifacts plus the bookkeeping needed for a run summary."""

    artifacts: List[CarvedArtifact] = field(default_factory=list)
    skipped: List[SkippedCandidate] = field(default_factory=list)
    scanned: int = 0
    unmatched: int = 0
    too_small: int = 0
    duplicates: int = 0

    @property
    def by_signature(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for artifact in self.artifacts:
            counts[artifact.signature] = counts.get(artifact.signature, 0) + 1
        return counts


@dataclass(frozen=True, slots=True)
class _Inspection:
    path: Path
    data: Optional[bytes] = None
    match: Optional[MatchResult] = None
    error: Optional[str] = None


def list_candidates(candidate_dir: Path, max_candidates: int) -> List[Path]:
    """Regular files directly inside ``candidate_dir``, in name order, capped."""
    if max_candidates <= 0:
        return []
    try:
        entries = sorted(candidate_dir.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        LOGGER.warning("Cannot list candidate directory %s: %s", candidate_dir, exc)
        return []
    files: List[Path] = []
    for entry in entries:
        try:
            if not entry.is_file():
                continue
        except OSError:
            continue
        files.append(entry)
        if len(files) >= max_candidates:
            break
    return files


def read_candidate(path: Path) -> bytes:
    """Read a candidate fully into memory."""
    try:
        return path.read_bytes()
    except OSError as exc:
        raise CandidateReadError(path, exc.strerror or str(exc)) from exc


def ensure_output_dir(output_dir: Path) -> None:
    """Create the output directory; failure is fatal for the run."""
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputRootError(output_dir, exc.strerror or str(exc)) from exc
    if not os.access(output_dir, os.W_OK):
        raise OutputRootError(output_dir, "permission denied")


def write_atomic(dest: Path, data: bytes) -> None:
    """Write ``data`` to a temporary sibling, then rename over ``dest``."""
    tmp_path = dest.with_name(f".{dest.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        with tmp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, dest)
    finally:
        tmp_path.unlink(missing_ok=True)


class CacheCarver:
    """Carves signature-matching files from a flat candidate directory."""

    def __init__(
        self,
        rules: Iterable[SignatureRule],
        output_dir: Path,
        *,
        min_size: int = 0,
        max_candidates: int = 10000,
        max_workers: int = 1,
    ):
        self.rules: Tuple[SignatureRule, ...] = tuple(rules)
        self.output_dir = output_dir
        self.min_size = min_size
        self.max_candidates = max_candidates
        self.max_workers = max(1, max_workers)

    def _inspect(self, path: Path) -> _Inspection:
        try:
            data = read_candidate(path)
        except CandidateReadError as exc:
            return _Inspection(path=path, error=exc.reason)
        result = classify(data, self.rules)
        if result is None:
            return _Inspection(path=path)
        return _Inspection(path=path, data=data, match=result)

    def _inspect_all(self, candidates: List[Path]) -> Iterator[_Inspection]:
        if self.max_workers == 1 or len(candidates) <= 1:
            yield from map(self._inspect, candidates)
            return
        # At most max_workers buffers are held; results are yielded in candidate order
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="carve") as pool:
            pending: Deque[Future] = deque()
            for path in candidates:
                if len(pending) >= self.max_workers:
                    yield pending.popleft().result()
                pending.append(pool.submit(self._inspect, path))
            while pending:
                yield pending.popleft().result()

    def run(self, candidate_dir: Path) -> CarveResult:
        """
        Carve ``candidate_dir`` into the output directory.

        Raises:
            OutputRootError: the output directory cannot be created
        """
        ensure_output_dir(self.output_dir)
        result = CarveResult()
        if not self.rules:
            LOGGER.warning("No signature rules configured; nothing to carve")
            return result

        candidates = list_candidates(candidate_dir, self.max_candidates)
        LOGGER.info("Scanning %d candidates in %s", len(candidates), candidate_dir)
        seen_hashes: set[str] = set()

        for inspection in self._inspect_all(candidates):
            result.scanned += 1
            if inspection.error is not None:
                LOGGER.warning("Skipping unreadable candidate %s: %s", inspection.path, inspection.error)
                result.skipped.append(SkippedCandidate(inspection.path, inspection.error))
                continue
            if inspection.match is None or inspection.data is None:
                result.unmatched += 1
                continue

            data = inspection.data
            if len(data) <= self.min_size:
                LOGGER.debug("Skipping %s: %d bytes is not above minimum %d",
                             inspection.path.name, len(data), self.min_size)
                result.too_small += 1
                continue

            digest = hash_bytes(data, HASH_ALGORITHM)
            if digest in seen_hashes:
                result.duplicates += 1
                continue
            seen_hashes.add(digest)

            output_path = self.output_dir / f"{digest}{inspection.match.extension}"
            try:
                write_atomic(output_path, data)
            except OSError as exc:
                raise OutputRootError(self.output_dir, exc.strerror or str(exc)) from exc

            result.artifacts.append(CarvedArtifact(
                source_path=inspection.path,
                output_path=output_path,
                signature=inspection.match.name,
                size=len(data),
                sha256=digest,
                offset=inspection.match.offset,
            ))
            LOGGER.debug("Carved %s as %s -> %s", inspection.path.name, inspection.match.name, output_path.name)

        LOGGER.info(
            "Carving complete: %d scanned, %d carved, %d duplicates, %d unmatched, %d too small, %d unreadable",
            result.scanned,
            len(result.artifacts),
            result.duplicates,
            result.unmatched,
            result.too_small,
            len(result.skipped),
        )
        return result


def carve(
    candidate_dir: Path,
    rules: Iterable[SignatureRule],
    output_dir: Path,
    min_size: int,
    max_candidates: int,
    *,
    max_workers: int = 1,
) -> List[CarvedArtifact]:
    """Carve ``candidate_dir`` and return the unique artifacts written."""
    carver = CacheCarver(
        rules,
        output_dir,
        min_size=min_size,
        max_candidates=max_candidates,
        max_workers=max_workers,
    )
    return carver.run(candidate_dir).artifacts
