"""Carving provenance manifest (JSON schema loading, validation and writing)."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from jsonschema import Draft202012Validator

from .app_version import get_app_version
from .logging import get_logger

if TYPE_CHECKING:
    from extractors.carvers.cache_carver import CarveResult
    from extractors.signatures import SignatureRule

LOGGER = get_logger("core.provenance")

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "carving_manifest.schema.json"
SCHEMA_VERSION = 1


@dataclass(frozen=True)
class ManifestValidationError(Exception):
    """Raised when provenance manifest validation fails."""

    errors: List[str]

    def __str__(self) -> str:
        return " | ".join(self.errors)


def generate_run_id() -> str:
    """
    Generate a unique run ID for carving jobs.

    Format: YYYYMMDD_HHMM_UUID (e.g., 20240101_1200_a1b2c3d4)
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M")
    unique_id = str(uuid.uuid4())[:8]
    return f"{timestamp}_{unique_id}"


def safe_rel_path(path: Path, base: Path) -> str:
    """Return path relative to base when possible, otherwise the absolute path."""
    try:
        return path.relative_to(base).as_posix()
    except ValueError:
        return path.as_posix()


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def load_schema(schema_path: Path = SCHEMA_PATH) -> Draft202012Validator:
    """Load a JSON schema file and return a compiled validator."""
    schema = json.loads(schema_path.read_text(encoding="utf-8"))
    return Draft202012Validator(schema)


def iter_validation_errors(validator: Draft202012Validator, document: Dict[str, Any]) -> Iterable[str]:
    """Yield human-readable error strings for a document."""
    for error in validator.iter_errors(document):
        path = "/".join(str(p) for p in error.path)
        pointer = f"{path}: " if path else ""
        yield f"{pointer}{error.message}"


def validate_carving_manifest(manifest_data: Dict[str, Any], schema_path: Optional[Path] = None) -> None:
    """
    Validate a carving manifest against the bundled schema.

    Raises ManifestValidationError with formatted errors if validation fails.
    """
    schema_file = schema_path or SCHEMA_PATH
    if not schema_file.exists():
        raise FileNotFoundError(f"Schema not found: {schema_file}")

    validator = load_schema(schema_file)
    errors = list(iter_validation_errors(validator, manifest_data))
    if errors:
        LOGGER.error("Manifest validation failed: %s", " | ".join(errors))
        raise ManifestValidationError(errors)


def build_carving_manifest(
    result: "CarveResult",
    rules: Iterable["SignatureRule"],
    *,
    run_id: str,
    started: datetime,
    finished: datetime,
    candidate_dir: Path,
    carved_dir: Path,
    min_size: int,
    max_candidates: int,
) -> Dict[str, Any]:
    """Assemble the provenance document for one carving run."""
    return {
        "schema_version": SCHEMA_VERSION,
        "run_id": run_id,
        "tool": {"name": "cachesift", "version": get_app_version()},
        "started_utc": _iso(started),
        "finished_utc": _iso(finished),
        "input": {
            "candidate_dir": str(candidate_dir),
            "min_size": min_size,
            "max_candidates": max_candidates,
        },
        "output": {"carved_dir": str(carved_dir)},
        "signatures": [
            {
                "name": rule.name,
                "pattern_hex": rule.pattern.hex(),
                "extension": rule.extension,
                "min_offset": rule.min_offset,
                "max_offset": rule.max_offset,
            }
            for rule in rules
        ],
        "artifacts": [
            {
                "source_path": str(artifact.source_path),
                "rel_path": safe_rel_path(artifact.output_path, carved_dir),
                "signature": artifact.signature,
                "size": artifact.size,
                "sha256": artifact.sha256,
                "offset": artifact.offset,
            }
            for artifact in result.artifacts
        ],
        "skipped": [
            {"path": str(skipped.path), "reason": skipped.reason}
            for skipped in result.skipped
        ],
        "stats": {
            "scanned": result.scanned,
            "carved": len(result.artifacts),
            "duplicates": result.duplicates,
            "unmatched": result.unmatched,
            "too_small": result.too_small,
            "unreadable": len(result.skipped),
            "by_signature": result.by_signature,
        },
    }


def write_carving_manifest(manifest_data: Dict[str, Any], dest: Path) -> Path:
    """Validate and atomically write the provenance manifest."""
    validate_carving_manifest(manifest_data)
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest.with_name(f".{dest.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        tmp_path.write_text(json.dumps(manifest_data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, dest)
    finally:
        tmp_path.unlink(missing_ok=True)
    LOGGER.info("Wrote carving manifest %s (%d artifacts)", dest, len(manifest_data["artifacts"]))
    return dest
