"""Version string for CLI output, reports and provenance manifests."""

from __future__ import annotations

import re
from functools import lru_cache
from importlib import metadata
from pathlib import Path

DISTRIBUTION_NAME = "cachesift"
UNKNOWN_VERSION = "0.0.0"

_VERSION_RE = re.compile(r'^\s*version\s*=\s*"([^"]+)"\s*$', re.MULTILINE)


def _version_from_pyproject() -> str | None:
    # src/core/app_version.py -> repository root
    pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    try:
        content = pyproject_path.read_text(encoding="utf-8")
    except OSError:
        return None
    match = _VERSION_RE.search(content)
    return match.group(1) if match else None


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the source checkout version, else the installed distribution's."""
    version = _version_from_pyproject()
    if version:
        return version
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return UNKNOWN_VERSION
