import shlex
import sys
from pathlib import Path

import pytest

from core.config import load_app_config

pytest_plugins = ["tests.fixtures.helpers"]


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    """Create a minimal CacheSift workspace with a config file."""
    base = tmp_path / "workspace"
    (base / "config").mkdir(parents=True)
    (base / "cache").mkdir()
    (base / "config" / "config.yml").write_text(
        "paths:\n"
        "  manifest: toolchain.manifest\n"
        "  candidate_dir: cache\n"
        "carving:\n"
        "  min_size: 16\n",
        encoding="utf-8",
    )
    return base


@pytest.fixture()
def app_config(workspace: Path, monkeypatch):
    """AppConfig loaded from the workspace fixture, without env overrides."""
    monkeypatch.delenv("CACHESIFT_MIN_SIZE", raising=False)
    monkeypatch.delenv("CACHESIFT_MAX_WORKERS", raising=False)
    return load_app_config(workspace)


@pytest.fixture(scope="session")
def python_probe():
    """Build a probe string that runs the current interpreter with ``code``."""
    def _probe(code: str) -> str:
        return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"
    return _probe
