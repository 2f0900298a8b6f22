from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError
from .logging import get_logger

LOGGER = get_logger("core.config")

CONFIG_RELATIVE_PATH = Path("config") / "config.yml"
CARVED_DIR_NAME = "carved"
STATUS_REPORT_NAME = "status_report.txt"
PROVENANCE_NAME = "carving_manifest.json"


@dataclass(slots=True)
class LoggingConfig:
    """Logging configuration from config.yml."""

    level: str = "INFO"
    max_mb: int = 10
    backup_count: int = 5


@dataclass(slots=True)
class ToolsConfig:
    """Tool verification settings."""

    probe_timeout: float = 15.0
    # Treat a probe that reports no exit status as a failure instead of success.
    strict_probe_status: bool = False


@dataclass(slots=True)
class AcquisitionConfig:
    """Settings for fetching missing tools."""

    fetch_timeout: float = 60.0
    max_workers: int = 2
    user_agent: str = "cachesift"


@dataclass(slots=True)
class CarvingConfig:
    """Settings for the signature carving engine."""

    min_size: int = 1024
    max_candidates: int = 10000
    max_workers: int = 1

    def __post_init__(self) -> None:
        # Respect environment variable overrides
        if "CACHESIFT_MIN_SIZE" in os.environ:
            try:
                self.min_size = int(os.environ["CACHESIFT_MIN_SIZE"])
            except ValueError:
                LOGGER.warning("Ignoring non-integer CACHESIFT_MIN_SIZE=%r",
                               os.environ["CACHESIFT_MIN_SIZE"])
        if "CACHESIFT_MAX_WORKERS" in os.environ:
            try:
                self.max_workers = max(1, int(os.environ["CACHESIFT_MAX_WORKERS"]))
            except ValueError:
                LOGGER.warning("Ignoring non-integer CACHESIFT_MAX_WORKERS=%r",
                               os.environ["CACHESIFT_MAX_WORKERS"])


@dataclass(slots=True)
class AppConfig:
    """Top-level configuration resolved from disk."""

    base_dir: Path
    manifest_path: Path
    tools_dir: Path
    work_dir: Path
    evidence_root: Path
    logs_dir: Path
    candidate_dir: Optional[Path] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    carving: CarvingConfig = field(default_factory=CarvingConfig)

    @property
    def carved_dir(self) -> Path:
        return self.evidence_root / CARVED_DIR_NAME

    @property
    def status_report_path(self) -> Path:
        return self.evidence_root / STATUS_REPORT_NAME

    @property
    def provenance_path(self) -> Path:
        return self.evidence_root / PROVENANCE_NAME


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        try:
            content = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file {path} is not valid YAML: {exc}") from exc
        if not isinstance(content, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping at the top level.")
        return content


def _section(overrides: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = overrides.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping.")
    return value


def _number(section: Dict[str, Any], name: str, key: str, default: Any, kind: type = int) -> Any:
    value = section.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Config value '{name}.{key}' must be a number, got {value!r}"
        ) from exc


def _resolve(base_dir: Path, value: Any, default: str) -> Path:
    path = Path(value) if value else Path(default)
    path = path.expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def load_app_config(base_dir: Path, config_path: Optional[Path] = None) -> AppConfig:
    """Load application configuration from disk, providing sensible defaults."""

    config_yaml = config_path or base_dir / CONFIG_RELATIVE_PATH
    config_overrides = _load_yaml(config_yaml)

    paths_cfg = _section(config_overrides, "paths")
    candidate_value = paths_cfg.get("candidate_dir")

    logging_cfg = _section(config_overrides, "logging")
    logging_config = LoggingConfig(
        level=str(logging_cfg.get("level", "INFO")),
        max_mb=_number(logging_cfg, "logging", "max_mb", 10),
        backup_count=_number(logging_cfg, "logging", "backup_count", 5),
    )

    tools_cfg = _section(config_overrides, "tools")
    tools_config = ToolsConfig(
        probe_timeout=_number(tools_cfg, "tools", "probe_timeout", 15.0, float),
        strict_probe_status=bool(tools_cfg.get("strict_probe_status", False)),
    )

    acquisition_cfg = _section(config_overrides, "acquisition")
    acquisition_config = AcquisitionConfig(
        fetch_timeout=_number(acquisition_cfg, "acquisition", "fetch_timeout", 60.0, float),
        max_workers=max(1, _number(acquisition_cfg, "acquisition", "max_workers", 2)),
        user_agent=str(acquisition_cfg.get("user_agent", "cachesift")),
    )

    carving_cfg = _section(config_overrides, "carving")
    carving_config = CarvingConfig(
        min_size=_number(carving_cfg, "carving", "min_size", 1024),
        max_candidates=_number(carving_cfg, "carving", "max_candidates", 10000),
        max_workers=max(1, _number(carving_cfg, "carving", "max_workers", 1)),
    )

    return AppConfig(
        base_dir=base_dir,
        manifest_path=_resolve(base_dir, paths_cfg.get("manifest"), "tools.manifest"),
        tools_dir=_resolve(base_dir, paths_cfg.get("tools_dir"), "tools"),
        work_dir=_resolve(base_dir, paths_cfg.get("work_dir"), "work"),
        evidence_root=_resolve(base_dir, paths_cfg.get("evidence_root"), "evidence"),
        logs_dir=_resolve(base_dir, paths_cfg.get("logs_dir"), "logs"),
        candidate_dir=_resolve(base_dir, candidate_value, "") if candidate_value else None,
        logging=logging_config,
        tools=tools_config,
        acquisition=acquisition_config,
        carving=carving_config,
    )
