"""Core layer: manifest, tool readiness, acquisition and pipeline orchestration."""

from .config import AppConfig, load_app_config  # noqa: F401
from .manifest import ParsedManifest, load_manifest, parse_manifest  # noqa: F401
# NOTE: pipeline is not exported from the package to avoid a circular import
# with extractors/reports. Import directly: from core.pipeline import run_pipeline
