"""
Exceptions for CacheSift.

Only ManifestReadError and OutputRootError are meant to stop a run. The rest are
raised close to the failing operation and turned into per-item outcomes by the
caller.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class CacheSiftError(Exception):
    """Base exception for CacheSift errors."""
    pass


class ConfigurationError(CacheSiftError):
    """Raised when configuration or a manifest record is invalid."""
    pass


class ManifestReadError(CacheSiftError):
    """Raised when the tool/signature manifest cannot be read at all."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read manifest {path}: {reason}")


class OutputRootError(CacheSiftError):
    """Raised when the evidence output root cannot be created or written."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Output location {path} is not writable: {reason}")


class AcquisitionError(CacheSiftError):
    """Raised while fetching, expanding or installing a tool."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(message)


class CandidateReadError(CacheSiftError):
    """Raised when a carving candidate cannot be read."""

    def __init__(self, path: Path, reason: Optional[str] = None):
        self.path = path
        self.reason = reason or "unreadable"
        super().__init__(f"Cannot read candidate {path}: {self.reason}")


class StoreQueryError(CacheSiftError):
    """Raised when an opaque query against a data store fails."""
    pass
