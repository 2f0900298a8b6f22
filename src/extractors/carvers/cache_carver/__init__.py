"""Signature-based carving of images out of flat cache directories."""

from .carver import (
    CacheCarver,
    CarvedArtifact,
    CarveResult,
    SkippedCandidate,
    carve,
    list_candidates,
    write_atomic,
)

__all__ = [
    "CacheCarver",
    "CarvedArtifact",
    "CarveResult",
    "SkippedCandidate",
    "carve",
    "list_candidates",
    "write_atomic",
]
