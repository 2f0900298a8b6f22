"""
Carvers - recovery of artifacts from unstructured containers.

- Cache Carver: signature matching over flat cache directories, content-hash
  deduplication

Usage:
    from extractors.carvers import CacheCarver, carve
"""

from __future__ import annotations

from .cache_carver import CacheCarver, CarvedArtifact, CarveResult, SkippedCandidate, carve

__all__ = [
    "CacheCarver",
    "CarvedArtifact",
    "CarveResult",
    "SkippedCandidate",
    "carve",
]
