from __future__ import annotations

import hashlib


def hash_bytes(data: bytes, alg: str = "sha256") -> str:
    """Compute a hash of an in-memory buffer."""
    return hashlib.new(alg, data).hexdigest()
