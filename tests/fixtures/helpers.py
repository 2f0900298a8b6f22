from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from core.transport import TransportError


def make_zip(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def make_encrypted_zip(entries: Dict[str, bytes]) -> bytes:
    """A zip whose members carry the encryption flag, so extraction needs a password."""
    data = bytearray(make_zip(entries))
    # General purpose flags sit at offset 6 of local headers, 8 of central headers
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        start = data.find(signature)
        while start != -1:
            data[start + flag_offset] |= 0x01
            start = data.find(signature, start + len(signature))
    return bytes(data)


def make_tar_gz(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class FakeFetcher:
    """Serves canned bytes per source instead of touching the network."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.payloads = dict(payloads or {})
        self.errors = dict(errors or {})
        self.calls: List[str] = []

    def __call__(self, source: str, dest: Path) -> None:
        self.calls.append(source)
        if source in self.errors:
            raise self.errors[source]
        if source not in self.payloads:
            raise TransportError(f"Download failed for {source}: 404")
        dest.write_bytes(self.payloads[source])


@pytest.fixture
def fake_fetcher():
    return FakeFetcher
