"""Global pytest configuration."""

import pytest


@pytest.fixture
def png_bytes():
    """A PNG header padded to ``size`` bytes."""
    def _make(size: int = 64, fill: bytes = b"\x00") -> bytes:
        header = b"\x89PNG\r\n\x1a\n"
        return header + fill * (size - len(header))
    return _make


@pytest.fixture
def jpeg_bytes():
    """A JPEG header padded to ``size`` bytes."""
    def _make(size: int = 64, fill: bytes = b"\x11") -> bytes:
        header = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
        return header + fill * (size - len(header))
    return _make
