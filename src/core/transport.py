"""
Fetch and archive-expansion capabilities used by tool acquisition.

The acquisition engine only depends on the two callables ``Fetcher`` and
``ArchiveExpander``; the defaults here use ``requests`` for HTTP(S), a plain
copy for local/``file://`` sources, and zipfile/tarfile for archives.
"""

from __future__ import annotations

import shutil
import tarfile
import zipfile
import zlib
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import requests

from .logging import get_logger

LOGGER = get_logger("core.transport")

CHUNK_SIZE = 64 * 1024

Fetcher = Callable[[str, Path], None]
ArchiveExpander = Callable[[Path, Path], None]


class TransportError(Exception):
    """Raised when a source cannot be fetched."""
    pass


class ArchiveError(Exception):
    """Raised when an archive cannot be expanded."""
    pass


def _local_source(source: str) -> Optional[Path]:
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(url2pathname(unquote(parsed.path)))
    # A one-letter scheme is a Windows drive letter, not a URL scheme
    if parsed.scheme == "" or len(parsed.scheme) == 1:
        return Path(source)
    return None


class HttpFetcher:
    """Fetch sources over HTTP(S) with a bounded timeout."""

    def __init__(self, timeout: float = 60.0, user_agent: str = "cachesift",
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session

    def __call__(self, source: str, dest: Path) -> None:
        local = _local_source(source)
        if local is not None:
            self._copy_local(local, dest)
            return

        getter = self.session.get if self.session is not None else requests.get
        LOGGER.debug("Fetching %s -> %s", source, dest)
        try:
            with getter(
                source,
                stream=True,
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
            ) as resp:
                resp.raise_for_status()
                bytes_written = 0
                with dest.open("wb") as fh:
                    for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        bytes_written += len(chunk)
        except requests.Timeout as exc:
            raise TransportError(f"Timed out fetching {source} after {self.timeout:g}s") from exc
        except requests.RequestException as exc:
            raise TransportError(f"Download failed for {source}: {exc}") from exc
        LOGGER.info("Fetched %s (%d bytes)", source, bytes_written)

    @staticmethod
    def _copy_local(source: Path, dest: Path) -> None:
        if not source.is_file():
            raise TransportError(f"Source file not found: {source}")
        try:
            shutil.copyfile(source, dest)
        except OSError as exc:
            raise TransportError(f"Copy failed for {source}: {exc}") from exc


def expand_archive(archive: Path, dest_dir: Path) -> None:
    """Expand a zip or tar archive into ``dest_dir``."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive, "r") as zf:
                zf.extractall(dest_dir)
            return
        if tarfile.is_tarfile(archive):
            with tarfile.open(archive, "r:*") as tf:
                tf.extractall(dest_dir, filter="data")
            return
    # zipfile signals encrypted members with RuntimeError and unsupported
    # compression methods with NotImplementedError
    except (zipfile.BadZipFile, tarfile.TarError, RuntimeError, NotImplementedError,
            zlib.error, EOFError) as exc:
        raise ArchiveError(f"Extract failed for {archive.name}: {exc}") from exc
    raise ArchiveError(f"Unsupported archive format: {archive.name}")
