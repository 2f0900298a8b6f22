"""Tests for fetching and archive expansion."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from core.transport import ArchiveError, HttpFetcher, TransportError, expand_archive
from tests.fixtures.helpers import make_encrypted_zip, make_tar_gz, make_zip


def fake_session(chunks=(b"abc", b"", b"def"), error=None):
    response = MagicMock()
    response.__enter__.return_value = response
    response.iter_content.return_value = list(chunks)
    if error is not None:
        response.raise_for_status.side_effect = error
    session = MagicMock()
    session.get.return_value = response
    return session


class TestHttpFetcher:
    def test_streams_to_destination(self, tmp_path):
        session = fake_session()
        dest = tmp_path / "out.bin"

        HttpFetcher(timeout=5, user_agent="cachesift-test", session=session)("https://example.org/x", dest)

        assert dest.read_bytes() == b"abcdef"
        _, kwargs = session.get.call_args
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == 5
        assert kwargs["headers"] == {"User-Agent": "cachesift-test"}

    def test_http_error_becomes_transport_error(self, tmp_path):
        session = fake_session(error=requests.HTTPError("404 Client Error"))

        with pytest.raises(TransportError, match="404"):
            HttpFetcher(session=session)("https://example.org/x", tmp_path / "out")

    def test_timeout_becomes_transport_error(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.ConnectTimeout("slow")

        with pytest.raises(TransportError, match="Timed out"):
            HttpFetcher(timeout=2, session=session)("https://example.org/x", tmp_path / "out")

    def test_local_path_is_copied(self, tmp_path):
        source = tmp_path / "tool.bin"
        source.write_bytes(b"local")
        dest = tmp_path / "dest.bin"

        HttpFetcher()(str(source), dest)

        assert dest.read_bytes() == b"local"

    def test_file_url_is_copied(self, tmp_path):
        source = tmp_path / "tool.bin"
        source.write_bytes(b"from url")
        dest = tmp_path / "dest.bin"

        HttpFetcher()(source.as_uri(), dest)

        assert dest.read_bytes() == b"from url"

    def test_missing_local_source(self, tmp_path):
        with pytest.raises(TransportError, match="not found"):
            HttpFetcher()(str(tmp_path / "nope"), tmp_path / "dest")


class TestExpandArchive:
    def test_zip(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(make_zip({"dir/file.txt": b"zip"}))

        expand_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "dir" / "file.txt").read_bytes() == b"zip"

    def test_tar_gz(self, tmp_path):
        archive = tmp_path / "a.tar.gz"
        archive.write_bytes(make_tar_gz({"file.txt": b"tar"}))

        expand_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "file.txt").read_bytes() == b"tar"

    def test_unsupported(self, tmp_path):
        archive = tmp_path / "a.bin"
        archive.write_bytes(b"plain bytes, no archive here")

        with pytest.raises(ArchiveError, match="Unsupported archive format"):
            expand_archive(archive, tmp_path / "out")

    def test_encrypted_zip_becomes_archive_error(self, tmp_path):
        archive = tmp_path / "locked.zip"
        archive.write_bytes(make_encrypted_zip({"tool": b"secret"}))

        with pytest.raises(ArchiveError, match="Extract failed for locked.zip"):
            expand_archive(archive, tmp_path / "out")
