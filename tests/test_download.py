"""
Tests for intunesync.io.download module.

Tests download functionality including:
- Basic downloads to an exact destination
- Redirects
- Atomic writes (.part files)
- HTTP and connection errors
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import requests
import requests_mock

from intunesync.exceptions import NetworkError
from intunesync.io.download import fetch_file, make_session

pytestmark = pytest.mark.unit


def _sha256(data: bytes) -> str:
    """Helper to compute SHA-256 hash."""
    return hashlib.sha256(data).hexdigest()


def test_fetch_success(tmp_test_dir: Path) -> None:
    """Test basic successful download to the exact destination."""
    url = "https://example.com/widget-1.0.0.msi"
    data = b"hello world"
    dest = tmp_test_dir / "widget" / "source" / "widget-1.0.0.msi"

    with requests_mock.Mocker() as m:
        m.get(url, content=data, headers={"Content-Length": str(len(data))})
        path, digest, headers = fetch_file(url, dest)

    assert path == dest
    assert path.read_bytes() == data
    assert digest == _sha256(data)
    assert "Content-Length" in headers
    assert not dest.with_suffix(".msi.part").exists()


def test_follows_redirect(tmp_test_dir: Path) -> None:
    """Test that redirects are followed and the destination name is kept."""
    start = "https://example.com/latest"
    final = "https://cdn.example.com/payload-2.0.msi"
    dest = tmp_test_dir / "widget.msi"

    with requests_mock.Mocker() as m:
        m.get(start, status_code=302, headers={"Location": final})
        m.get(final, content=b"abc")
        path, _, _ = fetch_file(start, dest)

    assert path.name == "widget.msi"
    assert path.read_bytes() == b"abc"


def test_http_error_raises_network_error(tmp_test_dir: Path) -> None:
    """Test that 404 responses raise NetworkError and leave no file."""
    url = "https://example.com/missing.msi"
    dest = tmp_test_dir / "missing.msi"

    with requests_mock.Mocker() as m:
        m.get(url, status_code=404)
        with pytest.raises(NetworkError, match="download failed"):
            fetch_file(url, dest)

    assert not dest.exists()


def test_connection_error_raises_network_error(tmp_test_dir: Path) -> None:
    """Test that connection errors are wrapped."""
    url = "https://unreachable.example.com/file.msi"

    with requests_mock.Mocker() as m:
        m.get(url, exc=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(NetworkError, match="refused"):
            fetch_file(url, tmp_test_dir / "file.msi")


def test_existing_file_is_replaced(tmp_test_dir: Path) -> None:
    """Test that a previous file under the final name is overwritten."""
    url = "https://example.com/file.msi"
    dest = tmp_test_dir / "file.msi"
    dest.write_bytes(b"old")

    with requests_mock.Mocker() as m:
        m.get(url, content=b"new")
        fetch_file(url, dest)

    assert dest.read_bytes() == b"new"


def test_session_user_agent() -> None:
    """Test that sessions identify the tool."""
    with make_session() as session:
        assert session.headers["User-Agent"].startswith("intunesync/")
