"""
Shared pytest configuration and fixtures for wineport tests.
"""

import io
import json
import subprocess
import sys
import tarfile
from pathlib import Path

import pytest

# Add src to path for testing
parent_dir = Path(__file__).parent.parent
sys.path.insert(0, str(parent_dir / "src"))

from wineport.common import (  # noqa: E402
    AssetRecord,
    FileSystemClientProtocol,
    NetworkClientProtocol,
    ReleaseRecord,
)
from wineport.config import WinePortConfig  # noqa: E402


@pytest.fixture
def mock_subprocess_success(mocker):
    """Mock successful subprocess.run calls."""
    return mocker.patch(
        "subprocess.run",
        return_value=subprocess.CompletedProcess(
            args=[], returncode=0, stdout="", stderr=""
        ),
    )


@pytest.fixture
def mock_urllib_response(mocker):
    """Mock successful urllib response."""
    mock_response = mocker.MagicMock()
    mock_response.headers.get.return_value = "12"
    mock_response.read.side_effect = [b"chunk1", b"chunk2", b""]
    mock_response.__enter__ = mocker.MagicMock(return_value=mock_response)
    mock_response.__exit__ = mocker.MagicMock(return_value=None)
    return mock_response


@pytest.fixture
def mock_network_client(mocker):
    """Create a mocked NetworkClientProtocol instance."""
    mock = mocker.MagicMock(spec=NetworkClientProtocol)
    mock.timeout = 30
    return mock


@pytest.fixture
def mock_filesystem_client(mocker):
    """Create a mocked FileSystemClientProtocol instance."""
    return mocker.MagicMock(spec=FileSystemClientProtocol)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays: list[float] = []

    def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory."""
    return WinePortConfig(
        ports_base=tmp_path / "roms" / "ports",
        dedicated_prefix_root=tmp_path / ".wine64-setup",
        shared_prefix=tmp_path / ".wine64-shared",
        runtime_root=tmp_path / "winecustom",
        runtime_root_32=tmp_path / "winecustom32",
        retries=2,
        backoff_seconds=0.5,
    )


@pytest.fixture
def create_test_archive():
    """Helper fixture to create real tar archives for testing.

    ``files`` maps member paths to contents; members whose path ends in
    ``bin/wine`` are made executable.
    """

    def _create_test_archive(
        archive_path: Path, files: dict[str, bytes] | None = None
    ) -> Path:
        if files is None:
            files = {"wine-9.0-amd64/bin/wine": b"#!/bin/sh\n"}

        mode = "w:xz" if archive_path.name.endswith(".tar.xz") else "w:gz"
        with tarfile.open(archive_path, mode) as tar:
            for file_name, content in files.items():
                tarinfo = tarfile.TarInfo(name=file_name)
                tarinfo.size = len(content)
                tarinfo.mode = 0o755 if file_name.endswith("bin/wine") else 0o644
                tar.addfile(tarinfo, io.BytesIO(content))
        return archive_path

    return _create_test_archive


@pytest.fixture
def make_runtime():
    """Create an installed-looking runtime directory with an executable bin/wine."""

    def _make_runtime(root: Path, name: str) -> Path:
        runtime = root / name
        (runtime / "bin").mkdir(parents=True)
        wine = runtime / "bin" / "wine"
        wine.write_text("#!/bin/sh\n")
        wine.chmod(0o755)
        return runtime

    return _make_runtime


def release_json(tag: str, asset_names: list[str], **asset_extra) -> dict:
    """One release object as the GitHub releases API returns it."""
    return {
        "tag_name": tag,
        "name": f"Wine {tag}",
        "assets": [
            {
                "name": name,
                "browser_download_url": f"https://example.com/{tag}/{name}",
                **asset_extra,
            }
            for name in asset_names
        ],
    }


@pytest.fixture
def sample_catalog():
    """Three releases of a Kron4ek-style catalog, most recent first."""
    return [
        release_json(
            "10.0",
            [
                "wine-10.0-amd64.tar.xz",
                "wine-10.0-staging-tkg-amd64.tar.xz",
                "wine-10.0-x86.tar.xz",
            ],
        ),
        release_json("9.22", ["wine-9.22-amd64.tar.xz", "wine-9.22-x86.tar.xz"]),
        release_json("9.21", ["wine-9.21-source.tar.gz"]),
    ]


@pytest.fixture
def catalog_response():
    """Build a successful curl result carrying a JSON body."""

    def _catalog_response(data) -> subprocess.CompletedProcess:
        body = data if isinstance(data, str) else json.dumps(data)
        return subprocess.CompletedProcess(args=[], returncode=0, stdout=body, stderr="")

    return _catalog_response


@pytest.fixture
def release_record():
    """Build a ReleaseRecord from asset names."""

    def _release_record(tag: str, *names: str) -> ReleaseRecord:
        return ReleaseRecord(
            tag=tag,
            name=tag,
            assets=tuple(
                AssetRecord(name=name, url=f"https://example.com/{tag}/{name}")
                for name in names
            ),
        )

    return _release_record


@pytest.fixture
def make_release_json():
    """Expose release_json to tests that build their own catalogs."""
    return release_json
