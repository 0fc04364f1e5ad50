"""
Tests for ArchiveExtractor extraction and layout normalization
"""

import lzma
import subprocess
import zlib

import pytest

from wineport.archive_extractor import ArchiveExtractor
from wineport.exceptions import ExtractionFailed, NormalizationAmbiguous
from wineport.filesystem import FileSystemClient

PAYLOAD = {
    "bin/wine": b"#!/bin/sh\necho wine\n",
    "lib/wine/x86_64-unix/ntdll.so": b"ntdll",
    "share/wine/wine.inf": b"[Version]\n",
}


def _snapshot(root):
    """Relative path -> content for every file below root."""
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def extractor():
    return ArchiveExtractor(FileSystemClient(), show_progress=False)


class TestExtractArchive:
    """Tests for tarfile extraction with the system tar fallback."""

    def test_extracts_with_tarfile(self, tmp_path, extractor, create_test_archive):
        archive = create_test_archive(tmp_path / "wine.tar.xz", PAYLOAD)
        target = tmp_path / "out"

        assert extractor.extract_archive(archive, target) == target
        assert _snapshot(target) == PAYLOAD

    def test_archive_info(self, tmp_path, extractor, create_test_archive):
        archive = create_test_archive(tmp_path / "wine.tar.gz", PAYLOAD)
        info = extractor.get_archive_info(archive)
        assert info["file_count"] == 3
        assert info["total_size"] == sum(len(v) for v in PAYLOAD.values())

    def test_corrupt_archive_falls_back_to_system_tar(self, mocker, tmp_path, extractor):
        archive = tmp_path / "broken.tar.xz"
        archive.write_bytes(b"not a valid archive")
        mock_run = mocker.patch(
            "subprocess.run",
            return_value=subprocess.CompletedProcess(
                args=[], returncode=2, stdout="", stderr="tar: invalid magic"
            ),
        )

        with pytest.raises(ExtractionFailed, match="invalid magic"):
            extractor.extract_archive(archive, tmp_path / "out")
        cmd = mock_run.call_args[0][0]
        assert cmd[:2] == ["tar", "-xf"]
        assert cmd[-2:] == ["-C", str(tmp_path / "out")]

    @pytest.mark.parametrize(
        "codec_error",
        [lzma.LZMAError("Corrupt input data"), zlib.error("invalid stored block lengths")],
    )
    def test_codec_errors_fall_back_to_system_tar(
        self, mocker, tmp_path, extractor, codec_error
    ):
        archive = tmp_path / "wine.tar.xz"
        archive.write_bytes(b"x")
        mocker.patch("tarfile.open", side_effect=codec_error)
        mock_run = mocker.patch(
            "subprocess.run",
            return_value=subprocess.CompletedProcess(
                args=[], returncode=2, stdout="", stderr="xz: data is corrupt"
            ),
        )

        with pytest.raises(ExtractionFailed, match="data is corrupt"):
            extractor.extract_archive(archive, tmp_path / "out")
        mock_run.assert_called_once()

    def test_damaged_xz_stream(self, mocker, tmp_path, extractor, create_test_archive):
        archive = create_test_archive(
            tmp_path / "wine.tar.xz", {"bin/wine": bytes(range(256)) * 64}
        )
        data = bytearray(archive.read_bytes())
        middle = len(data) // 2
        data[middle : middle + 16] = bytes(b ^ 0xFF for b in data[middle : middle + 16])
        archive.write_bytes(bytes(data))
        mocker.patch(
            "subprocess.run",
            return_value=subprocess.CompletedProcess(
                args=[], returncode=2, stdout="", stderr="xz: data is corrupt"
            ),
        )

        with pytest.raises(ExtractionFailed):
            extractor.extract_archive(archive, tmp_path / "out")

    def test_fallback_starts_from_an_empty_directory(self, mocker, tmp_path, extractor):
        archive = tmp_path / "wine.tar.xz"
        archive.write_bytes(b"x")
        target = tmp_path / "out"

        def partial_extract(archive_path, target_dir):
            (target_dir / "half").mkdir(parents=True)
            (target_dir / "half.txt").write_text("partial")
            raise ExtractionFailed("bad member")

        mocker.patch.object(extractor, "extract_with_tarfile", side_effect=partial_extract)
        system_tar = mocker.patch.object(
            extractor, "_extract_with_system_tar", return_value=target
        )

        assert extractor.extract_archive(archive, target) == target
        assert list(target.iterdir()) == []
        system_tar.assert_called_once_with(archive, target)

    def test_missing_tar_binary(self, mocker, tmp_path, extractor):
        mocker.patch("subprocess.run", side_effect=FileNotFoundError("tar"))
        with pytest.raises(ExtractionFailed, match="Failed to run tar"):
            extractor._extract_with_system_tar(tmp_path / "a.tar.xz", tmp_path / "out")


class TestNormalizeLayout:
    """Every recognized wrapping shape normalizes to the same tree."""

    @pytest.mark.parametrize(
        "prefix",
        [
            "",  # payload at the root
            "wine-10.0-amd64/",  # one redundant top directory
            "files/",  # nested payload directory
            "GE-Proton9-20/files/",  # top directory holding the payload directory
        ],
    )
    def test_shapes_normalize_identically(
        self, tmp_path, extractor, create_test_archive, prefix
    ):
        archive = create_test_archive(
            tmp_path / "wine.tar.gz",
            {f"{prefix}{name}": content for name, content in PAYLOAD.items()},
        )
        extract_dir = tmp_path / "extract"
        extractor.extract_archive(archive, extract_dir)

        root = extractor.normalize_layout(extract_dir)

        assert _snapshot(root) == PAYLOAD
        assert (root / "bin" / "wine").is_file()

    def test_siblings_of_the_payload_are_kept(self, tmp_path, extractor):
        extract_dir = tmp_path / "extract"
        (extract_dir / "files" / "bin").mkdir(parents=True)
        (extract_dir / "files" / "bin" / "wine").write_text("wine")
        (extract_dir / "proton").write_text("launcher")

        root = extractor.normalize_layout(extract_dir)

        assert root == extract_dir
        assert (root / "bin" / "wine").is_file()
        assert (root / "proton").is_file()
        assert not (root / "files").exists()

    def test_unrecognized_layout(self, tmp_path, extractor):
        extract_dir = tmp_path / "extract"
        (extract_dir / "a" / "bin").mkdir(parents=True)
        (extract_dir / "b").mkdir()

        with pytest.raises(NormalizationAmbiguous, match="a, b"):
            extractor.normalize_layout(extract_dir)

    def test_double_wrapping_is_not_stripped(self, tmp_path, extractor):
        extract_dir = tmp_path / "extract"
        nested = extract_dir / "outer" / "inner" / "bin"
        nested.mkdir(parents=True)
        (nested / "wine").write_text("wine")

        with pytest.raises(NormalizationAmbiguous):
            extractor.normalize_layout(extract_dir)

    def test_hoist_collision(self, tmp_path, extractor):
        extract_dir = tmp_path / "extract"
        (extract_dir / "files" / "bin").mkdir(parents=True)
        (extract_dir / "files" / "bin" / "wine").write_text("wine")
        (extract_dir / "bin").write_text("not a directory")

        with pytest.raises(NormalizationAmbiguous, match="already exists"):
            extractor.normalize_layout(extract_dir)
