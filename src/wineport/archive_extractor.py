"""Archive extractor implementation for wineport."""

import logging
import lzma
import subprocess
import tarfile
import zlib
from pathlib import Path

from .common import PAYLOAD_SUBDIR, RUNTIME_EXECUTABLE, FileSystemClientProtocol
from .exceptions import ExtractionFailed, NormalizationAmbiguous
from .spinner import Spinner
from .utils import format_bytes

logger = logging.getLogger(__name__)

# Damaged xz or gzip streams surface as codec errors rather than TarError
ARCHIVE_ERRORS = (tarfile.TarError, OSError, EOFError, lzma.LZMAError, zlib.error)


class ArchiveExtractor:
    """Extracts runtime archives and normalizes their internal layout."""

    def __init__(
        self,
        file_system_client: FileSystemClientProtocol,
        show_progress: bool = True,
    ) -> None:
        self.file_system_client = file_system_client
        self.show_progress = show_progress

    def get_archive_info(self, archive_path: Path) -> dict[str, int]:
        """
        Get information about the archive without extracting it.

        Returns:
            Dictionary with archive info: {"file_count": int, "total_size": int}

        Raises:
            ExtractionFailed: If the archive cannot be read
        """
        try:
            with tarfile.open(archive_path, "r:*") as tar:
                members = tar.getmembers()
                return {
                    "file_count": len(members),
                    "total_size": sum(m.size for m in members),
                }
        except ARCHIVE_ERRORS as e:
            raise ExtractionFailed(f"Error reading archive {archive_path.name}: {e}")

    def extract_with_tarfile(self, archive_path: Path, target_dir: Path) -> Path:
        """Extract archive using the tarfile library with a progress spinner."""
        self.file_system_client.mkdir(target_dir, parents=True, exist_ok=True)

        info = self.get_archive_info(archive_path)
        total_files = info["file_count"]
        logger.info(
            f"Archive contains {total_files} files, "
            f"total size: {format_bytes(info['total_size'])}"
        )

        try:
            with (
                Spinner(
                    desc=f"Extracting {archive_path.name}",
                    total=total_files,
                    disable=not self.show_progress,
                    fps_limit=30.0,
                ) as spinner,
                tarfile.open(archive_path, "r:*") as tar,
            ):
                for extracted, member in enumerate(tar, start=1):
                    tar.extract(member, path=target_dir, filter="data")
                    spinner.update_progress(extracted, total_files)
                spinner.finish()
        except ARCHIVE_ERRORS as e:
            raise ExtractionFailed(f"Failed to extract archive {archive_path.name}: {e}")

        logger.info(f"Extracted {archive_path.name} to {target_dir}")
        return target_dir

    def _extract_with_system_tar(self, archive_path: Path, target_dir: Path) -> Path:
        """Extract archive using the system tar command."""
        self.file_system_client.mkdir(target_dir, parents=True, exist_ok=True)

        cmd = [
            "tar",
            "-xf",  # Extract tar (uncompressed, gz, or xz)
            str(archive_path),
            "-C",  # Extract to target directory
            str(target_dir),
        ]

        try:
            result = subprocess.run(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
            )
        except OSError as e:
            raise ExtractionFailed(f"Failed to run tar for {archive_path.name}: {e}")

        if result.returncode != 0:
            raise ExtractionFailed(
                f"Failed to extract archive {archive_path.name}: {result.stderr.strip()}"
            )
        return target_dir

    def extract_archive(self, archive_path: Path, target_dir: Path) -> Path:
        """Extract archive to the target directory.

        tarfile is tried first for progress indication; the system tar
        command is the fallback for archives tarfile's data filter refuses.

        Raises:
            ExtractionFailed: If neither method can extract the archive
        """
        try:
            return self.extract_with_tarfile(archive_path, target_dir)
        except ExtractionFailed as e:
            logger.warning(f"{e}; retrying with system tar")
            # Drop whatever tarfile managed to write before retrying
            for child in list(self.file_system_client.iterdir(target_dir)):
                if self.file_system_client.is_dir(child):
                    self.file_system_client.rmtree(child)
                else:
                    self.file_system_client.unlink(child)
            return self._extract_with_system_tar(archive_path, target_dir)

    def _has_runtime(self, root: Path) -> bool:
        return self.file_system_client.is_file(root / RUNTIME_EXECUTABLE)

    def _hoist_payload(self, parent: Path, payload: Path) -> Path:
        """Move the contents of a payload directory up into its parent."""
        for child in list(self.file_system_client.iterdir(payload)):
            destination = parent / child.name
            if self.file_system_client.exists(destination):
                raise NormalizationAmbiguous(
                    f"Cannot lift '{PAYLOAD_SUBDIR}/{child.name}': "
                    f"'{child.name}' already exists beside it"
                )
            self.file_system_client.rename(child, destination)
        self.file_system_client.rmtree(payload)
        logger.debug(f"Moved '{PAYLOAD_SUBDIR}' contents into {parent}")
        return parent

    def normalize_layout(self, extract_dir: Path) -> Path:
        """
        Strip the one wrapping layer an upstream archive may carry.

        Recognized shapes, in order:
            - payload at the root (``bin/wine``)
            - payload nested in a ``files/`` directory
            - payload in a single redundant top directory
            - a single top directory whose payload sits in ``files/``

        Args:
            extract_dir: Directory the archive was extracted into

        Returns:
            The directory that now holds ``bin/wine`` at its root

        Raises:
            NormalizationAmbiguous: If the tree matches none of the shapes
        """
        if self._has_runtime(extract_dir):
            return extract_dir

        files_dir = extract_dir / PAYLOAD_SUBDIR
        if self.file_system_client.is_dir(files_dir) and self._has_runtime(files_dir):
            return self._hoist_payload(extract_dir, files_dir)

        entries = sorted(self.file_system_client.iterdir(extract_dir))
        if len(entries) == 1 and self.file_system_client.is_dir(entries[0]):
            top = entries[0]
            if self._has_runtime(top):
                logger.debug(f"Stripping top directory {top.name}")
                return top
            top_files = top / PAYLOAD_SUBDIR
            if self.file_system_client.is_dir(top_files) and self._has_runtime(
                top_files
            ):
                return self._hoist_payload(top, top_files)

        names = ", ".join(entry.name for entry in entries) or "(empty)"
        raise NormalizationAmbiguous(
            f"Unrecognized archive layout, no {RUNTIME_EXECUTABLE} found; "
            f"top-level entries: {names}"
        )
