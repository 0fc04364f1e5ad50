"""Asset downloader implementation for wineport."""

import logging
import threading
import time
import urllib.request
from pathlib import Path
from typing import Callable, Optional

from .common import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    DOWNLOAD_CHUNK_SIZE,
    USER_AGENT,
    AssetRecord,
    FileSystemClientProtocol,
    Headers,
    NetworkClientProtocol,
)
from .exceptions import DownloadFailed, InstallCancelled, NetworkError
from .spinner import Spinner
from .utils import call_with_retries, sha256_file

logger = logging.getLogger(__name__)


class AssetDownloader:
    """Downloads release assets with bounded retries and integrity checks."""

    def __init__(
        self,
        network_client: NetworkClientProtocol,
        file_system_client: FileSystemClientProtocol,
        timeout: int = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        show_progress: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.network_client = network_client
        self.file_system_client = file_system_client
        self.timeout = timeout
        self.retries = retries
        self.backoff_seconds = backoff_seconds
        self.show_progress = show_progress
        self._sleep = sleep

    def download_with_spinner(
        self,
        url: str,
        output_path: Path,
        headers: Optional[Headers] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """Stream a file to disk with a progress spinner using urllib.

        Raises:
            InstallCancelled: If cancel_event is set between chunks
            NetworkError: On any transfer failure
        """
        req = urllib.request.Request(url, headers=headers or {})

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                total_size = int(response.headers.get("Content-Length", 0) or 0)

                with (
                    open(output_path, "wb") as f,
                    Spinner(
                        desc=f"Downloading {output_path.name}",
                        total=total_size or None,
                        unit="B",
                        disable=not self.show_progress,
                        fps_limit=30.0,
                    ) as spinner,
                ):
                    while True:
                        if cancel_event is not None and cancel_event.is_set():
                            raise InstallCancelled(
                                f"Download of {output_path.name} cancelled"
                            )
                        chunk = response.read(DOWNLOAD_CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                        spinner.update(len(chunk))
                    spinner.finish()
        except InstallCancelled:
            raise
        except Exception as e:
            raise NetworkError(f"Failed to download {url}: {e}") from e

    def curl_download(
        self, url: str, output_path: Path, headers: Optional[Headers] = None
    ) -> None:
        """Download a file using curl.

        Raises:
            NetworkError: If curl reports a failure
        """
        result = self.network_client.download(url, output_path, headers)
        if result.returncode != 0:
            if "404" in result.stderr or "not found" in result.stderr.lower():
                raise NetworkError(f"Asset not found: {url}")
            raise NetworkError(f"Failed to download {url}: {result.stderr.strip()}")

    def _attempt_download(
        self,
        asset: AssetRecord,
        out_path: Path,
        cancel_event: Optional[threading.Event],
    ) -> None:
        headers = {"User-Agent": USER_AGENT}
        try:
            self.download_with_spinner(asset.url, out_path, headers, cancel_event)
        except NetworkError as e:
            # Fallback to curl
            logger.warning(f"Streaming download failed: {e}, falling back to curl")
            if cancel_event is not None and cancel_event.is_set():
                raise InstallCancelled(f"Download of {asset.name} cancelled") from e
            self.curl_download(asset.url, out_path, headers)

    def verify(self, asset: AssetRecord, path: Path) -> None:
        """
        Check a downloaded file against what the catalog advertised.

        Raises:
            DownloadFailed: If the file is missing, empty, truncated, or its
                digest differs from the published one
        """
        if not self.file_system_client.exists(path):
            raise DownloadFailed(f"Download of {asset.name} produced no file")

        local_size = self.file_system_client.size(path)
        if local_size == 0:
            raise DownloadFailed(f"Download of {asset.name} is empty")

        if asset.size is not None and local_size != asset.size:
            raise DownloadFailed(
                f"Download of {asset.name} is truncated: "
                f"got {local_size} bytes, expected {asset.size}"
            )

        if asset.digest:
            algo, _, expected = asset.digest.partition(":")
            if algo.lower() == "sha256" and expected:
                actual = sha256_file(path)
                if actual.lower() != expected.lower():
                    raise DownloadFailed(
                        f"Checksum mismatch for {asset.name}: "
                        f"expected {expected}, got {actual}"
                    )
            else:
                logger.debug(f"Skipping unsupported digest {asset.digest}")

    def _fetch_verified(
        self,
        asset: AssetRecord,
        part_path: Path,
        cancel_event: Optional[threading.Event],
    ) -> None:
        self._attempt_download(asset, part_path, cancel_event)
        self.verify(asset, part_path)

    def download(
        self,
        asset: AssetRecord,
        dest_dir: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """Download an asset into dest_dir and verify it.

        The transfer streams to a ``.part`` file that is renamed to the asset
        name only once it passes verification. A truncated or mismatched
        transfer counts as a failed attempt and is retried.

        Args:
            asset: Asset to download
            dest_dir: Existing directory that receives the archive
            cancel_event: Set by the caller to abort between chunks

        Returns:
            Path to the complete, verified archive

        Raises:
            DownloadFailed: If every attempt fails or fails verification
            InstallCancelled: If the caller cancels the download
        """
        out_path = dest_dir / asset.name
        part_path = dest_dir / f"{asset.name}.part"
        logger.info(f"Downloading {asset.name} from {asset.url}")

        try:
            call_with_retries(
                lambda: self._fetch_verified(asset, part_path, cancel_event),
                (NetworkError, DownloadFailed),
                self.retries,
                self.backoff_seconds,
                f"Download of {asset.name}",
                sleep=self._sleep,
            )
        except (NetworkError, DownloadFailed) as e:
            if self.file_system_client.exists(part_path):
                self.file_system_client.unlink(part_path)
            raise DownloadFailed(
                f"Failed to download {asset.name} after {self.retries + 1} attempts: {e}"
            ) from e

        self.file_system_client.rename(part_path, out_path)
        logger.info(f"Downloaded asset to: {out_path}")
        return out_path
