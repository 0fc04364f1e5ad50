"""Runtime fetching facade for wineport."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from .archive_extractor import ArchiveExtractor
from .asset_downloader import AssetDownloader
from .asset_matcher import match_releases
from .catalog import ReleaseCatalog
from .common import (
    BUILD_SOURCES,
    AssetRecord,
    BatchReport,
    BuildSource,
    FileSystemClientProtocol,
    InstalledRuntime,
    NetworkClientProtocol,
    ReleaseRecord,
)
from .config import WinePortConfig
from .environment import INSTALL_TOOLS, check_dependencies
from .exceptions import InstallError, ValidationError
from .filesystem import FileSystemClient
from .installer import RuntimeInstaller, discover_runtimes
from .network import NetworkClient

logger = logging.getLogger(__name__)

TAG_SEARCH_LIMIT = 300


def get_source(key: str) -> BuildSource:
    try:
        return BUILD_SOURCES[key]
    except KeyError:
        allowed = ", ".join(BUILD_SOURCES)
        raise ValidationError(
            "source", f"unknown build source {key!r} (expected one of: {allowed})"
        ) from None


class RuntimeFetcher:
    """Lists and installs Wine runtime builds from their release catalogs."""

    def __init__(
        self,
        config: WinePortConfig,
        network_client: Optional[NetworkClientProtocol] = None,
        file_system_client: Optional[FileSystemClientProtocol] = None,
        show_progress: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.network_client = network_client or NetworkClient(timeout=config.timeout)
        self.file_system_client = file_system_client or FileSystemClient()

        self.catalog = ReleaseCatalog(
            self.network_client,
            retries=config.retries,
            backoff_seconds=config.backoff_seconds,
            sleep=sleep,
        )
        self.downloader = AssetDownloader(
            self.network_client,
            self.file_system_client,
            timeout=config.timeout,
            retries=config.retries,
            backoff_seconds=config.backoff_seconds,
            show_progress=show_progress,
            sleep=sleep,
        )
        self.extractor = ArchiveExtractor(self.file_system_client, show_progress)

    def installer_for(self, source: BuildSource) -> RuntimeInstaller:
        return RuntimeInstaller(
            self.config.install_root_for(source),
            self.downloader,
            self.extractor,
            self.file_system_client,
        )

    def _ensure_directory_is_writable(self, directory: Path) -> None:
        """
        Ensure that the directory exists and is writable.

        Raises:
            InstallError: If the directory cannot be created, is not a
                directory, or is not writable
        """
        fs = self.file_system_client
        try:
            fs.mkdir(directory, parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(f"Failed to create directory {directory}: {e}") from e

        if not fs.is_dir(directory):
            raise InstallError(f"{directory} exists but is not a directory")

        test_file = directory / ".write_test"
        try:
            fs.write(test_file, b"")
            fs.unlink(test_file)
        except OSError as e:
            raise InstallError(f"Directory {directory} is not writable: {e}") from e

    def list_available(
        self, source_key: str, count: int
    ) -> list[tuple[ReleaseRecord, Optional[AssetRecord]]]:
        """Recent releases of a source paired with their matching asset, if any."""
        source = get_source(source_key)
        listing = self.catalog.list_releases(
            source.repo, count=count, page_size=self.config.page_size
        )
        return list(match_releases(listing, source.criteria))

    def select_releases(
        self,
        source: BuildSource,
        tags: Optional[Sequence[str]] = None,
        latest: Optional[int] = None,
    ) -> list[ReleaseRecord]:
        """
        Pick releases by tag, or the most recent ``latest`` ones.

        Tagged releases are returned in the order the tags were given.

        Raises:
            ValidationError: If neither or both selections are given, or a
                tag is not among the most recent releases
        """
        if tags and latest is not None:
            raise ValidationError("release", "give either release tags or a latest count")

        if latest is not None:
            if latest < 1:
                raise ValidationError("latest", f"must be at least 1, got {latest}")
            return list(
                self.catalog.list_releases(
                    source.repo, count=latest, page_size=self.config.page_size
                )
            )

        if not tags:
            raise ValidationError("release", "give either release tags or a latest count")
        wanted = list(dict.fromkeys(tags))
        found: dict[str, ReleaseRecord] = {}
        listing = self.catalog.list_releases(
            source.repo, count=TAG_SEARCH_LIMIT, page_size=self.config.page_size
        )
        for release in listing:
            if release.tag in wanted:
                found[release.tag] = release
                if len(found) == len(wanted):
                    break

        missing = [tag for tag in wanted if tag not in found]
        if missing:
            raise ValidationError(
                "release",
                f"not found in {source.repo}: {', '.join(missing)}",
            )
        return [found[tag] for tag in wanted]

    def install(
        self,
        source_key: str,
        tags: Optional[Sequence[str]] = None,
        latest: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchReport:
        """
        Install releases of a build source into its install root.

        Returns:
            Report with one outcome per selected release

        Raises:
            DependencyMissing: If curl or tar is not installed
            InstallError: If the install root is not writable
            CatalogUnavailable: If the release catalog cannot be read
            InstallCancelled: If cancel_event is set during the batch
        """
        source = get_source(source_key)
        check_dependencies(INSTALL_TOOLS)
        install_root = self.config.install_root_for(source)
        self._ensure_directory_is_writable(install_root)

        releases = self.select_releases(source, tags=tags, latest=latest)
        logger.info(
            f"Installing {len(releases)} {source.description or source.key} "
            f"release(s) into {install_root}"
        )
        installer = self.installer_for(source)
        return installer.install_releases(
            releases, source.criteria, source.variant, cancel_event
        )

    def installed_runtimes(self, x86: bool = False) -> list[InstalledRuntime]:
        root = self.config.runtime_root_32 if x86 else self.config.runtime_root
        return discover_runtimes(root)
