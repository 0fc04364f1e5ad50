"""Runtime installer implementation for wineport."""

import logging
import os
import threading
from pathlib import Path
from typing import Iterable, Optional

from .archive_extractor import ArchiveExtractor
from .asset_downloader import AssetDownloader
from .asset_matcher import select_asset
from .common import (
    BUILD_SOURCES,
    RUNTIME_EXECUTABLE,
    AssetRecord,
    BatchReport,
    FileSystemClientProtocol,
    InstalledRuntime,
    InstallOutcome,
    MatchCriteria,
    OutcomeStatus,
    ReleaseRecord,
    RuntimeIdentity,
)
from .exceptions import InstallCancelled, InstallError, ValidationError

logger = logging.getLogger(__name__)

STAGE_PREFIX = ".stage-"

# Longest first so "proton-ge" wins over "ge"
KNOWN_VARIANTS = sorted(
    {source.variant for source in BUILD_SOURCES.values() if source.variant},
    key=lambda variant: (-len(variant), variant),
)


def validate_identity(identity: RuntimeIdentity) -> None:
    """Reject identities whose directory name would escape the install root."""
    for field, value in (("version", identity.version), ("variant", identity.variant)):
        if "/" in value or "\\" in value or value in (".", ".."):
            raise ValidationError(field, f"invalid runtime {field} {value!r}")
    if not identity.version:
        raise ValidationError("version", "runtime version must not be empty")


class RuntimeInstaller:
    """Materializes release assets as version-keyed runtime directories.

    Every install works in its own staging directory below the install
    root and only renames the finished tree into place, so a failed or
    interrupted install never leaves a directory that looks installed.
    """

    def __init__(
        self,
        install_root: Path,
        downloader: AssetDownloader,
        extractor: ArchiveExtractor,
        file_system_client: FileSystemClientProtocol,
    ) -> None:
        self.install_root = install_root
        self.downloader = downloader
        self.extractor = extractor
        self.file_system_client = file_system_client

    def target_dir(self, identity: RuntimeIdentity) -> Path:
        return self.install_root / identity.dirname

    def _swap_into_place(self, payload: Path, target: Path, work_dir: Path) -> None:
        """Replace target with payload; the previous tree is kept until the swap succeeds."""
        fs = self.file_system_client
        previous: Optional[Path] = None

        if fs.exists(target):
            previous = work_dir / "previous"
            fs.rename(target, previous)
            logger.info(f"Replacing existing runtime at {target}")

        try:
            fs.rename(payload, target)
        except BaseException:
            # Put the previous runtime back, including on Ctrl-C
            if previous is not None:
                fs.rename(previous, target)
            raise

    def install(
        self,
        asset: AssetRecord,
        identity: RuntimeIdentity,
        cancel_event: Optional[threading.Event] = None,
    ) -> InstalledRuntime:
        """Download, extract and normalize an asset into the identity's directory.

        Args:
            asset: Asset selected for the release
            identity: Version and variant naming the runtime
            cancel_event: Set by the caller to abort between download chunks

        Returns:
            The installed runtime

        Raises:
            DownloadFailed: If the asset cannot be downloaded
            ExtractionFailed: If the archive is corrupt
            NormalizationAmbiguous: If the archive layout is not recognized
            InstallError: If the finished tree cannot be moved into place
            InstallCancelled: If the caller cancels the install
        """
        validate_identity(identity)
        fs = self.file_system_client
        target = self.target_dir(identity)

        try:
            fs.mkdir(self.install_root, parents=True, exist_ok=True)
            work_dir = fs.make_temp_dir(
                self.install_root, prefix=f"{STAGE_PREFIX}{identity.dirname}-"
            )
        except OSError as e:
            raise InstallError(
                f"Cannot create staging directory in {self.install_root}: {e}"
            ) from e

        try:
            download_dir = work_dir / "download"
            extract_dir = work_dir / "extract"
            fs.mkdir(download_dir)

            archive = self.downloader.download(asset, download_dir, cancel_event)
            self.extractor.extract_archive(archive, extract_dir)
            fs.unlink(archive)

            payload = self.extractor.normalize_layout(extract_dir)
            self._swap_into_place(payload, target, work_dir)
        except OSError as e:
            raise InstallError(f"Failed to install {identity.dirname}: {e}") from e
        finally:
            if fs.exists(work_dir):
                fs.rmtree(work_dir)

        logger.info(f"Installed {identity.dirname} to {target}")
        return InstalledRuntime(identity=identity, root=target)

    def install_releases(
        self,
        releases: Iterable[ReleaseRecord],
        criteria: MatchCriteria,
        variant: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchReport:
        """Install a batch of releases one at a time.

        Releases without a matching asset are skipped and per-item install
        failures are recorded; neither stops the remaining releases.

        Returns:
            Report with one outcome per release

        Raises:
            InstallCancelled: If cancel_event is set or the operator
                interrupts the batch (Ctrl-C); the exception's ``report``
                holds the outcomes recorded so far
        """
        report = BatchReport()

        for release in releases:
            if cancel_event is not None and cancel_event.is_set():
                raise InstallCancelled("Install cancelled by user", report)

            asset = select_asset(release, criteria)
            if asset is None:
                logger.info(f"No compatible download found for {release.tag}, skipping")
                report.add(InstallOutcome(release.tag, OutcomeStatus.SKIPPED))
                continue

            identity = RuntimeIdentity(version=release.tag, variant=variant)
            try:
                runtime = self.install(asset, identity, cancel_event)
            except InstallCancelled as e:
                raise InstallCancelled(str(e), report) from e
            except KeyboardInterrupt as e:
                raise InstallCancelled(
                    f"Install of {release.tag} interrupted by user", report
                ) from e
            except (InstallError, ValidationError) as e:
                logger.error(f"Installation of {release.tag} failed: {e}")
                report.add(
                    InstallOutcome(release.tag, OutcomeStatus.FAILED, error=e, asset=asset)
                )
                continue

            report.add(
                InstallOutcome(
                    release.tag, OutcomeStatus.INSTALLED, runtime=runtime, asset=asset
                )
            )

        return report


def _is_runtime_dir(path: Path) -> bool:
    executable = path / RUNTIME_EXECUTABLE
    return executable.is_file() and os.access(executable, os.X_OK)


def discover_runtimes(install_root: Path) -> list[InstalledRuntime]:
    """List runtimes below an install root that carry an executable bin/wine."""
    if not install_root.is_dir():
        return []

    runtimes = []
    for entry in sorted(install_root.iterdir()):
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        if _is_runtime_dir(entry):
            runtimes.append(
                InstalledRuntime(identity=identity_from_dirname(entry.name), root=entry)
            )
    return runtimes


def identity_from_dirname(name: str) -> RuntimeIdentity:
    """Inverse of RuntimeIdentity.dirname for the variants of BUILD_SOURCES."""
    stem = name[len("wine-"):] if name.startswith("wine-") else name
    for variant in KNOWN_VARIANTS:
        suffix = f"-{variant}"
        if stem.endswith(suffix) and len(stem) > len(suffix):
            return RuntimeIdentity(version=stem[: -len(suffix)], variant=variant)
    return RuntimeIdentity(version=stem)


def find_runtime(install_root: Path, name: str) -> InstalledRuntime:
    """Resolve a runner selection naming a runtime directory.

    The runtime is returned even when its executable is missing; the
    composer decides whether the runner is usable.

    Raises:
        ValidationError: If the name is not a plain directory name
    """
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise ValidationError("runner", f"invalid runtime name {name!r}")
    root = install_root / name
    return InstalledRuntime(identity=identity_from_dirname(name), root=root)
