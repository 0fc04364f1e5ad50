"""
Tests for RuntimeInstaller and runtime discovery in wineport.installer
"""

import shutil
import subprocess
import threading

import pytest

from wineport.archive_extractor import ArchiveExtractor
from wineport.asset_downloader import AssetDownloader
from wineport.common import (
    AssetRecord,
    MatchCriteria,
    OutcomeStatus,
    ReleaseRecord,
    RuntimeIdentity,
)
from wineport.exceptions import (
    DownloadFailed,
    ExtractionFailed,
    InstallCancelled,
    NormalizationAmbiguous,
    ValidationError,
)
from wineport.filesystem import FileSystemClient
from wineport.installer import (
    RuntimeInstaller,
    discover_runtimes,
    find_runtime,
    identity_from_dirname,
)

CRITERIA = MatchCriteria(arch="amd64", suffix=".tar.xz")


def _snapshot(root):
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def archives(tmp_path, create_test_archive):
    """Real archives served by the fake downloader, keyed by asset name."""
    source = tmp_path / "archives"
    source.mkdir()

    def _add(name, files):
        return create_test_archive(source / name, files)

    return _add


@pytest.fixture
def fake_downloader(mocker, archives):
    """AssetDownloader whose download copies a prepared archive."""
    downloader = mocker.MagicMock(spec=AssetDownloader)

    def _download(asset, dest_dir, cancel_event=None):
        path = dest_dir / asset.name
        shutil.copy(asset.url, path)
        return path

    downloader.download.side_effect = _download
    return downloader


@pytest.fixture
def installer(tmp_path, fake_downloader):
    return RuntimeInstaller(
        tmp_path / "winecustom",
        fake_downloader,
        ArchiveExtractor(FileSystemClient(), show_progress=False),
        FileSystemClient(),
    )


def _asset(archive_path):
    # The fake downloader treats the URL as a local path
    return AssetRecord(name=archive_path.name, url=str(archive_path))


class TestInstall:
    """Tests for single installs."""

    def test_installs_into_identity_directory(self, installer, archives):
        archive = archives(
            "wine-10.0-amd64.tar.xz",
            {"wine-10.0-amd64/bin/wine": b"wine", "wine-10.0-amd64/lib/a.so": b"a"},
        )

        runtime = installer.install(_asset(archive), RuntimeIdentity("10.0"))

        assert runtime.root == installer.install_root / "wine-10.0"
        assert runtime.executable.is_file()
        assert _snapshot(runtime.root) == {"bin/wine": b"wine", "lib/a.so": b"a"}

    def test_variant_directory(self, installer, archives):
        archive = archives("w.tar.xz", {"bin/wine": b"wine"})
        runtime = installer.install(_asset(archive), RuntimeIdentity("10.0", "staging-tkg"))
        assert runtime.root.name == "wine-10.0-staging-tkg"

    def test_reinstall_is_idempotent(self, installer, archives):
        archive = archives(
            "wine-10.0-amd64.tar.xz",
            {"wine-10.0-amd64/bin/wine": b"wine", "wine-10.0-amd64/lib/a.so": b"a"},
        )
        identity = RuntimeIdentity("10.0")

        first = installer.install(_asset(archive), identity)
        once = _snapshot(first.root)
        second = installer.install(_asset(archive), identity)

        assert second.root == first.root
        assert _snapshot(second.root) == once
        assert [p.name for p in installer.install_root.iterdir()] == ["wine-10.0"]

    def test_reinstall_replaces_stale_files(self, installer, archives):
        identity = RuntimeIdentity("10.0")
        old = archives("old.tar.xz", {"bin/wine": b"old", "lib/stale.so": b"s"})
        new = archives("new.tar.xz", {"bin/wine": b"new"})

        installer.install(_asset(old), identity)
        runtime = installer.install(_asset(new), identity)

        assert _snapshot(runtime.root) == {"bin/wine": b"new"}

    def test_failed_normalization_leaves_nothing(self, installer, archives):
        archive = archives("odd.tar.xz", {"a/readme": b"x", "b/readme": b"y"})

        with pytest.raises(NormalizationAmbiguous):
            installer.install(_asset(archive), RuntimeIdentity("10.0"))
        assert list(installer.install_root.iterdir()) == []

    def test_failed_reinstall_keeps_previous_runtime(self, installer, archives):
        identity = RuntimeIdentity("10.0")
        good = archives("good.tar.xz", {"bin/wine": b"good"})
        bad = archives("bad.tar.xz", {"x/readme": b"x", "y/readme": b"y"})

        installer.install(_asset(good), identity)
        with pytest.raises(NormalizationAmbiguous):
            installer.install(_asset(bad), identity)

        assert _snapshot(installer.install_root / "wine-10.0") == {"bin/wine": b"good"}
        assert [p.name for p in installer.install_root.iterdir()] == ["wine-10.0"]

    def test_download_failure_leaves_nothing(self, installer, fake_downloader):
        fake_downloader.download.side_effect = DownloadFailed("boom")

        with pytest.raises(DownloadFailed):
            installer.install(AssetRecord("a.tar.xz", "u"), RuntimeIdentity("10.0"))
        assert list(installer.install_root.iterdir()) == []

    @pytest.mark.parametrize("version", ["", "../evil", "a/b", ".."])
    def test_unsafe_identity_is_rejected(self, installer, version):
        with pytest.raises(ValidationError):
            installer.install(AssetRecord("a.tar.xz", "u"), RuntimeIdentity(version))


class TestInstallReleases:
    """Tests for batch installs."""

    def test_partial_batch_completes(self, installer, archives, release_record):
        a = archives("wine-10.0-amd64.tar.xz", {"bin/wine": b"10"})
        b = archives("wine-9.22-amd64.tar.xz", {"bin/wine": b"9.22"})
        releases = [
            ReleaseRecord(tag="10.0", name="10.0", assets=(_asset(a),)),
            release_record("9.21", "wine-9.21.tar.gz"),
            ReleaseRecord(tag="9.22", name="9.22", assets=(_asset(b),)),
        ]

        report = installer.install_releases(releases, CRITERIA)

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.INSTALLED,
            OutcomeStatus.SKIPPED,
            OutcomeStatus.INSTALLED,
        ]
        assert [o.tag for o in report.skipped] == ["9.21"]
        assert report.ok
        assert sorted(p.name for p in installer.install_root.iterdir()) == [
            "wine-10.0",
            "wine-9.22",
        ]

    def test_item_failure_does_not_abort(self, installer, archives, fake_downloader):
        good = archives("wine-9.0-amd64.tar.xz", {"bin/wine": b"9"})

        releases = [
            ReleaseRecord("10.0", "10.0", (AssetRecord("wine-10.0-amd64.tar.xz", "u"),)),
            ReleaseRecord("9.0", "9.0", (_asset(good),)),
        ]
        original = fake_downloader.download.side_effect

        def _download(asset, dest_dir, cancel_event=None):
            if asset.url == "u":
                raise DownloadFailed("Failed to download wine-10.0-amd64.tar.xz")
            return original(asset, dest_dir, cancel_event)

        fake_downloader.download.side_effect = _download

        report = installer.install_releases(releases, CRITERIA)

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.FAILED,
            OutcomeStatus.INSTALLED,
        ]
        assert isinstance(report.failed[0].error, DownloadFailed)
        assert not report.ok

    def test_cancel_between_releases(self, installer, release_record):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(InstallCancelled) as excinfo:
            installer.install_releases(
                [release_record("10.0", "wine-10.0-amd64.tar.xz")], CRITERIA, "", cancel
            )
        assert excinfo.value.report.outcomes == []

    def test_corrupt_archive_does_not_abort(self, installer, archives, mocker):
        payload = bytes(range(256)) * 64
        bad = archives("wine-1.0-amd64.tar.xz", {"wine-1.0-amd64/bin/wine": payload})
        good = archives("wine-2.0-amd64.tar.xz", {"wine-2.0-amd64/bin/wine": payload})
        data = bytearray(bad.read_bytes())
        middle = len(data) // 2
        data[middle : middle + 16] = bytes(b ^ 0xFF for b in data[middle : middle + 16])
        bad.write_bytes(bytes(data))
        mocker.patch(
            "subprocess.run",
            return_value=subprocess.CompletedProcess(
                args=[], returncode=2, stdout="", stderr="xz: data is corrupt"
            ),
        )
        releases = [
            ReleaseRecord("1.0", "1.0", (_asset(bad),)),
            ReleaseRecord("2.0", "2.0", (_asset(good),)),
        ]

        report = installer.install_releases(releases, CRITERIA)

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.FAILED,
            OutcomeStatus.INSTALLED,
        ]
        assert isinstance(report.failed[0].error, ExtractionFailed)
        assert [p.name for p in installer.install_root.iterdir()] == ["wine-2.0"]

    def test_ctrl_c_keeps_partial_report(self, installer, archives, fake_downloader):
        first = archives("wine-10.0-amd64.tar.xz", {"bin/wine": b"10"})
        second = archives("wine-9.22-amd64.tar.xz", {"bin/wine": b"9.22"})
        releases = [
            ReleaseRecord("10.0", "10.0", (_asset(first),)),
            ReleaseRecord("9.22", "9.22", (_asset(second),)),
        ]
        original = fake_downloader.download.side_effect

        def _download(asset, dest_dir, cancel_event=None):
            if asset.name == second.name:
                raise KeyboardInterrupt
            return original(asset, dest_dir, cancel_event)

        fake_downloader.download.side_effect = _download

        with pytest.raises(InstallCancelled, match="9.22 interrupted") as excinfo:
            installer.install_releases(releases, CRITERIA)

        report = excinfo.value.report
        assert [(o.tag, o.status) for o in report.outcomes] == [
            ("10.0", OutcomeStatus.INSTALLED)
        ]
        assert [p.name for p in installer.install_root.iterdir()] == ["wine-10.0"]

    def test_interrupted_swap_restores_previous_runtime(
        self, installer, archives, mocker
    ):
        identity = RuntimeIdentity("10.0")
        old = archives("old.tar.xz", {"bin/wine": b"old"})
        new = archives("new.tar.xz", {"bin/wine": b"new"})
        installer.install(_asset(old), identity)
        target = installer.target_dir(identity)
        real_rename = FileSystemClient.rename

        def rename(fs, source, dest):
            if dest == target and source.name != "previous":
                raise KeyboardInterrupt
            real_rename(fs, source, dest)

        mocker.patch.object(FileSystemClient, "rename", autospec=True, side_effect=rename)

        with pytest.raises(KeyboardInterrupt):
            installer.install(_asset(new), identity)

        assert _snapshot(target) == {"bin/wine": b"old"}
        assert [p.name for p in installer.install_root.iterdir()] == ["wine-10.0"]


class TestDiscovery:
    """Tests for discover_runtimes, identity_from_dirname and find_runtime."""

    def test_discovers_only_runnable_directories(self, tmp_path, make_runtime):
        root = tmp_path / "winecustom"
        make_runtime(root, "wine-9.0")
        make_runtime(root, "wine-10.0-staging-tkg")
        (root / "broken" / "bin").mkdir(parents=True)
        (root / ".stage-wine-11.0-abc").mkdir()

        runtimes = discover_runtimes(root)

        assert [r.name for r in runtimes] == ["wine-10.0-staging-tkg", "wine-9.0"]
        assert runtimes[0].identity == RuntimeIdentity("10.0", "staging-tkg")

    def test_missing_root(self, tmp_path):
        assert discover_runtimes(tmp_path / "nope") == []

    @pytest.mark.parametrize(
        "name,identity",
        [
            ("wine-9.0", RuntimeIdentity("9.0")),
            ("wine-9.0-staging-tkg", RuntimeIdentity("9.0", "staging-tkg")),
            ("wine-GE-Proton9-20-proton-ge", RuntimeIdentity("GE-Proton9-20", "proton-ge")),
            ("wine-8.26-ge", RuntimeIdentity("8.26", "ge")),
        ],
    )
    def test_identity_round_trip(self, name, identity):
        assert identity_from_dirname(name) == identity
        assert identity.dirname == name

    def test_find_runtime(self, tmp_path):
        runtime = find_runtime(tmp_path, "wine-9.0")
        assert runtime.root == tmp_path / "wine-9.0"
        assert runtime.executable == tmp_path / "wine-9.0" / "bin" / "wine"

    @pytest.mark.parametrize("name", ["", "..", "a/b"])
    def test_find_runtime_rejects_paths(self, tmp_path, name):
        with pytest.raises(ValidationError, match="runner"):
            find_runtime(tmp_path, name)
