"""Common types, protocols, and constants for wineport."""

from __future__ import annotations

import dataclasses
import subprocess
from enum import StrEnum
from pathlib import Path
from typing import Iterator, Optional, Protocol


class GraphicsLayer(StrEnum):
    DXVK = "dxvk"
    VKD3D = "vkd3d"
    DXVK_LEGACY = "dxvk2041"
    NONE = "none"


class AudioBackend(StrEnum):
    SYSTEM_DEFAULT = "nopulse"
    PULSE_60 = "pulse60"
    PULSE_90 = "pulse90"


class TuningProfile(StrEnum):
    NONE = "none"
    UNITY = "unity"


class OutcomeStatus(StrEnum):
    INSTALLED = "installed"
    SKIPPED = "skipped"
    FAILED = "failed"


# Type aliases for better readability
Headers = dict[str, str]
ProcessResult = subprocess.CompletedProcess[str]
EnvPair = tuple[str, str]
EnvBlock = tuple[EnvPair, ...]
ReleaseTagsList = list[str]


@dataclasses.dataclass(frozen=True)
class AssetRecord:
    name: str
    url: str
    size: Optional[int] = None
    digest: Optional[str] = None  # "sha256:<hex>" when the catalog publishes one


@dataclasses.dataclass(frozen=True)
class ReleaseRecord:
    tag: str
    name: str
    assets: tuple[AssetRecord, ...] = ()


@dataclasses.dataclass(frozen=True)
class MatchCriteria:
    arch: str
    suffix: str
    variant: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class RuntimeIdentity:
    version: str
    variant: str = ""

    @property
    def dirname(self) -> str:
        """Directory name of this runtime below an install root."""
        parts = ["wine", self.version]
        if self.variant:
            parts.append(self.variant)
        return "-".join(parts)


@dataclasses.dataclass(frozen=True)
class InstalledRuntime:
    identity: RuntimeIdentity
    root: Path

    @property
    def executable(self) -> Path:
        return self.root / RUNTIME_EXECUTABLE

    @property
    def name(self) -> str:
        return self.root.name


@dataclasses.dataclass(frozen=True)
class BuildSource:
    """A named flavour of runtime builds published in one release catalog."""

    key: str
    repo: str
    criteria: MatchCriteria
    variant: str = ""
    arch_bits: int = 64
    description: str = ""


@dataclasses.dataclass(frozen=True)
class InstallOutcome:
    tag: str
    status: OutcomeStatus
    runtime: Optional[InstalledRuntime] = None
    error: Optional[Exception] = None
    asset: Optional[AssetRecord] = None


@dataclasses.dataclass
class BatchReport:
    outcomes: list[InstallOutcome] = dataclasses.field(default_factory=list)

    def add(self, outcome: InstallOutcome) -> None:
        self.outcomes.append(outcome)

    def _with_status(self, status: OutcomeStatus) -> list[InstallOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def installed(self) -> list[InstallOutcome]:
        return self._with_status(OutcomeStatus.INSTALLED)

    @property
    def skipped(self) -> list[InstallOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> list[InstallOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclasses.dataclass(frozen=True)
class ToggleSet:
    graphics: GraphicsLayer = GraphicsLayer.NONE
    hud: bool = False
    async_compile: bool = False
    esync: bool = False
    fsync: bool = False
    audio: AudioBackend = AudioBackend.SYSTEM_DEFAULT
    runner: str = "default"
    tuning: TuningProfile = TuningProfile.NONE
    dependencies: tuple[str, ...] = ()

    @property
    def uses_default_runner(self) -> bool:
        return self.runner == DEFAULT_RUNNER


@dataclasses.dataclass(frozen=True)
class TargetExecutable:
    """The Windows executable to launch, relative to ``game_dir / "data"``."""

    game_dir: Path
    exe_path: str

    @property
    def exe_name(self) -> str:
        return Path(self.exe_path).name

    @property
    def data_dir(self) -> Path:
        return self.game_dir / "data"


@dataclasses.dataclass(frozen=True)
class PreLaunchCommand:
    argv: tuple[str, ...]
    env: EnvBlock = ()
    background: bool = False


@dataclasses.dataclass(frozen=True)
class LaunchDescriptor:
    target: TargetExecutable
    environment: EnvBlock
    runner_prefix: tuple[str, ...]
    pre_launch: tuple[PreLaunchCommand, ...]
    working_dir: Path

    def env_names(self) -> list[str]:
        return [name for name, _ in self.environment]

    def env_dict(self) -> dict[str, str]:
        return dict(self.environment)


class NetworkClientProtocol(Protocol):
    """Protocol for network operations with timeout support.

    Implementations must provide HTTP GET and download capabilities with
    configurable timeout behavior. This protocol enables dependency
    injection and easy mocking for testing network operations.

    Attributes:
        timeout: Maximum timeout in seconds for network operations
    """

    timeout: int

    def get(self, url: str, headers: Optional[Headers] = None) -> ProcessResult:
        """Perform HTTP GET request.

        Args:
            url: URL to request
            headers: Optional request headers as key-value pairs

        Returns:
            ProcessResult containing stdout, stderr, and returncode
        """
        ...

    def download(
        self, url: str, output_path: Path, headers: Optional[Headers] = None
    ) -> ProcessResult:
        """Download file from URL to specified path.

        Args:
            url: URL to download from
            output_path: Destination path for downloaded file
            headers: Optional request headers as key-value pairs

        Returns:
            ProcessResult containing download status and any error output
        """
        ...


class FileSystemClientProtocol(Protocol):
    """Protocol for filesystem operations.

    Provides an abstract interface for the filesystem operations the
    installer performs, so that tests can inject failures at any step.
    All path operations use Path objects.
    """

    def exists(self, path: Path) -> bool: ...

    def is_dir(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def mkdir(
        self, path: Path, parents: bool = False, exist_ok: bool = False
    ) -> None: ...

    def make_temp_dir(self, parent: Path, prefix: str) -> Path:
        """Create a uniquely named directory below ``parent``.

        The directory lives on the same filesystem as ``parent`` so that
        it can later be renamed into place atomically.
        """
        ...

    def write(self, path: Path, data: bytes) -> None: ...

    def read(self, path: Path) -> bytes: ...

    def size(self, path: Path) -> int: ...

    def rename(self, source: Path, target: Path) -> None:
        """Rename ``source`` to ``target`` (atomic within one filesystem)."""
        ...

    def unlink(self, path: Path) -> None: ...

    def rmtree(self, path: Path) -> None: ...

    def iterdir(self, path: Path) -> Iterator[Path]: ...


# Constants
DEFAULT_TIMEOUT = 30
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 1.0
DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 100
DEFAULT_RELEASE_COUNT = 20
DOWNLOAD_CHUNK_SIZE = 8192
GITHUB_API_URL = "https://api.github.com"
USER_AGENT = "wineport-setup"

DEFAULT_RUNNER = "default"
RUNTIME_EXECUTABLE = Path("bin") / "wine"
PAYLOAD_SUBDIR = "files"

# Release catalogs offered for custom runners
BUILD_SOURCES: dict[str, BuildSource] = {
    "vanilla": BuildSource(
        key="vanilla",
        repo="Kron4ek/Wine-Builds",
        criteria=MatchCriteria(arch="amd64", suffix="amd64.tar.xz"),
        description="Standard (vanilla) Wine builds",
    ),
    "staging-tkg": BuildSource(
        key="staging-tkg",
        repo="Kron4ek/Wine-Builds",
        criteria=MatchCriteria(
            arch="amd64", suffix="amd64.tar.xz", variant="staging-tkg"
        ),
        variant="staging-tkg",
        description="Wine TKG-Staging builds",
    ),
    "wine-ge": BuildSource(
        key="wine-ge",
        repo="GloriousEggroll/wine-ge-custom",
        criteria=MatchCriteria(arch="x86_64", suffix="x86_64.tar.xz"),
        variant="ge",
        description="Wine-GE builds",
    ),
    "proton-ge": BuildSource(
        key="proton-ge",
        repo="GloriousEggroll/proton-ge-custom",
        criteria=MatchCriteria(arch="", suffix=".tar.gz"),
        variant="proton-ge",
        description="Proton-GE builds",
    ),
    "vanilla-x86": BuildSource(
        key="vanilla-x86",
        repo="Kron4ek/Wine-Builds",
        criteria=MatchCriteria(arch="x86", suffix="x86.tar.xz"),
        arch_bits=32,
        description="32-bit standard (vanilla) Wine builds",
    ),
    "staging-tkg-x86": BuildSource(
        key="staging-tkg-x86",
        repo="Kron4ek/Wine-Builds",
        criteria=MatchCriteria(
            arch="x86", suffix="x86.tar.xz", variant="staging-tkg"
        ),
        variant="staging-tkg",
        arch_bits=32,
        description="32-bit Wine TKG-Staging builds",
    ),
}
DEFAULT_SOURCE = "vanilla"

# Logical controller buttons of the input mapping file, in file order
BUTTONS: tuple[str, ...] = (
    "back",
    "start",
    "a",
    "b",
    "x",
    "y",
    "l1",
    "l2",
    "r1",
    "r2",
    "up",
    "down",
    "left",
    "right",
    "left_analog_up",
    "left_analog_down",
    "left_analog_left",
    "left_analog_right",
    "right_analog_up",
    "right_analog_down",
    "right_analog_left",
    "right_analog_right",
)

# Extra box64 dynarec settings for Unity titles, emitted verbatim
UNITY_TUNING_BLOCK: EnvBlock = (
    ("BOX64_DYNAREC_SAFEFLAGS", "1"),
    ("BOX64_DYNAREC_FASTNAN", "1"),
    ("BOX64_DYNAREC_FASTROUND", "1"),
    ("BOX64_DYNAREC_X87DOUBLE", "0"),
    ("BOX64_DYNAREC_BIGBLOCK", "3"),
    ("BOX64_DYNAREC_STRONGMEM", "0"),
    ("BOX64_DYNAREC_FORWARD", "512"),
    ("BOX64_DYNAREC_CALLRET", "1"),
    ("BOX64_DYNAREC_WAIT", "1"),
    ("BOX64_AVX", "0"),
    ("BOX64_MAXCPU", "8"),
    ("BOX64_UNITYPLAYER", "1"),
)

PULSE_LATENCY_MSEC: dict[AudioBackend, str] = {
    AudioBackend.PULSE_60: "60",
    AudioBackend.PULSE_90: "90",
}

DEPENDENCY_VERBS: tuple[str, ...] = (
    "vcrun2008",
    "vcrun2010",
    "vcrun2012",
    "vcrun2013",
    "vcrun2022",
    "d3dx9_43",
)
