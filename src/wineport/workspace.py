"""Port folder layout and scaffolding for wineport."""

import dataclasses
import logging
from pathlib import Path, PurePosixPath
from typing import Optional

from .common import FileSystemClientProtocol, TargetExecutable
from .config import WinePortConfig
from .exceptions import ValidationError
from .utils import slugify_title

logger = logging.getLogger(__name__)

MAPPING_SUFFIX = ".gptk"
LAUNCHER_SUFFIXES = {"sh": ".sh", "json": ".json"}


def _check_relative(field: str, value: str) -> None:
    parts = PurePosixPath(value).parts
    if value.startswith("/") or "\\" in value or ".." in parts:
        raise ValidationError(field, f"must be a path inside the data folder, got {value!r}")


def build_exe_path(exe: str, subfolder: Optional[str] = None) -> str:
    """Join an executable file name with its optional subfolder below ``data``.

    Raises:
        ValidationError: If the name contains a folder or the subfolder
            escapes the data folder
    """
    exe = exe.strip()
    if not exe:
        raise ValidationError("exe", "executable name must not be empty")
    if "/" in exe or "\\" in exe:
        raise ValidationError("exe", f"give the file name only, without folders: {exe!r}")

    subfolder = (subfolder or "").strip().strip("/")
    if not subfolder:
        return exe
    _check_relative("subfolder", subfolder)
    return f"{subfolder}/{exe}"


@dataclasses.dataclass(frozen=True)
class PortLayout:
    """Where the files of one port live.

    A port ``<folder>`` is the game directory ``<ports_base>/<folder>`` (with
    ``data`` and ``config`` below it), the mapping file
    ``<folder>/<folder>.gptk`` and the launcher ``<ports_base>/<folder>.sh``.
    """

    folder: str
    ports_base: Path
    prefix: Path
    exe_path: str

    @classmethod
    def for_title(
        cls,
        config: WinePortConfig,
        title: str,
        exe: Optional[str] = None,
        subfolder: Optional[str] = None,
        shared_prefix: bool = False,
    ) -> "PortLayout":
        """Lay out a new port; the executable defaults to ``<title>.exe``."""
        title = title.strip()
        folder = slugify_title(title)
        if not folder:
            raise ValidationError("title", "game title must not be empty")
        if "/" in folder or "\\" in folder or folder in (".", ".."):
            raise ValidationError("title", f"cannot be used as a folder name: {title!r}")

        if not exe or not exe.strip():
            exe = f"{title}.exe"
        prefix = (
            config.shared_prefix
            if shared_prefix
            else config.dedicated_prefix_root / folder
        )
        return cls(
            folder=folder,
            ports_base=config.ports_base,
            prefix=prefix,
            exe_path=build_exe_path(exe, subfolder),
        )

    @classmethod
    def for_existing(
        cls,
        config: WinePortConfig,
        file_system_client: FileSystemClientProtocol,
        folder: str,
        exe: Optional[str] = None,
        subfolder: Optional[str] = None,
    ) -> "PortLayout":
        """Lay out a port around an existing dedicated prefix.

        Raises:
            ValidationError: If no dedicated prefix of that name exists
        """
        existing = list_prefixes(config, file_system_client)
        if folder not in existing:
            listed = ", ".join(existing) or "none"
            raise ValidationError(
                "prefix", f"no dedicated prefix named {folder!r} (existing: {listed})"
            )
        if not exe or not exe.strip():
            exe = f"{folder}.exe"
        return cls(
            folder=folder,
            ports_base=config.ports_base,
            prefix=config.dedicated_prefix_root / folder,
            exe_path=build_exe_path(exe, subfolder),
        )

    @property
    def game_dir(self) -> Path:
        return self.ports_base / self.folder

    @property
    def data_dir(self) -> Path:
        return self.game_dir / "data"

    @property
    def config_dir(self) -> Path:
        return self.game_dir / "config"

    @property
    def mapping_file(self) -> Path:
        return self.game_dir / f"{self.folder}{MAPPING_SUFFIX}"

    def launcher_path(self, fmt: str = "sh") -> Path:
        return self.ports_base / f"{self.folder}{LAUNCHER_SUFFIXES[fmt]}"

    @property
    def target(self) -> TargetExecutable:
        return TargetExecutable(game_dir=self.game_dir, exe_path=self.exe_path)


def scaffold(
    layout: PortLayout, file_system_client: FileSystemClientProtocol
) -> None:
    """Create the game, data and config folders and the prefix parent."""
    fs = file_system_client
    for path in (layout.data_dir, layout.config_dir, layout.prefix.parent):
        fs.mkdir(path, parents=True, exist_ok=True)
    logger.info(f"Created {layout.game_dir} (with subfolders data and config)")


def list_prefixes(
    config: WinePortConfig, file_system_client: FileSystemClientProtocol
) -> list[str]:
    """Names of the existing dedicated prefixes, sorted."""
    fs = file_system_client
    root = config.dedicated_prefix_root
    if not fs.is_dir(root):
        return []
    return sorted(entry.name for entry in fs.iterdir(root) if fs.is_dir(entry))
