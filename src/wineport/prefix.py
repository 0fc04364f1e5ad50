"""Wine prefix provisioning for wineport."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Iterable, Sequence

from .common import GraphicsLayer, ProcessResult, ToggleSet
from .exceptions import PrefixError

logger = logging.getLogger(__name__)

DXVK_LAYERS = (GraphicsLayer.DXVK, GraphicsLayer.DXVK_LEGACY)


class PrefixProvisioner:
    """Creates a Wine prefix and installs winetricks verbs into it.

    Wine Mono and Gecko are left for Wine to install on first launch.
    """

    def __init__(self, wine: str, winetricks: str = "winetricks") -> None:
        self.wine = wine
        self.winetricks = winetricks

    def _run(self, cmd: Sequence[str], prefix: Path) -> ProcessResult:
        env = dict(os.environ, WINEPREFIX=str(prefix))
        logger.debug(f"Running: WINEPREFIX={prefix} {' '.join(cmd)}")
        try:
            return subprocess.run(list(cmd), env=env, capture_output=True, text=True)
        except OSError as e:
            raise PrefixError(f"Failed to run {cmd[0]}: {e}") from e

    def initialize(self, prefix: Path) -> bool:
        """
        Run ``wineboot --init`` unless the prefix already has a ``drive_c``.

        Returns:
            True if the prefix was created, False if it already existed

        Raises:
            PrefixError: If wineboot does not produce a usable prefix
        """
        if (prefix / "drive_c").is_dir():
            logger.info(f"Using existing Wine prefix at {prefix}")
            return False

        logger.info(f"Creating Wine prefix at {prefix}")
        result = self._run([self.wine, "wineboot", "--init"], prefix)
        if not (prefix / "drive_c").is_dir():
            detail = (result.stderr or "").strip()
            raise PrefixError(
                f"Failed to initialize Wine prefix at {prefix}"
                + (f": {detail}" if detail else "")
            )
        return True

    def install_verb(self, prefix: Path, verb: str) -> None:
        logger.info(f"Installing {verb} into {prefix}")
        result = self._run([self.winetricks, "-q", verb], prefix)
        if result.returncode != 0:
            raise PrefixError(
                f"winetricks {verb} failed with exit code {result.returncode}: "
                f"{(result.stderr or '').strip()}"
            )

    def check_graphics(self, prefix: Path, layer: GraphicsLayer) -> bool:
        """Report whether a DXVK install left dxgi.dll in system32."""
        if layer not in DXVK_LAYERS:
            return True
        dxgi = prefix / "drive_c" / "windows" / "system32" / "dxgi.dll"
        if not dxgi.is_file():
            logger.warning(
                "DXVK installation failed or dxgi.dll is missing. "
                "Game may not work properly."
            )
            return False
        return True

    def provision(
        self,
        prefix: Path,
        toggles: ToggleSet,
        extra_verbs: Iterable[str] = (),
    ) -> list[str]:
        """
        Initialize the prefix and install the graphics layer and packages.

        Args:
            prefix: Wine prefix directory
            toggles: Validated toggles naming the graphics layer and
                dependency packages
            extra_verbs: Additional winetricks verbs, installed last

        Returns:
            The winetricks verbs installed, in order

        Raises:
            PrefixError: If the prefix cannot be created or a verb fails
        """
        self.initialize(prefix)

        verbs: list[str] = []
        if toggles.graphics != GraphicsLayer.NONE:
            verbs.append(toggles.graphics.value)
        verbs.extend(toggles.dependencies)
        verbs.extend(verb for verb in extra_verbs if verb not in verbs)

        for verb in verbs:
            self.install_verb(prefix, verb)
            if verb == toggles.graphics.value:
                self.check_graphics(prefix, toggles.graphics)
        return verbs
