"""Checks for the external programs wineport drives."""

import logging
import shutil
from typing import Iterable, Optional

from .config import WinePortConfig
from .exceptions import DependencyMissing

logger = logging.getLogger(__name__)

INSTALL_TOOLS = ("curl", "tar")


def check_dependencies(commands: Iterable[Optional[str]]) -> None:
    """
    Ensure every command resolves on PATH (absolute paths are checked directly).

    Raises:
        DependencyMissing: Naming all the missing commands
    """
    missing = [cmd for cmd in commands if cmd and shutil.which(cmd) is None]
    if missing:
        raise DependencyMissing(
            f"Missing dependency: {', '.join(missing)} is not installed. "
            "Install it before proceeding."
        )
    logger.debug("All required programs are available")


def setup_tools(config: WinePortConfig, provision_prefix: bool = True) -> list[str]:
    """Programs a port setup needs for the given configuration."""
    tools = [config.emulator, config.default_runner]
    if config.input_mapper:
        tools.append(config.input_mapper)
    if provision_prefix:
        tools.append("winetricks")
    return tools
