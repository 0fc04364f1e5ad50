"""Configuration for wineport."""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .common import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    BuildSource,
)
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "WINEPORT_"


@dataclasses.dataclass(frozen=True)
class WinePortConfig:
    """Paths and network limits shared by the installer and the composer.

    Defaults mirror the layout of a ROCKNIX handheld: ports live under
    ``/storage/roms/ports`` and custom runners under ``/storage/winecustom``.
    """

    ports_base: Path = Path("/storage/roms/ports")
    dedicated_prefix_root: Path = Path("/storage/.wine64-setup")
    shared_prefix: Path = Path("/storage/.wine64-shared")
    runtime_root: Path = Path("/storage/winecustom")
    runtime_root_32: Path = Path("/storage/winecustom32")
    input_mapper: Optional[str] = "/usr/bin/gptokeyb"
    emulator: str = "box64"
    default_runner: str = "wine64"
    timeout: int = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    page_size: int = DEFAULT_PAGE_SIZE

    def install_root_for(self, source: BuildSource) -> Path:
        """Install root for a build source (32-bit builds live apart)."""
        if source.arch_bits == 32:
            return self.runtime_root_32
        return self.runtime_root

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> WinePortConfig:
        """Build a configuration from defaults overridden by WINEPORT_* variables.

        Args:
            environ: Mapping to read from (default: ``os.environ``)

        Returns:
            A new configuration instance

        Raises:
            ValidationError: If a numeric override is not a valid number
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        for field in dataclasses.fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{field.name.upper()}")
            if raw is None or raw == "":
                continue

            default = field.default
            try:
                if isinstance(default, Path):
                    value: object = Path(raw).expanduser()
                elif isinstance(default, bool):
                    value = raw.lower() in ("1", "true", "yes", "on")
                elif isinstance(default, int):
                    value = int(raw)
                elif isinstance(default, float):
                    value = float(raw)
                else:
                    value = raw
            except ValueError:
                raise ValidationError(
                    f"{ENV_PREFIX}{field.name.upper()}", f"invalid value {raw!r}"
                ) from None

            logger.debug(f"Config override from environment: {field.name}={value}")
            overrides[field.name] = value

        return cls(**overrides)  # type: ignore[arg-type]

    def replace(self, **changes: object) -> WinePortConfig:
        """Return a copy with the given non-None fields replaced."""
        filtered = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **filtered)  # type: ignore[arg-type]
