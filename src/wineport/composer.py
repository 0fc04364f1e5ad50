"""Launch configuration composer for wineport."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .common import (
    PULSE_LATENCY_MSEC,
    UNITY_TUNING_BLOCK,
    AudioBackend,
    EnvBlock,
    EnvPair,
    GraphicsLayer,
    InstalledRuntime,
    LaunchDescriptor,
    PreLaunchCommand,
    TargetExecutable,
    ToggleSet,
    TuningProfile,
)
from .config import WinePortConfig
from .exceptions import CompositionConflict, RunnerUnavailable

logger = logging.getLogger(__name__)


def _flag(enabled: bool) -> str:
    return "1" if enabled else "0"


class EnvironmentBuilder:
    """Ordered environment block that refuses to redefine a variable."""

    def __init__(self) -> None:
        self._pairs: list[EnvPair] = []
        self._owners: dict[str, str] = {}

    def extend(self, block: str, pairs: Iterable[EnvPair]) -> None:
        for name, value in pairs:
            if name in self._owners:
                raise CompositionConflict(
                    f"{name} is set by both the {self._owners[name]} "
                    f"and the {block} settings"
                )
            self._owners[name] = block
            self._pairs.append((name, value))

    def build(self) -> EnvBlock:
        return tuple(self._pairs)


def resolve_runner(
    runtime: Optional[InstalledRuntime], config: WinePortConfig
) -> tuple[str, ...]:
    """
    Build the invocation prefix for the selected runner.

    Raises:
        RunnerUnavailable: If a runtime is selected but its wine executable
            does not exist on disk
    """
    if runtime is None:
        return (config.emulator, config.default_runner)

    executable = runtime.executable
    if not executable.is_file():
        raise RunnerUnavailable(
            f"Runner {runtime.name} is not usable: {executable} does not exist"
        )
    return (config.emulator, str(executable))


def graphics_block(toggles: ToggleSet) -> EnvBlock:
    # No graphics layer means no layer-specific variables, whatever was asked
    if toggles.graphics == GraphicsLayer.NONE:
        return ()
    return (
        ("DXVK_HUD", _flag(toggles.hud)),
        ("DXVK_ASYNC", _flag(toggles.async_compile)),
    )


def sync_block(toggles: ToggleSet) -> EnvBlock:
    return (
        ("STAGING_SHARED_MEMORY", _flag(toggles.esync)),
        ("STAGING_WRITECOPY", _flag(toggles.fsync)),
    )


def audio_block(toggles: ToggleSet) -> EnvBlock:
    if toggles.audio == AudioBackend.SYSTEM_DEFAULT:
        return ()
    return (("PULSE_LATENCY_MSEC", PULSE_LATENCY_MSEC[toggles.audio]),)


def tuning_block(toggles: ToggleSet) -> EnvBlock:
    if toggles.tuning == TuningProfile.UNITY:
        return UNITY_TUNING_BLOCK
    return ()


def compose(
    runtime: Optional[InstalledRuntime],
    toggles: ToggleSet,
    target: TargetExecutable,
    config: WinePortConfig,
    prefix: Path,
    mapping_file: Optional[Path] = None,
) -> LaunchDescriptor:
    """
    Compose the launch descriptor for a target executable.

    Blocks are applied in a fixed order (base, graphics, sync, audio,
    tuning), so identical inputs always give an identical descriptor.

    Args:
        runtime: Selected installed runtime, or None for the system runner
        toggles: Validated feature toggles
        target: Executable to launch
        config: Emulator, default runner and input mapper settings
        prefix: Wine prefix the title runs in
        mapping_file: Controller mapping file for the input mapper, if any

    Returns:
        The immutable launch descriptor

    Raises:
        RunnerUnavailable: If the selected runtime's executable is missing
        CompositionConflict: If two blocks emit the same variable
    """
    # Runner first: a missing runtime yields no descriptor
    runner_prefix = resolve_runner(runtime, config)

    env = EnvironmentBuilder()
    env.extend("base", (("WINEPREFIX", str(prefix)), ("WINEDEBUG", "-all")))
    env.extend("graphics", graphics_block(toggles))
    env.extend("sync", sync_block(toggles))
    env.extend("audio", audio_block(toggles))
    env.extend("tuning", tuning_block(toggles))

    pre_launch: list[PreLaunchCommand] = []
    if toggles.audio != AudioBackend.SYSTEM_DEFAULT:
        pre_launch.append(
            PreLaunchCommand(
                argv=("winetricks", "-q", "sound=pulse"),
                env=(("WINEPREFIX", str(prefix)),),
            )
        )
    if config.input_mapper and mapping_file is not None:
        pre_launch.append(
            PreLaunchCommand(
                argv=(config.input_mapper, target.exe_name, "-c", f"./{mapping_file.name}"),
                background=True,
            )
        )

    descriptor = LaunchDescriptor(
        target=target,
        environment=env.build(),
        runner_prefix=runner_prefix,
        pre_launch=tuple(pre_launch),
        working_dir=target.game_dir,
    )
    logger.debug(
        f"Composed launch for {target.exe_path} with "
        f"{len(descriptor.environment)} variables via {' '.join(runner_prefix)}"
    )
    return descriptor
