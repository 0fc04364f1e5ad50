"""End-to-end setup of one game port."""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from .common import FileSystemClientProtocol, LaunchDescriptor, ToggleSet
from .composer import compose
from .config import WinePortConfig
from .controls import default_mapping, validate_mapping, write_mapping
from .environment import check_dependencies, setup_tools
from .filesystem import FileSystemClient
from .installer import discover_runtimes, find_runtime
from .prefix import PrefixProvisioner
from .serializers import LauncherFormat, write_launcher
from .toggles import validate_toggles
from .workspace import PortLayout, scaffold

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SetupResult:
    layout: PortLayout
    toggles: ToggleSet
    descriptor: LaunchDescriptor
    launcher: Path
    verbs: tuple[str, ...] = ()


def setup_port(
    config: WinePortConfig,
    layout: PortLayout,
    raw_toggles: Mapping[str, Any],
    mapping: Optional[Mapping[str, str]] = None,
    fmt: LauncherFormat = LauncherFormat.SHELL,
    provision_prefix: bool = True,
    extra_verbs: Iterable[str] = (),
    file_system_client: Optional[FileSystemClientProtocol] = None,
) -> SetupResult:
    """
    Set up a port: folders, control mapping, prefix and launcher.

    Toggles, the mapping, the required programs and the runner are all
    checked before the first file is written.

    Args:
        config: Paths and programs to use
        layout: Where the port lives
        raw_toggles: Unvalidated toggle selections
        mapping: Button assignments (default: every button unassigned)
        fmt: Launcher format to write
        provision_prefix: Whether to create the prefix and run winetricks
        extra_verbs: Additional winetricks verbs
        file_system_client: Filesystem client (default: the real filesystem)

    Returns:
        What was set up

    Raises:
        ValidationError: If a toggle or button assignment is invalid
        DependencyMissing: If a required program is not installed
        RunnerUnavailable: If the selected runtime is not installed
        CompositionConflict: If two settings emit the same variable
        PrefixError: If the prefix cannot be provisioned
    """
    fs = file_system_client or FileSystemClient()

    available = [runtime.name for runtime in discover_runtimes(config.runtime_root)]
    toggles = validate_toggles(raw_toggles, available_runners=available)
    checked_mapping = validate_mapping(mapping if mapping is not None else default_mapping())
    check_dependencies(setup_tools(config, provision_prefix))

    runtime = (
        None
        if toggles.uses_default_runner
        else find_runtime(config.runtime_root, toggles.runner)
    )
    mapping_file = layout.mapping_file if config.input_mapper else None
    descriptor = compose(runtime, toggles, layout.target, config, layout.prefix, mapping_file)

    scaffold(layout, fs)
    if mapping_file is not None:
        write_mapping(checked_mapping, mapping_file)

    verbs: list[str] = []
    if provision_prefix:
        # wineboot and winetricks always run on the system runner
        provisioner = PrefixProvisioner(config.default_runner)
        verbs = provisioner.provision(layout.prefix, toggles, extra_verbs)

    launcher = write_launcher(descriptor, layout.launcher_path(fmt.value), fmt)
    logger.info(f"Port {layout.folder} is ready: {launcher}")
    return SetupResult(
        layout=layout,
        toggles=toggles,
        descriptor=descriptor,
        launcher=launcher,
        verbs=tuple(verbs),
    )
