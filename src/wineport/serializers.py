"""Launch descriptor serialization for wineport.

Serializers turn a composed LaunchDescriptor into a file an external
launcher consumes. Output depends only on the descriptor, so regenerating
from identical inputs reproduces the file byte for byte.
"""

import json
import logging
import os
import shlex
import stat
from enum import StrEnum
from pathlib import Path
from typing import Any

from .common import LaunchDescriptor, PreLaunchCommand

logger = logging.getLogger(__name__)


class LauncherFormat(StrEnum):
    SHELL = "sh"
    JSON = "json"


_PORTMASTER_HEADER = """\
#!/bin/bash

# Determine PortMaster control folder
if [ -d "/opt/system/Tools/PortMaster/" ]; then
  controlfolder="/opt/system/Tools/PortMaster"
elif [ -d "/opt/tools/PortMaster/" ]; then
  controlfolder="/opt/tools/PortMaster"
else
  controlfolder="/roms/ports/PortMaster"
fi

source "${controlfolder}/control.txt"
[ -f "${controlfolder}/mod_${CFW_NAME}.txt" ] && source "${controlfolder}/mod_${CFW_NAME}.txt"
get_controls
"""


def _command_line(command: PreLaunchCommand) -> str:
    assignments = [f"{name}={shlex.quote(value)}" for name, value in command.env]
    line = " ".join(assignments + [shlex.quote(arg) for arg in command.argv])
    return f"{line} &" if command.background else line


def to_shell_script(descriptor: LaunchDescriptor) -> str:
    """Render the descriptor as a PortMaster-style bash launcher."""
    game_dir = shlex.quote(str(descriptor.working_dir))
    lines = [_PORTMASTER_HEADER]

    lines.append(f"GAMEDIR={game_dir}")
    lines.append("")
    lines.append('if [ ! -d "$GAMEDIR" ]; then')
    lines.append(
        '  echo "Error: Game directory missing ($GAMEDIR). '
        'Please check your installation."'
    )
    lines.append("  exit 1")
    lines.append("fi")
    lines.append("")
    lines.append('cd "$GAMEDIR"')
    lines.append('> "$GAMEDIR/log.txt" && exec > >(tee "$GAMEDIR/log.txt") 2>&1')
    lines.append('chmod +x -R "$GAMEDIR"/*')
    lines.append("")
    lines.append('export SDL_GAMECONTROLLERCONFIG="$sdl_controllerconfig"')
    for name, value in descriptor.environment:
        lines.append(f"export {name}={shlex.quote(value)}")
    lines.append("")

    lines.append("# Check that the chosen runner exists before launching")
    for program in descriptor.runner_prefix:
        quoted = shlex.quote(program)
        lines.append(f"if ! command -v {quoted} &>/dev/null; then")
        lines.append(
            f'  echo "Error: The wine runner ({program}) is missing. '
            'Install it or adjust your settings before running the game."'
        )
        lines.append("  exit 1")
        lines.append("fi")
    lines.append("")

    foreground = [c for c in descriptor.pre_launch if not c.background]
    background = [c for c in descriptor.pre_launch if c.background]
    if foreground:
        lines.append("# Prepare dependencies")
        lines.extend(_command_line(command) for command in foreground)
        lines.append("")
    if background:
        lines.append("# Start helpers")
        lines.extend(_command_line(command) for command in background)
        lines.append("")

    runner = " ".join(shlex.quote(part) for part in descriptor.runner_prefix)
    exe = shlex.quote(descriptor.target.exe_path)
    lines.append("# Launch the game from the data folder")
    lines.append(f'{runner} "$GAMEDIR/data/"{exe}')
    return "\n".join(lines) + "\n"


def descriptor_to_dict(descriptor: LaunchDescriptor) -> dict[str, Any]:
    """Convert a descriptor to plain JSON-compatible data, preserving order."""
    return {
        "target": {
            "game_dir": str(descriptor.target.game_dir),
            "exe_path": descriptor.target.exe_path,
        },
        "working_dir": str(descriptor.working_dir),
        "runner_prefix": list(descriptor.runner_prefix),
        "environment": [[name, value] for name, value in descriptor.environment],
        "pre_launch": [
            {
                "argv": list(command.argv),
                "env": [[name, value] for name, value in command.env],
                "background": command.background,
            }
            for command in descriptor.pre_launch
        ],
    }


def to_json(descriptor: LaunchDescriptor) -> str:
    """Render the descriptor as JSON with the environment as ordered pairs."""
    return json.dumps(descriptor_to_dict(descriptor), indent=2) + "\n"


def render(descriptor: LaunchDescriptor, fmt: LauncherFormat) -> str:
    if fmt == LauncherFormat.JSON:
        return to_json(descriptor)
    return to_shell_script(descriptor)


def write_launcher(
    descriptor: LaunchDescriptor,
    path: Path,
    fmt: LauncherFormat = LauncherFormat.SHELL,
) -> Path:
    """
    Write the serialized descriptor, replacing any previous launcher atomically.

    Shell launchers are made executable.

    Returns:
        The path written
    """
    content = render(descriptor, fmt)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(content, encoding="utf-8")
    if fmt == LauncherFormat.SHELL:
        mode = tmp_path.stat().st_mode
        tmp_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    os.replace(tmp_path, path)
    logger.info(f"Wrote {fmt.value} launcher to {path}")
    return path
