"""CLI implementation for wineport."""

import argparse
import logging
from typing import Any, Optional, Sequence

from .__version__ import __version__
from .common import (
    BUILD_SOURCES,
    DEFAULT_RELEASE_COUNT,
    DEFAULT_SOURCE,
    DEPENDENCY_VERBS,
    AudioBackend,
    BatchReport,
    GraphicsLayer,
    OutcomeStatus,
    TuningProfile,
)
from .config import WinePortConfig
from .controls import default_mapping
from .exceptions import InstallCancelled, ValidationError, WinePortError
from .filesystem import FileSystemClient
from .port_setup import setup_port
from .runtime_fetcher import RuntimeFetcher
from .serializers import LauncherFormat
from .workspace import PortLayout, list_prefixes

logger = logging.getLogger(__name__)


def _choices(enum_cls: Any) -> str:
    return ", ".join(member.value for member in enum_cls)


def _add_source_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source",
        "-s",
        default=DEFAULT_SOURCE,
        choices=list(BUILD_SOURCES),
        help=f"Build flavour to use (default: {DEFAULT_SOURCE})",
    )


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="wineport",
        description="Install Wine runtimes and set up Wine game ports for handhelds.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--timeout", type=int, help="Network timeout in seconds (default: 30)"
    )
    parser.add_argument(
        "--retries", type=int, help="Retries per network request (default: 3)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser(
        "list", help="List recent releases of a build flavour"
    )
    _add_source_argument(list_parser)
    list_parser.add_argument(
        "--count",
        "-n",
        type=int,
        default=DEFAULT_RELEASE_COUNT,
        help=f"Number of releases to show (default: {DEFAULT_RELEASE_COUNT})",
    )

    install_parser = subparsers.add_parser(
        "install", help="Download and install Wine runtimes"
    )
    _add_source_argument(install_parser)
    selection = install_parser.add_mutually_exclusive_group(required=True)
    selection.add_argument(
        "--release",
        "-r",
        nargs="+",
        metavar="TAG",
        help="Release tags to install",
    )
    selection.add_argument(
        "--latest", type=int, metavar="N", help="Install the N most recent releases"
    )

    runtimes_parser = subparsers.add_parser(
        "runtimes", help="List installed Wine runtimes"
    )
    runtimes_parser.add_argument(
        "--x86", action="store_true", help="List 32-bit runtimes instead"
    )

    subparsers.add_parser("prefixes", help="List existing dedicated Wine prefixes")

    setup_parser = subparsers.add_parser("setup", help="Set up a Wine game port")
    port = setup_parser.add_mutually_exclusive_group(required=True)
    port.add_argument("--title", "-t", help="Game title (folder is lowercase, no spaces)")
    port.add_argument(
        "--modify", metavar="FOLDER", help="Modify the port of an existing dedicated prefix"
    )
    setup_parser.add_argument(
        "--exe", "-e", help="Executable file name (default: <title>.exe)"
    )
    setup_parser.add_argument(
        "--subfolder", help="Folder of the executable relative to the data folder"
    )
    setup_parser.add_argument(
        "--shared-prefix",
        action="store_true",
        help="Use the shared Wine prefix instead of a dedicated one",
    )
    setup_parser.add_argument(
        "--graphics", help=f"Graphics layer ({_choices(GraphicsLayer)}; default: none)"
    )
    setup_parser.add_argument("--hud", action="store_true", help="Enable the DXVK HUD")
    setup_parser.add_argument(
        "--async", dest="async_mode", action="store_true", help="Enable DXVK async mode"
    )
    setup_parser.add_argument("--esync", action="store_true", help="Enable ESYNC")
    setup_parser.add_argument("--fsync", action="store_true", help="Enable FSYNC")
    setup_parser.add_argument(
        "--audio",
        help=f"Audio backend ({_choices(AudioBackend)}; default: nopulse)",
    )
    setup_parser.add_argument(
        "--runner", help="Installed runtime to run with (default: system wine64)"
    )
    setup_parser.add_argument(
        "--tuning", help=f"Emulator tuning profile ({_choices(TuningProfile)})"
    )
    setup_parser.add_argument(
        "--dependency",
        "-d",
        action="append",
        default=[],
        metavar="PACKAGE",
        help=f"Runtime package to install ({', '.join(DEPENDENCY_VERBS)})",
    )
    setup_parser.add_argument(
        "--winetricks",
        action="append",
        default=[],
        metavar="VERB",
        help="Additional winetricks verb to install",
    )
    setup_parser.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="BUTTON=KEY",
        help="Assign a keyboard key to a controller button",
    )
    setup_parser.add_argument(
        "--format",
        "-f",
        default=LauncherFormat.SHELL.value,
        choices=[fmt.value for fmt in LauncherFormat],
        help="Launcher format (default: sh)",
    )
    setup_parser.add_argument(
        "--skip-prefix",
        action="store_true",
        help="Do not create the prefix or run winetricks",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool) -> None:
    """Set up logging based on debug flag."""
    log_level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
    )

    # basicConfig is a no-op once handlers exist (e.g. under pytest)
    logging.getLogger().setLevel(log_level)

    if debug:
        logger.debug("Debug logging enabled")


def parse_mapping(assignments: Sequence[str]) -> dict[str, str]:
    """Apply ``BUTTON=KEY`` assignments on top of the empty mapping."""
    mapping = default_mapping()
    for assignment in assignments:
        button, sep, key = assignment.partition("=")
        if not sep:
            raise ValidationError("map", f"expected BUTTON=KEY, got {assignment!r}")
        button = button.strip()
        if button not in mapping:
            raise ValidationError(button, "unknown button")
        mapping[button] = key
    return mapping


def collect_toggles(args: argparse.Namespace) -> dict[str, Any]:
    """Raw toggle selections from the setup arguments; unset ones are omitted."""
    raw: dict[str, Any] = {}
    for name, value in (
        ("graphics", args.graphics),
        ("audio", args.audio),
        ("runner", args.runner),
        ("tuning", args.tuning),
    ):
        if value is not None:
            raw[name] = value
    for name, flag in (
        ("hud", args.hud),
        ("async", args.async_mode),
        ("esync", args.esync),
        ("fsync", args.fsync),
    ):
        if flag:
            raw[name] = True
    if args.dependency:
        raw["dependencies"] = list(args.dependency)
    return raw


def print_report(report: BatchReport) -> None:
    for outcome in report.outcomes:
        if outcome.status == OutcomeStatus.INSTALLED and outcome.runtime is not None:
            print(f"  installed  {outcome.tag} -> {outcome.runtime.root}")
        elif outcome.status == OutcomeStatus.SKIPPED:
            print(f"  skipped    {outcome.tag} (no compatible download)")
        else:
            print(f"  failed     {outcome.tag}: {outcome.error}")
    print(
        f"{len(report.installed)} installed, {len(report.skipped)} skipped, "
        f"{len(report.failed)} failed"
    )


def _handle_list(fetcher: RuntimeFetcher, args: argparse.Namespace) -> None:
    source = BUILD_SOURCES[args.source]
    logger.info(f"Fetching recent releases of {source.repo}...")
    pairs = fetcher.list_available(args.source, args.count)
    print(f"Recent releases ({source.key}):")
    for number, (release, asset) in enumerate(pairs, start=1):
        if asset is None:
            print(f"  {number:>3}. {release.tag}  (no compatible download)")
        else:
            print(f"  {number:>3}. {release.tag}  {asset.name}")
    print("Success")


def _handle_install(fetcher: RuntimeFetcher, args: argparse.Namespace) -> None:
    try:
        report = fetcher.install(args.source, tags=args.release, latest=args.latest)
    except InstallCancelled as e:
        if isinstance(e.report, BatchReport):
            print_report(e.report)
        raise

    print_report(report)
    if report.failed:
        raise SystemExit(1)
    print("Success")


def _handle_runtimes(fetcher: RuntimeFetcher, args: argparse.Namespace) -> None:
    runtimes = fetcher.installed_runtimes(x86=args.x86)
    if not runtimes:
        print("No Wine runtimes installed")
        return
    print("Installed runtimes:")
    for runtime in runtimes:
        print(f"  {runtime.name} -> {runtime.executable}")


def _handle_prefixes(config: WinePortConfig) -> None:
    names = list_prefixes(config, FileSystemClient())
    if not names:
        print(f"No dedicated Wine prefixes in {config.dedicated_prefix_root}")
        return
    print("Dedicated prefixes:")
    for name in names:
        print(f"  {name}")


def _handle_setup(config: WinePortConfig, args: argparse.Namespace) -> None:
    fs = FileSystemClient()
    if args.modify:
        layout = PortLayout.for_existing(
            config, fs, args.modify, exe=args.exe, subfolder=args.subfolder
        )
    else:
        layout = PortLayout.for_title(
            config,
            args.title,
            exe=args.exe,
            subfolder=args.subfolder,
            shared_prefix=args.shared_prefix,
        )

    result = setup_port(
        config,
        layout,
        collect_toggles(args),
        mapping=parse_mapping(args.map),
        fmt=LauncherFormat(args.format),
        provision_prefix=not args.skip_prefix,
        extra_verbs=args.winetricks,
        file_system_client=fs,
    )
    print(f"Game folder: {result.layout.game_dir}")
    print(f"Wine prefix: {result.layout.prefix}")
    print(f"Launcher:    {result.launcher}")
    print("Success")


def main() -> None:
    """CLI entry point."""
    args = parse_arguments()
    setup_logging(args.debug)

    try:
        config = WinePortConfig.from_environ().replace(
            timeout=args.timeout, retries=args.retries
        )

        if args.command == "setup":
            _handle_setup(config, args)
            return
        if args.command == "prefixes":
            _handle_prefixes(config)
            return

        fetcher = RuntimeFetcher(config)
        if args.command == "list":
            _handle_list(fetcher, args)
        elif args.command == "install":
            _handle_install(fetcher, args)
        elif args.command == "runtimes":
            _handle_runtimes(fetcher, args)

    except InstallCancelled as e:
        print(f"Cancelled: {e}")
        raise SystemExit(130) from e
    except WinePortError as e:
        print(f"Error: {e}")
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        print("Cancelled")
        raise SystemExit(130) from None
