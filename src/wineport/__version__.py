"""Version information for wineport."""

from importlib.metadata import PackageNotFoundError, version

# Replaced at build time when packaging a release
__version__ = "DEV"


def _get_version() -> str:
    """Get version from embedded value or installed distribution metadata."""
    if __version__ != "DEV":
        return __version__
    try:
        return version("wineport-setup")
    except PackageNotFoundError:
        return "unknown"


__version__ = _get_version()
