"""Exception classes for wineport."""


class WinePortError(Exception):
    """Base exception for wineport operations."""


class NetworkError(WinePortError):
    """Raised when a single network request fails; callers may retry it."""


class CatalogUnavailable(WinePortError):
    """Raised when a release catalog cannot be fetched or parsed."""


class InstallError(WinePortError):
    """Base for per-item install failures that never abort a batch."""


class DownloadFailed(InstallError):
    """Raised when an asset cannot be downloaded after bounded retries."""


class ExtractionFailed(InstallError):
    """Raised when a downloaded archive cannot be extracted."""


class NormalizationAmbiguous(InstallError):
    """Raised when an extracted tree has a shape the normalizer does not recognize."""


class InstallCancelled(WinePortError):
    """Raised when the operator aborts an install in progress.

    ``report`` carries the outcomes recorded before the abort, when the
    cancellation interrupted a batch.
    """

    def __init__(self, message: str, report: object = None) -> None:
        super().__init__(message)
        self.report = report


class ValidationError(WinePortError):
    """Raised when a toggle or control mapping value is not recognized."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class RunnerUnavailable(WinePortError):
    """Raised when the selected runner executable does not exist on disk."""


class CompositionConflict(WinePortError):
    """Raised when two composition blocks emit the same environment variable."""


class DependencyMissing(WinePortError):
    """Raised when a required external executable is not installed."""


class PrefixError(WinePortError):
    """Raised when a Wine prefix cannot be initialized or modified."""
