"""Utility functions for wineport."""

import hashlib
import logging
import time
from pathlib import Path
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRUE_STRINGS = frozenset({"1", "yes", "y", "on", "true"})
_FALSE_STRINGS = frozenset({"0", "no", "n", "off", "false"})


def parse_bool(value: object) -> bool:
    """
    Interpret a yes/no answer coming from a prompt or the command line.

    Args:
        value: A bool, or a string such as 'yes', 'off', '1'

    Returns:
        The boolean meaning of the value

    Raises:
        ValueError: If the value is not a recognized boolean spelling
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean: {value!r}")


def call_with_retries(
    operation: Callable[[], T],
    retryable: tuple[type[BaseException], ...],
    retries: int,
    backoff_seconds: float,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run an operation, retrying a bounded number of times with exponential backoff.

    Args:
        operation: Zero-argument callable to run
        retryable: Exception types that trigger a retry
        retries: Number of retries after the first attempt
        backoff_seconds: Delay before the first retry, doubled each time
        description: What is being attempted, for log messages
        sleep: Sleep function (injectable for tests)

    Returns:
        The operation's return value

    Raises:
        The last retryable exception once retries are exhausted; any
        non-retryable exception immediately
    """
    attempt = 0
    while True:
        try:
            return operation()
        except retryable as e:
            if attempt >= retries:
                logger.debug(f"{description} failed after {attempt + 1} attempts")
                raise
            delay = backoff_seconds * (2**attempt)
            attempt += 1
            logger.warning(
                f"{description} failed ({e}), retrying in {delay:.1f}s "
                f"({attempt}/{retries})"
            )
            sleep(delay)


def sha256_file(path: Path) -> str:
    """Return the hex sha256 digest of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def slugify_title(title: str) -> str:
    """Turn a game title into a folder name: lowercase, no spaces."""
    return "".join(title.strip().lower().split())


def format_bytes(bytes_value: int) -> str:
    """Format bytes into a human-readable string."""
    if bytes_value < 1024:
        return f"{bytes_value} B"
    elif bytes_value < 1024 * 1024:
        return f"{bytes_value / 1024:.2f} KB"
    elif bytes_value < 1024 * 1024 * 1024:
        return f"{bytes_value / (1024 * 1024):.2f} MB"
    else:
        return f"{bytes_value / (1024 * 1024 * 1024):.2f} GB"
