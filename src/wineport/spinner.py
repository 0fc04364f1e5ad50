"""Spinner implementation for wineport."""

import sys
import time
from typing import Optional, Self, TextIO

from .utils import format_bytes


class Spinner:
    """A native spinner progress indicator for downloads and extraction.

    Each spinner carries a description naming the item it reports on, so
    that progress stays attributable when several runtimes are installed
    in one batch.
    """

    def __init__(
        self,
        desc: str = "",
        total: Optional[int] = None,
        unit: Optional[str] = None,
        disable: bool = False,
        fps_limit: Optional[float] = None,
        width: int = 10,
        stream: Optional[TextIO] = None,
    ):
        """Initialize the spinner.

        Args:
            desc: Description text naming the item in progress
            total: Total number of units for progress calculation
            unit: Unit of measurement; 'B' scales to KB/MB/GB
            disable: Disable all display output
            fps_limit: Maximum frames per second for display updates
            width: Width of progress bar in characters
            stream: Output stream (default: stderr)
        """
        self.desc = desc
        self.total = total
        self.unit = unit
        self.disable = disable
        self.fps_limit = fps_limit
        self.width = max(1, width)
        self.stream = stream or sys.stderr
        self.current = 0

        # Braille spinner characters for smooth animation
        self.spinner_chars = "⠟⠯⠷⠾⠽⠻"
        self.spinner_idx = 0
        self.start_time = time.time()
        self._last_update_time = 0.0
        self._current_line = ""
        self._completed = False

    def __enter__(self) -> Self:
        if not self.disable:
            self._update_display()
        return self

    def __exit__(self, *args: object) -> None:
        if not self.disable:
            self._clear_display()

    def _should_update_display(self, current_time: float) -> bool:
        if self.fps_limit is None or self.fps_limit <= 0:
            return True
        return current_time - self._last_update_time >= 1.0 / self.fps_limit

    def _get_spinner_char(self) -> str:
        char = self.spinner_chars[self.spinner_idx % len(self.spinner_chars)]
        self.spinner_idx += 1
        return char

    def _percentage(self) -> float:
        if not self.total or self.total <= 0:
            return 0.0
        return min(self.current / self.total, 1.0)

    def _format_amount(self, value: float) -> str:
        if self.unit == "B":
            return format_bytes(int(value))
        if self.unit:
            return f"{value:.0f}{self.unit}"
        return f"{value:.0f}"

    def _format_rate(self, current_time: float) -> str:
        elapsed = current_time - self.start_time
        rate = self.current / elapsed if elapsed > 0 else 0.0
        return f" ({self._format_amount(rate)}/s)"

    def render(self, current_time: Optional[float] = None) -> str:
        """Build the status line for the current state."""
        current_time = time.time() if current_time is None else current_time
        parts = [self.desc, ":", f" {self._get_spinner_char()}"]

        if self.total:
            percent = self._percentage()
            filled = int(self.width * percent)
            bar = "█" * filled + "-" * (self.width - filled)
            parts.append(f" |{bar}| {percent * 100:.1f}%")
        elif self.unit:
            parts.append(f" {self._format_amount(self.current)}")

        if self.unit:
            parts.append(self._format_rate(current_time))
        return "".join(parts)

    def _update_display(self) -> None:
        if self.disable:
            return

        current_time = time.time()
        if not self._should_update_display(current_time):
            return

        self._last_update_time = current_time
        line = self.render(current_time)
        self._current_line = line
        self.stream.write(f"\r{line}")
        self.stream.flush()

    def _clear_display(self) -> None:
        if self.disable:
            return
        self.stream.write("\r" + " " * len(self._current_line) + "\r")
        self.stream.flush()

    def update(self, n: int = 1) -> None:
        """Advance progress by n units."""
        self.current += n
        self._update_display()

    def update_progress(self, current: int, total: int) -> None:
        """Set progress to explicit values."""
        self.current = current
        self.total = total
        self._update_display()

    def finish(self) -> None:
        """Complete the spinner and leave the final state on screen."""
        if self._completed:
            return

        self._completed = True
        if self.total:
            self.current = self.total

        if self.disable:
            return

        line = self.render()
        self._current_line = line
        self.stream.write(f"\r{line}\n")
        self.stream.flush()
        # Nothing left to clear once the final line is committed
        self._current_line = ""
