"""Network client implementation for wineport."""

import subprocess
from pathlib import Path
from typing import Optional

from .common import DEFAULT_TIMEOUT, Headers, ProcessResult

# Archives are hundreds of megabytes; a transfer may run this many
# multiples of the request timeout before curl gives up.
DOWNLOAD_TIMEOUT_FACTOR = 20


class NetworkClient:
    """Concrete implementation of network operations using curl."""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def _build_curl_cmd(
        self, base_cmd: list[str], headers: Optional[Headers], max_time: int
    ) -> list[str]:
        """Build a curl command with headers and common reliability options."""
        cmd = ["curl"] + base_cmd
        if headers:
            for key, value in headers.items():
                cmd.extend(["-H", f"{key}: {value}"])
        cmd.extend(
            [
                "--compressed",  # Request compressed response
                "--connect-timeout",
                str(self.timeout),
                "--max-time",
                str(max_time),
            ]
        )
        return cmd

    def get(self, url: str, headers: Optional[Headers] = None) -> ProcessResult:
        base_cmd = [
            "-L",  # Follow redirects
            "-s",  # Silent mode
            "-S",  # Show errors
            "-f",  # Fail on HTTP error
        ]
        cmd = self._build_curl_cmd(base_cmd, headers, self.timeout)
        cmd.append(url)
        return subprocess.run(cmd, capture_output=True, text=True)

    def download(
        self, url: str, output_path: Path, headers: Optional[Headers] = None
    ) -> ProcessResult:
        base_cmd = [
            "-L",
            "-s",
            "-S",
            "-f",
            "-o",
            str(output_path),  # Output file
        ]
        cmd = self._build_curl_cmd(
            base_cmd, headers, self.timeout * DOWNLOAD_TIMEOUT_FACTOR
        )
        cmd.append(url)
        return subprocess.run(cmd, capture_output=True, text=True)
