"""
Secret scanning gate backed by gitleaks.

The snapshot diff is piped to ``gitleaks stdin`` before
anything leaves the machine. Exit code 1 means gitleaks found secrets.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass

logger = logging.getLogger("ghostbackup.security")

GITLEAKS_TIMEOUT = 60
GITLEAKS_URL = "https://github.com/gitleaks/gitleaks"


class ScanError(Exception):
    """Raised when the scan could not produce a verdict."""


class GitleaksUnavailableError(ScanError):
    """Raised when gitleaks is not installed."""


@dataclass
class ScanResult:
    """Verdict of a gitleaks scan.

    Attributes:
        has_secrets: Whether gitleaks reported any findings.
        output: gitleaks report (redacted).
    """

    has_secrets: bool = False
    output: str = ""


def _run(cmd: list[str], input: str | None = None, timeout: int = GITLEAKS_TIMEOUT):
    return subprocess.run(
        cmd, input=input, capture_output=True, text=True, timeout=timeout,
    )


def gitleaks_available() -> bool:
    """Check whether gitleaks is installed and runnable."""
    if shutil.which("gitleaks") is None:
        return False
    try:
        return _run(["gitleaks", "version"], timeout=10).returncode == 0
    except (OSError, subprocess.TimeoutExpired):
        return False


def scan_diff(diff: str) -> ScanResult:
    """Scan a diff for secrets.

    Args:
        diff: Text to scan.

    Returns:
        ScanResult: Whether secrets were found, with the report.

    Raises:
        GitleaksUnavailableError: If gitleaks is not installed.
        ScanError: If gitleaks timed out or failed.
    """
    if not gitleaks_available():
        raise GitleaksUnavailableError("gitleaks not found in PATH")

    try:
        result = _run(
            ["gitleaks", "stdin", "--verbose", "--redact"],
            input=diff,
        )
    except subprocess.TimeoutExpired as exc:
        raise ScanError(f"gitleaks scan timed out after {GITLEAKS_TIMEOUT}s") from exc
    except OSError as exc:
        raise ScanError(f"gitleaks scan failed: {exc}") from exc

    output = result.stdout + result.stderr
    if result.returncode == 0:
        return ScanResult(has_secrets=False, output=output)
    if result.returncode == 1:
        return ScanResult(has_secrets=True, output=output)

    raise ScanError(
        f"gitleaks scan failed (exit {result.returncode}): {result.stderr.strip()}"
    )


class SecretGate:
    """The scanner interface consumed by the worker."""

    def available(self) -> bool:
        return gitleaks_available()

    def scan(self, text: str) -> ScanResult:
        return scan_diff(text)
