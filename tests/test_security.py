"""Tests for the gitleaks secret gate."""

from __future__ import annotations

import subprocess
from unittest.mock import patch

import pytest

from ghostbackup.security import (
    GitleaksUnavailableError,
    ScanError,
    SecretGate,
    gitleaks_available,
    scan_diff,
)


def _done(returncode: int = 0, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)


class TestGitleaksAvailable:
    """Tests for gitleaks detection."""

    @patch("ghostbackup.security.shutil.which", return_value=None)
    def test_not_on_path(self, _which):
        assert gitleaks_available() is False

    @patch("ghostbackup.security._run")
    @patch("ghostbackup.security.shutil.which", return_value="/usr/bin/gitleaks")
    def test_runs_version(self, _which, mock_run):
        mock_run.return_value = _done(stdout="8.18.0")
        assert gitleaks_available() is True
        assert mock_run.call_args[0][0] == ["gitleaks", "version"]

    @patch("ghostbackup.security._run")
    @patch("ghostbackup.security.shutil.which", return_value="/usr/bin/gitleaks")
    def test_broken_binary(self, _which, mock_run):
        mock_run.side_effect = OSError("exec format error")
        assert gitleaks_available() is False


class TestScanDiff:
    """Tests for scanning snapshot diffs."""

    @patch("ghostbackup.security.gitleaks_available", return_value=False)
    def test_unavailable_raises(self, _avail):
        with pytest.raises(GitleaksUnavailableError):
            scan_diff("diff")

    @patch("ghostbackup.security._run")
    @patch("ghostbackup.security.gitleaks_available", return_value=True)
    def test_clean(self, _avail, mock_run):
        mock_run.return_value = _done(0, stderr="no leaks found")
        result = scan_diff("+hello\n")
        assert result.has_secrets is False
        assert mock_run.call_args[1]["input"] == "+hello\n"
        assert mock_run.call_args[0][0][:2] == ["gitleaks", "stdin"]
        assert "--redact" in mock_run.call_args[0][0]

    @patch("ghostbackup.security._run")
    @patch("ghostbackup.security.gitleaks_available", return_value=True)
    def test_secrets_found(self, _avail, mock_run):
        mock_run.return_value = _done(1, stdout="Finding: REDACTED\n", stderr="leaks found: 1")
        result = scan_diff("+AWS_SECRET=...\n")
        assert result.has_secrets is True
        assert "REDACTED" in result.output
        assert "leaks found: 1" in result.output

    @patch("ghostbackup.security._run")
    @patch("ghostbackup.security.gitleaks_available", return_value=True)
    def test_other_exit_code_is_error(self, _avail, mock_run):
        mock_run.return_value = _done(2, stderr="bad flag")
        with pytest.raises(ScanError, match="exit 2"):
            scan_diff("x")

    @patch("ghostbackup.security._run")
    @patch("ghostbackup.security.gitleaks_available", return_value=True)
    def test_timeout_is_error(self, _avail, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["gitleaks"], 60)
        with pytest.raises(ScanError, match="timed out"):
            scan_diff("x")

    def test_unavailable_is_a_scan_error(self):
        assert issubclass(GitleaksUnavailableError, ScanError)


class TestSecretGate:
    """SecretGate delegates to the module functions."""

    @patch("ghostbackup.security.gitleaks_available", return_value=True)
    def test_available(self, _avail):
        assert SecretGate().available() is True

    @patch("ghostbackup.security.scan_diff")
    def test_scan(self, mock_scan):
        SecretGate().scan("text")
        mock_scan.assert_called_once_with("text")
