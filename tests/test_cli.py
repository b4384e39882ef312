"""Tests for the Click CLI.

Git, systemd and the backup cycle are mocked; config files are written
to a temporary config home.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from ghostbackup.cli import main
from ghostbackup.cli.config_cmd import mask_token
from ghostbackup.config import (
    get_local_config_path,
    load_global_config,
    load_local_config,
    load_registry,
    save_global_config,
    save_registry,
)
from ghostbackup.doctor import Check, DiagnosticReport
from ghostbackup.models import GlobalConfig, Registry
from ghostbackup.worker import CycleOutcome, CycleResult
from ghostbackup.workflow import WORKFLOW_FILE


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def opened_repo(repo_dir):
    """Patch the CLI's GitRepo so any path opens as ``repo_dir``."""
    repo = MagicMock()
    repo.path = repo_dir
    repo.is_git_repo.return_value = True
    with patch("ghostbackup.cli._common.GitRepo", return_value=repo):
        yield repo


class TestMain:
    """Tests for the top-level group."""

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for name in ("init", "uninstall", "backup", "list", "restore", "check", "config", "service"):
            assert name in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestInit:
    """Tests for ghost-backup init."""

    def test_writes_config_and_registry(self, runner, opened_repo, repo_dir, config_home):
        result = runner.invoke(main, [
            "init", "--home", str(config_home), "--path", str(repo_dir),
            "--interval", "300", "--only-staged", "--no-service",
        ])
        assert result.exit_code == 0, result.output

        cfg = load_local_config(repo_dir)
        assert cfg.interval == 300
        assert cfg.only_staged is True
        assert cfg.scan_secrets is True
        assert load_registry(config_home).repositories == [str(repo_dir)]
        assert "credentials not configured" in result.output

    def test_init_twice_keeps_one_entry(self, runner, opened_repo, repo_dir, config_home):
        args = ["init", "--home", str(config_home), "--path", str(repo_dir), "--no-service"]
        runner.invoke(main, args)
        result = runner.invoke(main, args)
        assert result.exit_code == 0
        assert "already registered" in result.output
        assert load_registry(config_home).repositories == [str(repo_dir)]

    def test_rejects_zero_interval(self, runner, opened_repo, repo_dir, config_home):
        result = runner.invoke(main, [
            "init", "--home", str(config_home), "--path", str(repo_dir),
            "--interval", "0", "--no-service",
        ])
        assert result.exit_code != 0
        assert not get_local_config_path(repo_dir).exists()

    def test_not_a_repository(self, runner, opened_repo, repo_dir, config_home):
        opened_repo.is_git_repo.return_value = False
        result = runner.invoke(main, [
            "init", "--home", str(config_home), "--path", str(repo_dir), "--no-service",
        ])
        assert result.exit_code == 1
        assert "not a git repository" in result.output

    @patch("ghostbackup.cli.setup.reload_running_service", return_value=True)
    def test_reloads_running_service(self, mock_reload, runner, opened_repo, repo_dir, config_home):
        save_global_config(GlobalConfig(git_token="ghp_abcdefgh1234"), config_home)
        result = runner.invoke(main, [
            "init", "--home", str(config_home), "--path", str(repo_dir),
        ])
        assert result.exit_code == 0, result.output
        assert "Service reloaded" in result.output
        assert "credentials not configured" not in result.output
        mock_reload.assert_called_once()


class TestUninstall:
    """Tests for ghost-backup uninstall."""

    def test_removes_registration(self, runner, repo_dir, config_home):
        save_registry(Registry(repositories=[str(repo_dir.resolve()), "/src/other"]), config_home)
        get_local_config_path(repo_dir).write_text("{}")

        result = runner.invoke(main, [
            "uninstall", "--home", str(config_home), "--path", str(repo_dir), "--no-service",
        ])

        assert result.exit_code == 0, result.output
        assert load_registry(config_home).repositories == ["/src/other"]
        assert not get_local_config_path(repo_dir).exists()

    def test_not_registered(self, runner, repo_dir, config_home):
        result = runner.invoke(main, [
            "uninstall", "--home", str(config_home), "--path", str(repo_dir), "--no-service",
        ])
        assert result.exit_code == 1
        assert "not registered" in result.output


class TestConfigCommands:
    """Tests for credential management."""

    def test_set_and_get_token(self, runner, config_home):
        result = runner.invoke(main, [
            "config", "set-token", "--home", str(config_home),
            "-u", "alice", "-t", "ghp_1234567890abcd",
        ])
        assert result.exit_code == 0, result.output
        cfg = load_global_config(config_home)
        assert cfg.git_user == "alice"
        assert cfg.git_token == "ghp_1234567890abcd"

        result = runner.invoke(main, ["config", "get-token", "--home", str(config_home)])
        assert "Git username: alice" in result.output
        assert "ghp_" in result.output
        assert "ghp_1234567890abcd" not in result.output

    def test_set_token_prompts(self, runner, config_home):
        result = runner.invoke(
            main, ["config", "set-token", "--home", str(config_home)],
            input="bob\nsecret-token-value\n",
        )
        assert result.exit_code == 0, result.output
        assert load_global_config(config_home).git_user == "bob"

    def test_empty_token_rejected(self, runner, config_home):
        result = runner.invoke(main, [
            "config", "set-token", "--home", str(config_home), "-u", "alice", "-t", "  ",
        ])
        assert result.exit_code == 1
        assert "token cannot be empty" in result.output

    def test_get_token_when_unset(self, runner, config_home):
        result = runner.invoke(main, ["config", "get-token", "--home", str(config_home)])
        assert result.exit_code == 0
        assert "No git credentials configured" in result.output

    def test_clear_token(self, runner, config_home):
        save_global_config(GlobalConfig(git_user="alice", git_token="ghp_x"), config_home)
        result = runner.invoke(main, ["config", "clear-token", "--home", str(config_home), "--yes"])
        assert result.exit_code == 0
        cfg = load_global_config(config_home)
        assert cfg.git_user == ""
        assert cfg.git_token == ""

    def test_clear_token_cancelled(self, runner, config_home):
        save_global_config(GlobalConfig(git_token="ghp_x"), config_home)
        result = runner.invoke(
            main, ["config", "clear-token", "--home", str(config_home)], input="n\n",
        )
        assert "Cancelled" in result.output
        assert load_global_config(config_home).git_token == "ghp_x"

    @pytest.mark.parametrize("token,expected", [
        ("", ""),
        ("abcd", "****"),
        ("12345678", "********"),
        ("ghp_1234567890", "ghp_******7890"),
    ])
    def test_mask_token(self, token, expected):
        assert mask_token(token) == expected


class TestBackup:
    """Tests for ghost-backup backup."""

    def _invoke(self, runner, repo_dir, config_home):
        return runner.invoke(main, [
            "backup", "--home", str(config_home), "--path", str(repo_dir),
        ])

    @patch("ghostbackup.worker.RepositoryWorker.run_cycle")
    def test_pushed(self, mock_cycle, runner, opened_repo, repo_dir, config_home):
        mock_cycle.return_value = CycleResult(
            CycleOutcome.PUSHED, hash="a" * 40, ref="refs/backups/alice/main",
        )
        result = self._invoke(runner, repo_dir, config_home)
        assert result.exit_code == 0, result.output
        assert "Backup Complete" in result.output
        assert "refs/backups/alice/main" in result.output

    @patch("ghostbackup.worker.RepositoryWorker.run_cycle")
    def test_no_changes(self, mock_cycle, runner, opened_repo, repo_dir, config_home):
        mock_cycle.return_value = CycleResult(CycleOutcome.NO_CHANGES)
        result = self._invoke(runner, repo_dir, config_home)
        assert result.exit_code == 0
        assert "No uncommitted changes" in result.output

    @patch("ghostbackup.worker.RepositoryWorker.run_cycle")
    def test_secrets_abort(self, mock_cycle, runner, opened_repo, repo_dir, config_home):
        mock_cycle.return_value = CycleResult(
            CycleOutcome.SECRETS_DETECTED, message="Finding: [REDACTED]",
        )
        result = self._invoke(runner, repo_dir, config_home)
        assert result.exit_code == 1
        assert "Secrets detected" in result.output
        assert "[REDACTED]" in result.output

    @patch("ghostbackup.worker.RepositoryWorker.run_cycle")
    def test_push_failure(self, mock_cycle, runner, opened_repo, repo_dir, config_home):
        mock_cycle.return_value = CycleResult(CycleOutcome.FAILED, message="push rejected")
        result = self._invoke(runner, repo_dir, config_home)
        assert result.exit_code == 1
        assert "push rejected" in result.output


class TestCheck:
    """Tests for ghost-backup check."""

    @patch("ghostbackup.doctor.run_diagnostics")
    def test_json_output(self, mock_diag, runner, repo_dir, config_home):
        mock_diag.return_value = DiagnosticReport(
            checks=[Check("repo:git", "Git repository", True)], repo_path=str(repo_dir),
        )
        result = runner.invoke(main, [
            "check", "--home", str(config_home), "--path", str(repo_dir),
            "--skip-service", "--json-out",
        ])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ok"] is True
        assert mock_diag.call_args.kwargs["check_service"] is False

    @patch("ghostbackup.doctor.run_diagnostics")
    def test_failure_exits_nonzero(self, mock_diag, runner, repo_dir, config_home):
        mock_diag.return_value = DiagnosticReport(checks=[
            Check("git:remote", "Remote configured", False, fix="git remote add origin <url>"),
        ])
        result = runner.invoke(main, ["check", "--home", str(config_home), "--path", str(repo_dir)])
        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "problem(s) found" in result.output


class TestWorkflow:
    """Tests for ghost-backup workflow."""

    def test_writes_file(self, runner, repo_dir):
        result = runner.invoke(main, ["workflow", "--path", str(repo_dir), "-r", "14"])
        assert result.exit_code == 0, result.output
        written = repo_dir / ".github" / "workflows" / WORKFLOW_FILE
        assert written.exists()
        assert "default: '14'" in written.read_text()

    def test_invalid_retention(self, runner, repo_dir):
        result = runner.invoke(main, ["workflow", "--path", str(repo_dir), "-r", "0"])
        assert result.exit_code == 1


class TestServiceCommands:
    """Tests for the service group."""

    @patch("ghostbackup.systemd.systemd_available", return_value=False)
    def test_install_requires_systemd(self, _avail, runner):
        result = runner.invoke(main, ["service", "install"])
        assert result.exit_code == 1
        assert "systemd user session not available" in result.output

    @patch("ghostbackup.systemd.start_service")
    @patch("ghostbackup.systemd.systemd_available", return_value=True)
    def test_start(self, _avail, mock_start, runner):
        result = runner.invoke(main, ["service", "start"])
        assert result.exit_code == 0, result.output
        assert "Service started" in result.output
        mock_start.assert_called_once()

    @patch("ghostbackup.systemd.install_service")
    @patch("ghostbackup.systemd.systemd_available", return_value=True)
    def test_install_with_home_sets_environment(self, _avail, mock_install, runner, config_home):
        mock_install.return_value = {"installed": True, "enabled": True, "started": True}
        result = runner.invoke(main, ["service", "install", "--home", str(config_home)])
        assert result.exit_code == 0, result.output
        env = mock_install.call_args.kwargs["extra_env"]
        assert env == {"GHOSTBACKUP_HOME": str(config_home.resolve())}

    @patch("ghostbackup.systemd.uninstall_service")
    def test_uninstall_reports_only_what_succeeded(self, mock_uninstall, runner):
        mock_uninstall.return_value = {"stopped": False, "disabled": False, "removed": True}
        result = runner.invoke(main, ["service", "uninstall"])
        assert result.exit_code == 0
        assert "Service stopped" not in result.output
        assert "Service disabled" not in result.output
        assert "Unit file removed" in result.output
