"""Shared test fixtures for ghost-backup."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ghostbackup.security import ScanResult


@pytest.fixture
def config_home(tmp_path: Path) -> Path:
    """Provide a temporary config home directory."""
    home = tmp_path / "ghost-home"
    home.mkdir()
    return home


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """Provide an empty directory standing in for a repository."""
    repo = tmp_path / "repo"
    repo.mkdir()
    return repo


@pytest.fixture
def fake_repo() -> MagicMock:
    """A GitRepo double with changes, an identity and a remote."""
    repo = MagicMock()
    repo.is_git_repo.return_value = True
    repo.has_changes.return_value = True
    repo.create_stash.return_value = "a" * 40
    repo.get_diff.return_value = "diff --git a/x b/x\n+hello\n"
    repo.get_user_name.return_value = "Alice Smith"
    repo.get_user_email.return_value = "alice@example.com"
    repo.get_current_branch.return_value = "feature/login"
    repo.get_remote.return_value = "origin"
    repo.push_to_backup_ref.return_value = "refs/backups/Alice_Smith/feature_login"
    return repo


@pytest.fixture
def clean_gate() -> MagicMock:
    """A secret gate that is installed and finds nothing."""
    gate = MagicMock()
    gate.available.return_value = True
    gate.scan.return_value = ScanResult(has_secrets=False, output="no leaks found")
    return gate
