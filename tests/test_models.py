"""Tests for ghost-backup data models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ghostbackup.models import (
    DEFAULT_INTERVAL,
    BackupRef,
    GlobalConfig,
    LocalConfig,
    Registry,
    WorkerState,
    WorkerStatus,
)


class TestLocalConfig:
    """Tests for per-repository settings."""

    def test_defaults(self):
        cfg = LocalConfig()
        assert cfg.interval == DEFAULT_INTERVAL
        assert cfg.scan_secrets is True
        assert cfg.only_staged is False

    @pytest.mark.parametrize("interval", [0, -5])
    def test_interval_must_be_positive(self, interval):
        with pytest.raises(ValidationError):
            LocalConfig(interval=interval)

    def test_partial_json_keeps_defaults(self):
        cfg = LocalConfig.model_validate_json('{"interval": 10}')
        assert cfg.interval == 10
        assert cfg.scan_secrets is True


class TestGlobalConfig:
    """Tests for user-wide settings."""

    def test_empty_by_default(self):
        cfg = GlobalConfig()
        assert cfg.git_user == ""
        assert cfg.git_token == ""


class TestRegistry:
    """Tests for the monitored repository set."""

    def test_add(self):
        reg = Registry()
        assert reg.add("/src/a") is True
        assert "/src/a" in reg

    def test_add_duplicate(self):
        reg = Registry(repositories=["/src/a"])
        assert reg.add("/src/a") is False
        assert reg.repositories == ["/src/a"]

    def test_remove(self):
        reg = Registry(repositories=["/src/a", "/src/b"])
        reg.remove("/src/a")
        assert reg.repositories == ["/src/b"]

    def test_remove_missing_raises(self):
        with pytest.raises(KeyError):
            Registry().remove("/src/missing")

    def test_json_shape(self):
        reg = Registry(repositories=["/src/a"])
        assert reg.model_dump() == {"repositories": ["/src/a"]}


class TestBackupRef:
    """Tests for listed backup refs."""

    def test_short_hash(self):
        ref = BackupRef(hash="0123456789abcdef0123", ref="refs/backups/alice/main")
        assert ref.short_hash == "0123456789ab"


class TestWorkerStatus:
    """Tests for the worker status view."""

    def test_defaults(self):
        status = WorkerStatus(repo_path="/src/a")
        assert status.running is True
        assert status.state == WorkerState.IDLE

    def test_str(self):
        assert str(WorkerStatus(repo_path="/src/a")) == "/src/a: running"
        assert str(WorkerStatus(repo_path="/src/a", running=False)) == "/src/a: stopped"

    def test_json_dump_uses_values(self):
        data = WorkerStatus(repo_path="/src/a", state=WorkerState.STOPPING).model_dump(mode="json")
        assert data["state"] == "stopping"
