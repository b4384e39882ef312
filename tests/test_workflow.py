"""Tests for the prune workflow generator."""

from __future__ import annotations

import pytest
import yaml

from ghostbackup.workflow import (
    DEFAULT_CRON,
    DEFAULT_RETENTION_DAYS,
    WORKFLOW_FILE,
    describe_cron,
    generate_workflow_yaml,
    write_workflow,
)


class TestDescribeCron:
    """Tests for cron descriptions."""

    @pytest.mark.parametrize("cron,expected", [
        ("0 2 * * 0", "Weekly at 2am on Sunday"),
        ("0 2 * * *", "Daily at 2am"),
        ("0 */6 * * *", "Every 6 hours"),
        ("0 0 1 * *", "Monthly on the 1st at midnight"),
        ("5 4 * * 3", "Custom schedule"),
    ])
    def test_known_and_custom(self, cron, expected):
        assert describe_cron(cron) == expected


class TestGenerateWorkflow:
    """Tests for the rendered workflow."""

    def test_is_valid_yaml(self):
        data = yaml.safe_load(generate_workflow_yaml())
        assert data["name"] == "Prune Ghost Backup Refs"
        assert "prune-backups" in data["jobs"]

    def test_schedule_and_retention(self):
        content = generate_workflow_yaml("0 2 * * *", 14)
        assert "cron: '0 2 * * *'" in content
        assert "# Daily at 2am" in content
        assert "default: '14'" in content
        assert "${{ inputs.retention_days || 14 }}" in content

    def test_defaults(self):
        content = generate_workflow_yaml()
        assert f"cron: '{DEFAULT_CRON}'" in content
        assert f"default: '{DEFAULT_RETENTION_DAYS}'" in content

    def test_fetches_backup_namespace(self):
        assert "+refs/backups/*:refs/backups/*" in generate_workflow_yaml()

    @pytest.mark.parametrize("days", [0, -3])
    def test_retention_must_be_positive(self, days):
        with pytest.raises(ValueError):
            generate_workflow_yaml(retention_days=days)


class TestWriteWorkflow:
    """Tests for writing the workflow into a repository."""

    def test_writes_into_github_workflows(self, repo_dir):
        path = write_workflow(repo_dir, retention_days=7)
        assert path == repo_dir / ".github" / "workflows" / WORKFLOW_FILE
        assert "default: '7'" in path.read_text()

    def test_overwrites(self, repo_dir):
        write_workflow(repo_dir, retention_days=7)
        path = write_workflow(repo_dir, retention_days=9)
        assert "default: '9'" in path.read_text()
