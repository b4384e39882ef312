"""
Pydantic models for ghost-backup configuration and backup addressing.

Local config lives inside each repository, the global config and the
registry live in the config home. Backup refs are what the remote
hands back when listing.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

DEFAULT_INTERVAL = 60
DEFAULT_SCAN_SECRETS = True
DEFAULT_ONLY_STAGED = False


class LocalConfig(BaseModel):
    """Per-repository backup settings.

    Attributes:
        interval: Seconds between backup cycles.
        scan_secrets: Run gitleaks over the snapshot before pushing.
        only_staged: Snapshot the index only, ignoring unstaged edits.
    """

    interval: int = Field(default=DEFAULT_INTERVAL, gt=0)
    scan_secrets: bool = DEFAULT_SCAN_SECRETS
    only_staged: bool = DEFAULT_ONLY_STAGED


class GlobalConfig(BaseModel):
    """User-wide settings shared by every monitored repository.

    Attributes:
        git_user: Identifier override for backup refs.
        git_token: Personal access token for non-interactive pushes.
    """

    git_user: str = ""
    git_token: str = ""


class Registry(BaseModel):
    """The set of repositories the service monitors."""

    repositories: list[str] = Field(default_factory=list)

    def add(self, path: str) -> bool:
        """Add a repository path.

        Returns:
            bool: False if the path was already registered.
        """
        if path in self.repositories:
            return False
        self.repositories.append(path)
        return True

    def remove(self, path: str) -> None:
        """Remove a repository path.

        Raises:
            KeyError: If the path is not registered.
        """
        if path not in self.repositories:
            raise KeyError(path)
        self.repositories.remove(path)

    def __contains__(self, path: object) -> bool:
        return path in self.repositories


class BackupRef(BaseModel):
    """One ``<hash> <ref>`` line from a remote listing."""

    hash: str
    ref: str

    @property
    def short_hash(self) -> str:
        return self.hash[:12]


class BackupLocation(BaseModel):
    """A decoded backup slot: whose backup, for which branch."""

    user: str
    branch: str
    hash: str = ""


class WorkerState(str, Enum):
    """Lifecycle of a repository worker."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class WorkerStatus(BaseModel):
    """Read-only view of a worker owned by the manager."""

    repo_path: str
    running: bool = True
    state: WorkerState = WorkerState.IDLE
    interval: int = DEFAULT_INTERVAL

    def __str__(self) -> str:
        return f"{self.repo_path}: {'running' if self.running else 'stopped'}"
