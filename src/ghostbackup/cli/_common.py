"""Shared utilities for all CLI command modules.

Provides the Rich console instance and helpers for opening the
repository a command runs against and resolving whose backups it
works with.
"""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .. import CONFIG_HOME
from ..config import load_global_config_or_default
from ..git import GitError, GitRepo
from ..identity import IdentityError, resolve_identity
from ..models import GlobalConfig

console = Console()

__all__ = [
    "CONFIG_HOME",
    "console",
    "fail",
    "open_repo",
    "current_identifier",
    "git_value",
    "reload_running_service",
]


def fail(message: str) -> None:
    """Print an error in red and exit non-zero."""
    console.print(f"[bold red]Error:[/] {escape(message)}")
    sys.exit(1)


def open_repo(path: str, home: Path) -> tuple[GitRepo, GlobalConfig]:
    """Open the git repository at ``path`` with the configured credentials.

    Exits with an error if ``path`` is not a git repository.

    Args:
        path: Repository path, relative paths resolved against cwd.
        home: Config home directory.

    Returns:
        tuple: The repository wrapper and the global config it uses.
    """
    abs_path = Path(path).expanduser().resolve()
    global_config = load_global_config_or_default(home)
    repo = GitRepo(abs_path, credentials=global_config)
    if not repo.is_git_repo():
        fail(f"not a git repository: {abs_path}")
    return repo, global_config


def current_identifier(repo: GitRepo, global_config: GlobalConfig) -> str:
    try:
        return resolve_identity(repo, global_config).identifier
    except IdentityError as exc:
        fail(str(exc))
        raise


def git_value(getter, what: str) -> str:
    """Call a GitRepo getter, exiting with ``what`` in the message on failure."""
    try:
        return getter()
    except GitError as exc:
        fail(f"failed to get {what}: {exc}")
        raise


def reload_running_service(home: Path) -> bool:
    """Ask a running service to re-read the registry.

    Tries the PID file first, then systemd.

    Returns:
        bool: True if a running service was told to reload.
    """
    from ..daemon import signal_reload
    from ..systemd import ServiceError, reload_service, service_status, systemd_available

    if signal_reload(home):
        return True
    if systemd_available() and service_status().active:
        try:
            reload_service()
            return True
        except ServiceError as exc:
            console.print(f"[yellow]Warning:[/] {exc}")
    return False
