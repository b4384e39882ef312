"""
Thin git wrapper used by the backup worker and the CLI.

Every operation shells out to ``git`` in the repository directory and
raises GitError on failure. Nothing here retries: callers decide what a
failure means for them.

Snapshots are created with ``git stash create``, which writes a stash
commit without touching the working tree or the stash list.
"""

from __future__ import annotations

import base64
import logging
import subprocess
from pathlib import Path
from typing import Optional

from .models import BackupRef, GlobalConfig
from .refs import (
    BACKUP_NAMESPACE,
    backup_ref,
    backup_ref_pattern,
    parse_backup_ref,
    parse_ls_remote,
)

logger = logging.getLogger("ghostbackup.git")

GIT_TIMEOUT = 30
NETWORK_TIMEOUT = 300


class GitError(Exception):
    """Raised when a git command fails."""


class NoChangesError(GitError):
    """Raised when there is nothing to snapshot."""


def _run(
    cmd: list[str],
    cwd: Optional[Path] = None,
    input: Optional[str] = None,
    timeout: int = GIT_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Run a command and capture output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        input: Text fed to stdin.
        timeout: Seconds before the command is killed.

    Returns:
        CompletedProcess with stdout/stderr.
    """
    return subprocess.run(
        cmd, cwd=cwd, input=input, capture_output=True, text=True, timeout=timeout,
    )


class GitRepo:
    """A git working tree on disk.

    Args:
        path: Repository root.
        credentials: Global config carrying the token for network commands.
    """

    def __init__(self, path: str | Path, credentials: Optional[GlobalConfig] = None):
        self.path = Path(path)
        self.credentials = credentials

    def _auth_args(self) -> list[str]:
        if not self.credentials or not self.credentials.git_token:
            return []
        user = self.credentials.git_user or "x-access-token"
        basic = base64.b64encode(
            f"{user}:{self.credentials.git_token}".encode("utf-8")
        ).decode("ascii")
        return ["-c", f"http.extraHeader=Authorization: Basic {basic}"]

    def _git(self, *args: str, network: bool = False, what: str = "") -> str:
        cmd = ["git"]
        if network:
            cmd.extend(self._auth_args())
        cmd.extend(args)
        try:
            result = _run(
                cmd, cwd=self.path, timeout=NETWORK_TIMEOUT if network else GIT_TIMEOUT,
            )
        except FileNotFoundError as exc:
            raise GitError("git executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise GitError(f"git {args[0]} timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise GitError(f"Failed to run git {args[0]}: {exc}") from exc

        if result.returncode != 0:
            label = what or f"git {args[0]}"
            raise GitError(f"Failed to {label}: {result.stderr.strip()}")
        return result.stdout

    # -- repository state -------------------------------------------------

    def is_git_repo(self) -> bool:
        if not self.path.is_dir():
            return False
        try:
            self._git("rev-parse", "--git-dir")
        except GitError:
            return False
        return True

    def has_changes(self) -> bool:
        """Whether there are staged, unstaged or untracked changes."""
        out = self._git("status", "--porcelain", what="check for changes")
        return bool(out.strip())

    def get_user_email(self) -> str:
        return self._git("config", "user.email", what="get user email").strip()

    def get_user_name(self) -> str:
        return self._git("config", "user.name", what="get user name").strip()

    def get_current_branch(self) -> str:
        return self._git(
            "rev-parse", "--abbrev-ref", "HEAD", what="get current branch",
        ).strip()

    def get_remote(self) -> str:
        """Return the remote to push backups to, preferring ``origin``.

        Raises:
            GitError: If no remote is configured.
        """
        remotes = self._git("remote", what="get remote").split()
        if not remotes:
            raise GitError("No remotes configured")
        if "origin" in remotes:
            return "origin"
        return remotes[0]

    def object_exists(self, hash: str) -> bool:
        try:
            self._git("cat-file", "-e", f"{hash}^{{commit}}")
        except GitError:
            return False
        return True

    # -- snapshots --------------------------------------------------------

    def create_stash(self, only_staged: bool = False) -> str:
        """Snapshot uncommitted work without touching the working tree.

        Args:
            only_staged: Snapshot the index only.

        Returns:
            str: Hash of the snapshot commit.

        Raises:
            NoChangesError: If there was nothing to capture.
        """
        if only_staged:
            return self._create_index_snapshot()

        hash = self._git("stash", "create", what="create stash").strip()
        if not hash:
            raise NoChangesError("No changes to stash")
        return hash

    def _create_index_snapshot(self) -> str:
        result = _run(["git", "diff", "--cached", "--quiet"], cwd=self.path)
        if result.returncode == 0:
            raise NoChangesError("No staged changes to snapshot")

        tree = self._git("write-tree", what="write index tree").strip()
        return self._git(
            "commit-tree", tree, "-p", "HEAD", "-m", "ghost-backup: staged changes",
            what="create index snapshot",
        ).strip()

    def get_diff(self, hash: str) -> str:
        return self._git("show", hash, "-p", what="get diff")

    def get_commit_info(self, hash: str) -> str:
        return self._git(
            "show", "--no-patch", "--format=Hash: %H%nAuthor: %an <%ae>%nDate: %ad%n%n%s%n",
            hash, what="get commit info",
        )

    def get_files_changed(self, hash: str) -> str:
        return self._git("show", "--stat", "--format=", hash, what="get files changed")

    # -- remote backup refs -----------------------------------------------

    def push_to_backup_ref(self, hash: str, identifier: str, branch: str, remote: str) -> str:
        """Point the user's slot for ``branch`` at ``hash`` on the remote.

        Returns:
            str: The ref that was written.
        """
        ref = backup_ref(identifier, branch)
        self._git("push", "--force", remote, f"{hash}:{ref}", network=True,
                  what="push to backup ref")
        return ref

    def fetch_backup_ref(self, remote: str, ref: str) -> None:
        self._git("fetch", remote, f"+{ref}:{ref}", network=True, what="fetch backup ref")

    def _ls_remote(self, remote: str, pattern: str) -> list[BackupRef]:
        out = self._git("ls-remote", remote, pattern, network=True,
                        what="list backup refs")
        return parse_ls_remote(out)

    def list_backup_refs(
        self, remote: str, identifier: str, branch: Optional[str] = None,
    ) -> list[BackupRef]:
        """List a user's backups, for one branch or all of them."""
        return self._ls_remote(remote, backup_ref_pattern(identifier, branch))

    def list_backup_branches_for_user(self, remote: str, identifier: str) -> list[str]:
        branches = set()
        for ref in self.list_backup_refs(remote, identifier):
            try:
                branches.add(parse_backup_ref(ref.ref).branch)
            except ValueError:
                logger.debug("Skipping unexpected ref %s", ref.ref)
        return sorted(branches)

    def list_all_backup_users(self, remote: str) -> list[str]:
        users = set()
        for ref in self._ls_remote(remote, f"{BACKUP_NAMESPACE}/*"):
            try:
                users.add(parse_backup_ref(ref.ref).user)
            except ValueError:
                logger.debug("Skipping unexpected ref %s", ref.ref)
        return sorted(users)

    # -- restore ----------------------------------------------------------

    def apply_stash(self, hash: str) -> None:
        self._git("stash", "apply", hash, what="apply stash")

    def cherry_pick(self, hash: str) -> None:
        self._git("cherry-pick", "--no-commit", hash, what="cherry-pick")
