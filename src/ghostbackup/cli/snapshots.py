"""Snapshot commands: backup, list, branches, users, restore, inspect."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ._common import (
    CONFIG_HOME,
    console,
    current_identifier,
    fail,
    git_value,
    open_repo,
)


def register_snapshot_commands(main: click.Group) -> None:
    """Register commands that create, browse and restore snapshots."""

    @main.command()
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    def backup(home: str, path: str):
        """Back up a repository right now.

        Runs one backup cycle without waiting for the interval: snapshot,
        secret scan, push. Exits non-zero if secrets were found or the
        push failed.
        """
        from ..worker import CycleOutcome, RepositoryWorker

        home_path = Path(home).expanduser()
        repo, _ = open_repo(path, home_path)

        console.print(f"\n  Creating backup for [cyan]{repo.path}[/]")
        result = RepositoryWorker(repo.path, config_home=home_path).run_cycle()

        if result.outcome is CycleOutcome.NO_CHANGES:
            console.print("  [green]No uncommitted changes to back up[/]\n")
            return

        if result.outcome is CycleOutcome.PUSHED:
            console.print(Panel(
                f"Hash: [bold]{result.hash}[/]\n"
                f"Ref: [cyan]{result.ref}[/]\n\n"
                f"Restore with: [cyan]ghost-backup restore {result.hash}[/]",
                title="[green]Backup Complete[/]",
                border_style="green",
            ))
            return

        if result.outcome is CycleOutcome.SECRETS_DETECTED:
            console.print(Panel(
                Text(result.message or "gitleaks reported findings"),
                title="[bold red]Secrets detected, backup aborted[/]",
                border_style="red",
            ))
            raise SystemExit(1)

        fail(result.message or result.outcome.value)

    @main.command("list")
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option("--user", default=None, help="List another user's backups.")
    @click.option("--branch", "-b", default=None, help="Branch to list (default: current).")
    @click.option("--all-branches", is_flag=True, help="List backups for every branch.")
    def list_backups(
        home: str, path: str, user: Optional[str], branch: Optional[str], all_branches: bool,
    ):
        """List backups of the current repository."""
        from ..git import GitError
        from ..refs import parse_backup_ref, sanitize_ref_name

        repo, global_config = open_repo(path, Path(home).expanduser())

        identifier = sanitize_ref_name(user) if user else current_identifier(repo, global_config)
        if not all_branches and branch is None:
            branch = git_value(repo.get_current_branch, "current branch")
        remote = git_value(repo.get_remote, "remote")

        scope = "all branches" if all_branches else f"branch {branch}"
        console.print(f"\n  Fetching backups for [bold]{identifier}[/] on {scope}...\n")

        try:
            refs = repo.list_backup_refs(remote, identifier, None if all_branches else branch)
        except GitError as exc:
            fail(f"failed to list backups: {exc}")
            return

        if not refs:
            console.print("  [dim]No backups found.[/]\n")
            return

        table = Table(title="Available Backups")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Hash", style="bold")
        table.add_column("Branch", style="cyan")
        table.add_column("Ref", style="dim")
        for i, ref in enumerate(refs, 1):
            try:
                ref_branch = parse_backup_ref(ref.ref).branch
            except ValueError:
                ref_branch = "?"
            table.add_row(str(i), ref.short_hash, ref_branch, ref.ref)
        console.print(table)
        console.print("\n  Restore with: [cyan]ghost-backup restore <hash>[/]\n")

    @main.command()
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option("--user", default=None, help="List another user's branches.")
    def branches(home: str, path: str, user: Optional[str]):
        """List branches that have backups on the remote."""
        from ..git import GitError
        from ..refs import sanitize_ref_name

        repo, global_config = open_repo(path, Path(home).expanduser())
        remote = git_value(repo.get_remote, "remote")
        identifier = sanitize_ref_name(user) if user else current_identifier(repo, global_config)

        console.print(f"\n  Fetching branches for [bold]{identifier}[/]...\n")
        try:
            names = repo.list_backup_branches_for_user(remote, identifier)
        except GitError as exc:
            fail(f"failed to list branches: {exc}")
            return

        if not names:
            console.print("  [dim]No branches with backups found.[/]\n")
            return

        for i, name in enumerate(names, 1):
            console.print(f"  {i}. [cyan]{name}[/]")
        console.print("\n  View a branch with: [cyan]ghost-backup list --branch <branch>[/]\n")

    @main.command(hidden=True)
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    def users(home: str, path: str):
        """List every user with backups on the remote."""
        from ..git import GitError

        repo, _ = open_repo(path, Path(home).expanduser())
        remote = git_value(repo.get_remote, "remote")

        console.print("\n  Fetching all backup users from the remote...\n")
        try:
            names = repo.list_all_backup_users(remote)
        except GitError as exc:
            fail(f"failed to list backup users: {exc}")
            return

        if not names:
            console.print("  [dim]No backup users found.[/]\n")
            return

        for i, name in enumerate(names, 1):
            console.print(f"  {i}. [bold]{name}[/]")
        console.print("\n  View a user's backups with: [cyan]ghost-backup list --user <name>[/]\n")

    @main.command()
    @click.argument("hash")
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option(
        "--method", "-m", default="apply", type=click.Choice(["apply", "cherry-pick"]),
        help="apply a full snapshot, or cherry-pick a staged-only one.",
    )
    def restore(hash: str, home: str, path: str, method: str):
        """Restore a backup into the working tree.

        Fetches your backup slot for the current branch, then applies the
        snapshot. Snapshots taken with only_staged are plain commits and
        need --method cherry-pick. Nothing is committed.
        """
        from ..git import GitError
        from ..refs import backup_ref

        repo, global_config = open_repo(path, Path(home).expanduser())
        identifier = current_identifier(repo, global_config)
        branch = git_value(repo.get_current_branch, "current branch")
        remote = git_value(repo.get_remote, "remote")

        ref = backup_ref(identifier, branch)
        console.print(f"\n  Restoring backup [bold]{hash}[/]")
        console.print(f"  [dim]Fetching {ref}...[/]")

        try:
            repo.fetch_backup_ref(remote, ref)
            if method == "apply":
                repo.apply_stash(hash)
            else:
                repo.cherry_pick(hash)
        except GitError as exc:
            fail(str(exc))
            return

        if method == "apply":
            console.print("  [green]Backup applied[/]\n")
        else:
            console.print("  [green]Changes cherry-picked (not committed)[/]")
            console.print("  Review the changes and commit when ready.\n")

    @main.command()
    @click.argument("hash")
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option("--diff", "-d", "show_diff", is_flag=True, help="Show the full diff.")
    def inspect(hash: str, home: str, path: str, show_diff: bool):
        """Show what a backup contains.

        Fetches your backup slot for the current branch first if the
        snapshot is not available locally.
        """
        from ..git import GitError
        from ..refs import backup_ref

        repo, global_config = open_repo(path, Path(home).expanduser())

        try:
            if not repo.object_exists(hash):
                identifier = current_identifier(repo, global_config)
                branch = git_value(repo.get_current_branch, "current branch")
                remote = git_value(repo.get_remote, "remote")
                ref = backup_ref(identifier, branch)
                console.print(f"  [dim]Fetching {ref}...[/]")
                repo.fetch_backup_ref(remote, ref)

            info = repo.get_commit_info(hash)
            files = repo.get_files_changed(hash)
            diff = repo.get_diff(hash) if show_diff else ""
        except GitError as exc:
            fail(str(exc))
            return

        console.print(Panel(Text(info.rstrip()), title="Backup Information", border_style="cyan"))
        console.print(Panel(Text(files.rstrip() or "none"), title="Files Changed"))
        if show_diff:
            console.print(diff, markup=False, highlight=False)
        else:
            console.print(f"\n  Full diff: [cyan]ghost-backup inspect {hash} --diff[/]\n")
