"""Workflow command: install the GitHub Actions prune workflow."""

from __future__ import annotations

from pathlib import Path

import click

from ._common import console, fail


def register_workflow_commands(main: click.Group) -> None:
    """Register the workflow command."""
    from ..workflow import DEFAULT_CRON, DEFAULT_RETENTION_DAYS

    @main.command()
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option("--cron", default=DEFAULT_CRON, show_default=True, help="Cron schedule.")
    @click.option(
        "--retention", "-r", default=DEFAULT_RETENTION_DAYS, type=int, show_default=True,
        help="Days to keep backup refs.",
    )
    def workflow(path: str, cron: str, retention: int):
        """Add a GitHub Actions workflow that prunes old backups.

        Backup slots are overwritten in place, but slots for abandoned
        branches never go away on their own. The workflow deletes any
        backup ref older than the retention period.

        Examples:

            ghost-backup workflow

            ghost-backup workflow --cron "0 2 * * *" --retention 14
        """
        from ..workflow import describe_cron, write_workflow

        repo_path = Path(path).expanduser().resolve()
        try:
            written = write_workflow(repo_path, cron, retention)
        except ValueError as exc:
            fail(str(exc))
            return
        except OSError as exc:
            fail(f"failed to write workflow: {exc}")
            return

        console.print(f"\n  [green]Workflow written to[/] {written}")
        console.print(f"  Schedule: {describe_cron(cron)} ([dim]{cron}[/])")
        console.print(f"  Retention: {retention} days")
        console.print("\n  Commit and push it to enable scheduled cleanup.\n")
