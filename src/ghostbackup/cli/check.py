"""Check command: diagnose a repository's backup setup."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from ._common import CONFIG_HOME, console


def register_check_commands(main: click.Group) -> None:
    """Register the check command."""

    @main.command()
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option("--skip-service", is_flag=True, help="Skip the systemd service check.")
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def check(home: str, path: str, skip_service: bool, json_out: bool):
        """Check whether a repository is set up to be backed up.

        Verifies the repository, its config, the registry, git identity
        and remote, the background service and gitleaks. Exits non-zero
        if anything would prevent backups.
        """
        from ..doctor import run_diagnostics

        repo_path = Path(path).expanduser().resolve()
        report = run_diagnostics(
            repo_path, home=Path(home).expanduser(), check_service=not skip_service,
        )

        if json_out:
            click.echo(json.dumps(report.to_dict(), indent=2))
            if not report.ok:
                sys.exit(1)
            return

        table = Table(title=f"Ghost Backup Check: {repo_path}")
        table.add_column("", width=4)
        table.add_column("Check", style="bold")
        table.add_column("Detail")

        for c in report.checks:
            if c.passed:
                icon = "[green]OK[/]"
            elif c.warning:
                icon = "[yellow]WARN[/]"
            else:
                icon = "[red]FAIL[/]"
            detail = escape(c.detail)
            if not c.passed and c.fix:
                detail += f"\n[dim]fix: {escape(c.fix)}[/]"
            table.add_row(icon, c.description, detail)

        console.print()
        console.print(table)
        console.print()

        if report.ok:
            summary = "[bold green]Ready to back up[/]"
            if report.warnings:
                summary += f" [yellow]({len(report.warnings)} warning(s))[/]"
            console.print(f"  {summary}\n")
            return

        console.print(f"  [bold red]{len(report.errors)} problem(s) found[/]\n")
        sys.exit(1)
