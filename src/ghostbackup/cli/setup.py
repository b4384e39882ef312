"""Setup commands: init, uninstall."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.panel import Panel

from ..models import DEFAULT_INTERVAL, DEFAULT_ONLY_STAGED, DEFAULT_SCAN_SECRETS
from ._common import CONFIG_HOME, console, fail, open_repo, reload_running_service


def _notify_service(home: Path) -> None:
    """Make sure a service is running with the current registry."""
    from ..systemd import ServiceError, ensure_service_running, systemd_available

    if reload_running_service(home):
        console.print("  [green]Service reloaded[/]")
        return

    if not systemd_available():
        console.print(
            "  [yellow]No systemd user session.[/] "
            "Run [cyan]ghost-backup service run[/] to start backups."
        )
        return

    console.print("  [dim]Ensuring service is installed and running...[/]")
    try:
        status = ensure_service_running()
    except ServiceError as exc:
        console.print(f"  [yellow]Warning:[/] {exc}")
        console.print("  You may need to start the service manually.")
        return
    console.print(f"  [green]Service {status.label.lower()}[/]")


def register_setup_commands(main: click.Group) -> None:
    """Register the init and uninstall commands."""

    @main.command()
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option(
        "--interval", "-i", default=DEFAULT_INTERVAL, type=click.IntRange(min=1),
        help="Seconds between backups.",
    )
    @click.option(
        "--scan-secrets/--no-scan-secrets", default=DEFAULT_SCAN_SECRETS,
        help="Scan snapshots with gitleaks before pushing.",
    )
    @click.option(
        "--only-staged", "-o", is_flag=True, default=DEFAULT_ONLY_STAGED,
        help="Back up staged changes only.",
    )
    @click.option("--no-service", is_flag=True, help="Do not install or reload the service.")
    def init(
        home: str, path: str, interval: int, scan_secrets: bool,
        only_staged: bool, no_service: bool,
    ):
        """Start backing up a repository.

        Writes the repository's .ghost-backup.json, adds it to the
        registry and makes sure the background service picks it up.

        Examples:

            ghost-backup init

            ghost-backup init --path ~/src/project --interval 300 --only-staged
        """
        from ..config import (
            ConfigError,
            credentials_configured,
            get_log_file_path,
            load_registry,
            save_local_config,
            save_registry,
        )
        from ..models import LocalConfig

        home_path = Path(home).expanduser()
        repo, _ = open_repo(path, home_path)
        repo_path = str(repo.path)

        console.print(f"\n  Initializing ghost-backup for [cyan]{repo_path}[/]")

        local_config = LocalConfig(
            interval=interval, scan_secrets=scan_secrets, only_staged=only_staged,
        )
        config_path = save_local_config(repo_path, local_config)
        console.print(f"  [green]Created local config[/] {config_path.name}")
        console.print(f"    interval: {interval}s")
        console.print(f"    scan secrets: {scan_secrets}")
        console.print(f"    only staged: {only_staged}")

        try:
            registry = load_registry(home_path)
        except ConfigError as exc:
            fail(str(exc))
            return
        if registry.add(repo_path):
            save_registry(registry, home_path)
            console.print("  [green]Added repository to the registry[/]")
        else:
            console.print("  [dim]Repository already registered[/]")

        if not credentials_configured(home_path):
            console.print(Panel(
                "The service pushes without a terminal. Configure:\n"
                "  Username - identifies your backups in the team\n"
                "  Token - required for non-interactive git push",
                title="[yellow]Git credentials not configured[/]",
                border_style="yellow",
            ))
            if sys.stdin.isatty() and click.confirm("Configure them now?", default=True):
                from .config_cmd import save_credentials

                save_credentials(home_path)
                console.print("  [green]Credentials saved[/]")
            else:
                console.print(
                    "  Configure later with: "
                    "[cyan]ghost-backup config set-token --username <user> --token <token>[/]"
                )

        if not no_service:
            _notify_service(home_path)

        console.print("\n  [bold green]Initialization complete.[/]")
        console.print(f"  To change settings, edit: {config_path}")
        console.print(f"  To view logs: tail -f {get_log_file_path(home_path)}\n")

    @main.command()
    @click.option("--home", default=CONFIG_HOME, type=click.Path(), help="Config home directory.")
    @click.option("--path", "-p", default=".", type=click.Path(), help="Path to the repository.")
    @click.option("--no-service", is_flag=True, help="Do not reload the service.")
    def uninstall(home: str, path: str, no_service: bool):
        """Stop backing up a repository.

        Removes it from the registry, deletes its .ghost-backup.json and
        tells the running service to drop its worker.
        """
        from ..config import ConfigError, get_local_config_path, load_registry, save_registry

        home_path = Path(home).expanduser()
        repo_path = str(Path(path).expanduser().resolve())

        console.print(f"\n  Uninstalling ghost-backup for [cyan]{repo_path}[/]")

        try:
            registry = load_registry(home_path)
            registry.remove(repo_path)
        except ConfigError as exc:
            fail(str(exc))
            return
        except KeyError:
            fail(f"repository is not registered: {repo_path}")
            return
        save_registry(registry, home_path)
        console.print("  [green]Removed repository from the registry[/]")

        config_path = get_local_config_path(repo_path)
        if config_path.exists():
            try:
                config_path.unlink()
                console.print("  [green]Removed local config[/]")
            except OSError as exc:
                console.print(f"  [yellow]Warning:[/] failed to remove local config: {exc}")

        if not no_service:
            if reload_running_service(home_path):
                console.print("  [green]Service reloaded[/]")
            else:
                console.print("  [dim]Service not running, nothing to reload[/]")

        console.print("\n  [bold green]Uninstall complete.[/]\n")
