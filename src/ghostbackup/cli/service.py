"""Service commands: install, uninstall, start, stop, restart, status, run, logs."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ._common import CONFIG_HOME, console


def _require_systemd() -> None:
    from ..systemd import systemd_available

    if not systemd_available():
        console.print("[red]systemd user session not available.[/]")
        console.print("[dim]Run 'ghost-backup service run' in a terminal instead.[/]")
        raise SystemExit(1)


def _tail(path: Path, lines: int) -> str:
    if not path.exists():
        return ""
    return "\n".join(path.read_text(encoding="utf-8", errors="replace").splitlines()[-lines:])


def register_service_commands(main: click.Group) -> None:
    """Register the service command group."""
    from ..daemon import DEFAULT_PORT

    @main.group()
    def service():
        """Background service: one backup worker per registered repository.

        The service runs as a systemd user unit. It reloads the registry
        on SIGHUP, which init and uninstall send automatically.
        """

    @service.command("install")
    @click.option(
        "--home", default=None, type=click.Path(),
        help="Config home for the service (default: GHOSTBACKUP_HOME or ~/.config/ghost-backup).",
    )
    def service_install(home: Optional[str]):
        """Install, enable and start the systemd user service."""
        from ..systemd import install_service

        _require_systemd()
        extra_env = None
        if home is not None:
            extra_env = {"GHOSTBACKUP_HOME": str(Path(home).expanduser().resolve())}
        console.print("\n[cyan]Installing ghost-backup systemd service...[/]")
        result = install_service(extra_env=extra_env)

        if result["installed"]:
            console.print("[green]  Unit file installed.[/]")
        if result["enabled"]:
            console.print("[green]  Service enabled at login.[/]")
        if result["started"]:
            console.print("[green]  Service started.[/]")
        console.print()

        if not result["installed"]:
            console.print("[red]Installation failed. Check logs.[/]")
            raise SystemExit(1)

    @service.command("uninstall")
    def service_uninstall():
        """Stop, disable and remove the systemd user service."""
        from ..systemd import uninstall_service

        console.print("\n[cyan]Uninstalling ghost-backup systemd service...[/]")
        result = uninstall_service()

        if result["stopped"]:
            console.print("[green]  Service stopped.[/]")
        if result["disabled"]:
            console.print("[green]  Service disabled.[/]")
        if result["removed"]:
            console.print("[green]  Unit file removed.[/]")
        console.print()

    def _control(action: str, past: str) -> None:
        from .. import systemd

        _require_systemd()
        try:
            getattr(systemd, f"{action}_service")()
        except systemd.ServiceError as exc:
            console.print(f"[bold red]Error:[/] {escape(str(exc))}")
            raise SystemExit(1)
        console.print(f"[green]Service {past}.[/]")

    @service.command("start")
    def service_start():
        """Start the service."""
        _control("start", "started")

    @service.command("stop")
    def service_stop():
        """Stop the service."""
        _control("stop", "stopped")

    @service.command("restart")
    def service_restart():
        """Restart the service."""
        _control("restart", "restarted")

    @service.command("status")
    @click.option("--home", default=CONFIG_HOME, type=click.Path())
    @click.option("--port", default=DEFAULT_PORT, help="API port to query.")
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def service_status_cmd(home: str, port: int, json_out: bool):
        """Show the service state and the repositories it backs up."""
        from ..config import ConfigError, load_registry
        from ..daemon import get_daemon_status, read_pid
        from ..systemd import service_status, systemd_available

        home_path = Path(home).expanduser()
        unit = service_status() if systemd_available() else None
        pid = read_pid(home_path)
        api = get_daemon_status(port) if pid is not None or (unit and unit.active) else None

        try:
            repositories = load_registry(home_path).repositories
        except ConfigError as exc:
            console.print(f"[yellow]Warning:[/] {escape(str(exc))}")
            repositories = []

        if json_out:
            click.echo(json.dumps({
                "systemd": unit.label if unit else "unavailable",
                "pid": pid,
                "repositories": repositories,
                "daemon": api,
            }, indent=2))
            return

        lines = [f"systemd: [bold]{unit.label if unit else 'unavailable'}[/]"]
        if unit and unit.active:
            lines.append(f"PID: [bold]{unit.pid}[/]")
            if unit.uptime:
                lines.append(f"Since: {unit.uptime}")
            if unit.memory:
                lines.append(f"Memory: {unit.memory}")
        elif pid is not None:
            lines.append(f"PID: [bold]{pid}[/] (foreground)")
        running = bool(api) or pid is not None or bool(unit and unit.active)
        console.print()
        console.print(Panel(
            "\n".join(lines),
            title="[green]Service Running[/]" if running else "[yellow]Service Stopped[/]",
            border_style="green" if running else "yellow",
        ))

        workers = {w["repo_path"]: w for w in (api or {}).get("workers", [])}
        table = Table(title=f"Registered Repositories ({len(repositories)})")
        table.add_column("Repository", style="cyan")
        table.add_column("Worker")
        table.add_column("Interval", justify="right")
        for repo_path in repositories:
            worker = workers.get(repo_path)
            if worker is None:
                state = "[red]missing[/]" if not os.path.exists(repo_path) else "[dim]-[/]"
                table.add_row(repo_path, state, "")
            else:
                table.add_row(repo_path, worker.get("state", ""), f"{worker.get('interval')}s")
        console.print(table)

        errors = (api or {}).get("recent_errors", [])
        if errors:
            console.print(f"\n[yellow]Recent errors ({len(errors)}):[/]")
            for err in errors[-5:]:
                console.print(f"  [dim]{escape(err)}[/]")
        console.print()

    @service.command("run")
    @click.option("--home", default=CONFIG_HOME, type=click.Path())
    @click.option("--port", default=DEFAULT_PORT, help="API port (0 disables the API).")
    def service_run(home: str, port: int):
        """Run the service in the foreground.

        This is what the systemd unit executes. Ctrl+C stops it.
        """
        from ..daemon import DaemonConfig, DaemonService, is_running

        home_path = Path(home).expanduser()
        if is_running(home_path):
            console.print("[yellow]Service is already running.[/]")
            raise SystemExit(0)

        config = DaemonConfig(home=home_path, port=port)
        svc = DaemonService(config)

        console.print("\n  [green]Starting ghost-backup service[/]")
        console.print(f"  Log: {config.log_file}")
        console.print(f"  PID: {os.getpid()}")
        console.print("  [dim]Running in foreground (Ctrl+C to stop)[/]\n")
        svc.start()
        svc.run_forever()

    @service.command("logs")
    @click.option("--home", default=CONFIG_HOME, type=click.Path())
    @click.option("--lines", "-n", default=50, help="Number of lines (default: 50).")
    @click.option("--follow", "-f", is_flag=True, help="Show the command to follow logs live.")
    def service_logs_cmd(home: str, lines: int, follow: bool):
        """Show service logs from the log file, or journald as a fallback."""
        from ..config import get_log_file_path
        from ..systemd import service_logs

        log_path = get_log_file_path(Path(home).expanduser())
        if follow:
            cmd = f"tail -f {log_path}" if log_path.exists() else service_logs(follow=True)
            console.print(f"\n  Run: [bold cyan]{cmd}[/]\n")
            return

        output = _tail(log_path, lines)
        if not output.strip():
            try:
                output = service_logs(lines=lines)
            except OSError:
                output = ""
        if output.strip():
            click.echo(output)
        else:
            console.print("[dim]No logs found. Is the service installed?[/]")
