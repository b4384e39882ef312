"""Systemd user service management for ghost-backup.

Installs, manages, and queries the ghost-backup systemd user service.
Uses user-level systemd (systemctl --user) so no root is needed.

The unit runs `ghost-backup service run` and restarts on failure.
`systemctl --user reload` sends SIGHUP, which makes the service re-read
the registry.

Usage:
    from ghostbackup.systemd import install_service, service_status
    install_service()            # writes unit + enables + starts
    status = service_status()    # check if running
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("ghostbackup.systemd")

SERVICE_NAME = "ghost-backup.service"

SYSTEMD_USER_DIR = Path.home() / ".config" / "systemd" / "user"


class ServiceError(Exception):
    """Raised when a systemctl operation fails."""


@dataclass
class ServiceStatus:
    """Status of the ghost-backup systemd service.

    Attributes:
        installed: Whether the unit file exists.
        enabled: Whether the service is enabled at login.
        active: Whether the service is currently running.
        pid: PID of the running service (0 if not running).
        uptime: When the service entered the active state.
        memory: Memory usage string from systemd.
        exit_code: Last exit code if the service stopped.
    """

    installed: bool = False
    enabled: bool = False
    active: bool = False
    pid: int = 0
    uptime: str = ""
    memory: str = ""
    exit_code: str = ""

    @property
    def label(self) -> str:
        if not self.installed:
            return "Not installed"
        return "Running" if self.active else "Stopped"


def _run(cmd: list[str], check: bool = False) -> subprocess.CompletedProcess:
    """Run a command and capture output.

    Args:
        cmd: Command and arguments.
        check: Raise on non-zero exit.

    Returns:
        CompletedProcess with stdout/stderr.
    """
    return subprocess.run(
        cmd, capture_output=True, text=True, timeout=30, check=check,
    )


def _systemctl(*args: str) -> subprocess.CompletedProcess:
    """Run a systemctl --user command."""
    return _run(["systemctl", "--user", *args])


def _checked(*args: str) -> None:
    r = _systemctl(*args)
    if r.returncode != 0:
        raise ServiceError(
            f"systemctl --user {' '.join(args)} failed: {r.stderr.strip()}"
        )


def systemd_available() -> bool:
    """Check if a systemd user session is available."""
    try:
        result = _run(["systemctl", "--user", "--version"])
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def generate_unit_file(
    exec_path: Optional[str] = None,
    extra_env: Optional[dict] = None,
) -> str:
    """Generate the systemd unit file as a string.

    Args:
        exec_path: Path of the ghost-backup executable.
        extra_env: Additional environment variables.

    Returns:
        str: Complete unit file content.
    """
    exec_cmd = exec_path or shutil.which("ghost-backup") or "ghost-backup"
    env_lines = ""
    if extra_env:
        for k, v in extra_env.items():
            env_lines += f"Environment={k}={v}\n"

    return f"""[Unit]
Description=Ghost Backup Service
Documentation=ghost-backup --help
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={exec_cmd} service run
ExecReload=/bin/kill -HUP $MAINPID
Restart=on-failure
RestartSec=10

Environment=PYTHONUNBUFFERED=1
{env_lines}
[Install]
WantedBy=default.target
"""


def install_service(
    unit_dir: Optional[Path] = None,
    exec_path: Optional[str] = None,
    enable: bool = True,
    start: bool = True,
    extra_env: Optional[dict] = None,
) -> dict:
    """Install the ghost-backup systemd user service.

    Writes the unit file, reloads systemd, and optionally enables and
    starts the service.

    Args:
        unit_dir: Target directory for the unit file.
        exec_path: Path of the ghost-backup executable.
        enable: Whether to enable the service at login.
        start: Whether to start the service immediately.
        extra_env: Environment variables for the unit, e.g. GHOSTBACKUP_HOME.

    Returns:
        dict: Result with 'installed', 'enabled', 'started' bools.
    """
    target = unit_dir or SYSTEMD_USER_DIR
    target.mkdir(parents=True, exist_ok=True)

    result = {"installed": False, "enabled": False, "started": False}

    (target / SERVICE_NAME).write_text(generate_unit_file(exec_path, extra_env), encoding="utf-8")
    _systemctl("daemon-reload")
    result["installed"] = True
    logger.info("Installed %s to %s", SERVICE_NAME, target)

    if enable:
        result["enabled"] = _systemctl("enable", SERVICE_NAME).returncode == 0

    if start:
        result["started"] = _systemctl("start", SERVICE_NAME).returncode == 0

    return result


def uninstall_service(unit_dir: Optional[Path] = None) -> dict:
    """Stop, disable, and remove the unit file.

    Returns:
        dict: Result with 'stopped', 'disabled', 'removed' bools.
    """
    target = unit_dir or SYSTEMD_USER_DIR
    result = {"stopped": False, "disabled": False, "removed": False}

    result["stopped"] = _systemctl("stop", SERVICE_NAME).returncode == 0
    result["disabled"] = _systemctl("disable", SERVICE_NAME).returncode == 0

    unit_path = target / SERVICE_NAME
    if unit_path.exists():
        unit_path.unlink()

    _systemctl("daemon-reload")
    result["removed"] = True
    logger.info("Uninstalled service from %s", target)

    return result


def start_service() -> None:
    _checked("start", SERVICE_NAME)


def stop_service() -> None:
    _checked("stop", SERVICE_NAME)


def restart_service() -> None:
    _checked("restart", SERVICE_NAME)


def reload_service() -> None:
    """Make the running service re-read the registry."""
    _checked("reload", SERVICE_NAME)


def service_status(unit_dir: Optional[Path] = None) -> ServiceStatus:
    """Query the current status of the ghost-backup service."""
    status = ServiceStatus()

    unit_path = (unit_dir or SYSTEMD_USER_DIR) / SERVICE_NAME
    status.installed = unit_path.exists()

    if not status.installed:
        return status

    r = _systemctl("is-enabled", SERVICE_NAME)
    status.enabled = r.stdout.strip() == "enabled"

    r = _systemctl("is-active", SERVICE_NAME)
    status.active = r.stdout.strip() == "active"

    r = _systemctl("show", SERVICE_NAME,
                   "--property=MainPID,ActiveEnterTimestamp,MemoryCurrent,ExecMainStatus")
    for line in r.stdout.strip().splitlines():
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        if key == "MainPID":
            try:
                status.pid = int(value)
            except ValueError:
                pass
        elif key == "ActiveEnterTimestamp":
            status.uptime = value
        elif key == "MemoryCurrent":
            try:
                mem_bytes = int(value)
                if mem_bytes > 0:
                    status.memory = f"{mem_bytes / 1024 / 1024:.1f} MB"
            except ValueError:
                pass
        elif key == "ExecMainStatus":
            status.exit_code = value

    return status


def ensure_service_running(unit_dir: Optional[Path] = None) -> ServiceStatus:
    """Install the service if needed and start it if it is not active.

    Raises:
        ServiceError: If starting the service failed.
    """
    status = service_status(unit_dir)
    if not status.installed:
        install_service(unit_dir=unit_dir, start=False)
    if not status.active:
        start_service()
    return service_status(unit_dir)


def service_logs(lines: int = 50, follow: bool = False) -> str:
    """Get recent journal logs for the ghost-backup service.

    Args:
        lines: Number of recent lines to return.
        follow: If True, returns only the command to run.

    Returns:
        str: Log output or the follow command.
    """
    if follow:
        return f"journalctl --user -u {SERVICE_NAME} -f"

    r = _run(["journalctl", "--user", "-u", SERVICE_NAME, "-n", str(lines), "--no-pager"])
    return r.stdout
