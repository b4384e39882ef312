"""
Ghost Backup service process.

Loads the registry, starts one worker per monitored repository and
keeps them running until told to stop. SIGHUP re-reads the registry and
replaces the worker set, which is how ``init`` and ``uninstall`` make a
running service pick up their changes.

A small HTTP API on 127.0.0.1 reports service and worker status for
``ghost-backup service status``.
"""

from __future__ import annotations

import functools
import json
import logging
import os
import signal
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Optional

from .config import ConfigError, get_config_dir, get_log_file_path, load_registry
from .worker import RepositoryWorker, WorkerManager

logger = logging.getLogger("ghostbackup.daemon")

DEFAULT_PORT = 7717
PID_FILE = "ghost-backup.pid"


class DaemonConfig:
    """Configuration for the service process.

    Attributes:
        home: Config home directory.
        port: HTTP API port for local queries (0 disables the API).
        log_file: Shared log file for the service and every worker.
    """

    def __init__(self, home: Optional[Path] = None, port: int = DEFAULT_PORT):
        self.home = get_config_dir(home)
        self.port = port
        self.home.mkdir(parents=True, exist_ok=True)
        self.log_file = get_log_file_path(self.home)


class DaemonState:
    """Thread-safe mutable service state."""

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at: Optional[datetime] = None
        self.last_reload: Optional[datetime] = None
        self.reloads: int = 0
        self.errors: list[str] = []
        self.running: bool = False

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of the state."""
        with self._lock:
            return {
                "running": self.running,
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "uptime_seconds": (
                    (datetime.now(timezone.utc) - self.started_at).total_seconds()
                    if self.started_at
                    else 0
                ),
                "last_reload": self.last_reload.isoformat() if self.last_reload else None,
                "reloads": self.reloads,
                "recent_errors": self.errors[-10:],
                "pid": os.getpid(),
            }

    def record_reload(self) -> None:
        with self._lock:
            self.last_reload = datetime.now(timezone.utc)
            self.reloads += 1

    def record_error(self, error: str) -> None:
        """Record an error, keeping only the last 50."""
        with self._lock:
            ts = datetime.now(timezone.utc).isoformat()
            self.errors.append(f"[{ts}] {error}")
            if len(self.errors) > 50:
                self.errors = self.errors[-50:]


class DaemonService:
    """The ghost-backup service.

    Args:
        config: Service configuration.
        manager: Worker manager; a default one is built when omitted.
    """

    def __init__(self, config: DaemonConfig, manager: Optional[WorkerManager] = None):
        self.config = config
        self.state = DaemonState()
        self.manager = manager or WorkerManager(
            worker_factory=functools.partial(RepositoryWorker, config_home=self.config.home),
        )
        self._stop_event = threading.Event()
        self._reload_event = threading.Event()
        self._server: Optional[HTTPServer] = None
        self._threads: list[threading.Thread] = []
        self._log_handler: Optional[logging.Handler] = None

    def start(self) -> None:
        """Write the PID file, set up logging and signals, start workers."""
        self._write_pid()
        self._setup_logging()
        self._setup_signals()

        self.state.running = True
        self.state.started_at = datetime.now(timezone.utc)

        logger.info("Starting ghost-backup service (home=%s)", self.config.home)

        self._start_workers()

        if self.config.port:
            self._start_api_server()

        logger.info(
            "Service started with %d workers (PID %d)",
            self.manager.worker_count(), os.getpid(),
        )

    def _load_repositories(self) -> list[str]:
        try:
            return load_registry(self.config.home).repositories
        except ConfigError as exc:
            logger.error("%s", exc)
            self.state.record_error(str(exc))
            return []

    def _start_workers(self) -> None:
        self.manager.start_workers(self._load_repositories())

    def reload(self) -> None:
        """Re-read the registry and replace every worker."""
        logger.info("Reloading registry")
        self.manager.reload_workers(self._load_repositories())
        self.state.record_reload()
        logger.info("Reloaded with %d workers", self.manager.worker_count())

    def request_reload(self) -> None:
        """Ask the main loop to reload at its next wake-up."""
        self._reload_event.set()

    def stop(self) -> None:
        """Stop every worker and release resources."""
        logger.info("Stopping ghost-backup service...")
        self._stop_event.set()
        self.state.running = False

        self.manager.stop_workers()

        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None

        for t in self._threads:
            t.join(timeout=5)

        self._remove_pid()
        logger.info("Service stopped")

        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler.close()
            self._log_handler = None

    def run_forever(self) -> None:
        """Block until stop is signaled, serving reload requests."""
        try:
            while not self._stop_event.is_set():
                self._stop_event.wait(timeout=1)
                if self._reload_event.is_set():
                    self._reload_event.clear()
                    self.reload()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def status(self) -> dict:
        """Service state plus one entry per worker."""
        snap = self.state.snapshot()
        snap["workers"] = [s.model_dump(mode="json") for s in self.manager.worker_statuses()]
        snap["worker_count"] = len(snap["workers"])
        return snap

    def _start_api_server(self) -> None:
        """Start the local HTTP API server in a background thread."""
        service = self

        class StatusHandler(BaseHTTPRequestHandler):
            """HTTP handler for the status API."""

            def do_GET(self):
                if self.path == "/status":
                    self._json_response(service.status())
                elif self.path == "/workers":
                    self._json_response(service.status()["workers"])
                elif self.path == "/ping":
                    self._json_response({"pong": True, "pid": os.getpid()})
                else:
                    self._json_response({"endpoints": ["/status", "/workers", "/ping"]})

            def _json_response(self, data, status: int = 200):
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.end_headers()
                self.wfile.write(json.dumps(data, indent=2, default=str).encode())

            def log_message(self, format, *args):
                logger.debug("API: %s", format % args)

        try:
            self._server = HTTPServer(("127.0.0.1", self.config.port), StatusHandler)
            t = threading.Thread(
                target=self._server.serve_forever, name="ghost-backup-api", daemon=True,
            )
            t.start()
            self._threads.append(t)
            logger.info("API server listening on http://127.0.0.1:%d", self.config.port)
        except OSError as exc:
            logger.error("Failed to start API server: %s", exc)
            self.state.record_error(f"API server: {exc}")

    def _setup_logging(self) -> None:
        """Send every ghostbackup logger to the shared log file."""
        handler = logging.FileHandler(self.config.log_file)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
        )
        root = logging.getLogger()
        root.addHandler(handler)
        root.setLevel(logging.INFO)
        self._log_handler = handler

    def _setup_signals(self) -> None:
        """Register signal handlers. Only possible from the main thread."""
        if threading.current_thread() is not threading.main_thread():
            return
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self._handle_stop_signal)
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, self._handle_reload_signal)

    def _handle_stop_signal(self, signum, frame):
        logger.info("Received signal %s, stopping", signal.Signals(signum).name)
        self._stop_event.set()

    def _handle_reload_signal(self, signum, frame):
        logger.info("Received signal %s, reloading", signal.Signals(signum).name)
        self.request_reload()

    def _write_pid(self) -> None:
        pid_path = self.config.home / PID_FILE
        pid_path.parent.mkdir(parents=True, exist_ok=True)
        pid_path.write_text(str(os.getpid()), encoding="utf-8")

    def _remove_pid(self) -> None:
        pid_path = self.config.home / PID_FILE
        if pid_path.exists():
            pid_path.unlink()


def read_pid(home: Optional[Path] = None) -> Optional[int]:
    """Read the service PID, cleaning up a stale PID file.

    Returns:
        PID as int, or None if not running.
    """
    pid_path = get_config_dir(home) / PID_FILE
    if not pid_path.exists():
        return None
    try:
        pid = int(pid_path.read_text(encoding="utf-8").strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        pid_path.unlink(missing_ok=True)
        return None


def is_running(home: Optional[Path] = None) -> bool:
    return read_pid(home) is not None


def signal_reload(home: Optional[Path] = None) -> bool:
    """Ask a running service to reload its registry.

    Returns:
        bool: True if a running service was signaled.
    """
    pid = read_pid(home)
    if pid is None or not hasattr(signal, "SIGHUP"):
        return False
    try:
        os.kill(pid, signal.SIGHUP)
    except OSError as exc:
        logger.warning("Failed to signal service (PID %d): %s", pid, exc)
        return False
    return True


def get_daemon_status(port: int = DEFAULT_PORT) -> Optional[dict]:
    """Query the running service's status via the HTTP API.

    Returns:
        Status dict, or None if unreachable.
    """
    import urllib.error
    import urllib.request

    try:
        url = f"http://127.0.0.1:{port}/status"
        with urllib.request.urlopen(url, timeout=3) as resp:
            return json.loads(resp.read())
    except (urllib.error.URLError, OSError, json.JSONDecodeError):
        return None
