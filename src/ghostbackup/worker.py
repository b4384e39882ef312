"""
Per-repository backup workers and the manager that owns them.

Each monitored repository gets one RepositoryWorker running on its own
thread. A worker backs up once immediately, then once per tick of its
Ticker. After every tick it checks the repository's local config file
and, if it changed, swaps in a ticker with the new interval without
restarting the thread.

The WorkerManager maps repository paths to workers. All map mutations
and reads happen under one lock so start, stop and reload calls from
the service's control thread never observe a half-updated map.

Log lines are prefixed with the repository path and go to the shared
``ghostbackup.worker`` logger.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .config import (
    ConfigError,
    get_local_config_path,
    load_global_config_or_default,
    load_local_config,
)
from .git import GitError, GitRepo
from .identity import IdentityError, resolve_identity
from .models import (
    DEFAULT_INTERVAL,
    DEFAULT_ONLY_STAGED,
    DEFAULT_SCAN_SECRETS,
    LocalConfig,
    Registry,
    WorkerState,
    WorkerStatus,
)
from .security import ScanError, SecretGate

logger = logging.getLogger("ghostbackup.worker")

# Upper bound on how long stop() waits for the loop to acknowledge.
STOP_TIMEOUT = 0.1


class CycleOutcome(str, Enum):
    """How a backup cycle ended."""

    PUSHED = "pushed"
    NO_CHANGES = "no_changes"
    SECRETS_DETECTED = "secrets_detected"
    NOT_A_REPOSITORY = "not_a_repository"
    FAILED = "failed"


class CycleResult:
    """Outcome of one backup cycle.

    Attributes:
        outcome: How the cycle ended.
        hash: Snapshot hash, once one was created.
        ref: Backup ref written on success.
        message: Error or scan report text.
    """

    def __init__(
        self,
        outcome: CycleOutcome,
        hash: str = "",
        ref: str = "",
        message: str = "",
    ):
        self.outcome = outcome
        self.hash = hash
        self.ref = ref
        self.message = message

    @property
    def ok(self) -> bool:
        return self.outcome in (CycleOutcome.PUSHED, CycleOutcome.NO_CHANGES)

    def __repr__(self) -> str:
        return f"CycleResult({self.outcome.value!r}, hash={self.hash!r}, ref={self.ref!r})"


class Ticker:
    """Fixed-rate tick source.

    Ticks land on a grid of ``interval`` seconds from creation. Ticks
    missed while the owner was busy collapse into one immediate tick.

    Args:
        interval: Seconds between ticks.
        clock: Monotonic time source.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._next = clock() + interval
        self._stopped = False

    def stop(self) -> None:
        """Stop ticking. A stopped ticker never fires again."""
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    def wait(self, stop_event: threading.Event) -> bool:
        """Block until the next tick or until ``stop_event`` is set.

        Returns:
            bool: True on a tick, False if ``stop_event`` was set.
        """
        timeout = None if self._stopped else max(0.0, self._next - self._clock())
        if stop_event.wait(timeout):
            return False

        now = self._clock()
        while self._next <= now:
            self._next += self.interval
        return True


RepoFactory = Callable[..., GitRepo]


class RepositoryWorker:
    """Runs the periodic backup loop for one repository.

    Args:
        repo_path: Absolute path of the repository.
        repo_factory: Builds the git wrapper; called with the path and
            ``credentials=``.
        gate: Secret scanner.
        config_home: Config home holding the global config.
    """

    def __init__(
        self,
        repo_path: Union[str, Path],
        repo_factory: Optional[RepoFactory] = None,
        gate: Optional[SecretGate] = None,
        config_home: Optional[Path] = None,
    ):
        self.repo_path = str(repo_path)
        self._repo_factory = repo_factory or GitRepo
        self._gate = gate or SecretGate()
        self._config_home = config_home

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._stopped_event = threading.Event()
        self._ticker: Optional[Ticker] = None
        self._last_mod_time = 0.0
        self._state = WorkerState.IDLE
        self._thread: Optional[threading.Thread] = None

        self.interval = DEFAULT_INTERVAL
        self.scan_secrets = DEFAULT_SCAN_SECRETS
        self.only_staged = DEFAULT_ONLY_STAGED

    # -- lifecycle --------------------------------------------------------

    @property
    def state(self) -> WorkerState:
        with self._lock:
            return self._state

    @property
    def ticker(self) -> Optional[Ticker]:
        with self._lock:
            return self._ticker

    def start(self) -> threading.Thread:
        """Launch the loop on a daemon thread."""
        name = Path(self.repo_path).name or self.repo_path
        thread = threading.Thread(target=self.run, name=f"worker-{name}", daemon=True)
        self._thread = thread
        thread.start()
        return thread

    def run(self) -> None:
        """The worker loop. Returns once stop() has been called."""
        with self._lock:
            if self._stop_event.is_set():
                self._state = WorkerState.STOPPED
                self._stopped_event.set()
                return
            self._state = WorkerState.RUNNING

        try:
            logger.info("[%s] Worker started", self.repo_path)
            self.run_cycle()

            config = self.load_config()
            self._update_ticker(config.interval)

            while True:
                with self._lock:
                    ticker = self._ticker
                if ticker is None or not ticker.wait(self._stop_event):
                    logger.info("[%s] Worker stopped", self.repo_path)
                    return

                self.run_cycle()
                self.check_config_reload()
        finally:
            with self._lock:
                self._state = WorkerState.STOPPED
            self._stopped_event.set()

    def stop(self, timeout: float = STOP_TIMEOUT) -> bool:
        """Signal the loop to stop and wait briefly for it to exit.

        Calling stop() again is a no-op. A worker whose thread never
        started does not block the caller beyond ``timeout``.

        Returns:
            bool: True if the loop acknowledged the stop.
        """
        with self._lock:
            if self._stop_event.is_set():
                return self._stopped_event.is_set()
            self._stop_event.set()
            if self._state is WorkerState.RUNNING:
                self._state = WorkerState.STOPPING
            if self._ticker is not None:
                self._ticker.stop()

        acknowledged = self._stopped_event.wait(timeout)
        if not acknowledged:
            with self._lock:
                if self._state is WorkerState.IDLE:
                    self._state = WorkerState.STOPPED
        return acknowledged

    def status(self) -> WorkerStatus:
        with self._lock:
            return WorkerStatus(
                repo_path=self.repo_path,
                running=not self._stop_event.is_set(),
                state=self._state,
                interval=self.interval,
            )

    # -- configuration ----------------------------------------------------

    def _update_ticker(self, interval: int) -> None:
        with self._lock:
            if self._ticker is not None:
                self._ticker.stop()
            self._ticker = Ticker(interval)
            self.interval = interval

    def _config_mtime(self) -> Optional[float]:
        try:
            return get_local_config_path(self.repo_path).stat().st_mtime
        except OSError:
            return None

    def load_config(self) -> LocalConfig:
        """Load the local config and remember its modification time.

        Falls back to defaults when the file is unusable so a broken
        config never stops the loop.
        """
        try:
            config = load_local_config(self.repo_path)
        except ConfigError as exc:
            logger.error("[%s] %s; using defaults", self.repo_path, exc)
            config = LocalConfig()

        mtime = self._config_mtime()
        with self._lock:
            if mtime is not None:
                self._last_mod_time = mtime
            self.scan_secrets = config.scan_secrets
            self.only_staged = config.only_staged
        return config

    def check_config_reload(self) -> bool:
        """Reload the local config if its file changed since last seen.

        Returns:
            bool: True if a new config was applied.
        """
        mtime = self._config_mtime()
        if mtime is None:
            return False

        with self._lock:
            if mtime <= self._last_mod_time:
                return False
            self._last_mod_time = mtime

        try:
            config = load_local_config(self.repo_path)
        except ConfigError as exc:
            logger.error("[%s] Failed to reload config: %s", self.repo_path, exc)
            return False

        with self._lock:
            self.scan_secrets = config.scan_secrets
            self.only_staged = config.only_staged

        logger.info(
            "[%s] Config reloaded: interval=%ds, scan_secrets=%s",
            self.repo_path, config.interval, config.scan_secrets,
        )
        self._update_ticker(config.interval)
        return True

    # -- the backup cycle -------------------------------------------------

    def run_cycle(self) -> CycleResult:
        """Run one backup cycle, never raising."""
        try:
            return self._perform_backup()
        except Exception as exc:
            logger.exception("[%s] Backup cycle failed: %s", self.repo_path, exc)
            return CycleResult(CycleOutcome.FAILED, message=str(exc))

    def _fail(self, message: str, hash: str = "") -> CycleResult:
        logger.error("[%s] %s", self.repo_path, message)
        return CycleResult(CycleOutcome.FAILED, hash=hash, message=message)

    def _perform_backup(self) -> CycleResult:
        path = self.repo_path
        logger.info("[%s] Starting backup...", path)

        try:
            config = load_local_config(path)
        except ConfigError as exc:
            return self._fail(f"Failed to load config: {exc}")

        global_config = load_global_config_or_default(self._config_home)
        repo = self._repo_factory(path, credentials=global_config)

        if not repo.is_git_repo():
            logger.error("[%s] Not a valid git repository", path)
            return CycleResult(CycleOutcome.NOT_A_REPOSITORY, message="Not a valid git repository")

        try:
            has_changes = repo.has_changes()
        except GitError as exc:
            return self._fail(f"Failed to check for changes: {exc}")

        if not has_changes:
            logger.info("[%s] No changes to backup", path)
            return CycleResult(CycleOutcome.NO_CHANGES)

        try:
            hash = repo.create_stash(config.only_staged)
        except GitError as exc:
            return self._fail(f"Failed to create stash: {exc}")

        logger.info("[%s] Created stash: %s", path, hash)

        if config.scan_secrets:
            result = self._scan(repo, hash)
            if result is not None:
                return result

        try:
            identity = resolve_identity(repo, global_config)
            branch = repo.get_current_branch()
            remote = repo.get_remote()
        except (GitError, IdentityError) as exc:
            return self._fail(str(exc), hash=hash)

        try:
            ref = repo.push_to_backup_ref(hash, identity.identifier, branch, remote)
        except GitError as exc:
            return self._fail(f"Failed to push backup: {exc}", hash=hash)

        logger.info("[%s] Backup completed successfully: %s", path, ref)
        return CycleResult(CycleOutcome.PUSHED, hash=hash, ref=ref)

    def _scan(self, repo: GitRepo, hash: str) -> Optional[CycleResult]:
        """Gate the snapshot on the secret scanner.

        Returns:
            CycleResult if the cycle must stop here, else None.
        """
        path = self.repo_path
        if not self._gate.available():
            logger.warning("[%s] WARNING: gitleaks not available, skipping secret scan", path)
            return None

        try:
            diff = repo.get_diff(hash)
        except GitError as exc:
            return self._fail(f"Failed to get diff: {exc}", hash=hash)

        try:
            scan = self._gate.scan(diff)
        except ScanError as exc:
            return self._fail(f"Secret scan failed: {exc}", hash=hash)

        if scan.has_secrets:
            logger.error("[%s] SECRETS DETECTED! Aborting backup.", path)
            logger.error("[%s] Gitleaks output:\n%s", path, scan.output)
            return CycleResult(CycleOutcome.SECRETS_DETECTED, hash=hash, message=scan.output)

        logger.info("[%s] Secret scan passed", path)
        return None


WorkerFactory = Callable[[str], RepositoryWorker]


class WorkerManager:
    """Owns one RepositoryWorker per monitored repository.

    Args:
        worker_factory: Builds a worker for a repository path.
        stop_timeout: Per-worker bound on stop acknowledgement.
    """

    def __init__(
        self,
        worker_factory: Optional[WorkerFactory] = None,
        stop_timeout: float = STOP_TIMEOUT,
    ):
        self._worker_factory = worker_factory or RepositoryWorker
        self._stop_timeout = stop_timeout
        self._workers: dict[str, RepositoryWorker] = {}
        self._lock = threading.Lock()

    def start_workers(self, repositories: Union[Registry, Iterable[str]]) -> int:
        """Start a worker for every new, existing repository path.

        Paths already owned are left alone. Paths missing on disk are
        skipped with a warning.

        Returns:
            int: Number of workers started by this call.
        """
        if isinstance(repositories, Registry):
            paths = list(repositories.repositories)
        else:
            paths = list(repositories)

        started = 0
        with self._lock:
            logger.info("Starting workers for %d repositories", len(paths))
            for repo_path in paths:
                if repo_path in self._workers:
                    continue
                if not os.path.exists(repo_path):
                    logger.warning("WARNING: Repository path does not exist: %s", repo_path)
                    continue

                worker = self._worker_factory(repo_path)
                self._workers[repo_path] = worker
                worker.start()
                started += 1
        return started

    def stop_workers(self) -> None:
        """Stop every worker and forget them."""
        with self._lock:
            if self._workers:
                logger.info("Stopping all workers...")
            for repo_path, worker in self._workers.items():
                logger.info("Stopping worker for %s", repo_path)
                worker.stop(self._stop_timeout)
            self._workers = {}

    def reload_workers(self, repositories: Union[Registry, Iterable[str]]) -> int:
        """Replace the whole worker set."""
        self.stop_workers()
        return self.start_workers(repositories)

    def worker_count(self) -> int:
        with self._lock:
            return len(self._workers)

    def worker_statuses(self) -> list[WorkerStatus]:
        with self._lock:
            return [worker.status() for worker in self._workers.values()]

    def get_worker(self, repo_path: str) -> Optional[RepositoryWorker]:
        with self._lock:
            return self._workers.get(repo_path)
