"""
Setup diagnostics for a monitored repository.

Checks the repository, its local config, the registry, git identity and
remote, the service and gitleaks, and reports pass/warn/fail with a fix
suggestion for each problem.

Usage:
    ghost-backup check
    ghost-backup check --json-out
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import (
    ConfigError,
    get_local_config_path,
    load_global_config,
    load_local_config,
    load_registry,
)
from .git import GitError, GitRepo
from .identity import IdentityError, resolve_identity
from .models import GlobalConfig
from .refs import backup_ref
from .security import GITLEAKS_URL, gitleaks_available


@dataclass
class Check:
    """A single diagnostic check result.

    Attributes:
        name: Short check identifier.
        description: Human-readable description.
        passed: Whether the check passed.
        detail: Extra info (path, value, error).
        fix: Suggested fix if the check failed.
        category: Grouping (repository, config, git, identity, ...).
        warning: A failure that does not prevent backups.
    """

    name: str
    description: str
    passed: bool
    detail: str = ""
    fix: str = ""
    category: str = "general"
    warning: bool = False


@dataclass
class DiagnosticReport:
    """Full diagnostic report for one repository."""

    checks: list[Check] = field(default_factory=list)
    repo_path: str = ""

    @property
    def errors(self) -> list[Check]:
        return [c for c in self.checks if not c.passed and not c.warning]

    @property
    def warnings(self) -> list[Check]:
        return [c for c in self.checks if not c.passed and c.warning]

    @property
    def ok(self) -> bool:
        """Whether the setup can back up (warnings allowed)."""
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "repo_path": self.repo_path,
            "ok": self.ok,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "checks": [
                {
                    "name": c.name,
                    "category": c.category,
                    "description": c.description,
                    "passed": c.passed,
                    "warning": c.warning,
                    "detail": c.detail,
                    "fix": c.fix,
                }
                for c in self.checks
            ],
        }


def run_diagnostics(
    repo_path: Path,
    home: Optional[Path] = None,
    check_service: bool = True,
) -> DiagnosticReport:
    """Run every check against a repository.

    Args:
        repo_path: Absolute repository path.
        home: Config home directory.
        check_service: Include the systemd service check.
    """
    report = DiagnosticReport(repo_path=str(repo_path))
    repo = GitRepo(repo_path)
    is_repo = repo.is_git_repo()

    report.checks.append(Check(
        name="repo:git",
        description="Valid git repository",
        passed=is_repo,
        fix="" if is_repo else "Run ghost-backup from inside a git repository",
        category="repository",
    ))
    report.checks.extend(_check_local_config(repo_path))
    report.checks.extend(_check_registry(repo_path, home))
    if is_repo:
        report.checks.extend(_check_git(repo, home))
    if check_service:
        report.checks.extend(_check_service())
    report.checks.extend(_check_gitleaks())
    return report


def _check_local_config(repo_path: Path) -> list[Check]:
    path = get_local_config_path(repo_path)
    if not path.exists():
        return [Check(
            name="config:local",
            description="Local config file",
            passed=False,
            warning=True,
            detail=f"not found: {path}",
            fix="Run 'ghost-backup init' to create it",
            category="config",
        )]

    try:
        cfg = load_local_config(repo_path)
    except ConfigError as exc:
        return [Check(
            name="config:local",
            description="Local config file",
            passed=False,
            detail=str(exc),
            fix=f"Fix or delete {path}",
            category="config",
        )]

    return [Check(
        name="config:local",
        description="Local config file",
        passed=True,
        detail=(
            f"interval={cfg.interval}s scan_secrets={cfg.scan_secrets} "
            f"only_staged={cfg.only_staged}"
        ),
        category="config",
    )]


def _check_registry(repo_path: Path, home: Optional[Path]) -> list[Check]:
    try:
        registry = load_registry(home)
    except ConfigError as exc:
        return [Check(
            name="config:registry",
            description="Repository registered",
            passed=False,
            detail=str(exc),
            category="config",
        )]

    registered = str(repo_path) in registry
    return [Check(
        name="config:registry",
        description="Repository registered",
        passed=registered,
        warning=not registered,
        fix="" if registered else "Run 'ghost-backup init' to add it",
        category="config",
    )]


def _check_git(repo: GitRepo, home: Optional[Path]) -> list[Check]:
    checks = []

    try:
        email = repo.get_user_email()
    except GitError:
        email = ""
    checks.append(Check(
        name="git:email",
        description="User email configured",
        passed=bool(email),
        detail=email,
        fix="" if email else "Run 'git config user.email \"you@example.com\"'",
        category="git",
    ))

    try:
        remote = repo.get_remote()
    except GitError as exc:
        remote = ""
        remote_detail = str(exc)
    else:
        remote_detail = remote
    checks.append(Check(
        name="git:remote",
        description="Remote configured",
        passed=bool(remote),
        detail=remote_detail,
        fix="" if remote else "Run 'git remote add origin <url>'",
        category="git",
    ))

    try:
        branch = repo.get_current_branch()
    except GitError as exc:
        branch = ""
        checks.append(Check(
            name="git:branch",
            description="Current branch",
            passed=False,
            warning=True,
            detail=str(exc),
            category="git",
        ))
    else:
        checks.append(Check(
            name="git:branch",
            description="Current branch",
            passed=True,
            detail=branch,
            category="git",
        ))

    try:
        global_config = load_global_config(home)
    except ConfigError as exc:
        checks.append(Check(
            name="config:global",
            description="Global config",
            passed=False,
            warning=True,
            detail=str(exc),
            category="config",
        ))
        global_config = GlobalConfig()

    try:
        identity = resolve_identity(repo, global_config)
    except IdentityError as exc:
        checks.append(Check(
            name="identity",
            description="Backup identifier",
            passed=False,
            detail=str(exc),
            fix="ghost-backup config set-token --username <name>",
            category="identity",
        ))
        return checks

    detail = f"{identity.identifier} (from {identity.source})"
    if branch:
        detail += f" -> {backup_ref(identity.identifier, branch)}"
    checks.append(Check(
        name="identity",
        description="Backup identifier",
        passed=True,
        detail=detail,
        fix=(
            "Set a custom identifier: ghost-backup config set-token --username <name>"
            if identity.source == "email" else ""
        ),
        category="identity",
    ))
    return checks


def _check_service() -> list[Check]:
    from .systemd import service_status, systemd_available

    if not systemd_available():
        return [Check(
            name="service",
            description="Background service",
            passed=False,
            warning=True,
            detail="systemd user session not available",
            fix="Run 'ghost-backup service run' in a terminal",
            category="service",
        )]

    status = service_status()
    return [Check(
        name="service",
        description="Background service",
        passed=status.active,
        warning=not status.active,
        detail=status.label,
        fix="" if status.active else "Run 'ghost-backup service start'",
        category="service",
    )]


def _check_gitleaks() -> list[Check]:
    available = gitleaks_available()
    return [Check(
        name="tool:gitleaks",
        description="gitleaks for secret scanning",
        passed=available,
        warning=not available,
        detail="" if available else "not found in PATH, secret scanning is skipped",
        fix="" if available else f"Install from {GITLEAKS_URL}",
        category="security",
    )]
