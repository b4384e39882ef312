"""
Backup identity resolution.

Backups are namespaced per user. The identifier comes from, in order:
the ``git_user`` override in the global config, the repository's
``user.name``, or the local part of ``user.email``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .refs import sanitize_ref_name

if TYPE_CHECKING:
    from .git import GitRepo
    from .models import GlobalConfig

SOURCE_OVERRIDE = "override"
SOURCE_NAME = "name"
SOURCE_EMAIL = "email"


class IdentityError(Exception):
    """Raised when no usable backup identity can be derived."""


@dataclass
class Identity:
    """A resolved identifier and where it came from."""

    identifier: str
    source: str


def _pick(override: str, name: str, email: str) -> Identity:
    override = override.strip()
    name = name.strip()
    email = email.strip()
    if override:
        return Identity(sanitize_ref_name(override), SOURCE_OVERRIDE)
    if name:
        return Identity(sanitize_ref_name(name), SOURCE_NAME)
    local_part = email.split("@", 1)[0]
    return Identity(sanitize_ref_name(local_part), SOURCE_EMAIL)


def generate_user_identifier(override: str, name: str, email: str) -> str:
    """Derive the ref-safe identifier for the current user.

    Args:
        override: Configured identifier override.
        name: Committer name.
        email: Committer email.

    Returns:
        str: Sanitized identifier, empty only if every input is empty.
    """
    return _pick(override, name, email).identifier


def resolve_identity(repo: "GitRepo", global_config: "GlobalConfig") -> Identity:
    """Resolve the identity for a repository.

    A missing ``user.name`` or ``user.email`` only matters when nothing
    with higher precedence is available.

    Raises:
        IdentityError: If the resolved identifier is empty.
    """
    from .git import GitError

    name = email = ""
    if not global_config.git_user.strip():
        try:
            name = repo.get_user_name()
        except GitError:
            name = ""
        if not name.strip():
            try:
                email = repo.get_user_email()
            except GitError as exc:
                raise IdentityError(f"No git user configured: {exc}") from exc

    identity = _pick(global_config.git_user, name, email)
    if not identity.identifier:
        raise IdentityError(
            "Cannot determine backup identity: set git_user, user.name or user.email"
        )
    return identity
