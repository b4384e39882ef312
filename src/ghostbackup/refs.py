"""
Backup ref naming.

Every backup lives in exactly one slot on the remote:

    refs/backups/<identity>/<branch>

Both components are sanitized so that user names, emails and branch
names with slashes collapse into a single legal ref component. Pushing
to a slot replaces whatever it pointed at before.
"""

from __future__ import annotations

from typing import Optional

from .models import BackupLocation, BackupRef

BACKUP_NAMESPACE = "refs/backups"

_REPLACEMENTS = {
    "@": "_at_",
    " ": "_",
    ":": "_",
    "/": "_",
    "\\": "_",
    "^": "_",
    "~": "_",
    "?": "_",
    "*": "_",
    "[": "_",
}

_TRANSLATION = str.maketrans(_REPLACEMENTS)


def sanitize_ref_name(raw: str) -> str:
    """Make a string safe to use as a single ref component.

    Args:
        raw: Any string, including empty.

    Returns:
        str: The string with every disallowed character substituted.
    """
    return raw.translate(_TRANSLATION)


def backup_ref(identifier: str, branch: str) -> str:
    """Compose the slot for an identity and branch."""
    return f"{BACKUP_NAMESPACE}/{sanitize_ref_name(identifier)}/{sanitize_ref_name(branch)}"


def backup_ref_pattern(identifier: str, branch: Optional[str] = None) -> str:
    """Build the ls-remote pattern for one user's backups.

    Args:
        identifier: User identifier.
        branch: Restrict to one branch; every branch when omitted.
    """
    branch_part = sanitize_ref_name(branch) if branch else "*"
    return f"{BACKUP_NAMESPACE}/{sanitize_ref_name(identifier)}/{branch_part}"


def parse_backup_ref(ref: str, hash: str = "") -> BackupLocation:
    """Decode a slot back into its user and branch.

    Raises:
        ValueError: If ``ref`` is not inside the backup namespace.
    """
    prefix = BACKUP_NAMESPACE + "/"
    if not ref.startswith(prefix):
        raise ValueError(f"Not a backup ref: {ref}")

    parts = ref[len(prefix):].split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Malformed backup ref: {ref}")

    return BackupLocation(user=parts[0], branch=parts[1], hash=hash)


def parse_ls_remote(output: str) -> list[BackupRef]:
    """Parse ``<hash> <ref>`` lines as printed by ``git ls-remote``."""
    refs = []
    for line in output.strip().splitlines():
        fields = line.split()
        if len(fields) >= 2:
            refs.append(BackupRef(hash=fields[0], ref=fields[1]))
    return refs
