"""
Ghost Backup: invisible work-in-progress snapshots for git.

A background safety net that periodically captures uncommitted changes
in every monitored repository and pushes them to a per-user backup ref
on the remote, without touching the working tree.
"""

import os

__version__ = "0.1.0"

CONFIG_HOME = os.environ.get("GHOSTBACKUP_HOME", "~/.config/ghost-backup")
