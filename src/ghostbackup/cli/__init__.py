"""
Ghost Backup CLI.

Each command group lives in its own module and is registered on the
main Click group through a register function.

Entry point: ghostbackup.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="ghost-backup")
def main():
    """Ghost Backup: automated git work-in-progress backups.

    A background safety net that pushes invisible snapshots of your
    uncommitted changes to the remote, for every repository you register.
    """


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .setup import register_setup_commands
from .snapshots import register_snapshot_commands
from .check import register_check_commands
from .config_cmd import register_config_commands
from .service import register_service_commands
from .workflow_cmd import register_workflow_commands

register_setup_commands(main)
register_snapshot_commands(main)
register_check_commands(main)
register_config_commands(main)
register_service_commands(main)
register_workflow_commands(main)
