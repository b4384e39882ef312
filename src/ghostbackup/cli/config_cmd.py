"""Config commands: set-token, get-token, clear-token."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ._common import CONFIG_HOME, console, fail


def mask_token(token: str) -> str:
    """Mask a token for display, keeping the first and last four characters.

    Tokens of eight characters or fewer are masked completely.
    """
    if len(token) <= 8:
        return "*" * len(token)
    return token[:4] + "*" * (len(token) - 8) + token[-4:]


def save_credentials(
    home: Path,
    username: Optional[str] = None,
    token: Optional[str] = None,
) -> Path:
    """Prompt for whatever was not given and store it in the global config.

    Args:
        home: Config home directory.
        username: Identifier override; prompted for when None.
        token: Personal access token; prompted for (hidden) when None.

    Returns:
        Path: The global config file that was written.
    """
    from ..config import ConfigError, load_global_config, save_global_config

    if username is None:
        username = click.prompt(
            "Git username (optional, press Enter to skip)", default="", show_default=False,
        )
    if token is None:
        token = click.prompt("Git personal access token", hide_input=True)

    username = username.strip()
    token = token.strip()
    if not token:
        fail("token cannot be empty")

    try:
        cfg = load_global_config(home)
    except ConfigError as exc:
        fail(str(exc))
        raise
    cfg.git_user = username
    cfg.git_token = token
    return save_global_config(cfg, home)


def _restart_hint() -> None:
    console.print("\n  [dim]Restart the service for changes to take effect:[/]")
    console.print("  [cyan]ghost-backup service restart[/]\n")


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group("config")
    def config_group():
        """Global configuration: credentials for non-interactive pushes.

        The service pushes without a terminal, so it needs a username and
        personal access token instead of an interactive credential prompt.
        """

    @config_group.command("set-token")
    @click.option("--home", default=CONFIG_HOME, type=click.Path())
    @click.option("--username", "-u", default=None, help="Git username (also the backup identifier).")
    @click.option("--token", "-t", default=None, help="Git personal access token.")
    def set_token(home: str, username: Optional[str], token: Optional[str]):
        """Set git credentials for authentication.

        Prompts for anything not given on the command line. The token is
        stored in the global config with owner-only permissions.

        Examples:

            ghost-backup config set-token

            ghost-backup config set-token --username alice --token ghp_xxxx
        """
        home_path = Path(home).expanduser()
        path = save_credentials(home_path, username, token)

        from ..config import load_global_config_or_default

        cfg = load_global_config_or_default(home_path)
        console.print(f"\n  [green]Git credentials saved to[/] {path}")
        if cfg.git_user:
            console.print(f"  Username: [bold]{cfg.git_user}[/]")
        console.print(f"  Token: {mask_token(cfg.git_token)}")
        _restart_hint()

    @config_group.command("get-token")
    @click.option("--home", default=CONFIG_HOME, type=click.Path())
    def get_token(home: str):
        """Show the configured git credentials with the token masked."""
        from ..config import ConfigError, load_global_config

        try:
            cfg = load_global_config(Path(home).expanduser())
        except ConfigError as exc:
            fail(str(exc))
            return

        if not cfg.git_token:
            console.print("\n  [yellow]No git credentials configured.[/]")
            console.print("  Set them with: [cyan]ghost-backup config set-token[/]\n")
            return

        if cfg.git_user:
            console.print(f"Git username: {cfg.git_user}")
        console.print(f"Git token: {mask_token(cfg.git_token)}")

    @config_group.command("clear-token")
    @click.option("--home", default=CONFIG_HOME, type=click.Path())
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    def clear_token(home: str, yes: bool):
        """Remove the git username and token from the global config."""
        from ..config import ConfigError, load_global_config, save_global_config

        home_path = Path(home).expanduser()
        try:
            cfg = load_global_config(home_path)
        except ConfigError as exc:
            fail(str(exc))
            return

        if not cfg.git_token:
            console.print("[yellow]No git credentials configured.[/]")
            return

        if not yes and not click.confirm("Clear the git credentials?", default=False):
            console.print("[dim]Cancelled.[/]")
            return

        cfg.git_user = ""
        cfg.git_token = ""
        save_global_config(cfg, home_path)
        console.print("\n  [green]Git credentials cleared.[/]")
        _restart_hint()
