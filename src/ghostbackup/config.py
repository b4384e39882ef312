"""
Configuration storage for ghost-backup.

Three files, three owners:

    <config home>/config.yaml       # GlobalConfig, edited by the user
    <config home>/registry.json     # Registry, written by init/uninstall
    <repo>/.ghost-backup.json       # LocalConfig, one per repository

The config home defaults to ~/.config/ghost-backup and can be moved
with GHOSTBACKUP_HOME.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import CONFIG_HOME
from .models import GlobalConfig, LocalConfig, Registry

logger = logging.getLogger("ghostbackup.config")

GLOBAL_CONFIG_FILE = "config.yaml"
REGISTRY_FILE = "registry.json"
LOCAL_CONFIG_FILE = ".ghost-backup.json"
LOG_FILE = "ghost-backup.log"


class ConfigError(Exception):
    """Raised when a configuration file exists but cannot be used."""


def get_config_dir(home: Optional[Path] = None) -> Path:
    """Resolve the config home directory."""
    return (home or Path(CONFIG_HOME)).expanduser()


def get_log_file_path(home: Optional[Path] = None) -> Path:
    return get_config_dir(home) / LOG_FILE


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def get_registry_path(home: Optional[Path] = None) -> Path:
    return get_config_dir(home) / REGISTRY_FILE


def load_registry(home: Optional[Path] = None) -> Registry:
    """Load the registry of monitored repositories.

    A missing or empty file is an empty registry.

    Args:
        home: Config home directory.

    Returns:
        Registry: The monitored repository paths.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    path = get_registry_path(home)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        return Registry()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read registry: {exc}") from exc

    if not raw.strip():
        return Registry()

    try:
        return Registry.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"Failed to parse registry: {exc}") from exc


def save_registry(registry: Registry, home: Optional[Path] = None) -> Path:
    """Write the registry to disk."""
    path = get_registry_path(home)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(registry.model_dump_json(indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Local (per-repository) config
# ---------------------------------------------------------------------------


def get_local_config_path(repo_path: str | Path) -> Path:
    return Path(repo_path) / LOCAL_CONFIG_FILE


def load_local_config(repo_path: str | Path) -> LocalConfig:
    """Load a repository's local config, falling back to defaults.

    Raises:
        ConfigError: If the file exists but is unreadable or invalid.
    """
    path = get_local_config_path(repo_path)
    if not path.exists():
        return LocalConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return LocalConfig(**data)
    except (OSError, json.JSONDecodeError, TypeError, ValidationError) as exc:
        raise ConfigError(f"Failed to load local config {path}: {exc}") from exc


def save_local_config(repo_path: str | Path, config: LocalConfig) -> Path:
    path = get_local_config_path(repo_path)
    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


def get_global_config_path(home: Optional[Path] = None) -> Path:
    return get_config_dir(home) / GLOBAL_CONFIG_FILE


def load_global_config(home: Optional[Path] = None) -> GlobalConfig:
    """Load the global config.

    Returns defaults when the file does not exist.

    Raises:
        ConfigError: If the YAML is malformed or has the wrong shape.
    """
    path = get_global_config_path(home)
    if not path.exists():
        return GlobalConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return GlobalConfig(**data)
    except (OSError, yaml.YAMLError, TypeError, ValidationError) as exc:
        raise ConfigError(f"Failed to load global config: {exc}") from exc


def save_global_config(config: GlobalConfig, home: Optional[Path] = None) -> Path:
    """Write the global config, readable only by the owner."""
    path = get_global_config_path(home)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    os.chmod(path, 0o600)
    return path


def load_global_config_or_default(home: Optional[Path] = None) -> GlobalConfig:
    """Load the global config, logging and ignoring any error."""
    try:
        return load_global_config(home)
    except ConfigError as exc:
        logger.warning("%s", exc)
        return GlobalConfig()


def credentials_configured(home: Optional[Path] = None) -> bool:
    """Whether a username or token has been configured."""
    cfg = load_global_config_or_default(home)
    return bool(cfg.git_user or cfg.git_token)
