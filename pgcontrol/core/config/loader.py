"""
Configuration loader — reads pgcontrol.yml into domain models.

This is the primary entry point for loading instance configuration.
It reads YAML, fills gaps from the usual PostgreSQL environment
variables, validates against Pydantic schemas, and returns a typed
ControlConfig.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml

from pgcontrol.core.errors import ConfigurationFailure
from pgcontrol.core.models.config import ControlConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "pgcontrol.yml"

# postgres.<field> ← environment variable, used when the field is unset
_ENV_FALLBACKS = {
    "pgdata": "PGDATA",
    "port": "PGPORT",
    "config_file": "PG_CONFIG_FILE",
    "pg_ctl": "PG_CTL",
}


class ConfigError(ConfigurationFailure):
    """Raised when pgcontrol configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for pgcontrol.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to pgcontrol.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _apply_env_fallbacks(postgres: dict, environ: Mapping[str, str]) -> None:
    for key, var in _ENV_FALLBACKS.items():
        if postgres.get(key) in (None, "") and environ.get(var):
            postgres[key] = environ[var]
            logger.debug("postgres.%s taken from $%s", key, var)


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ControlConfig:
    """Load and validate pgcontrol configuration.

    Without a config file, the configuration is built from the
    environment alone (PGDATA, PGPORT, PG_CONFIG_FILE, PG_CTL).

    Args:
        path: Explicit path to pgcontrol.yml. If None, searches upward.
        environ: Environment used for fallbacks (default: os.environ).

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    environ = os.environ if environ is None else environ

    if path is None:
        path = find_config_file()

    data: dict = {}
    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")

        logger.debug("Loading pgcontrol config from %s", path)

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

        try:
            loaded = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Expected a YAML mapping in {path}, got {type(loaded).__name__}")
        data = loaded
    else:
        logger.debug("No %s found, using the environment only", CONFIG_FILE)

    postgres = data.get("postgres") or {}
    if not isinstance(postgres, dict):
        raise ConfigError(f"Expected 'postgres' to be a mapping, got {type(postgres).__name__}")
    _apply_env_fallbacks(postgres, environ)
    data["postgres"] = postgres

    try:
        config = ControlConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid pgcontrol configuration: {e}") from e

    logger.info("Loaded configuration for pgdata \"%s\"", config.postgres.pgdata)
    return config


def resolve_backup_dir(config: ControlConfig) -> str:
    """Staging directory for pg_basebackup, next to pgdata by default."""
    if config.backup_dir:
        return config.backup_dir
    pgdata = config.postgres.pgdata.rstrip("/")
    return os.path.join(os.path.dirname(pgdata), "backup")
