"""
Configuration loader — reads sindri.yml into the Settings model.

This is the primary entry point for loading configuration. It reads
YAML, validates against the Pydantic schema, applies environment
overrides, and returns a typed Settings object.

Unlike project files in other tools, sindri.yml is optional: with no
file present every command runs on defaults plus the environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from sindri.core.models.settings import Settings

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "sindri.yml"

# Environment variable → dotted settings key
ENV_OVERRIDES = {
    "APP_NAME": "app_name",
    "SINDRI_EXTENSIONS_DIR": "extensions.directory",
    "SINDRI_REMOTE_HOST": "remote.host",
    "SINDRI_REMOTE_PORT": "remote.port",
    "SINDRI_REMOTE_USER": "remote.user",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for sindri.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to sindri.yml, or None if not found.
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


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _apply_env(data: dict, environ: dict[str, str]) -> list[str]:
    """Overlay environment overrides onto raw config data in place."""
    applied: list[str] = []
    for var, dotted in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        node = data
        *parents, leaf = dotted.split(".")
        for key in parents:
            child = node.get(key)
            if child is None:
                child = node[key] = {}
            elif not isinstance(child, dict):
                raise ConfigError(
                    f"Cannot apply {var}: '{key}' must be a mapping, got {type(child).__name__}"
                )
            node = child
        node[leaf] = value
        applied.append(var)
    return applied


def load_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Load and validate settings.

    Args:
        path: Explicit path to sindri.yml. If None, searches upward and
            falls back to defaults when nothing is found.
        environ: Environment mapping (default: ``os.environ``).

    Returns:
        Validated Settings with relative directories anchored at the
        config file's directory (or the cwd when there is no file).

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    if path is None:
        path = find_config_file()

    data: dict = {}
    root = Path.cwd()
    if path is not None:
        data = _read_yaml(path)
        root = path.parent.resolve()
    else:
        logger.debug("No %s found, using defaults", CONFIG_FILE)

    applied = _apply_env(data, dict(os.environ if environ is None else environ))
    if applied:
        logger.debug("Environment overrides applied: %s", ", ".join(applied))

    try:
        settings = Settings.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    settings.resolve_paths(root)
    logger.info("Loaded settings for app '%s'", settings.app_name)
    return settings
