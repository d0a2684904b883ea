"""
Config check use case — validate sindri.yml and report issues.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from sindri.core.config.loader import ConfigError, find_config_file, load_settings
from sindri.core.models.settings import Settings


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    settings: Settings | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "settings": self.settings.model_dump(mode="json") if self.settings else None,
        }


def check_config(
    config_path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> ConfigCheckResult:
    """Validate configuration and report issues.

    A missing sindri.yml is not an error: defaults apply.

    Args:
        config_path: Optional explicit path to sindri.yml.
        environ: Environment mapping (default: ``os.environ``).
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    result.config_path = config_path

    try:
        settings = load_settings(config_path, environ=environ)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.settings = settings

    # Semantic checks
    if not settings.extensions.directory.is_dir():
        result.warnings.append(
            f"Extensions directory does not exist: {settings.extensions.directory}"
        )

    if not settings.extensions.protected_prefixes:
        result.warnings.append("No protected prefixes: every extension can be deactivated.")

    if settings.lifecycle.poll_interval > settings.lifecycle.resume_timeout:
        result.warnings.append("lifecycle.poll_interval is larger than resume_timeout.")

    if not settings.backup.critical_paths:
        result.warnings.append("backup.critical_paths is empty: suspend archives will be empty.")

    for binary in ("flyctl", "ssh"):
        if shutil.which(binary) is None:
            result.warnings.append(f"'{binary}' not found on PATH (lifecycle commands need it).")

    result.valid = not result.errors
    return result
