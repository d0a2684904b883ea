"""
Shared helpers for the CLI command groups.
"""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click

from sindri.core.config.loader import ConfigError, load_settings
from sindri.core.errors import SindriError
from sindri.core.models.settings import Settings


def resolve_settings(ctx: click.Context, as_json: bool = False) -> Settings:
    """Load settings for the invocation, exiting 1 on a bad config."""
    try:
        return load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"error": str(e), "kind": "ConfigError"}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def fail(err: SindriError, as_json: bool = False) -> NoReturn:
    """Print an error with its remediation hint and exit 1."""
    if as_json:
        click.echo(json.dumps(err.to_dict(), indent=2))
    else:
        click.secho(f"❌ {err}", fg="red")
        if err.remediation:
            click.secho(f"   💡 {err.remediation}", dim=True)
    sys.exit(1)


def prompt(message: str) -> bool:
    """Interactive yes/no, defaulting to no."""
    return click.confirm(message, default=False)
