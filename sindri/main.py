"""
Sindri — CLI entrypoint.

Usage:
    python -m sindri.main --help
    python -m sindri.main extension list
    python -m sindri.main lifecycle status
    python -m sindri.main config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from sindri import __version__
from sindri.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="sindri")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to sindri.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Sindri — suspend, resume and configure your remote dev VM."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("SINDRI_LOG_FILE"),
        log_file_level=os.environ.get("SINDRI_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate sindri.yml and show the resolved settings."""
    from sindri.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.settings is not None  # guaranteed when valid
        settings = result.settings
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        source = result.config_path or "defaults (no sindri.yml found)"
        click.echo(f"   Source:     {source}")
        click.echo(f"   App:        {settings.app_name}")
        click.echo(f"   SSH:        {settings.ssh_target}")
        click.echo(f"   Extensions: {settings.extensions.directory}")
        click.echo(f"   State:      {settings.state_dir}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Register sub-command groups from sindri/ui/cli/ ───────────────

from sindri.ui.cli.extension import extension  # noqa: E402
from sindri.ui.cli.lifecycle import lifecycle  # noqa: E402

cli.add_command(extension)
cli.add_command(lifecycle)


if __name__ == "__main__":
    cli()
