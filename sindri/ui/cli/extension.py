"""
CLI commands for extensions.

Thin wrappers over ``sindri.core.services.extension_registry`` and
``sindri.core.services.phase_scheduler``.
"""

from __future__ import annotations

import json
import sys
import time

import click

from sindri.core.errors import SindriError
from sindri.core.models.settings import Settings
from sindri.core.persistence.audit import AuditWriter
from sindri.ui.cli.common import fail, prompt, resolve_settings


def _registry(settings: Settings):
    from sindri.core.services.extension_registry import ExtensionRegistry

    return ExtensionRegistry(
        settings.extensions.directory,
        protected_prefixes=settings.extensions.protected_prefixes,
    )


def _audit(settings: Settings, operation: str, target: str, status: str, started: float, **kwargs) -> None:
    AuditWriter(state_dir=settings.state_dir).record(
        operation,
        target=target,
        status=status,
        app_name=settings.app_name,
        duration_ms=int((time.monotonic() - started) * 1000),
        **kwargs,
    )


@click.group()
def extension() -> None:
    """Extensions — list, activate, deactivate and run setup scripts."""


@extension.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List available and active extensions."""
    settings = resolve_settings(ctx, as_json)
    registry = _registry(settings)

    try:
        extensions = registry.list()
    except SindriError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in extensions], indent=2))
        return

    if not extensions:
        click.secho(f"No extensions found in {registry.directory}", fg="yellow")
        return

    active = sum(1 for e in extensions if e.active)
    click.secho(
        f"\n🧩 Extensions in {registry.directory} ({active}/{len(extensions)} active):",
        fg="cyan",
        bold=True,
    )
    for ext in extensions:
        lock = " 🔒" if ext.protected else ""
        phase = f"[{ext.phase.value}]"
        if ext.orphan:
            click.secho(f"   ⚠ {ext.id:<24}", fg="yellow", nl=False)
            click.echo(f" {phase:<10} active, no template{lock}")
        elif ext.active:
            note = " (modified)" if ext.is_modified(registry.comparator) else ""
            click.secho(f"   ✓ {ext.id:<24}", fg="green", nl=False)
            click.echo(f" {phase:<10} active{note}{lock}")
        else:
            click.echo(f"   ○ {ext.id:<24} {phase:<10} available{lock}")
    click.echo()


@extension.command()
@click.argument("ext_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def activate(ctx: click.Context, ext_id: str, as_json: bool) -> None:
    """Activate an extension (copy its template into place)."""
    settings = resolve_settings(ctx, as_json)
    started = time.monotonic()

    try:
        ext = _registry(settings).activate(ext_id)
    except SindriError as e:
        _audit(settings, "activate", ext_id, "failed", started, errors=[str(e)])
        fail(e, as_json)

    _audit(settings, "activate", ext.id, "ok", started)

    if as_json:
        click.echo(json.dumps(ext.to_dict(), indent=2))
        return

    click.secho(f"✅ Extension '{ext.id}' activated", fg="green", bold=True)
    click.echo(f"   File: {ext.active_path}")
    click.echo("   Run 'sindri extension run' to execute it.")


@extension.command()
@click.argument("ext_id")
@click.option("--backup", is_flag=True, help="Always keep a backup copy.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deactivate(ctx: click.Context, ext_id: str, backup: bool, yes: bool, as_json: bool) -> None:
    """Deactivate an extension (modified copies are always backed up)."""
    settings = resolve_settings(ctx, as_json)
    started = time.monotonic()

    try:
        result = _registry(settings).deactivate(
            ext_id, backup=backup, confirmed=yes, confirm=prompt,
        )
    except SindriError as e:
        _audit(settings, "deactivate", ext_id, "failed", started, errors=[str(e)])
        fail(e, as_json)

    _audit(
        settings, "deactivate", result.extension.id, "ok", started,
        context={"backup_path": str(result.backup_path) if result.backup_path else None},
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"✅ Extension '{result.extension.id}' deactivated", fg="green", bold=True)
    if result.backup_path:
        click.echo(f"   💾 Backup: {result.backup_path}")


def _print_batch(report, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        if not report.ok:
            sys.exit(1)
        return

    label = "[dry-run] " if report.dry_run else ""
    click.secho(f"\n⚡ {label}{report.operation}", fg="cyan", bold=True)
    for ext_id in report.done:
        click.secho(f"   ✓ {ext_id}", fg="green")
    for ext_id in report.protected_skipped:
        click.secho(f"   🔒 {ext_id} (protected)", fg="yellow")
    for ext_id in report.skipped:
        click.echo(f"   ⊘ {ext_id} (skipped)")
    for ext_id, error in report.failed.items():
        click.secho(f"   ✗ {ext_id}", fg="red", nl=False)
        click.echo(f"  {error}")
    for path in report.backups:
        click.echo(f"   💾 {path}")

    counts = report.counts()
    click.echo()
    click.secho(
        f"   Done: {counts['done']}  Skipped: {counts['skipped']}  "
        f"Protected: {counts['protected_skipped']}  Failed: {counts['failed']}",
        fg="green" if report.ok else "red",
        bold=True,
    )
    click.echo()
    if not report.ok:
        sys.exit(1)


@extension.command("activate-all")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def activate_all(ctx: click.Context, as_json: bool) -> None:
    """Activate every available extension."""
    settings = resolve_settings(ctx, as_json)
    started = time.monotonic()

    try:
        report = _registry(settings).activate_all()
    except SindriError as e:
        fail(e, as_json)

    _audit(
        settings, "activate-all", str(settings.extensions.directory),
        "ok" if report.ok else "partial", started,
        errors=[f"{k}: {v}" for k, v in report.failed.items()],
        context=report.counts(),
    )
    _print_batch(report, as_json)


@extension.command("deactivate-all")
@click.option("--backup", is_flag=True, help="Always keep backup copies.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--dry-run", is_flag=True, help="Show what would be deactivated.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deactivate_all(
    ctx: click.Context,
    backup: bool,
    yes: bool,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Deactivate every non-protected extension."""
    settings = resolve_settings(ctx, as_json)
    started = time.monotonic()

    try:
        report = _registry(settings).deactivate_all(
            backup=backup, confirmed=yes, confirm=prompt, dry_run=dry_run,
        )
    except SindriError as e:
        fail(e, as_json)

    if not dry_run:
        _audit(
            settings, "deactivate-all", str(settings.extensions.directory),
            "ok" if report.ok else "partial", started,
            errors=[f"{k}: {v}" for k, v in report.failed.items()],
            context=report.counts(),
        )
    _print_batch(report, as_json)


@extension.command()
@click.option(
    "--phase",
    type=click.Choice(["pre", "install", "post", "all"]),
    default="all",
    show_default=True,
    help="Phase to run.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(ctx: click.Context, phase: str, as_json: bool) -> None:
    """Run active extensions locally, phase by phase.

    Examples:

        sindri extension run

        sindri extension run --phase pre
    """
    from sindri.adapters.shell.command import LocalScriptExecutor
    from sindri.core.services.phase_scheduler import PhaseScheduler

    settings = resolve_settings(ctx, as_json)
    registry = _registry(settings)
    scheduler = PhaseScheduler()
    executor = LocalScriptExecutor(timeout=settings.extensions.script_timeout)

    try:
        if phase == "all":
            reports = scheduler.run_all(registry, executor)
        else:
            reports = [scheduler.run(phase, registry, executor)]
    except SindriError as e:
        fail(e, as_json)

    ok = all(r.ok for r in reports)

    if as_json:
        click.echo(json.dumps({"ok": ok, "phases": [r.to_dict() for r in reports]}, indent=2))
        if not ok:
            sys.exit(1)
        return

    for report in reports:
        click.secho(f"\n▶ Phase: {report.phase.value}", fg="cyan", bold=True)
        if not report.entries:
            click.echo("   (no active extensions)")
        for entry in report.entries:
            timing = f" ({entry.duration_ms}ms)" if entry.duration_ms else ""
            if entry.ran and entry.succeeded:
                click.secho(f"   ✓ {entry.id}", fg="green", nl=False)
                click.echo(timing)
            elif entry.ran:
                click.secho(f"   ✗ {entry.id}", fg="red", nl=False)
                exit_label = f"  exit {entry.exit_code}" if entry.exit_code is not None else ""
                click.echo(f"{timing}{exit_label}")
                for line in entry.error.split("\n")[:5]:
                    click.echo(f"     │ {line}")
            else:
                click.secho(f"   ⊘ {entry.id} ", fg="yellow", nl=False)
                click.echo(f"({entry.error})")

    click.echo()
    if not ok:
        click.secho("   Some extensions failed", fg="red", bold=True)
        click.echo()
        sys.exit(1)
