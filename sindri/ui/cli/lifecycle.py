"""
CLI commands for the VM lifecycle.

Thin wrappers over ``sindri.core.use_cases.lifecycle``.
"""

from __future__ import annotations

import json

import click

from sindri.core.errors import SindriError
from sindri.ui.cli.common import fail, prompt, resolve_settings

_STATE_STYLE = {
    "started": ("🟢", "green"),
    "stopped": ("⏸️ ", "yellow"),
    "transitional": ("🔄", "cyan"),
    "unknown": ("❔", "white"),
}


def _controller(ctx: click.Context, as_json: bool, mock: bool):
    from sindri.core.use_cases.lifecycle import build_controller

    settings = resolve_settings(ctx, as_json)

    def _progress(label: str, attempt: int) -> None:
        if not as_json and not ctx.obj.get("quiet"):
            click.echo(".", nl=False)

    return build_controller(settings, mock=mock, confirm=prompt, on_attempt=_progress)


@click.group()
def lifecycle() -> None:
    """Lifecycle — suspend, resume and inspect the dev VM."""


@lifecycle.command()
@click.option("--skip-backup", is_flag=True, help="Don't archive sessions before stopping.")
@click.option("--force", is_flag=True, help="Don't ask for confirmation.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real machine).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def suspend(ctx: click.Context, skip_backup: bool, force: bool, mock: bool, as_json: bool) -> None:
    """Suspend the VM (sessions are backed up first)."""
    controller = _controller(ctx, as_json, mock)

    try:
        result = controller.suspend(skip_backup=skip_backup, force=force)
    except SindriError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    instance_id = result.instance.id if result.instance else "?"
    if not result.changed:
        click.secho(f"⏸️  Instance {instance_id} is already stopped", fg="yellow")
        return

    if result.snapshot and result.snapshot.archive_path:
        click.echo(f"   💾 Backup: {result.snapshot.archive_path}")
    for warn in result.warnings:
        click.secho(f"   ⚠️  {warn}", fg="yellow")
    click.secho(f"✅ Instance {instance_id} suspended", fg="green", bold=True)
    click.echo("   Resume with: sindri lifecycle resume")


@lifecycle.command()
@click.option("--skip-verification", is_flag=True, help="Skip the post-resume checks.")
@click.option("--timeout", type=float, default=None, help="Seconds to wait (default: from config).")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real machine).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def resume(
    ctx: click.Context,
    skip_verification: bool,
    timeout: float | None,
    mock: bool,
    as_json: bool,
) -> None:
    """Resume the VM and wait until SSH answers."""
    controller = _controller(ctx, as_json, mock)

    if not as_json:
        click.secho(f"🔄 Resuming {controller.settings.app_name}", fg="cyan", nl=False)

    try:
        result = controller.resume(skip_verification=skip_verification, timeout=timeout)
    except SindriError as e:
        if not as_json:
            click.echo()
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo()
    instance_id = result.instance.id if result.instance else "?"
    if result.changed:
        click.secho(f"✅ Instance {instance_id} resumed", fg="green", bold=True)
    else:
        click.secho(f"✅ Instance {instance_id} is already running", fg="green", bold=True)

    if result.verification:
        click.echo()
        click.secho("   Verification:", fg="white", bold=True)
        for name, value in result.verification.items():
            click.echo(f"     • {name}: {value}")

    if result.restore:
        click.echo()
        if result.restore.sessions:
            click.secho(f"   🔄 tmux sessions ({len(result.restore.sessions)}):", fg="white", bold=True)
            for session in result.restore.sessions:
                click.echo(f"     • {session}")
            click.echo("     Reconnect with: tmux attach")
        else:
            click.echo("   📱 No tmux sessions found")
        if result.restore.backups:
            click.secho("   💾 Backups available:", fg="white", bold=True)
            for path in result.restore.backups:
                click.echo(f"     • {path}")

    for warn in result.warnings:
        click.secho(f"   ⚠️  {warn}", fg="yellow")

    target = controller.target
    click.echo()
    click.echo(f"   SSH: ssh {target.user}@{target.host} -p {target.port}")
    click.echo()


@lifecycle.command()
@click.option("--mock", is_flag=True, help="Use mock adapters (no real machine).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, mock: bool, as_json: bool) -> None:
    """Show VM state, reachability, metrics and cost."""
    controller = _controller(ctx, as_json, mock)
    report = controller.status()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    icon, color = _STATE_STYLE.get(report.state.value, ("❔", "white"))
    click.echo()
    click.secho(f"{icon} {report.app_name}: {report.state.value.upper()}", fg=color, bold=True)
    if report.error:
        click.secho(f"   {report.error}", fg="red")

    if report.instance:
        inst = report.instance
        click.echo(f"   Machine: {inst.id} ({inst.region})")
        click.echo(f"   Size:    {inst.size}")
        click.echo(f"   Created: {inst.created_at}")

    if report.state.value == "started":
        ssh_label = "reachable" if report.reachable else "not reachable"
        click.echo(f"   SSH:     {controller.target} ({ssh_label})")
    for name, value in report.metrics.items():
        click.echo(f"   {name.capitalize() + ':':<8} {value}")

    if report.volumes:
        click.echo()
        click.secho("   Volumes:", fg="white", bold=True)
        for vol in report.volumes:
            click.echo(f"     • {vol.name} ({vol.id}) {vol.size_gb}GB {vol.region}")

    if report.cost:
        cost = report.cost
        billing = "active" if cost.running else "stopped (storage only)"
        click.echo()
        click.secho("   Cost estimate:", fg="white", bold=True)
        click.echo(f"     Compute: ${cost.hourly_compute:.4f}/hour ({billing})")
        click.echo(f"     Monthly: ${cost.monthly_compute:.2f} compute + "
                   f"${cost.monthly_volume:.2f} storage = ${cost.monthly_total:.2f}")

    for warn in report.warnings:
        click.secho(f"   ⚠️  {warn}", fg="yellow")
    click.echo()


@lifecycle.command("backups")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real machine).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def backups_cmd(ctx: click.Context, mock: bool, as_json: bool) -> None:
    """List session backups on the VM, newest first."""
    controller = _controller(ctx, as_json, mock)

    try:
        backups = controller.list_backups()
    except SindriError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps({"backups": backups}, indent=2))
        return

    if not backups:
        click.secho("No backups found", fg="yellow")
        return

    click.secho(f"💾 Backups ({len(backups)}):", fg="cyan", bold=True)
    for path in backups:
        click.echo(f"   {path}")
    click.echo()


@lifecycle.command()
@click.argument("archive")
@click.option("--dest", "destination", default="/", show_default=True, help="Extract under this directory.")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real machine).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def restore(
    ctx: click.Context,
    archive: str,
    destination: str,
    yes: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Restore a backup ARCHIVE on the VM (a safety snapshot is taken first)."""
    controller = _controller(ctx, as_json, mock)

    confirmed = yes or prompt(f"Restore {archive} over {destination}? Current files will be overwritten.")

    try:
        result = controller.restore(archive, destination, confirmed=confirmed)
    except SindriError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"✅ Restored {archive}", fg="green", bold=True)
    if result.snapshot:
        click.echo(f"   💾 Safety snapshot: {result.snapshot.archive_path}")
    for warn in result.warnings:
        click.secho(f"   ⚠️  {warn}", fg="yellow")
