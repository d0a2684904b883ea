"""
Lifecycle use case — suspend, resume and inspect the remote dev VM.

The controller is stateless: every call re-fetches the machine from the
provider and decides from its current state.

    suspend   started → (backup) → settle → stop
              stopped → no-op
              transitional/unknown → warn, ask, then stop

    resume    stopped/transitional/unknown → start → poll state
                  → poll SSH → verify → session report
              started + reachable → verify → session report (no start)
              started + unreachable → poll SSH → ...

    status    read-only snapshot: state, SSH, metrics, volumes, cost

Both polls of a resume share one timeout budget. Mutating calls hold
``<state_dir>/lifecycle.lock`` and append to the audit ledger.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sindri.adapters.base import RemoteComputeAPI, RemoteShell
from sindri.core.errors import (
    NotConfirmed,
    RemoteCallFailed,
    ResumeTimedOut,
    SindriError,
    SuspendFailed,
)
from sindri.core.models.instance import InstanceState, RemoteInstance, Volume
from sindri.core.models.session import RestoreReport, SessionSnapshot
from sindri.core.models.settings import Settings
from sindri.core.persistence.audit import AuditWriter, new_operation_id
from sindri.core.persistence.lock_file import LockFile
from sindri.core.reliability.poller import PollResult, ReadinessPoller
from sindri.core.services.cost import CostEstimate, estimate
from sindri.core.services.session_preserver import SessionPreserver

logger = logging.getLogger(__name__)

LOCK_FILENAME = "lifecycle.lock"

ConfirmFn = Callable[[str], bool]

# name → remote command; output is shown as-is, failure as "not found"
VERIFY_CHECKS: dict[str, str] = {
    "workspace": "df -h /workspace | awk 'NR==2 {print $4 \" available\"}'",
    "node": "node --version",
    "claude": "command -v claude",
    "git": "git --version",
    "uptime": "uptime -p",
}

METRIC_COMMANDS: dict[str, str] = {
    "uptime": "uptime -p",
    "load": "uptime | awk -F'load average:' '{print $2}'",
    "disk": "df -h /workspace | awk 'NR==2 {print $5 \" used\"}'",
}


# ── Results ─────────────────────────────────────────────────────────


@dataclass
class LifecycleResult:
    """Outcome of a suspend or resume."""

    operation: str
    instance: RemoteInstance | None = None
    initial_state: str = InstanceState.UNKNOWN.value
    final_state: str = InstanceState.UNKNOWN.value
    changed: bool = False
    snapshot: SessionSnapshot | None = None
    restore: RestoreReport | None = None
    verification: dict[str, str] = field(default_factory=dict)
    polls: list[PollResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "instance": self.instance.to_dict() if self.instance else None,
            "initial_state": self.initial_state,
            "final_state": self.final_state,
            "changed": self.changed,
            "snapshot": self.snapshot.model_dump() if self.snapshot else None,
            "restore": self.restore.model_dump() if self.restore else None,
            "verification": self.verification,
            "polls": [p.to_dict() for p in self.polls],
            "warnings": self.warnings,
        }


@dataclass
class StatusReport:
    """Read-only view of the environment."""

    app_name: str
    state: InstanceState = InstanceState.UNKNOWN
    instance: RemoteInstance | None = None
    error: str | None = None
    reachable: bool = False
    metrics: dict[str, str] = field(default_factory=dict)
    volumes: list[Volume] = field(default_factory=list)
    cost: CostEstimate | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "app_name": self.app_name,
            "state": self.state.value,
            "instance": self.instance.to_dict() if self.instance else None,
            "error": self.error,
            "reachable": self.reachable,
            "metrics": self.metrics,
            "volumes": [v.model_dump() for v in self.volumes],
            "cost": self.cost.to_dict() if self.cost else None,
            "warnings": self.warnings,
        }


# ── Controller ──────────────────────────────────────────────────────


class LifecycleController:
    """Suspend/resume state machine over the provider and the shell.

    Args:
        compute: Provider API (flyctl or mock).
        shell: Remote shell (ssh or mock).
        settings: Resolved settings (app, SSH target, timings, backup).
        preserver: Session preserver (default: built from ``shell``).
        poller: Readiness poller (default: real clock).
        sleep: Used for the settle delay before stop.
        confirm: Prompt callback; ``None`` means nothing gets confirmed.
        audit: Audit writer (default: ``<state_dir>/audit.ndjson``).
        use_lock: Take the lifecycle lock on mutating calls.
    """

    def __init__(
        self,
        compute: RemoteComputeAPI,
        shell: RemoteShell,
        settings: Settings,
        *,
        preserver: SessionPreserver | None = None,
        poller: ReadinessPoller | None = None,
        sleep: Callable[[float], None] = time.sleep,
        confirm: ConfirmFn | None = None,
        audit: AuditWriter | None = None,
        use_lock: bool = True,
    ):
        self.compute = compute
        self.shell = shell
        self.settings = settings
        self.target = settings.ssh_target
        self.preserver = preserver or SessionPreserver(shell, self.target, settings.backup)
        self.poller = poller or ReadinessPoller()
        self._sleep = sleep
        self._confirm = confirm
        self.audit = audit or AuditWriter(state_dir=settings.state_dir)
        self._use_lock = use_lock

    # ═══════════════════════════════════════════════════════════════
    #  Suspend
    # ═══════════════════════════════════════════════════════════════

    def suspend(self, skip_backup: bool = False, force: bool = False) -> LifecycleResult:
        """Stop the instance, preserving sessions first when it is running.

        Raises:
            NotConfirmed: Operator declined a prompt.
            SuspendFailed: Provider rejected the stop.
            RemoteCallFailed: The instance could not be fetched.
        """
        return self._audited("suspend", lambda: self._suspend(skip_backup, force))

    def _suspend(self, skip_backup: bool, force: bool) -> LifecycleResult:
        instance = self._fetch()
        result = LifecycleResult(
            operation="suspend",
            instance=instance,
            initial_state=instance.state.value,
            final_state=instance.state.value,
        )

        if instance.state == InstanceState.STOPPED:
            logger.info("Instance %s is already stopped, nothing to do", instance.id)
            return result

        if instance.state in (InstanceState.TRANSITIONAL, InstanceState.UNKNOWN):
            message = f"Instance {instance.id} is in '{instance.raw_state}' state"
            logger.warning("%s", message)
            result.warnings.append(message)
            if not force:
                self._ask(f"{message}. Continue with suspend anyway?")

        if not force:
            self._ask(f"Suspend instance {instance.id} of {self.settings.app_name}?")

        if instance.state == InstanceState.STARTED:
            if skip_backup:
                logger.info("Skipping pre-suspend backup")
            elif self.shell.is_reachable(self.target, self.settings.remote.connect_timeout):
                result.snapshot = self.preserver.backup_before_suspend(instance)
                result.warnings.extend(result.snapshot.warnings)
            else:
                message = f"{self.target} not reachable, skipping pre-suspend backup"
                logger.warning("%s", message)
                result.warnings.append(message)
            self._sleep(self.settings.lifecycle.settle_seconds)

        logger.info("Stopping instance %s", instance.id)
        try:
            self.compute.stop_instance(self.settings.app_name, instance.id)
        except RemoteCallFailed as e:
            raise SuspendFailed(
                f"Provider rejected stop of instance {instance.id}: {e}"
            ) from e

        result.changed = True
        result.final_state = InstanceState.STOPPED.value
        return result

    # ═══════════════════════════════════════════════════════════════
    #  Resume
    # ═══════════════════════════════════════════════════════════════

    def resume(
        self,
        skip_verification: bool = False,
        timeout: float | None = None,
    ) -> LifecycleResult:
        """Start the instance and wait until SSH answers.

        Raises:
            ResumeTimedOut: Started state or SSH not reached in time.
            RemoteCallFailed: The instance could not be fetched/started.
        """
        budget = timeout if timeout is not None else self.settings.lifecycle.resume_timeout
        return self._audited("resume", lambda: self._resume(skip_verification, budget))

    def _resume(self, skip_verification: bool, timeout: float) -> LifecycleResult:
        instance = self._fetch()
        result = LifecycleResult(
            operation="resume",
            instance=instance,
            initial_state=instance.state.value,
            final_state=instance.state.value,
        )
        interval = self.settings.lifecycle.poll_interval
        remaining = timeout

        if instance.state == InstanceState.STARTED and self._reachable():
            logger.info("Instance %s is already running and reachable", instance.id)
        else:
            if instance.state != InstanceState.STARTED:
                logger.info("Starting instance %s", instance.id)
                self.compute.start_instance(self.settings.app_name, instance.id)
                result.changed = True

                latest = [instance]

                def started() -> bool:
                    latest[0] = self._fetch()
                    return latest[0].state == InstanceState.STARTED

                state_poll = self.poller.wait(
                    started,
                    interval=interval,
                    timeout=remaining,
                    label=f"instance {instance.id}",
                )
                result.polls.append(state_poll)
                if not state_poll.succeeded:
                    raise ResumeTimedOut(
                        f"Instance {instance.id} did not reach 'started' within {timeout:.0f}s"
                    )
                instance = result.instance = latest[0]
                remaining = max(remaining - state_poll.elapsed_seconds, 0.0)

            shell_poll = self.poller.wait(
                self._reachable,
                interval=interval,
                timeout=remaining,
                label=f"ssh {self.target}",
            )
            result.polls.append(shell_poll)
            if not shell_poll.succeeded:
                raise ResumeTimedOut(
                    f"Instance {instance.id} started but {self.target} "
                    f"did not answer within {timeout:.0f}s"
                )

        result.final_state = InstanceState.STARTED.value

        if skip_verification:
            logger.info("Skipping functionality verification")
        else:
            result.verification = self.verify()

        result.restore = self.preserver.restore_after_resume(instance)
        result.warnings.extend(result.restore.warnings)
        return result

    def verify(self) -> dict[str, str]:
        """Informational environment checks. Never fails."""
        checks: dict[str, str] = {}
        for name, command in VERIFY_CHECKS.items():
            outcome = self.shell.exec(self.target, command)
            checks[name] = outcome.stdout.strip() if outcome.ok and outcome.stdout.strip() else "not found"
        logger.debug("Verification: %s", checks)
        return checks

    # ═══════════════════════════════════════════════════════════════
    #  Backups
    # ═══════════════════════════════════════════════════════════════

    def list_backups(self) -> list[str]:
        """Archives available on the instance, newest first."""
        return self.preserver.list_backups()

    def restore(
        self,
        archive: str,
        destination: str = "/",
        *,
        confirmed: bool = False,
    ) -> LifecycleResult:
        """Unpack a backup on the running instance (safety snapshot first).

        Raises:
            NotConfirmed, NotFound, RemoteCallFailed
        """
        return self._audited(
            "restore", lambda: self._restore(archive, destination, confirmed)
        )

    def _restore(self, archive: str, destination: str, confirmed: bool) -> LifecycleResult:
        instance = self._fetch()
        if instance.state != InstanceState.STARTED:
            raise RemoteCallFailed(
                f"Instance {instance.id} is {instance.state.value}, cannot restore {archive}",
                remediation="Run 'sindri lifecycle resume' first.",
            )
        result = LifecycleResult(
            operation="restore",
            instance=instance,
            initial_state=instance.state.value,
            final_state=instance.state.value,
        )
        result.snapshot = self.preserver.restore_snapshot(
            archive, destination, confirmed=confirmed
        )
        result.warnings.extend(result.snapshot.warnings)
        result.changed = True
        return result

    # ═══════════════════════════════════════════════════════════════
    #  Status
    # ═══════════════════════════════════════════════════════════════

    def status(self) -> StatusReport:
        """Read-only snapshot. Never raises on provider failure."""
        report = StatusReport(app_name=self.settings.app_name)

        try:
            report.instance = self._fetch()
            report.state = report.instance.state
        except RemoteCallFailed as e:
            report.error = str(e)
            logger.warning("Status query failed: %s", e)

        if report.state == InstanceState.STARTED:
            report.reachable = self._reachable()
            if report.reachable:
                report.metrics = self._metrics()

        try:
            report.volumes = self.compute.list_volumes(self.settings.app_name)
        except RemoteCallFailed as e:
            report.warnings.append(f"Could not list volumes: {e}")

        report.cost = estimate(report.instance, report.volumes)
        return report

    # ═══════════════════════════════════════════════════════════════
    #  Helpers
    # ═══════════════════════════════════════════════════════════════

    def _fetch(self) -> RemoteInstance:
        instances = self.compute.list_instances(self.settings.app_name)
        if not instances:
            raise RemoteCallFailed(
                f"No machines found for app '{self.settings.app_name}'",
                remediation="Deploy the app first: flyctl deploy",
            )
        if self.settings.machine_id:
            for inst in instances:
                if inst.id == self.settings.machine_id:
                    return inst
            raise RemoteCallFailed(
                f"Machine {self.settings.machine_id} not found in app '{self.settings.app_name}'",
                remediation="Check machine_id in sindri.yml against 'flyctl machine list'.",
            )
        return instances[0]

    def _reachable(self) -> bool:
        return self.shell.is_reachable(self.target, self.settings.remote.connect_timeout)

    def _metrics(self) -> dict[str, str]:
        metrics: dict[str, str] = {}
        for name, command in METRIC_COMMANDS.items():
            outcome = self.shell.exec(self.target, command)
            if outcome.ok:
                metrics[name] = outcome.stdout.strip()
        return metrics

    def _ask(self, prompt: str) -> None:
        if self._confirm is None or not self._confirm(prompt):
            raise NotConfirmed(f"Not confirmed: {prompt}")

    def _audited(self, operation: str, run: Callable[[], LifecycleResult]) -> LifecycleResult:
        operation_id = new_operation_id(operation)
        started = time.monotonic()
        context: dict[str, Any] = {"target": str(self.target)}

        lock = LockFile(self.settings.state_dir / LOCK_FILENAME, operation=operation)
        if self._use_lock:
            lock.acquire()
        try:
            result = run()
        except SindriError as e:
            self.audit.record(
                operation,
                target=self.settings.machine_id or self.settings.app_name,
                status="cancelled" if isinstance(e, NotConfirmed) else "failed",
                operation_id=operation_id,
                app_name=self.settings.app_name,
                duration_ms=int((time.monotonic() - started) * 1000),
                errors=[str(e)],
                context=context,
            )
            raise
        finally:
            lock.release()

        self.audit.record(
            operation,
            target=result.instance.id if result.instance else self.settings.app_name,
            status="ok" if result.changed else "noop",
            operation_id=operation_id,
            app_name=self.settings.app_name,
            duration_ms=int((time.monotonic() - started) * 1000),
            warnings=result.warnings,
            context={**context, "initial_state": result.initial_state},
        )
        return result


# ── Factory ─────────────────────────────────────────────────────────


def build_controller(
    settings: Settings,
    *,
    mock: bool = False,
    confirm: ConfirmFn | None = None,
    on_attempt: Callable[[str, int], None] | None = None,
) -> LifecycleController:
    """Wire a controller with the real adapters (or the mocks)."""
    compute: RemoteComputeAPI
    shell: RemoteShell
    if mock:
        from sindri.adapters.mock import MockComputeAPI, MockShell

        compute = MockComputeAPI(state="started")
        shell = MockShell()
    else:
        from sindri.adapters.fly.machines import FlyMachinesAdapter
        from sindri.adapters.shell.ssh import SSHShellAdapter

        compute = FlyMachinesAdapter()
        shell = SSHShellAdapter()

    return LifecycleController(
        compute,
        shell,
        settings,
        poller=ReadinessPoller(on_attempt=on_attempt),
        confirm=confirm,
    )
