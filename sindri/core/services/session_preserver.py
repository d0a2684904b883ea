"""
Session preserver — protect work in progress across suspend/resume.

Before suspend (over the remote shell, in this order):

    1. tmux sessions    send C-s to every session
    2. editors          SIGUSR1 to vim/nvim so they write swap/session
    3. sync             flush filesystem buffers
    4. dev servers      TERM, grace period, KILL
    5. archive          tar the critical directories (best effort)
    6. prune            keep only the newest ``retention`` suspend archives

Each step is independent: a failure is recorded as a warning on the
snapshot and the next step still runs. Only a failed archive marks the
snapshot incomplete.

After resume the preserver only *reports* (live tmux sessions, available
archives). Unpacking an archive is a separate, confirmed operation that
always takes a safety snapshot first.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
from collections.abc import Callable
from datetime import datetime

from sindri.adapters.base import ArchiveTool, RemoteShell
from sindri.adapters.shell.archive import RemoteTarArchive
from sindri.core.errors import NotConfirmed, NotFound, PartialBackupFailure, RemoteCallFailed
from sindri.core.models.instance import RemoteInstance
from sindri.core.models.session import RestoreReport, SessionSnapshot
from sindri.core.models.settings import BackupSettings, SSHTarget

logger = logging.getLogger(__name__)

SUSPEND_PREFIX = "suspend_backup_"
SAFETY_PREFIX = "pre_restore_"
ARCHIVE_SUFFIX = ".tar.gz"


class SessionPreserver:
    """Backup/report/restore of the instance's working state.

    Args:
        shell: Remote shell to the instance.
        target: SSH endpoint of the instance.
        settings: Backup directory, critical paths, excludes, retention.
        archive: Archive tool (default: ``tar`` run over ``shell``).
        now: Clock for archive names (injectable for tests).
    """

    def __init__(
        self,
        shell: RemoteShell,
        target: SSHTarget,
        settings: BackupSettings | None = None,
        archive: ArchiveTool | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.shell = shell
        self.target = target
        self.settings = settings or BackupSettings()
        self.archive = archive or RemoteTarArchive(shell, target)
        self._now = now

    # ── Suspend ─────────────────────────────────────────────────

    def backup_before_suspend(self, instance: RemoteInstance | None = None) -> SessionSnapshot:
        """Quiesce the workspace and archive the critical directories."""
        label = instance.id if instance else str(self.target)
        logger.info("Preparing %s for suspend", label)

        snapshot = SessionSnapshot(
            source_paths=list(self.settings.critical_paths),
            exclude_patterns=list(self.settings.exclude_patterns),
        )

        steps: list[tuple[str, str]] = [
            ("save tmux sessions", self._tmux_save_command()),
            ("signal editors", self._editor_signal_command()),
            ("sync filesystem", "sync"),
            ("stop dev servers", self._stop_dev_servers_command()),
        ]
        for step, command in steps:
            try:
                self._run_step(step, command)
            except PartialBackupFailure as e:
                snapshot.warnings.append(str(e))

        try:
            snapshot.archive_path = self._create_archive(SUSPEND_PREFIX)
        except PartialBackupFailure as e:
            snapshot.complete = False
            snapshot.warnings.append(str(e))
        else:
            try:
                self._prune(SUSPEND_PREFIX)
            except PartialBackupFailure as e:
                snapshot.warnings.append(str(e))

        if snapshot.warnings:
            logger.warning(
                "Pre-suspend backup of %s finished with %d warning(s)",
                label, len(snapshot.warnings),
            )
        else:
            logger.info("Pre-suspend backup created: %s", snapshot.archive_path)
        return snapshot

    # ── Resume ──────────────────────────────────────────────────

    def restore_after_resume(self, instance: RemoteInstance | None = None) -> RestoreReport:
        """Report live tmux sessions and recent archives. Changes nothing."""
        report = RestoreReport()

        result = self.shell.exec(
            self.target, "tmux list-sessions -F '#{session_name}' 2>/dev/null || true"
        )
        if result.ok:
            report.sessions = _lines(result.stdout)
        else:
            report.warnings.append(f"Could not list tmux sessions: {result.error}")

        try:
            report.backups = self.list_backups()[: self.settings.retention]
        except RemoteCallFailed as e:
            report.warnings.append(str(e))

        logger.info(
            "Session report for %s: %d tmux session(s), %d backup(s)",
            instance.id if instance else str(self.target),
            len(report.sessions), len(report.backups),
        )
        return report

    def list_backups(self) -> list[str]:
        """Suspend and safety archives on the instance, newest first.

        Raises:
            RemoteCallFailed: If the listing command itself failed.
        """
        directory = shlex.quote(self.settings.directory)
        command = (
            f"ls -1t {directory}/{SUSPEND_PREFIX}*{ARCHIVE_SUFFIX} "
            f"{directory}/{SAFETY_PREFIX}*{ARCHIVE_SUFFIX} 2>/dev/null || true"
        )
        result = self.shell.exec(self.target, command)
        if not result.ok:
            raise RemoteCallFailed(f"Could not list backups on {self.target}: {result.error}")
        return _lines(result.stdout)

    # ── Manual restore ──────────────────────────────────────────

    def restore_snapshot(
        self,
        archive: str,
        destination: str = "/",
        *,
        confirmed: bool = False,
    ) -> SessionSnapshot:
        """Unpack ``archive`` over ``destination`` after a safety snapshot.

        ``archive`` may be a bare filename or a full path. Returns the
        safety snapshot taken before extraction.

        Raises:
            NotConfirmed: Without explicit confirmation.
            NotFound: If the archive is not among the available backups.
            RemoteCallFailed: If the safety snapshot or extraction failed.
        """
        if not confirmed:
            raise NotConfirmed(f"Restoring {archive} overwrites files under {destination}")

        available = self.list_backups()
        path = self._resolve_archive(archive, available)
        if path is None:
            names = ", ".join(posixpath.basename(a) for a in available) or "none"
            raise NotFound(
                f"Backup '{archive}' not found on {self.target}. Available: {names}",
                remediation="Run 'sindri lifecycle backups' to list archives.",
            )

        safety = SessionSnapshot(
            source_paths=list(self.settings.critical_paths),
            exclude_patterns=list(self.settings.exclude_patterns),
        )
        try:
            safety.archive_path = self._create_archive(SAFETY_PREFIX)
        except PartialBackupFailure as e:
            raise RemoteCallFailed(
                f"Safety snapshot failed, refusing to restore {path}: {e}"
            ) from e
        try:
            self._prune(SAFETY_PREFIX)
        except PartialBackupFailure as e:
            safety.warnings.append(str(e))

        logger.info("Restoring %s into %s", path, destination)
        result = self.archive.extract(path, destination)
        if not result.ok:
            raise RemoteCallFailed(f"Extracting {path} failed: {result.error}")

        logger.info("Restore of %s complete (safety snapshot: %s)", path, safety.archive_path)
        return safety

    # ── Internals ───────────────────────────────────────────────

    def _run_step(self, step: str, command: str) -> None:
        logger.debug("Pre-suspend step: %s", step)
        result = self.shell.exec(self.target, command)
        if not result.ok:
            logger.warning("Pre-suspend step '%s' failed: %s", step, result.error)
            raise PartialBackupFailure(f"{step} failed: {result.error}")

    def _archive_path(self, prefix: str) -> str:
        stamp = self._now().strftime("%Y%m%d_%H%M%S")
        return posixpath.join(self.settings.directory, f"{prefix}{stamp}{ARCHIVE_SUFFIX}")

    def _create_archive(self, prefix: str) -> str:
        path = self._archive_path(prefix)
        result = self.archive.create(
            path,
            list(self.settings.critical_paths),
            list(self.settings.exclude_patterns),
            best_effort=True,
        )
        if not result.ok:
            logger.warning("Archive %s failed: %s", path, result.error)
            raise PartialBackupFailure(f"archive failed: {result.error}")
        return path

    def _prune(self, prefix: str) -> None:
        keep = self.settings.retention
        command = (
            f"find {shlex.quote(self.settings.directory)} -maxdepth 1 -type f "
            f"-name {shlex.quote(prefix + '*' + ARCHIVE_SUFFIX)} "
            f"| sort | head -n -{keep} | xargs -r rm -f"
        )
        result = self.shell.exec(self.target, command)
        if not result.ok:
            raise PartialBackupFailure(f"pruning old archives failed: {result.error}")

    def _tmux_save_command(self) -> str:
        return (
            "if command -v tmux >/dev/null 2>&1 && tmux list-sessions >/dev/null 2>&1; then "
            "for s in $(tmux list-sessions -F '#{session_name}'); do "
            "tmux send-keys -t \"$s\" C-s 2>/dev/null || true; done; fi"
        )

    def _editor_signal_command(self) -> str:
        signals = "; ".join(
            f"pkill -USR1 -x {shlex.quote(name)} 2>/dev/null || true"
            for name in self.settings.editor_processes
        )
        return signals or "true"

    def _stop_dev_servers_command(self) -> str:
        pattern = shlex.quote(self.settings.dev_server_pattern)
        grace = int(self.settings.term_grace_seconds)
        return (
            f"if pgrep -f {pattern} >/dev/null 2>&1; then "
            f"pkill -TERM -f {pattern} 2>/dev/null || true; "
            f"sleep {grace}; "
            f"pkill -KILL -f {pattern} 2>/dev/null || true; fi"
        )

    def _resolve_archive(self, archive: str, available: list[str]) -> str | None:
        for path in available:
            if archive == path or archive == posixpath.basename(path):
                return path
        return None


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]
