"""
Extension registry — enumerate, activate and deactivate extensions.

Works directly on the extensions directory:

    activate    copy  10-rust.sh.example → 10-rust.sh, chmod +x
    deactivate  (backup if modified or asked) then remove 10-rust.sh

Rules enforced here:
    - activating an active extension is an AlreadyActive error, never
      a silent no-op, so accidental double activation is visible;
    - protected extensions (reserved numeric prefixes) can never be
      deactivated, whatever flags are passed;
    - an active copy that differs from its template is always backed
      up before removal, even without ``backup=True``;
    - batch operations are best effort: one failure is recorded and
      the rest are still processed.

Mutations hold an advisory lock on the directory.
"""

from __future__ import annotations

import logging
import shutil
import stat
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sindri.core.errors import (
    AlreadyActive,
    DirectoryNotFound,
    NotActive,
    NotConfirmed,
    NotFound,
    ProtectedExtension,
    SindriError,
    TemplateMissing,
)
from sindri.core.models.extension import (
    ACTIVE_SUFFIX,
    DEFAULT_PROTECTED_PREFIXES,
    TEMPLATE_SUFFIX,
    Extension,
)
from sindri.core.persistence.lock_file import LockFile
from sindri.core.services.checksum import ChecksumComparator

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".extensions.lock"
BACKUP_MARKER = ".backup-"

ConfirmFn = Callable[[str], bool]


@dataclass
class DeactivationResult:
    """Outcome of a single deactivation."""

    extension: Extension
    modified: bool = False
    backup_path: Path | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.extension.id,
            "filename": self.extension.filename,
            "modified": self.modified,
            "backup_path": str(self.backup_path) if self.backup_path else None,
        }


@dataclass
class BatchReport:
    """Aggregate result of activate-all / deactivate-all."""

    operation: str = ""
    dry_run: bool = False
    done: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    protected_skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    backups: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def counts(self) -> dict[str, int]:
        return {
            "done": len(self.done),
            "skipped": len(self.skipped),
            "protected_skipped": len(self.protected_skipped),
            "failed": len(self.failed),
        }

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "dry_run": self.dry_run,
            "counts": self.counts(),
            "done": self.done,
            "skipped": self.skipped,
            "protected_skipped": self.protected_skipped,
            "failed": self.failed,
            "backups": self.backups,
        }


class ExtensionRegistry:
    """Extension activation over a directory of template/active pairs.

    Args:
        directory: The extensions directory (``extensions.d``).
        protected_prefixes: Numeric prefixes that can never be deactivated.
        comparator: Modification detector (default: sha256 comparator).
        now: Clock used for backup timestamps (injectable for tests).
        use_lock: Take the advisory directory lock on mutations.
    """

    def __init__(
        self,
        directory: Path,
        protected_prefixes: frozenset[str] | set[str] | list[str] = DEFAULT_PROTECTED_PREFIXES,
        comparator: ChecksumComparator | None = None,
        now: Callable[[], datetime] = datetime.now,
        use_lock: bool = True,
    ):
        self.directory = Path(directory)
        self.protected_prefixes = frozenset(protected_prefixes)
        self.comparator = comparator or ChecksumComparator()
        self._now = now
        self._use_lock = use_lock

    # ═══════════════════════════════════════════════════════════════
    #  Queries
    # ═══════════════════════════════════════════════════════════════

    def list(self) -> list[Extension]:
        """All extensions (templates plus orphan active files), by filename.

        Raises:
            DirectoryNotFound: If the extensions directory is missing.
        """
        if not self.directory.is_dir():
            raise DirectoryNotFound(f"Extensions directory not found: {self.directory}")

        by_filename: dict[str, Extension] = {}
        for path in sorted(self.directory.iterdir()):
            if not path.is_file():
                continue
            name = path.name
            if not (name.endswith(TEMPLATE_SUFFIX) or name.endswith(ACTIVE_SUFFIX)):
                continue
            ext = Extension.from_filename(self.directory, name, self.protected_prefixes)
            by_filename.setdefault(ext.filename, ext)

        seen: dict[str, Extension] = {}
        for filename in sorted(by_filename):
            ext = by_filename[filename]
            if ext.id in seen:
                logger.warning(
                    "Duplicate extension id '%s': %s ignored in favour of %s",
                    ext.id, filename, seen[ext.id].filename,
                )
                continue
            seen[ext.id] = ext

        return sorted(seen.values(), key=lambda e: e.filename)

    def get(self, ext_id: str) -> Extension:
        """Look up one extension by id. Raises NotFound."""
        extensions = self.list()
        for ext in extensions:
            if ext.id == ext_id:
                return ext
        names = ", ".join(e.id for e in extensions if e.available) or "none"
        raise NotFound(f"Extension '{ext_id}' not found. Available: {names}")

    # ═══════════════════════════════════════════════════════════════
    #  Single operations
    # ═══════════════════════════════════════════════════════════════

    def activate(self, ext_id: str) -> Extension:
        """Copy the template into place and mark it executable.

        Raises:
            NotFound, TemplateMissing (orphan), AlreadyActive
        """
        with self._lock("activate"):
            return self._activate(self.get(ext_id))

    def deactivate(
        self,
        ext_id: str,
        *,
        backup: bool = False,
        confirmed: bool = False,
        confirm: ConfirmFn | None = None,
    ) -> DeactivationResult:
        """Remove the active copy, backing it up when modified or asked.

        Args:
            ext_id: Extension id (e.g. ``rust``).
            backup: Always write a backup, even if unmodified.
            confirmed: Confirmation already given (``--yes``).
            confirm: Prompt callback used when not confirmed up front.

        Raises:
            NotFound, ProtectedExtension, NotActive, NotConfirmed
        """
        with self._lock("deactivate"):
            ext = self.get(ext_id)
            self._check_deactivatable(ext)

            modified = ext.is_modified(self.comparator)
            if modified:
                logger.warning("Extension '%s' has been modified from its template", ext.id)

            if not confirmed:
                prompt = f"Deactivate extension '{ext.id}' ({ext.filename})?"
                if modified:
                    prompt = f"Extension '{ext.id}' has local modifications. {prompt}"
                if confirm is None or not confirm(prompt):
                    raise NotConfirmed(f"Deactivation of '{ext.id}' was not confirmed")

            return self._deactivate(ext, backup=backup, modified=modified)

    # ═══════════════════════════════════════════════════════════════
    #  Batch operations
    # ═══════════════════════════════════════════════════════════════

    def activate_all(self) -> BatchReport:
        """Activate every available, inactive extension (best effort)."""
        report = BatchReport(operation="activate-all")
        with self._lock("activate-all"):
            for ext in self.list():
                if not ext.available:
                    continue
                if ext.active:
                    logger.info("Skipping '%s' (%s): already active", ext.id, ext.filename)
                    report.skipped.append(ext.id)
                    continue
                try:
                    self._activate(ext)
                    report.done.append(ext.id)
                except (SindriError, OSError) as e:
                    logger.error("Failed to activate '%s': %s", ext.id, e)
                    report.failed[ext.id] = str(e)
        return report

    def deactivate_all(
        self,
        *,
        backup: bool = False,
        confirmed: bool = False,
        confirm: ConfirmFn | None = None,
        dry_run: bool = False,
    ) -> BatchReport:
        """Deactivate every active, non-protected extension (best effort).

        Confirmation is asked once for the whole batch. With ``dry_run``
        nothing is touched and no confirmation is needed: the report
        describes what would happen.
        """
        report = BatchReport(operation="deactivate-all", dry_run=dry_run)

        if not dry_run and not confirmed:
            if confirm is None or not confirm("Deactivate all non-protected extensions?"):
                raise NotConfirmed("Batch deactivation was not confirmed")

        with self._lock("deactivate-all", enabled=not dry_run):
            for ext in self.list():
                if not ext.active:
                    report.skipped.append(ext.id)
                    continue
                if ext.protected:
                    logger.info("Skipping protected extension '%s' (%s)", ext.id, ext.filename)
                    report.protected_skipped.append(ext.id)
                    continue
                if not ext.available:
                    logger.warning("Skipping '%s' (%s): no template found", ext.id, ext.filename)
                    report.skipped.append(ext.id)
                    continue

                try:
                    modified = ext.is_modified(self.comparator)
                    if dry_run:
                        report.done.append(ext.id)
                        if modified or backup:
                            report.backups.append(str(self._backup_path(ext)))
                        continue
                    result = self._deactivate(ext, backup=backup, modified=modified)
                    report.done.append(ext.id)
                    if result.backup_path:
                        report.backups.append(str(result.backup_path))
                except (SindriError, OSError) as e:
                    logger.error("Failed to deactivate '%s': %s", ext.id, e)
                    report.failed[ext.id] = str(e)

        return report

    # ═══════════════════════════════════════════════════════════════
    #  Internals
    # ═══════════════════════════════════════════════════════════════

    def _lock(self, operation: str, enabled: bool = True) -> LockFile | _NoLock:
        if not (self._use_lock and enabled):
            return _NoLock()
        if not self.directory.is_dir():
            raise DirectoryNotFound(f"Extensions directory not found: {self.directory}")
        return LockFile(self.directory / LOCK_FILENAME, operation=operation)

    def _check_deactivatable(self, ext: Extension) -> None:
        if ext.protected:
            raise ProtectedExtension(
                f"Cannot deactivate protected extension '{ext.id}' ({ext.filename})"
            )
        if not ext.active:
            raise NotActive(f"Extension '{ext.id}' ({ext.filename}) is not active")

    def _activate(self, ext: Extension) -> Extension:
        if not ext.available:
            raise TemplateMissing(f"Extension '{ext.id}' has no template {ext.template_path.name}")
        if ext.active:
            raise AlreadyActive(f"Extension '{ext.id}' ({ext.filename}) is already active")

        logger.info("Activating extension '%s' (%s)", ext.id, ext.filename)
        try:
            shutil.copyfile(ext.template_path, ext.active_path)
            mode = ext.active_path.stat().st_mode
            ext.active_path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as e:
            ext.active_path.unlink(missing_ok=True)
            raise SindriError(
                f"Failed to activate extension '{ext.id}': {e}",
                remediation=f"Check write permissions on {self.directory}",
            ) from e
        return ext

    def _deactivate(self, ext: Extension, *, backup: bool, modified: bool) -> DeactivationResult:
        result = DeactivationResult(extension=ext, modified=modified)

        try:
            if backup or modified:
                result.backup_path = self._write_backup(ext)
            ext.active_path.unlink()
        except OSError as e:
            raise SindriError(
                f"Failed to deactivate extension '{ext.id}': {e}",
                remediation=f"Check write permissions on {self.directory}",
            ) from e
        logger.info("Extension '%s' deactivated", ext.id)
        return result

    def _backup_path(self, ext: Extension) -> Path:
        stamp = self._now().strftime("%Y%m%d_%H%M%S")
        candidate = ext.active_path.with_name(f"{ext.filename}{BACKUP_MARKER}{stamp}")
        counter = 1
        while candidate.exists():
            candidate = ext.active_path.with_name(f"{ext.filename}{BACKUP_MARKER}{stamp}-{counter}")
            counter += 1
        return candidate

    def _write_backup(self, ext: Extension) -> Path:
        target = self._backup_path(ext)
        try:
            shutil.copy2(ext.active_path, target)
        except OSError:
            target.unlink(missing_ok=True)
            raise
        logger.info("Backup created: %s", target.name)
        return target


class _NoLock:
    """Stand-in context manager when locking is disabled."""

    def __enter__(self) -> _NoLock:
        return self

    def __exit__(self, *exc: object) -> None:
        return None
