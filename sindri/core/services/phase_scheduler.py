"""
Phase scheduler — run active extensions in pre → install → post order.

Within a phase, extensions run in lexicographic filename order, which
with numeric prefixes (``10-``, ``20-``) gives an explicit ordering.
A failing extension is logged and recorded; the phase keeps going.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from sindri.core.models.command import CommandResult
from sindri.core.models.extension import Extension, Phase, classify_phase
from sindri.core.services.extension_registry import ExtensionRegistry

logger = logging.getLogger(__name__)

Executor = Callable[[Extension], CommandResult]

PHASE_ORDER = (Phase.PRE, Phase.INSTALL, Phase.POST)


@dataclass
class ExtensionRun:
    """What happened to one extension during a phase."""

    id: str
    filename: str
    ran: bool = False
    succeeded: bool = False
    exit_code: int | None = None
    error: str = ""
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "ran": self.ran,
            "succeeded": self.succeeded,
            "exit_code": self.exit_code,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class PhaseReport:
    """Per-extension results of one phase."""

    phase: Phase
    entries: list[ExtensionRun] = field(default_factory=list)

    @property
    def ran(self) -> list[ExtensionRun]:
        return [e for e in self.entries if e.ran]

    @property
    def failed(self) -> list[ExtensionRun]:
        return [e for e in self.entries if e.ran and not e.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "ok": self.ok,
            "entries": [e.to_dict() for e in self.entries],
        }


class PhaseScheduler:
    """Order and execute extensions by phase."""

    @staticmethod
    def classify(filename: str) -> Phase:
        return classify_phase(filename)

    def run(
        self,
        phase: Phase | str,
        registry: ExtensionRegistry,
        executor: Executor,
    ) -> PhaseReport:
        """Execute every runnable extension of ``phase``.

        Active entries that are not runnable (no executable bit, empty
        file) are listed with ``ran=False``. Inactive entries are not
        listed at all.
        """
        phase = Phase(phase)
        report = PhaseReport(phase=phase)

        candidates = sorted(
            (e for e in registry.list() if e.phase == phase and e.active),
            key=lambda e: e.filename,
        )
        if not candidates:
            logger.info("No active extensions in phase '%s'", phase.value)
            return report

        logger.info("Running %d extension(s) in phase '%s'", len(candidates), phase.value)
        for ext in candidates:
            report.entries.append(self._run_one(ext, executor))

        if report.failed:
            logger.warning(
                "Phase '%s' finished with %d failure(s): %s",
                phase.value, len(report.failed),
                ", ".join(e.id for e in report.failed),
            )
        return report

    def run_all(self, registry: ExtensionRegistry, executor: Executor) -> list[PhaseReport]:
        """Run pre, install and post in order."""
        return [self.run(phase, registry, executor) for phase in PHASE_ORDER]

    @staticmethod
    def _run_one(ext: Extension, executor: Executor) -> ExtensionRun:
        entry = ExtensionRun(id=ext.id, filename=ext.filename)

        if not ext.runnable:
            entry.error = "not executable or empty"
            logger.warning("Skipping '%s' (%s): %s", ext.id, ext.filename, entry.error)
            return entry

        logger.info("Executing extension '%s' (%s)", ext.id, ext.filename)
        entry.ran = True
        try:
            result = executor(ext)
        except Exception as e:
            entry.error = str(e) or e.__class__.__name__
            logger.warning("Extension '%s' raised: %s", ext.id, entry.error)
            return entry

        entry.exit_code = result.exit_code
        entry.duration_ms = result.duration_ms
        entry.succeeded = result.ok
        if not result.ok:
            entry.error = result.error
            logger.warning(
                "Extension '%s' failed (exit %d): %s", ext.id, result.exit_code, entry.error
            )
        return entry
