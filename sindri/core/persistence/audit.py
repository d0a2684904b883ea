"""
Audit ledger — append-only log of mutating operations.

Every suspend, resume, activation and deactivation appends one line to
``<state_dir>/audit.ndjson``. The controller itself holds no state, so
this ledger is the only history of what was done to the instance and
the extensions directory, and when.

Writing never raises: a broken ledger must not fail a suspend.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


def new_operation_id(prefix: str) -> str:
    """Short unique id for one invocation, e.g. ``resume-1a2b3c4d``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class AuditEntry(BaseModel):
    """A single audit log entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation_type: str = ""       # suspend, resume, activate, deactivate, ...

    target: str = ""               # instance id or extension id
    app_name: str = ""

    status: str = ""               # ok, noop, failed, cancelled
    duration_ms: int = 0

    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append-only NDJSON writer/reader."""

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is not None:
            self._path = path
        elif state_dir is not None:
            self._path = state_dir / DEFAULT_AUDIT_FILE
        else:
            self._path = Path(".state") / DEFAULT_AUDIT_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an entry. Errors are logged, never raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Audit entry written: %s/%s", entry.operation_type, entry.operation_id)
        except OSError as e:
            logger.error("Failed to write audit entry to %s: %s", self._path, e)

    def record(self, operation_type: str, target: str, status: str, **kwargs: Any) -> AuditEntry:
        """Build and write an entry in one call."""
        entry = AuditEntry(
            operation_id=kwargs.pop("operation_id", "") or new_operation_id(operation_type),
            operation_type=operation_type,
            target=target,
            status=status,
            **kwargs,
        )
        self.write(entry)
        return entry

    def read_all(self) -> list[AuditEntry]:
        """All entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(AuditEntry.model_validate(json.loads(line)))
                    except Exception as e:
                        logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read audit ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        return self.read_all()[-n:]
