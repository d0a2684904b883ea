"""
Session models — what the session preserver produces.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class SessionSnapshot(BaseModel):
    """Archive of critical directories taken before suspend or restore.

    ``complete`` is False when the archive step itself failed; the
    individual step failures are listed in ``warnings``.
    """

    timestamp: str = Field(default_factory=_now_iso)
    source_paths: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(default_factory=list)
    archive_path: str = ""
    complete: bool = True
    warnings: list[str] = Field(default_factory=list)


class RestoreReport(BaseModel):
    """Read-only report of what could be restored after resume."""

    sessions: list[str] = Field(default_factory=list)
    backups: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_sessions(self) -> bool:
        return bool(self.sessions)
