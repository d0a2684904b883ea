"""
Extension model — one toggle-able setup script in the extensions directory.

On disk an extension is a pair of files::

    10-rust.sh.example   ← template (read-only, shipped with the image)
    10-rust.sh           ← activation flag AND the executable unit

The model wraps that convention so call sites never reason about raw
file existence. Phase, order and protection are parsed once from the
filename; activation state is read live from disk.
"""

from __future__ import annotations

import os
import re
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel

from sindri.core.services.checksum import ChecksumComparator

TEMPLATE_SUFFIX = ".sh.example"
ACTIVE_SUFFIX = ".sh"

# Two-digit prefixes reserved for core extensions that can never be deactivated
DEFAULT_PROTECTED_PREFIXES = frozenset({"01", "02", "03", "04"})

_PREFIX_RE = re.compile(r"^(\d+)-")


class Phase(StrEnum):
    """Coarse execution phase of an extension."""

    PRE = "pre"
    INSTALL = "install"
    POST = "post"


def classify_phase(filename: str) -> Phase:
    """Phase from the filename prefix: ``pre-`` / ``post-`` / anything else."""
    if filename.startswith("pre-"):
        return Phase.PRE
    if filename.startswith("post-"):
        return Phase.POST
    return Phase.INSTALL


def active_filename(filename: str) -> str:
    """``10-rust.sh.example`` → ``10-rust.sh`` (active names pass through)."""
    if filename.endswith(TEMPLATE_SUFFIX):
        return filename[: -len(".example")]
    return filename


def numeric_prefix(filename: str) -> str | None:
    """The raw numeric prefix (``"10"`` for ``10-rust.sh``), if any."""
    match = _PREFIX_RE.match(filename)
    return match.group(1) if match else None


def extension_id(filename: str) -> str:
    """Strip suffix and numeric prefix: ``10-rust.sh.example`` → ``rust``."""
    base = active_filename(filename)
    if base.endswith(ACTIVE_SUFFIX):
        base = base[: -len(ACTIVE_SUFFIX)]
    return _PREFIX_RE.sub("", base, count=1)


class Extension(BaseModel):
    """A parsed extension entry.

    ``available`` / ``active`` / ``runnable`` / ``modified`` are evaluated
    against the filesystem every time they are read.
    """

    id: str
    filename: str                  # active filename, e.g. 10-rust.sh
    template_path: Path
    active_path: Path
    phase: Phase = Phase.INSTALL
    order: int | None = None
    protected: bool = False

    @classmethod
    def from_filename(
        cls,
        directory: Path,
        filename: str,
        protected_prefixes: frozenset[str] | set[str] = DEFAULT_PROTECTED_PREFIXES,
    ) -> Extension:
        """Build an entry from either a template or an active filename."""
        active_name = active_filename(filename)
        prefix = numeric_prefix(active_name)
        return cls(
            id=extension_id(active_name),
            filename=active_name,
            template_path=directory / f"{active_name}.example",
            active_path=directory / active_name,
            phase=classify_phase(active_name),
            order=int(prefix) if prefix is not None else None,
            protected=prefix is not None and prefix in protected_prefixes,
        )

    # ── Live state ───────────────────────────────────────────────

    @property
    def available(self) -> bool:
        """Whether the template exists."""
        return self.template_path.is_file()

    @property
    def active(self) -> bool:
        """Whether the activation file exists."""
        return self.active_path.is_file()

    @property
    def runnable(self) -> bool:
        """Active, executable and non-empty — safe to hand to the scheduler."""
        if not self.active:
            return False
        try:
            return (
                os.access(self.active_path, os.X_OK)
                and self.active_path.stat().st_size > 0
            )
        except OSError:
            return False

    @property
    def orphan(self) -> bool:
        """Active file with no template behind it."""
        return self.active and not self.available

    def is_modified(self, comparator: ChecksumComparator | None = None) -> bool:
        """Whether the active copy differs from its template.

        Inactive extensions are never modified. A missing template counts
        as modified (favors taking a backup).
        """
        if not self.active:
            return False
        return (comparator or ChecksumComparator()).differs(
            self.active_path, self.template_path
        )

    @property
    def modified(self) -> bool:
        return self.is_modified()

    def to_dict(self) -> dict:
        """JSON-serializable snapshot including live state."""
        return {
            "id": self.id,
            "filename": self.filename,
            "phase": self.phase.value,
            "order": self.order,
            "protected": self.protected,
            "available": self.available,
            "active": self.active,
            "runnable": self.runnable,
            "modified": self.modified,
        }
