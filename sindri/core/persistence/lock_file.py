"""
Advisory lock file — serialise mutating invocations.

Suspend/resume and extension (de)activation mutate shared resources
(the remote machine, the extensions directory). Two sindri processes
doing that at once is never intended, so mutating commands take a lock:

    with LockFile(state_dir / "lifecycle.lock", operation="suspend"):
        ...

Mutual exclusion comes from ``fcntl.flock(LOCK_EX | LOCK_NB)`` on the
open file. The kernel drops the lock when its holder exits, so a crashed
process never leaves a lock behind. The JSON document
``{pid, operation, created_at}`` written into the file is for reporting
who holds it.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

from sindri.core.errors import LockHeld

logger = logging.getLogger(__name__)

_ATTEMPTS = 3


class LockFile:
    """Context-managed advisory lock."""

    def __init__(self, path: Path, operation: str = ""):
        self.path = path
        self.operation = operation
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def read_owner(self) -> dict | None:
        """Return the current lock document, or None if absent/empty/corrupt."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def acquire(self) -> None:
        """Take the lock. Raises LockHeld if another holder has it."""
        if self._fd is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)

        for _ in range(_ATTEMPTS):
            fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                raise LockHeld(self._held_message()) from None

            # The previous holder may have unlinked the path between our
            # open and flock; then we hold a lock on an orphaned inode.
            if self._same_file(fd):
                break
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        else:
            raise LockHeld(f"Could not acquire {self.path}")

        payload = json.dumps({
            "pid": os.getpid(),
            "operation": self.operation,
            "created_at": datetime.now(UTC).isoformat(),
        })
        os.ftruncate(fd, 0)
        os.write(fd, payload.encode("utf-8"))
        self._fd = fd
        logger.debug("Lock acquired: %s (%s)", self.path, self.operation)

    def release(self) -> None:
        """Drop the lock and remove the file."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            self.path.unlink(missing_ok=True)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
        logger.debug("Lock released: %s", self.path)

    def _same_file(self, fd: int) -> bool:
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (on_disk.st_dev, on_disk.st_ino) == (opened.st_dev, opened.st_ino)

    def _held_message(self) -> str:
        owner = self.read_owner()
        if owner is None:
            # Holder is between flock and writing its document.
            return f"{self.path} is held by another sindri process"
        return (
            f"{self.path} is held by PID {owner.get('pid', '?')} "
            f"({owner.get('operation') or 'unknown operation'} "
            f"since {owner.get('created_at', '?')})"
        )

    def __enter__(self) -> LockFile:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
