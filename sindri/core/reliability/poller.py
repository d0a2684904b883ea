"""
Readiness poller — wait for an external predicate with a bounded budget.

Used by the lifecycle controller to wait for "machine state is started"
and "SSH answers". The loop is deliberately simple:

    check → (true? done) → elapsed >= timeout? give up → sleep(interval)

Fixed interval, no backoff, no internal retry of the whole wait. A
timeout is a normal result (``succeeded=False``), not an exception:
the caller decides whether it is fatal. A final check always runs at
the deadline, so a timeout is never reported early.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class PollResult:
    """Outcome of one wait."""

    label: str = ""
    succeeded: bool = False
    attempts: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "succeeded": self.succeeded,
            "attempts": self.attempts,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }


class ReadinessPoller:
    """Fixed-interval poller.

    Args:
        clock: Monotonic clock (injectable for tests).
        sleep: Sleep function (injectable for tests).
        on_attempt: Optional callback after each failed attempt, e.g.
            to print progress dots.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        on_attempt: Callable[[str, int], None] | None = None,
    ):
        self._clock = clock
        self._sleep = sleep
        self._on_attempt = on_attempt

    def wait(
        self,
        predicate: Callable[[], bool],
        *,
        interval: float = 2.0,
        timeout: float = 120.0,
        label: str = "",
    ) -> PollResult:
        """Call ``predicate`` until it returns True or ``timeout`` elapses.

        A predicate that raises counts as a failed attempt.
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        result = PollResult(label=label)
        start = self._clock()

        while True:
            result.attempts += 1
            if self._check(predicate, label):
                result.succeeded = True
                result.elapsed_seconds = self._clock() - start
                logger.info(
                    "%s ready after %.1fs (%d attempts)",
                    label or "predicate", result.elapsed_seconds, result.attempts,
                )
                return result

            elapsed = self._clock() - start
            if elapsed >= timeout:
                result.elapsed_seconds = elapsed
                logger.warning(
                    "%s not ready after %.1fs (%d attempts)",
                    label or "predicate", elapsed, result.attempts,
                )
                return result

            if self._on_attempt is not None:
                self._on_attempt(label, result.attempts)
            self._sleep(min(interval, timeout - elapsed))

    @staticmethod
    def _check(predicate: Callable[[], bool], label: str) -> bool:
        try:
            return bool(predicate())
        except Exception as e:
            logger.debug("%s check raised: %s", label or "predicate", e)
            return False
