"""
Fly.io machines adapter — RemoteComputeAPI on top of the flyctl CLI.

    flyctl machine list  -a APP --json
    flyctl machine start ID -a APP
    flyctl machine stop  ID -a APP
    flyctl volumes list  -a APP --json

Any failure (missing binary, non-zero exit, timeout, unparseable JSON)
raises RemoteCallFailed naming the app.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import time
from typing import Any

from sindri.adapters.base import RemoteComputeAPI
from sindri.core.errors import RemoteCallFailed
from sindri.core.models.instance import RemoteInstance, Volume

logger = logging.getLogger(__name__)


class FlyMachinesAdapter(RemoteComputeAPI):
    """Drive Fly machines through ``flyctl``.

    Args:
        binary: flyctl executable name or path.
        timeout: Per-call timeout in seconds.
    """

    def __init__(self, binary: str = "flyctl", timeout: float = 60.0):
        self._binary = binary
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "fly"

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    # ── Queries ─────────────────────────────────────────────────

    def list_instances(self, app_name: str) -> list[RemoteInstance]:
        data = self._run_json(["machine", "list", "-a", app_name, "--json"], app_name)
        return [RemoteInstance.from_provider(item) for item in data if isinstance(item, dict)]

    def list_volumes(self, app_name: str) -> list[Volume]:
        data = self._run_json(["volumes", "list", "-a", app_name, "--json"], app_name)
        return [Volume.from_provider(item) for item in data if isinstance(item, dict)]

    # ── Mutations ───────────────────────────────────────────────

    def start_instance(self, app_name: str, instance_id: str) -> None:
        self._run(["machine", "start", instance_id, "-a", app_name], app_name)
        logger.info("Start command sent for %s/%s", app_name, instance_id)

    def stop_instance(self, app_name: str, instance_id: str) -> None:
        self._run(["machine", "stop", instance_id, "-a", app_name], app_name)
        logger.info("Stop command sent for %s/%s", app_name, instance_id)

    # ── Internals ───────────────────────────────────────────────

    def _run(self, args: list[str], app_name: str) -> str:
        cmd = [self._binary, *args]
        logger.debug("Executing: %s", " ".join(cmd))
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            raise RemoteCallFailed(
                f"{self._binary} not found while managing app '{app_name}'",
                remediation="Install flyctl: https://fly.io/docs/getting-started/installing-flyctl/",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RemoteCallFailed(
                f"'{' '.join(args[:2])}' for app '{app_name}' timed out after {self._timeout:.0f}s"
            ) from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("%s exited %d in %dms", " ".join(args[:2]), result.returncode, elapsed_ms)

        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise RemoteCallFailed(f"'{' '.join(args[:2])}' failed for app '{app_name}': {detail}")

        return result.stdout

    def _run_json(self, args: list[str], app_name: str) -> list[Any]:
        raw = self._run(args, app_name)
        try:
            data = json.loads(raw or "[]")
        except json.JSONDecodeError as e:
            raise RemoteCallFailed(
                f"Unparseable response from '{' '.join(args[:2])}' for app '{app_name}': {e}"
            ) from e
        if not isinstance(data, list):
            raise RemoteCallFailed(
                f"Expected a list from '{' '.join(args[:2])}' for app '{app_name}', "
                f"got {type(data).__name__}"
            )
        return data
