"""
SSH shell adapter — RemoteShell over the OpenSSH client.

Commands are piped to ``bash -s`` on the remote side, so multi-line
scripts and shell quoting survive intact. Authentication is whatever
the user's SSH agent/config provides; BatchMode keeps every call
non-interactive.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from sindri.adapters.base import RemoteShell
from sindri.core.models.command import CommandResult
from sindri.core.models.settings import SSHTarget

logger = logging.getLogger(__name__)

# ssh's own exit status for connection/auth failures
SSH_TRANSPORT_ERROR = 255


class SSHShellAdapter(RemoteShell):
    """Execute remote commands with ``ssh``.

    Args:
        binary: ssh executable name or path.
        default_timeout: Per-command timeout in seconds.
        extra_options: Additional ``-o`` options (e.g. StrictHostKeyChecking).
    """

    def __init__(
        self,
        binary: str = "ssh",
        default_timeout: float = 300.0,
        extra_options: list[str] | None = None,
    ):
        self._binary = binary
        self._default_timeout = default_timeout
        self._extra_options = extra_options or []

    @property
    def name(self) -> str:
        return "ssh"

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def _base_args(self, target: SSHTarget, connect_timeout: int | None = None) -> list[str]:
        args = [self._binary, "-p", str(target.port), "-o", "BatchMode=yes"]
        if connect_timeout is not None:
            args += ["-o", f"ConnectTimeout={connect_timeout}"]
        for opt in self._extra_options:
            args += ["-o", opt]
        args.append(f"{target.user}@{target.host}")
        return args

    def exec(self, target: SSHTarget, command: str, timeout: float | None = None) -> CommandResult:
        timeout = timeout or self._default_timeout
        args = self._base_args(target) + ["bash", "-s"]

        logger.debug("ssh %s: %s", target, command.splitlines()[0] if command else "")
        start = time.monotonic()

        try:
            result = subprocess.run(
                args,
                input=command,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return CommandResult.failure(
                command=command,
                stderr=f"Command timed out after {timeout:.0f}s on {target}",
                exit_code=124,
                metadata={"timeout": timeout},
            )
        except OSError as e:
            return CommandResult.failure(
                command=command,
                stderr=f"Cannot run {self._binary}: {e}",
                exit_code=SSH_TRANSPORT_ERROR,
            )

        return CommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_code=result.returncode,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def is_reachable(self, target: SSHTarget, connect_timeout: int = 5) -> bool:
        args = self._base_args(target, connect_timeout=connect_timeout) + ["exit"]
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=connect_timeout + 5,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("SSH probe to %s failed: %s", target, e)
            return False
        return result.returncode == 0
