"""
Local script executor — run an activated extension on this machine.

The phase scheduler hands each runnable extension to an executor and
gets a CommandResult back. This one runs ``bash <script>`` in the
extensions directory and captures its output.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from sindri.core.models.command import CommandResult
from sindri.core.models.extension import Extension

logger = logging.getLogger(__name__)


class LocalScriptExecutor:
    """Execute extension scripts with a local bash.

    Args:
        shell: Interpreter used to run the scripts.
        timeout: Per-script timeout in seconds.
        env: Optional environment for the child processes.
    """

    def __init__(
        self,
        shell: str = "bash",
        timeout: float = 1800.0,
        env: dict[str, str] | None = None,
    ):
        self.shell = shell
        self.timeout = timeout
        self.env = env

    def is_available(self) -> bool:
        return shutil.which(self.shell) is not None

    def __call__(self, extension: Extension) -> CommandResult:
        script = extension.active_path
        command = f"{self.shell} {script}"
        logger.debug("Executing extension %s: %s", extension.id, command)
        start = time.monotonic()

        try:
            result = subprocess.run(
                [self.shell, str(script)],
                cwd=script.parent,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self.env,
            )
        except subprocess.TimeoutExpired:
            return CommandResult.failure(
                command=command,
                stderr=f"Extension '{extension.id}' timed out after {self.timeout:.0f}s",
                exit_code=124,
                metadata={"timeout": self.timeout},
            )
        except OSError as e:
            return CommandResult.failure(
                command=command,
                stderr=f"Cannot execute extension '{extension.id}': {e}",
                exit_code=126,
            )

        return CommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_code=result.returncode,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
