"""
CommandResult — the outcome of a single local or remote command.

This is the I/O contract between the shell adapters and everything
above them: adapters run a command and hand back a CommandResult.
A non-zero exit is data, not an exception.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CommandResult(BaseModel):
    """Result of running one command (over SSH or locally)."""

    command: str = ""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.exit_code == 0

    @property
    def error(self) -> str:
        """Best-effort failure description."""
        if self.ok:
            return ""
        return self.stderr.strip() or f"Command exited with code {self.exit_code}"

    @classmethod
    def success(cls, command: str, stdout: str = "", **kwargs: Any) -> CommandResult:
        """Create a success result."""
        return cls(command=command, stdout=stdout, exit_code=0, **kwargs)

    @classmethod
    def failure(
        cls,
        command: str,
        stderr: str,
        exit_code: int = 1,
        **kwargs: Any,
    ) -> CommandResult:
        """Create a failure result."""
        return cls(command=command, stderr=stderr, exit_code=exit_code, **kwargs)
