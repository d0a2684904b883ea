"""
Remote tar archive — ArchiveTool executed on the instance over RemoteShell.

Archives are created and unpacked where the data lives, so nothing is
streamed through the local machine. Best-effort mode adds
``--ignore-failed-read`` and treats GNU tar's exit status 1 ("some
files changed or could not be read") as success with a warning.
"""

from __future__ import annotations

import logging
import posixpath
import shlex

from sindri.adapters.base import ArchiveTool, RemoteShell
from sindri.core.models.command import CommandResult
from sindri.core.models.settings import SSHTarget

logger = logging.getLogger(__name__)

# GNU tar: 1 = some files differ/changed, 2 = fatal
_TAR_PARTIAL = 1


def build_create_command(
    archive_path: str,
    source_paths: list[str],
    exclude_patterns: list[str],
    best_effort: bool = True,
) -> str:
    """Shell command line that writes a gzipped tarball."""
    parts = ["tar"]
    if best_effort:
        parts.append("--ignore-failed-read")
    parts += [f"--exclude={shlex.quote(p)}" for p in exclude_patterns]
    parts += ["-czf", shlex.quote(archive_path)]
    parts += [shlex.quote(p) for p in source_paths]
    parent = posixpath.dirname(archive_path) or "."
    return f"mkdir -p {shlex.quote(parent)} && " + " ".join(parts)


def build_extract_command(archive_path: str, destination: str) -> str:
    """Shell command line that unpacks a gzipped tarball."""
    return (
        f"mkdir -p {shlex.quote(destination)} && "
        f"tar -xzf {shlex.quote(archive_path)} -C {shlex.quote(destination)}"
    )


class RemoteTarArchive(ArchiveTool):
    """Run ``tar`` on the remote instance."""

    def __init__(self, shell: RemoteShell, target: SSHTarget, timeout: float = 1800.0):
        self._shell = shell
        self._target = target
        self._timeout = timeout

    def create(
        self,
        archive_path: str,
        source_paths: list[str],
        exclude_patterns: list[str],
        best_effort: bool = True,
    ) -> CommandResult:
        command = build_create_command(archive_path, source_paths, exclude_patterns, best_effort)
        result = self._shell.exec(self._target, command, timeout=self._timeout)

        if best_effort and result.exit_code == _TAR_PARTIAL:
            logger.warning("Archive %s created with unreadable files skipped", archive_path)
            result = result.model_copy(update={
                "exit_code": 0,
                "metadata": {**result.metadata, "partial": True},
            })
        return result

    def extract(self, archive_path: str, destination: str) -> CommandResult:
        command = build_extract_command(archive_path, destination)
        return self._shell.exec(self._target, command, timeout=self._timeout)
