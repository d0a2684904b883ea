"""
Adapter base — the contracts between the core and external tools.

The core never shells out to ``flyctl``, ``ssh`` or ``tar`` directly;
it talks to these abstract adapters. Concrete implementations live in
``sindri.adapters.fly`` / ``sindri.adapters.shell``; scriptable doubles
live in ``sindri.adapters.mock``.

Error conventions differ by contract on purpose:
    RemoteComputeAPI  raises RemoteCallFailed (a failed provider call
                      leaves the controller nothing sensible to do)
    RemoteShell       returns CommandResult, never raises on non-zero
                      exit (callers decide what a failure means)
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sindri.core.models.command import CommandResult
from sindri.core.models.instance import RemoteInstance, Volume
from sindri.core.models.settings import SSHTarget


class RemoteComputeAPI(ABC):
    """Start/stop/query machines of one app on the provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier (e.g. 'fly', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying CLI/API is usable. Never raises."""

    @abstractmethod
    def list_instances(self, app_name: str) -> list[RemoteInstance]:
        """All machines of the app. Raises RemoteCallFailed."""

    @abstractmethod
    def start_instance(self, app_name: str, instance_id: str) -> None:
        """Ask the provider to start a machine. Raises RemoteCallFailed."""

    @abstractmethod
    def stop_instance(self, app_name: str, instance_id: str) -> None:
        """Ask the provider to stop a machine. Raises RemoteCallFailed."""

    @abstractmethod
    def list_volumes(self, app_name: str) -> list[Volume]:
        """Volumes of the app. Raises RemoteCallFailed."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class RemoteShell(ABC):
    """Run commands on the instance over an authenticated channel."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter identifier (e.g. 'ssh', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the transport binary exists locally. Never raises."""

    @abstractmethod
    def exec(self, target: SSHTarget, command: str, timeout: float | None = None) -> CommandResult:
        """Run ``command`` through a remote bash. Never raises."""

    @abstractmethod
    def is_reachable(self, target: SSHTarget, connect_timeout: int = 5) -> bool:
        """Non-interactive connection probe. Never raises."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ArchiveTool(ABC):
    """Create and extract backup archives on the instance."""

    @abstractmethod
    def create(
        self,
        archive_path: str,
        source_paths: list[str],
        exclude_patterns: list[str],
        best_effort: bool = True,
    ) -> CommandResult:
        """Archive ``source_paths``. In best-effort mode unreadable files
        are skipped instead of failing the archive."""

    @abstractmethod
    def extract(self, archive_path: str, destination: str) -> CommandResult:
        """Unpack an archive under ``destination``."""
