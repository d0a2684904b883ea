"""Adapters — bindings for the provider CLI, SSH and remote tar.

Public re-exports for convenient access.
"""

from sindri.adapters.base import ArchiveTool, RemoteComputeAPI, RemoteShell
from sindri.adapters.mock import MockComputeAPI, MockShell

__all__ = [
    "ArchiveTool",
    "MockComputeAPI",
    "MockShell",
    "RemoteComputeAPI",
    "RemoteShell",
]
