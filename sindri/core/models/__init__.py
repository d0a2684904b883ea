"""
Domain models — Pydantic types for extensions, instances and sessions.

All models are re-exported here for convenient access:

    from sindri.core.models import Extension, RemoteInstance, SessionSnapshot
"""

from sindri.core.models.command import CommandResult
from sindri.core.models.extension import Extension, Phase
from sindri.core.models.instance import InstanceState, RemoteInstance, Volume
from sindri.core.models.session import RestoreReport, SessionSnapshot
from sindri.core.models.settings import (
    BackupSettings,
    ExtensionSettings,
    LifecycleSettings,
    RemoteSettings,
    Settings,
    SSHTarget,
)

__all__ = [
    # command.py
    "CommandResult",
    # extension.py
    "Extension",
    "Phase",
    # instance.py
    "InstanceState",
    "RemoteInstance",
    "Volume",
    # session.py
    "RestoreReport",
    "SessionSnapshot",
    # settings.py
    "BackupSettings",
    "ExtensionSettings",
    "LifecycleSettings",
    "RemoteSettings",
    "Settings",
    "SSHTarget",
]
