"""
Remote instance models — the VM and its persistent volume.

Instances are always re-fetched from the provider; nothing here is
cached between operations. Provider payloads are loose, so every
field tolerates absence and falls back to ``"unknown"``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel

UNKNOWN = "unknown"


class InstanceState(StrEnum):
    """Lifecycle states as seen by the controller."""

    STARTED = "started"
    STOPPED = "stopped"
    TRANSITIONAL = "transitional"  # any unrecognized provider state
    UNKNOWN = "unknown"            # state missing or query failed


def normalize_state(raw: str | None) -> InstanceState:
    """Map a provider state string onto InstanceState."""
    if not raw or raw == UNKNOWN:
        return InstanceState.UNKNOWN
    value = raw.strip().lower()
    if value == "started":
        return InstanceState.STARTED
    if value in ("stopped", "suspended"):
        return InstanceState.STOPPED
    return InstanceState.TRANSITIONAL


def format_size(cpu_kind: str, cpus: int, memory_mb: int) -> str:
    """Human label for a VM size, e.g. ``Shared 1vCPU / 256MB``."""
    kind = "Performance" if cpu_kind == "performance" else "Shared"
    return f"{kind} {cpus}vCPU / {memory_mb}MB"


class RemoteInstance(BaseModel):
    """A provider machine backing the dev environment."""

    id: str = UNKNOWN
    name: str = UNKNOWN
    region: str = UNKNOWN
    state: InstanceState = InstanceState.UNKNOWN
    raw_state: str = UNKNOWN
    cpu_kind: str = "shared"
    cpus: int = 1
    memory_mb: int = 256
    created_at: str = UNKNOWN

    @property
    def size(self) -> str:
        return format_size(self.cpu_kind, self.cpus, self.memory_mb)

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> RemoteInstance:
        """Build from one entry of ``flyctl machine list --json``."""
        guest = (data.get("config") or {}).get("guest") or {}
        raw_state = data.get("state") or UNKNOWN
        return cls(
            id=data.get("id") or UNKNOWN,
            name=data.get("name") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
            state=normalize_state(raw_state),
            raw_state=raw_state,
            cpu_kind=guest.get("cpu_kind") or "shared",
            cpus=int(guest.get("cpus") or 1),
            memory_mb=int(guest.get("memory_mb") or 256),
            created_at=data.get("created_at") or UNKNOWN,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "region": self.region,
            "state": self.state.value,
            "raw_state": self.raw_state,
            "size": self.size,
            "created_at": self.created_at,
        }


class Volume(BaseModel):
    """A persistent volume attached to the app."""

    id: str = UNKNOWN
    name: str = UNKNOWN
    size_gb: int = 10
    region: str = UNKNOWN
    created_at: str = UNKNOWN

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> Volume:
        """Build from one entry of ``flyctl volumes list --json``."""
        return cls(
            id=data.get("id") or UNKNOWN,
            name=data.get("name") or UNKNOWN,
            size_gb=int(data.get("size_gb") or 10),
            region=data.get("region") or UNKNOWN,
            created_at=data.get("created_at") or UNKNOWN,
        )
