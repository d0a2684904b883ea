"""
Cost estimate — rough hourly/monthly price of the dev environment.

Lookup tables keyed by ``(cpus, memory_mb)`` for the two CPU kinds,
with a linear fallback for sizes not in the table. Figures are
indicative only and are shown by ``sindri lifecycle status``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sindri.core.models.instance import RemoteInstance, Volume

HOURS_PER_MONTH = 720
VOLUME_GB_MONTH = 0.15

SHARED_HOURLY: dict[tuple[int, int], float] = {
    (1, 256): 0.0027,
    (1, 512): 0.0044,
    (1, 1024): 0.0079,
    (1, 2048): 0.0149,
    (2, 512): 0.0054,
    (2, 1024): 0.0089,
    (2, 2048): 0.0158,
    (2, 4096): 0.0297,
    (4, 1024): 0.0108,
    (4, 2048): 0.0177,
    (4, 4096): 0.0316,
    (4, 8192): 0.0594,
    (8, 2048): 0.0216,
    (8, 4096): 0.0355,
    (8, 8192): 0.0633,
    (8, 16384): 0.1189,
}

PERFORMANCE_HOURLY: dict[tuple[int, int], float] = {
    (1, 2048): 0.0431,
    (1, 4096): 0.0570,
    (1, 8192): 0.0847,
    (2, 4096): 0.0861,
    (2, 8192): 0.1139,
    (2, 16384): 0.1695,
    (4, 8192): 0.1722,
    (4, 16384): 0.2278,
    (4, 32768): 0.3390,
    (8, 16384): 0.3444,
    (8, 32768): 0.4556,
    (8, 65536): 0.6780,
    (16, 32768): 0.6889,
    (16, 65536): 0.9112,
    (16, 131072): 1.3559,
}

_SHARED_BASE_PER_CPU = {1: 0.0027, 2: 0.0054, 4: 0.0108, 8: 0.0216}


def hourly_compute_cost(cpu_kind: str, cpus: int, memory_mb: int) -> float:
    """Hourly compute price for one machine size."""
    memory_gb = memory_mb / 1024
    if cpu_kind == "performance":
        if (cpus, memory_mb) in PERFORMANCE_HOURLY:
            return PERFORMANCE_HOURLY[(cpus, memory_mb)]
        return round(cpus * 0.043 + memory_gb * 0.0035, 4)

    if (cpus, memory_mb) in SHARED_HOURLY:
        return SHARED_HOURLY[(cpus, memory_mb)]
    base = _SHARED_BASE_PER_CPU.get(cpus, cpus * 0.0027)
    return round(base + memory_gb * 0.002, 4)


def monthly_volume_cost(size_gb: int) -> float:
    return round(size_gb * VOLUME_GB_MONTH, 2)


@dataclass
class CostEstimate:
    """Compute + storage estimate for one app."""

    hourly_compute: float = 0.0
    monthly_compute: float = 0.0
    monthly_volume: float = 0.0
    running: bool = False

    @property
    def monthly_total(self) -> float:
        return round(self.monthly_compute + self.monthly_volume, 2)

    def to_dict(self) -> dict:
        return {
            "hourly_compute": self.hourly_compute,
            "monthly_compute": self.monthly_compute,
            "monthly_volume": self.monthly_volume,
            "monthly_total": self.monthly_total,
            "running": self.running,
        }


def estimate(instance: RemoteInstance | None, volumes: list[Volume]) -> CostEstimate:
    """Estimate assuming the machine runs around the clock.

    ``running`` tells whether compute is being billed right now; a
    stopped machine only costs its volumes.
    """
    result = CostEstimate(
        monthly_volume=monthly_volume_cost(sum(v.size_gb for v in volumes)),
    )
    if instance is not None:
        result.hourly_compute = hourly_compute_cost(
            instance.cpu_kind, instance.cpus, instance.memory_mb
        )
        result.monthly_compute = round(result.hourly_compute * HOURS_PER_MONTH, 2)
        result.running = instance.state == "started"
    return result
