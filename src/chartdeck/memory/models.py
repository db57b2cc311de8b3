"""Memory samples and pressure levels."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

__all__ = [
    "MemorySource",
    "PressureLevel",
    "MemorySample",
    "MemoryStats",
    "format_memory_size",
    "MIB",
]

MIB = 1024 * 1024

MemorySource = Literal["precise", "legacy", "estimated"]


class PressureLevel(str, Enum):
    """Coarse classification of memory headroom."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(slots=True, frozen=True)
class MemorySample:
    """One best-effort memory measurement."""

    used_bytes: float
    total_bytes: float
    limit_bytes: float
    timestamp: float
    source: MemorySource

    @property
    def usage_percent(self) -> float:
        """Used memory as a percentage of the limit; 0 when the limit is unknown."""
        if self.limit_bytes <= 0:
            return 0.0
        return self.used_bytes / self.limit_bytes * 100


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """Display-friendly view of the latest sample."""

    used: str
    total: str
    limit: str
    usage_percent: int
    pressure: PressureLevel
    source: MemorySource
    artifact_count: int
    timestamp: float


def format_memory_size(size_bytes: float) -> str:
    """Format ``size_bytes`` as ``"1.5 MB"`` style text."""

    if size_bytes <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB")
    exponent = 0
    scaled = float(size_bytes)
    while scaled >= 1024 and exponent < len(units) - 1:
        scaled /= 1024
        exponent += 1
    value = round(scaled, 1)
    if value == int(value):
        return f"{int(value)} {units[exponent]}"
    return f"{value} {units[exponent]}"
