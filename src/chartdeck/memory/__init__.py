"""Memory pressure measurement and artifact admission."""

from .admission import AdmissionController, AdmissionDecision, LimitsState, TYPE_MEMORY_MULTIPLIERS
from .models import MemorySample, MemoryStats, PressureLevel, format_memory_size
from .monitor import (
    DEFAULT_PROBES,
    MemoryPressureMonitor,
    MemoryProbe,
    estimate_from_artifacts,
    measure_legacy,
    measure_precise,
)

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "LimitsState",
    "TYPE_MEMORY_MULTIPLIERS",
    "MemorySample",
    "MemoryStats",
    "PressureLevel",
    "format_memory_size",
    "DEFAULT_PROBES",
    "MemoryPressureMonitor",
    "MemoryProbe",
    "estimate_from_artifacts",
    "measure_legacy",
    "measure_precise",
]
