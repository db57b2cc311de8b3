"""Best-effort memory sampling with degrading fidelity.

Measurement walks a chain of probes: a precise process measurement via
psutil, then the interpreter's traced-heap counter, and finally a heuristic
estimate derived from the artifact count. The estimate always succeeds and is
flagged ``source="estimated"`` so consumers can weigh its confidence. A
failing probe is logged and skipped; nothing here raises to the caller.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import os
import time
import tracemalloc
from typing import Any, Awaitable, Callable, Sequence, Union

import psutil

from ..events import EventBus, PressureLevelChanged
from ..services.telemetry import emit
from .models import MIB, MemorySample, MemoryStats, PressureLevel, format_memory_size

__all__ = [
    "MemoryProbe",
    "MemoryPressureMonitor",
    "measure_precise",
    "measure_legacy",
    "estimate_from_artifacts",
    "DEFAULT_PROBES",
]

LOGGER = logging.getLogger(__name__)

MemoryProbe = Callable[[], Union[MemorySample, None, Awaitable[Union[MemorySample, None]]]]
PressureListener = Callable[[PressureLevel, PressureLevel], None]

_ESTIMATE_BASE_MB = 50.0
_ESTIMATE_COMPLEXITY_THRESHOLD = 10
_ESTIMATE_COMPLEXITY_MULTIPLIER = 1.2
_ESTIMATE_LIMIT_BYTES = 2 * 1024 * MIB


def measure_precise() -> MemorySample | None:
    """Measure this process with psutil (USS when permitted, RSS otherwise)."""

    process = psutil.Process()
    info = process.memory_info()
    try:
        used = float(process.memory_full_info().uss)
    except (psutil.AccessDenied, AttributeError):
        used = float(info.rss)
    limit = float(psutil.virtual_memory().total)
    return MemorySample(
        used_bytes=used,
        total_bytes=float(info.rss),
        limit_bytes=limit,
        timestamp=time.time(),
        source="precise",
    )


def measure_legacy() -> MemorySample | None:
    """Read the traced Python heap; unavailable unless tracemalloc is tracing."""

    if not tracemalloc.is_tracing():
        return None
    current, peak = tracemalloc.get_traced_memory()
    return MemorySample(
        used_bytes=float(current),
        total_bytes=float(peak),
        limit_bytes=float(_physical_memory_bytes()),
        timestamp=time.time(),
        source="legacy",
    )


def estimate_from_artifacts(
    artifact_count: int,
    *,
    per_artifact_mb: float = 5.0,
    base_mb: float = _ESTIMATE_BASE_MB,
    timestamp: float | None = None,
) -> MemorySample:
    """Heuristic sample: ``(base + count * per_artifact) MiB``, scaled past 10 artifacts."""

    count = max(0, int(artifact_count))
    multiplier = _ESTIMATE_COMPLEXITY_MULTIPLIER if count > _ESTIMATE_COMPLEXITY_THRESHOLD else 1.0
    used = (base_mb + count * per_artifact_mb) * multiplier * MIB
    limit = float(_ESTIMATE_LIMIT_BYTES)
    return MemorySample(
        used_bytes=used,
        total_bytes=min(used * 1.5, limit * 0.8),
        limit_bytes=limit,
        timestamp=time.time() if timestamp is None else timestamp,
        source="estimated",
    )


def _physical_memory_bytes() -> int:
    try:
        return int(os.sysconf("SC_PHYS_PAGES")) * int(os.sysconf("SC_PAGE_SIZE"))
    except (AttributeError, ValueError, OSError):
        return 0


DEFAULT_PROBES: tuple[MemoryProbe, ...] = (measure_precise, measure_legacy)


class MemoryPressureMonitor:
    """Samples memory through tiered probes and caches the latest result.

    Admission decisions read :attr:`latest` and :attr:`pressure` without
    awaiting; :meth:`sample` refreshes them asynchronously.
    """

    def __init__(
        self,
        *,
        warning_threshold: float = 75.0,
        critical_threshold: float = 90.0,
        per_artifact_mb: float = 5.0,
        probes: Sequence[MemoryProbe] | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if critical_threshold < warning_threshold:
            raise ValueError("critical_threshold must be >= warning_threshold")
        self.warning_threshold = float(warning_threshold)
        self.critical_threshold = float(critical_threshold)
        self.per_artifact_mb = float(per_artifact_mb)
        self._probes: tuple[MemoryProbe, ...] = tuple(DEFAULT_PROBES if probes is None else probes)
        self._bus = event_bus
        self._latest: MemorySample | None = None
        self._pressure = PressureLevel.NORMAL
        self._artifact_count = 0
        self._listeners: list[PressureListener] = []
        self._poll_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Cached state
    # ------------------------------------------------------------------

    @property
    def latest(self) -> MemorySample | None:
        return self._latest

    @property
    def pressure(self) -> PressureLevel:
        return self._pressure

    @property
    def artifact_count(self) -> int:
        return self._artifact_count

    @property
    def is_warning(self) -> bool:
        return self._pressure is PressureLevel.WARNING

    @property
    def is_critical(self) -> bool:
        return self._pressure is PressureLevel.CRITICAL

    @property
    def has_memory_data(self) -> bool:
        return self._latest is not None

    def update_artifact_count(self, count: int) -> None:
        """Feed the artifact count used by the estimated tier."""
        self._artifact_count = max(0, int(count))

    def on_pressure_change(self, listener: PressureListener) -> None:
        """Register ``listener(previous, current)`` for level transitions."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def reset(self) -> None:
        """Drop the cached sample and count; used on session reset."""
        self._latest = None
        self._pressure = PressureLevel.NORMAL
        self._artifact_count = 0

    # ------------------------------------------------------------------
    # Measurement
    # ------------------------------------------------------------------

    async def sample(self) -> MemorySample:
        """Measure through the probe chain, cache and return the sample."""

        measured: MemorySample | None = None
        for probe in self._probes:
            measured = await self._run_probe(probe)
            if measured is not None:
                break
        if measured is None:
            measured = estimate_from_artifacts(
                self._artifact_count, per_artifact_mb=self.per_artifact_mb
            )
        self.record(measured)
        return measured

    async def _run_probe(self, probe: MemoryProbe) -> MemorySample | None:
        name = getattr(probe, "__name__", repr(probe))
        try:
            result: Any = probe()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            LOGGER.debug("Memory probe %s failed; falling through", name, exc_info=True)
            return None
        if result is None:
            LOGGER.debug("Memory probe %s unavailable", name)
            return None
        if not isinstance(result, MemorySample):
            LOGGER.debug("Memory probe %s returned %s; ignoring", name, type(result).__name__)
            return None
        return result

    def record(self, sample: MemorySample) -> PressureLevel:
        """Cache ``sample`` and notify listeners if the pressure level moved."""

        previous = self._pressure
        level = self.classify(sample)
        self._latest = sample
        self._pressure = level
        LOGGER.debug(
            "Memory usage (%s): used=%s limit=%s usage=%.1f%% pressure=%s artifacts=%d",
            sample.source,
            format_memory_size(sample.used_bytes),
            format_memory_size(sample.limit_bytes),
            sample.usage_percent,
            level.value,
            self._artifact_count,
        )
        if level is not previous:
            self._notify_pressure_change(previous, level, sample)
        return level

    def classify(self, sample: MemorySample) -> PressureLevel:
        """Map a sample to a level; an unknown limit fails open to NORMAL."""

        if sample.limit_bytes <= 0:
            return PressureLevel.NORMAL
        usage_percent = sample.used_bytes / sample.limit_bytes * 100
        if usage_percent >= self.critical_threshold:
            return PressureLevel.CRITICAL
        if usage_percent >= self.warning_threshold:
            return PressureLevel.WARNING
        return PressureLevel.NORMAL

    def _notify_pressure_change(
        self,
        previous: PressureLevel,
        current: PressureLevel,
        sample: MemorySample,
    ) -> None:
        LOGGER.info("Memory pressure changed: %s -> %s", previous.value, current.value)
        emit(
            "memory_pressure_changed",
            {
                "previous": previous.value,
                "current": current.value,
                "usage_percent": round(sample.usage_percent, 1),
                "source": sample.source,
            },
        )
        if self._bus is not None:
            self._bus.publish(
                PressureLevelChanged(
                    previous=previous.value,
                    current=current.value,
                    usage_percent=sample.usage_percent,
                    source=sample.source,
                )
            )
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                LOGGER.exception("Pressure listener %r failed", listener)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats(self) -> MemoryStats | None:
        sample = self._latest
        if sample is None:
            return None
        return MemoryStats(
            used=format_memory_size(sample.used_bytes),
            total=format_memory_size(sample.total_bytes),
            limit=format_memory_size(sample.limit_bytes),
            usage_percent=round(sample.usage_percent),
            pressure=self._pressure,
            source=sample.source,
            artifact_count=self._artifact_count,
            timestamp=sample.timestamp,
        )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(self, interval: float) -> asyncio.Task[None] | None:
        """Sample every ``interval`` seconds on the running loop; ``<= 0`` disables."""

        if interval <= 0:
            return None
        self.stop_polling()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll(interval))
        return self._poll_task

    def stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()

    async def aclose(self) -> None:
        task = self._poll_task
        self.stop_polling()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _poll(self, interval: float) -> None:
        while True:
            await self.sample()
            await asyncio.sleep(interval)
