"""Admission control for new artifacts.

Only two conditions reject outright: the store is at the effective ceiling,
or the latest memory sample is critical. Everything else is admitted, with
warnings attached when the workspace is getting crowded or the candidate's
projected footprint would push usage too high. Decisions read the monitor's
cached sample and never await a fresh measurement.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ..services.settings import WorkspaceSettings
from ..services.telemetry import emit
from .models import MIB, PressureLevel
from .monitor import MemoryPressureMonitor

__all__ = [
    "AdmissionDecision",
    "AdmissionController",
    "LimitsState",
    "TYPE_MEMORY_MULTIPLIERS",
]

LOGGER = logging.getLogger(__name__)

TYPE_MEMORY_MULTIPLIERS: Mapping[str, float] = {
    "table": 1.5,
    "scatter": 2.0,
    "geographic": 2.5,
    "sankey": 2.0,
    "calendar-heatmap": 1.8,
    "dashboard": 3.0,
    "composed": 1.5,
    "default": 1.0,
}
_DEFAULT_DATA_POINTS = 100
_HIGH_USAGE_PERCENT = 50.0
_CONSERVATIVE_HEADROOM_FRACTION = 0.2


@dataclass(slots=True, frozen=True)
class AdmissionDecision:
    """Outcome of :meth:`AdmissionController.can_admit`."""

    allowed: bool
    reason: str | None = None
    warning: str | None = None
    recommendation: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"allowed": self.allowed}
        for key in ("reason", "warning", "recommendation"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass(slots=True, frozen=True)
class LimitsState:
    """Snapshot of occupancy versus limits for status displays."""

    artifact_count: int
    max_artifacts_allowed: int
    warning_active: bool
    memory_pressure_active: bool
    recommended_action: str | None = None


class AdmissionController:
    """Decides whether a new artifact may enter the store."""

    def __init__(
        self,
        monitor: MemoryPressureMonitor,
        settings: WorkspaceSettings | None = None,
        *,
        occupancy: Callable[[], int] | None = None,
    ) -> None:
        self._settings = (settings or WorkspaceSettings()).validate()
        self._monitor = monitor
        self._occupancy: Callable[[], int] = occupancy or (lambda: 0)
        self._ceiling = self._settings.max_artifacts
        monitor.on_pressure_change(self._on_pressure_change)

    @property
    def settings(self) -> WorkspaceSettings:
        return self._settings

    @property
    def monitor(self) -> MemoryPressureMonitor:
        return self._monitor

    def bind_occupancy(self, occupancy: Callable[[], int]) -> None:
        """Point the controller at the store whose size it guards."""
        self._occupancy = occupancy

    @property
    def artifact_count(self) -> int:
        return max(0, int(self._occupancy()))

    @property
    def effective_max_artifacts(self) -> int:
        if self._settings.memory_based_limits:
            return self._ceiling
        return self._settings.max_artifacts

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def can_admit(
        self,
        artifact_type_hint: str | None = "default",
        estimated_data_points: int | None = _DEFAULT_DATA_POINTS,
    ) -> AdmissionDecision:
        """Return whether one more artifact of the given shape may be created."""

        count = self.artifact_count
        max_allowed = self.effective_max_artifacts
        pressure = self._monitor.pressure

        if count >= max_allowed:
            return self._reject(
                AdmissionDecision(
                    allowed=False,
                    reason=f"Artifact limit reached ({max_allowed} artifacts maximum)",
                    recommendation="Remove existing artifacts before creating new ones",
                ),
                count=count,
                pressure=pressure,
            )

        if pressure is PressureLevel.CRITICAL:
            return self._reject(
                AdmissionDecision(
                    allowed=False,
                    reason="Critical memory usage detected",
                    recommendation="Remove existing artifacts to free up memory before creating new ones",
                ),
                count=count,
                pressure=pressure,
            )

        warning: str | None = None
        recommendation: str | None = None
        if pressure is PressureLevel.WARNING:
            warning = "High memory usage - consider removing artifacts after creating this one"
            recommendation = "Consider removing older artifacts to free up memory"
        elif count >= self._settings.warning_threshold:
            warning = f"Approaching artifact limit ({count}/{max_allowed})"
            recommendation = "Consider removing older artifacts to maintain performance"

        projected = self._projected_usage_percent(artifact_type_hint, estimated_data_points)
        if projected is not None and projected > self._settings.projected_usage_warning_percent:
            warning = f"Artifact may cause high memory usage (projected: {round(projected)}%)"
            recommendation = "Consider using a simpler chart type or fewer data points"

        return AdmissionDecision(allowed=True, warning=warning, recommendation=recommendation)

    def _projected_usage_percent(self, artifact_type: str | None, data_points: int | None) -> float | None:
        sample = self._monitor.latest
        if sample is None or sample.limit_bytes <= 0:
            return None
        estimate = self.estimate_artifact_memory(artifact_type, data_points)
        return (sample.used_bytes + estimate) / sample.limit_bytes * 100

    def _reject(self, decision: AdmissionDecision, *, count: int, pressure: PressureLevel) -> AdmissionDecision:
        LOGGER.warning("Artifact admission rejected: %s (count=%d)", decision.reason, count)
        emit(
            "artifact_admission_rejected",
            {
                "reason": decision.reason,
                "artifact_count": count,
                "max_artifacts": self.effective_max_artifacts,
                "pressure": pressure.value,
            },
        )
        return decision

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def estimate_artifact_memory(
        self,
        artifact_type: str | None,
        data_points: int | None = _DEFAULT_DATA_POINTS,
    ) -> int:
        """Estimate the footprint in bytes of one artifact of ``artifact_type``."""

        multiplier = TYPE_MEMORY_MULTIPLIERS.get(artifact_type or "default", TYPE_MEMORY_MULTIPLIERS["default"])
        points = _DEFAULT_DATA_POINTS if data_points is None else max(0, int(data_points))
        data_multiplier = max(1.0, math.sqrt(points / _DEFAULT_DATA_POINTS))
        estimated_mb = self._settings.per_artifact_memory_estimate_mb * multiplier * data_multiplier
        return int(estimated_mb * MIB)

    def recompute_ceiling(self) -> int:
        """Recompute the dynamic artifact ceiling from the latest sample.

        The result is clamped to ``[min_artifacts_floor, max_artifacts]``.
        Without a usable sample the static maximum applies.
        """

        settings = self._settings
        previous = self._ceiling
        sample = self._monitor.latest
        count = self.artifact_count
        if not settings.memory_based_limits or sample is None or sample.limit_bytes <= 0:
            ceiling = settings.max_artifacts
        else:
            usage_percent = sample.usage_percent
            if usage_percent < _HIGH_USAGE_PERCENT:
                available = (100 - usage_percent) / 100 * sample.limit_bytes
            else:
                available = sample.limit_bytes * _CONSERVATIVE_HEADROOM_FRACTION
            per_artifact = settings.per_artifact_memory_estimate_mb * MIB
            safe_count = int(available // per_artifact)
            ceiling = min(max(safe_count + count, settings.min_artifacts_floor), settings.max_artifacts)

        self._ceiling = ceiling
        if ceiling != previous:
            LOGGER.debug(
                "Dynamic artifact limit updated: %d -> %d (artifacts=%d)",
                previous,
                ceiling,
                count,
            )
            emit(
                "admission_ceiling_changed",
                {"previous": previous, "current": ceiling, "artifact_count": count},
            )
        return ceiling

    def reset(self) -> None:
        """Restore the static ceiling; used on session reset."""
        self._ceiling = self._settings.max_artifacts

    def _on_pressure_change(self, previous: PressureLevel, current: PressureLevel) -> None:
        self.recompute_ceiling()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def limits_state(self) -> LimitsState:
        count = self.artifact_count
        max_allowed = self.effective_max_artifacts
        pressure = self._monitor.pressure

        recommended: str | None = None
        if pressure is PressureLevel.CRITICAL:
            recommended = "Remove artifacts immediately - critical memory usage detected"
        elif pressure is PressureLevel.WARNING:
            recommended = "Consider removing some artifacts to free up memory"
        elif count >= max_allowed * 0.9:
            recommended = "Approaching artifact limit - consider removing older artifacts"

        return LimitsState(
            artifact_count=count,
            max_artifacts_allowed=max_allowed,
            warning_active=count >= self._settings.warning_threshold,
            memory_pressure_active=pressure in (PressureLevel.WARNING, PressureLevel.CRITICAL),
            recommended_action=recommended,
        )
