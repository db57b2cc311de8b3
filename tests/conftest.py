"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Iterator

import pytest

from chartdeck.events import EventBus
from chartdeck.memory.admission import AdmissionController
from chartdeck.memory.monitor import MemoryPressureMonitor
from chartdeck.services import telemetry
from chartdeck.services.settings import WorkspaceSettings
from chartdeck.workspace.store import ArtifactStore

from tests.helpers import StaticProbe

TELEMETRY_EVENTS = (
    "artifact_admission_rejected",
    "admission_ceiling_changed",
    "memory_pressure_changed",
    "artifact_created",
    "artifact_payload_rejected",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CHARTDECK_MAX_ARTIFACTS",
        "CHARTDECK_WARNING_THRESHOLD",
        "CHARTDECK_MEMORY_WARNING_PERCENT",
        "CHARTDECK_CRITICAL_THRESHOLD",
        "CHARTDECK_PER_ARTIFACT_MB",
        "CHARTDECK_DEBOUNCE_SECONDS",
        "CHARTDECK_MEMORY_BASED_LIMITS",
        "CHARTDECK_DEBUG_LOGGING",
        "CHARTDECK_DEBUG",
        "CHARTDECK_SETTINGS_PATH",
        "CHARTDECK_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def telemetry_sink() -> Iterator[telemetry.InMemoryTelemetrySink]:
    sink = telemetry.InMemoryTelemetrySink()
    for name in TELEMETRY_EVENTS:
        telemetry.register_event_listener(name, sink)
    yield sink
    for name in TELEMETRY_EVENTS:
        telemetry.unregister_event_listener(name, sink)


@pytest.fixture
def settings() -> WorkspaceSettings:
    return WorkspaceSettings()


@pytest.fixture
def probe() -> StaticProbe:
    return StaticProbe()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def monitor(probe: StaticProbe, bus: EventBus) -> MemoryPressureMonitor:
    return MemoryPressureMonitor(probes=[probe], event_bus=bus)


@pytest.fixture
def controller(monitor: MemoryPressureMonitor, settings: WorkspaceSettings) -> AdmissionController:
    return AdmissionController(monitor, settings)


@pytest.fixture
def store(controller: AdmissionController, bus: EventBus) -> ArtifactStore:
    return ArtifactStore(controller, bus)
