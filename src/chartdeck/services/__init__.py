"""Service layer helpers (settings, telemetry)."""

from .settings import (
    DEFAULT_ARTIFACT_TOOL_NAMES,
    DEFAULT_QUIET_EVENTS,
    TABLE_TOOL_NAMES,
    SettingsStore,
    WorkspaceSettings,
)
from .telemetry import InMemoryTelemetrySink, emit, register_event_listener, unregister_event_listener

__all__ = [
    "DEFAULT_ARTIFACT_TOOL_NAMES",
    "DEFAULT_QUIET_EVENTS",
    "TABLE_TOOL_NAMES",
    "SettingsStore",
    "WorkspaceSettings",
    "InMemoryTelemetrySink",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]
