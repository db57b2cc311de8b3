"""Workspace settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = [
    "WorkspaceSettings",
    "SettingsStore",
    "DEFAULT_ARTIFACT_TOOL_NAMES",
    "TABLE_TOOL_NAMES",
    "DEFAULT_QUIET_EVENTS",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".chartdeck"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "CHARTDECK_MEMORY_BASED_LIMITS": "memory_based_limits",
    "CHARTDECK_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "CHARTDECK_MEMORY_WARNING_PERCENT": "memory_warning_percent",
    "CHARTDECK_CRITICAL_THRESHOLD": "critical_threshold",
    "CHARTDECK_PER_ARTIFACT_MB": "per_artifact_memory_estimate_mb",
    "CHARTDECK_DEBOUNCE_SECONDS": "debounce_seconds",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "CHARTDECK_MAX_ARTIFACTS": "max_artifacts",
    "CHARTDECK_WARNING_THRESHOLD": "warning_threshold",
}
_STR_ENV_OVERRIDES: Mapping[str, str] = {
    "CHARTDECK_LOG_DIR": "log_dir",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

DEFAULT_ARTIFACT_TOOL_NAMES: tuple[str, ...] = (
    "create_chart",
    "create_area_chart",
    "create_scatter_chart",
    "create_radar_chart",
    "create_funnel_chart",
    "create_treemap_chart",
    "create_sankey_chart",
    "create_radial_bar_chart",
    "create_composed_chart",
    "create_geographic_chart",
    "create_gauge_chart",
    "create_calendar_heatmap",
    "create_bar_chart",
    "create_line_chart",
    "create_pie_chart",
    "createTable",
    "create_ban_chart",
    "create_dashboard",
)
TABLE_TOOL_NAMES: frozenset[str] = frozenset({"createTable"})
# Event types published too often to log one line per publish.
DEFAULT_QUIET_EVENTS: tuple[str, ...] = ("ArtifactUpdated",)
_TUPLE_FIELDS: tuple[str, ...] = ("artifact_tool_names", "quiet_events")


@dataclass(slots=True)
class WorkspaceSettings:
    """Host-configurable limits for the artifact workspace."""

    max_artifacts: int = 25
    warning_threshold: int = 20
    memory_warning_percent: float = 75.0
    critical_threshold: float = 90.0
    per_artifact_memory_estimate_mb: float = 5.0
    projected_usage_warning_percent: float = 85.0
    min_artifacts_floor: int = 10
    debounce_seconds: float = 0.15
    memory_based_limits: bool = True
    debug_logging: bool = False
    artifact_tool_names: tuple[str, ...] = field(default=DEFAULT_ARTIFACT_TOOL_NAMES)
    quiet_events: tuple[str, ...] = field(default=DEFAULT_QUIET_EVENTS)
    log_dir: str | None = None

    def validate(self) -> "WorkspaceSettings":
        """Raise :class:`ValueError` when the limits contradict each other."""

        if self.max_artifacts <= 0:
            raise ValueError("max_artifacts must be positive")
        if self.warning_threshold < 0 or self.min_artifacts_floor < 0:
            raise ValueError("artifact thresholds must not be negative")
        if self.warning_threshold > self.max_artifacts:
            raise ValueError("warning_threshold cannot exceed max_artifacts")
        if not 0 <= self.memory_warning_percent <= 100:
            raise ValueError("memory_warning_percent must be within 0-100")
        if self.critical_threshold < self.memory_warning_percent:
            raise ValueError("critical_threshold must be >= memory_warning_percent")
        if self.per_artifact_memory_estimate_mb <= 0:
            raise ValueError("per_artifact_memory_estimate_mb must be positive")
        if self.debounce_seconds < 0:
            raise ValueError("debounce_seconds must not be negative")
        return self

    def with_overrides(self, **overrides: Any) -> "WorkspaceSettings":
        """Return a validated copy with ``overrides`` applied (``None`` values ignored)."""

        allowed = {item.name for item in fields(WorkspaceSettings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        for name in _TUPLE_FIELDS:
            if name in filtered:
                filtered[name] = tuple(filtered[name])
        return replace(self, **filtered).validate()


class SettingsStore:
    """Persistence adapter for :class:`WorkspaceSettings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> WorkspaceSettings:
        """Load settings from disk, applying host/environment overrides when present."""

        payload = self._read_payload()
        settings = WorkspaceSettings()
        if payload:
            data = _filter_fields(payload)
            for name in _TUPLE_FIELDS:
                if isinstance(data.get(name), list):
                    data[name] = tuple(data[name])
            try:
                settings = WorkspaceSettings(**data).validate()
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = WorkspaceSettings()
        LOGGER.debug("Settings loaded from %s (version=%s)", self._path, payload.get("version"))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="host")

        return self._apply_env_overrides(settings)

    def save(self, settings: WorkspaceSettings) -> Path:
        """Persist settings to disk with atomic file writes."""

        data = asdict(settings)
        for name in _TUPLE_FIELDS:
            data[name] = list(getattr(settings, name))
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _apply_overrides(
        self,
        settings: WorkspaceSettings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> WorkspaceSettings:
        filtered = _filter_fields(overrides)
        filtered = {key: value for key, value in filtered.items() if value is not None}
        if not filtered:
            return settings
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        try:
            return settings.with_overrides(**filtered)
        except ValueError as exc:
            LOGGER.warning("Ignoring %s settings overrides: %s", source, exc)
            return settings

    def _apply_env_overrides(self, settings: WorkspaceSettings) -> WorkspaceSettings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _STR_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None and value.strip():
                overrides[field_name] = value.strip()
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(WorkspaceSettings)}
    return {key: value for key, value in payload.items() if key in allowed}
