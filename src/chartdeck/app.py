"""Host entry points: logging bootstrap, session factory and a replay CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .events import EventBus
from .memory.monitor import MemoryProbe
from .services.settings import SettingsStore, WorkspaceSettings
from .utils import logging as logging_utils
from .workspace.session import ArtifactSession

__all__ = ["configure_logging", "load_settings", "create_session", "main"]

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


def configure_logging(
    debug: bool = False,
    *,
    settings: WorkspaceSettings | None = None,
    force: bool = False,
) -> Path:
    """Configure logging for the host process.

    ``settings`` supplies ``debug_logging`` and ``log_dir``. Passing ``debug``
    selects DEBUG regardless of the settings. A ``log_dir`` that differs from
    the directory already in use reinstalls the handlers there.
    """

    verbose = debug or (settings is not None and settings.debug_logging)
    level = logging.DEBUG if verbose else logging.INFO
    log_dir = settings.log_dir if settings is not None else None
    if log_dir is not None and not force:
        current = logging_utils.current_log_path()
        force = current is not None and current.parent != logging_utils.resolve_log_dir(log_dir)
    log_path = logging_utils.setup_logging(level, log_dir=log_dir, force=force)
    _LOGGER.debug("Logging configured (level=%s, path=%s)", logging.getLevelName(level), log_path)
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> WorkspaceSettings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return WorkspaceSettings()


def create_session(
    settings: WorkspaceSettings | None = None,
    *,
    session_id: str | None = None,
    event_bus: EventBus | None = None,
    probes: Sequence[MemoryProbe] | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> ArtifactSession:
    """Build an :class:`ArtifactSession` for one conversation thread."""

    active = settings or load_settings()
    if active.debug_logging:
        configure_logging(settings=active)
    session = ArtifactSession(active, session_id=session_id, event_bus=event_bus, probes=probes, loop=loop)
    _LOGGER.debug(
        "Artifact session created (session=%s, max_artifacts=%d, memory_based_limits=%s)",
        session_id,
        active.max_artifacts,
        active.memory_based_limits,
    )
    return session


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``chartdeck`` console script.

    Replays a JSON transcript of persisted messages through a fresh session
    and prints the resulting workspace state.
    """

    args = _parse_cli_args(argv)

    settings_path = args.settings_path or os.environ.get("CHARTDECK_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    configure_logging(_env_flag("CHARTDECK_DEBUG"), settings=settings)
    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if args.history is None:
        print("A transcript path is required unless --dump-settings is given.", file=sys.stderr)
        return 2
    try:
        messages = _read_transcript(Path(args.history).expanduser())
    except (OSError, ValueError) as exc:
        print(f"Cannot read transcript: {exc}", file=sys.stderr)
        return 1

    session = create_session(settings, session_id=args.thread_id)
    try:
        asyncio.run(session.refresh_memory())
        session.hydrate(messages)
        _dump_workspace(session)
    finally:
        session.teardown()
    return 0


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chartdeck",
        description="Replay a saved conversation into an artifact workspace and report its state.",
    )
    parser.add_argument(
        "history",
        nargs="?",
        metavar="TRANSCRIPT",
        help="JSON file holding a list of persisted messages.",
    )
    parser.add_argument(
        "--thread-id",
        metavar="ID",
        default=None,
        help="Session identifier recorded on emitted events.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.chartdeck/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    return parser.parse_args(argv)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _read_transcript(path: Path) -> list[Mapping[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, Mapping):
        payload = payload.get("messages")
    if not isinstance(payload, list):
        raise ValueError("expected a list of messages or an object with a 'messages' list")
    return [item for item in payload if isinstance(item, Mapping)]


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = WorkspaceSettings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(WorkspaceSettings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is tuple:
        return tuple(item.strip() for item in normalized.split(",") if item.strip())
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin is tuple:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: WorkspaceSettings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["artifact_tool_names"] = list(settings.artifact_tool_names)
    payload["quiet_events"] = list(settings.quiet_events)
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
        "log_path": _optional_path(logging_utils.current_log_path()),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _dump_workspace(session: ArtifactSession, stream: TextIO | None = None) -> None:
    destination = stream or sys.stdout
    stats = session.monitor.stats()
    output = {
        "session_id": session.session_id,
        "artifacts": [
            {
                "id": artifact.id,
                "type": artifact.type,
                "title": artifact.title,
                "status": artifact.status,
                "chart_type": artifact.metadata.chart_type,
                "data_points": artifact.metadata.data_points,
            }
            for artifact in session.store
        ],
        "limits": asdict(session.limits_state()),
        "memory": None if stats is None else {**asdict(stats), "pressure": stats.pressure.value},
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("CHARTDECK_"))


def _optional_path(path: Path | None) -> str | None:
    return None if path is None else str(path)
