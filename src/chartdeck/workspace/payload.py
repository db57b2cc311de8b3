"""Turns a completed tool invocation into an :class:`Artifact`.

Payloads arrive either as a ready ``chartData`` object or as an
``artifact.content`` JSON string that must be decoded and checked first. A
payload that fails to decode or validate is logged and skipped; it never
aborts the rest of the batch.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from typing import Any, Collection

from jsonschema import Draft7Validator

from ..services.settings import TABLE_TOOL_NAMES
from ..services.telemetry import emit
from ..stream.models import ToolInvocationPart
from .dedup import structured_result
from .models import Artifact, ArtifactMetadata

__all__ = [
    "PayloadError",
    "build_artifact",
    "extract_payload",
    "TABLE_CONTENT_SCHEMA",
    "CHART_CONTENT_SCHEMA",
]

LOGGER = logging.getLogger(__name__)
_PREVIEW_CHARS = 100

TABLE_CONTENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["columns", "data"],
    "properties": {
        "title": {"type": ["string", "null"]},
        "description": {"type": ["string", "null"]},
        "columns": {"type": "array"},
        "data": {"type": "array"},
    },
}

CHART_CONTENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "anyOf": [
        {"required": ["type"], "properties": {"type": {"type": "string"}}},
        {"required": ["chartType"], "properties": {"chartType": {"type": "string"}}},
        {
            "required": ["metadata"],
            "properties": {
                "metadata": {
                    "type": "object",
                    "required": ["chartType"],
                    "properties": {"chartType": {"type": "string"}},
                }
            },
        },
    ],
}

_TABLE_VALIDATOR = Draft7Validator(TABLE_CONTENT_SCHEMA)
_CHART_VALIDATOR = Draft7Validator(CHART_CONTENT_SCHEMA)


class PayloadError(ValueError):
    """Raised by :func:`extract_payload` when artifact content is unusable."""


def extract_payload(output: Mapping[str, Any], *, is_table: bool) -> tuple[Any, str | None, str | None]:
    """Return ``(data, chart_type, title)`` from a tool output envelope.

    Raises :class:`PayloadError` when ``artifact.content`` cannot be decoded
    or does not match the expected shape.
    """

    chart_data = output.get("chartData")
    if chart_data is not None:
        return chart_data, _optional_str(output.get("chartType")), _optional_str(output.get("title"))

    envelope = _artifact_envelope(output)
    if envelope is None:
        return None, _optional_str(output.get("chartType")), _optional_str(output.get("title"))

    content = _decode_content(envelope.get("content"))
    validator = _TABLE_VALIDATOR if is_table else _CHART_VALIDATOR
    errors = sorted(validator.iter_errors(content), key=lambda err: list(err.path))
    if errors:
        raise PayloadError(f"Artifact content failed validation: {errors[0].message}")

    title = _optional_str(output.get("title")) or _optional_str(envelope.get("title"))
    if is_table:
        data = {
            "title": content.get("title"),
            "description": content.get("description"),
            "columns": content.get("columns"),
            "data": content.get("data"),
        }
        return data, "table", title or _optional_str(content.get("title"))

    metadata = content.get("metadata")
    chart_type = None
    if isinstance(metadata, Mapping):
        chart_type = _optional_str(metadata.get("chartType"))
    chart_type = chart_type or _optional_str(content.get("chartType"))
    if chart_type is None and isinstance(content.get("type"), str):
        chart_type = content["type"].removesuffix("-chart")
    return content, chart_type, title or _optional_str(content.get("title"))


def build_artifact(
    part: ToolInvocationPart,
    artifact_id: str,
    *,
    table_tools: Collection[str] = TABLE_TOOL_NAMES,
    now: float | None = None,
) -> Artifact | None:
    """Build a completed artifact for ``part``; ``None`` when its payload is unusable."""

    output = part.output
    if not isinstance(output, Mapping):
        return None
    is_table = part.tool_name in table_tools
    try:
        data, chart_type, title = extract_payload(output, is_table=is_table)
    except PayloadError as exc:
        _log_rejected(exc, artifact_id=artifact_id, tool_name=part.tool_name, output=output)
        return None

    chart_type = "table" if is_table else (chart_type or "bar")
    if not title:
        title = f"Table: {chart_type}" if is_table else f"{chart_type} Chart"
    canvas_name = _optional_str(output.get("canvasName")) or ("Data Table" if is_table else "Data Visualization")
    return Artifact(
        id=artifact_id,
        type="table" if is_table else "chart",
        title=title,
        data=data,
        status="completed",
        metadata=ArtifactMetadata(
            chart_type=chart_type,
            data_points=_count_data_points(output, data),
            tool_name=part.tool_name,
        ),
        created_at=time.time() if now is None else now,
        canvas_name=canvas_name,
    )


def _artifact_envelope(output: Mapping[str, Any]) -> Mapping[str, Any] | None:
    envelope = output.get("artifact")
    if isinstance(envelope, Mapping):
        return envelope
    nested = structured_result(output)
    if nested is not None and isinstance(nested.get("artifact"), Mapping):
        return nested["artifact"]
    return None


def _decode_content(content: Any) -> Any:
    if isinstance(content, Mapping):
        return dict(content)
    if not isinstance(content, (str, bytes, bytearray)):
        raise PayloadError("Artifact content is missing")
    try:
        return json.loads(content)
    except (ValueError, RecursionError) as exc:
        raise PayloadError(f"Artifact content could not be decoded: {exc}") from exc


def _count_data_points(output: Mapping[str, Any], data: Any) -> int:
    declared = output.get("dataPoints")
    if isinstance(declared, int) and not isinstance(declared, bool) and declared > 0:
        return declared
    if isinstance(data, Mapping):
        for key in ("data", "columns"):
            values = data.get(key)
            if isinstance(values, (list, tuple)) and values:
                return len(values)
    return 0


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _log_rejected(
    exc: PayloadError,
    *,
    artifact_id: str,
    tool_name: str,
    output: Mapping[str, Any],
) -> None:
    envelope = _artifact_envelope(output) or {}
    content = envelope.get("content")
    preview = content[:_PREVIEW_CHARS] if isinstance(content, str) else None
    LOGGER.error(
        "Failed to parse artifact content (artifact_id=%s, tool=%s, preview=%r): %s",
        artifact_id,
        tool_name,
        preview,
        exc,
    )
    emit(
        "artifact_payload_rejected",
        {"artifact_id": artifact_id, "tool_name": tool_name, "error": str(exc)},
    )
