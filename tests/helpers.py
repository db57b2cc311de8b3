"""Shared test helpers and stub classes.

Builders for tool outputs and messages in the shapes chart tools produce,
plus a probe stub whose reading can be changed between samples.
"""

from __future__ import annotations

import json
from typing import Any

from chartdeck.memory.models import MIB, MemorySample
from chartdeck.stream.models import ReconciledMessage, TextPart, ToolInvocationPart


def chart_output(artifact_id: str | None = "chart-1", **extra: Any) -> dict[str, Any]:
    """Flat-success envelope carrying ready ``chartData``."""

    output: dict[str, Any] = {
        "success": True,
        "chartType": "bar",
        "title": "Revenue",
        "chartData": {"data": [{"x": 1, "y": 2}, {"x": 2, "y": 3}]},
    }
    if artifact_id is not None:
        output["chartId"] = artifact_id
    output.update(extra)
    return output


def table_output(artifact_id: str = "table-1", *, content: Any = None) -> dict[str, Any]:
    """Legacy envelope whose table lives in an ``artifact.content`` JSON string."""

    if content is None:
        content = json.dumps(
            {
                "title": "Regions",
                "columns": [{"key": "region"}, {"key": "sales"}],
                "data": [{"region": "EU", "sales": 4}, {"region": "US", "sales": 7}, {"region": "APAC", "sales": 1}],
            }
        )
    return {
        "shouldCreateArtifact": True,
        "status": "success",
        "artifactId": artifact_id,
        "artifact": {"content": content},
    }


def tool_part(
    tool_name: str = "create_bar_chart",
    tool_call_id: str = "call-1",
    output: Any = None,
    *,
    resolved: bool = True,
) -> ToolInvocationPart:
    part = ToolInvocationPart(tool_name=tool_name, tool_call_id=tool_call_id, input={"q": "sales"})
    if resolved:
        part.resolve(chart_output() if output is None else output)
    return part


def assistant_message(message_id: str, *parts: Any, role: str = "assistant") -> ReconciledMessage:
    return ReconciledMessage(id=message_id, parts=list(parts) or [TextPart(text="done")], role=role)


def sample(usage_percent: float, *, limit_mb: float = 1000.0, source: str = "precise") -> MemorySample:
    limit = limit_mb * MIB
    return MemorySample(
        used_bytes=limit * usage_percent / 100,
        total_bytes=limit * usage_percent / 100,
        limit_bytes=limit,
        timestamp=1.0,
        source=source,  # type: ignore[arg-type]
    )


class StaticProbe:
    """Probe returning whatever :attr:`reading` holds; counts its calls."""

    __name__ = "static_probe"

    def __init__(self, reading: MemorySample | None = None) -> None:
        self.reading = reading
        self.calls = 0

    def __call__(self) -> MemorySample | None:
        self.calls += 1
        return self.reading
