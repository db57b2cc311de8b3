"""Data classes describing model stream steps and reconciled message parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Union

__all__ = [
    "ToolState",
    "TextPart",
    "ToolInvocationPart",
    "StepBoundaryPart",
    "MessagePart",
    "ToolCall",
    "ToolResult",
    "StreamStep",
    "ReconciledMessage",
    "read_field",
]

ToolState = Literal["call", "output-available"]

_MISSING = object()


def read_field(source: Any, *names: str, default: Any = None) -> Any:
    """Return the first present attribute/key among ``names`` on ``source``.

    Provider SDKs hand back plain mappings or attribute objects and mix
    camelCase with snake_case, so lookups tolerate both.
    """

    if source is None:
        return default
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name, _MISSING)
        else:
            value = getattr(source, name, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


@dataclass(slots=True)
class TextPart:
    """Plain assistant text."""

    text: str

    def as_payload(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ToolInvocationPart:
    """A tool call, optionally resolved with its output."""

    tool_name: str
    tool_call_id: str
    input: dict[str, Any] = field(default_factory=dict)
    state: ToolState = "call"
    output: Any = None

    @property
    def is_resolved(self) -> bool:
        return self.state == "output-available"

    def resolve(self, output: Any, input: Mapping[str, Any] | None = None) -> None:
        """Attach ``output``; backfill ``input`` only when the call carried none."""

        self.state = "output-available"
        self.output = output
        if not self.input and input:
            self.input = dict(input)

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": f"tool-{self.tool_name}",
            "toolCallId": self.tool_call_id,
            "input": dict(self.input),
            "state": self.state,
        }
        if self.is_resolved:
            payload["output"] = self.output
        return payload


@dataclass(slots=True)
class StepBoundaryPart:
    """Marks a step transition. Kept for display grouping; carries no content."""

    def as_payload(self) -> dict[str, Any]:
        return {"type": "step-start"}


MessagePart = Union[TextPart, ToolInvocationPart, StepBoundaryPart]


@dataclass(slots=True)
class ToolCall:
    tool_name: str
    tool_call_id: str
    input: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, raw: Any) -> "ToolCall | None":
        if isinstance(raw, ToolCall):
            return raw
        call_id = read_field(raw, "toolCallId", "tool_call_id")
        if call_id is None:
            return None
        raw_input = read_field(raw, "input", "args", default={})
        return cls(
            tool_name=str(read_field(raw, "toolName", "tool_name", default="")),
            tool_call_id=str(call_id),
            input=dict(raw_input) if isinstance(raw_input, Mapping) else {},
        )


@dataclass(slots=True)
class ToolResult:
    tool_name: str
    tool_call_id: str
    input: dict[str, Any] | None = None
    output: Any = None

    @classmethod
    def coerce(cls, raw: Any) -> "ToolResult | None":
        if isinstance(raw, ToolResult):
            return raw
        call_id = read_field(raw, "toolCallId", "tool_call_id")
        if call_id is None:
            return None
        raw_input = read_field(raw, "input")
        return cls(
            tool_name=str(read_field(raw, "toolName", "tool_name", default="")),
            tool_call_id=str(call_id),
            input=dict(raw_input) if isinstance(raw_input, Mapping) else None,
            output=read_field(raw, "output", "result"),
        )


@dataclass(slots=True)
class StreamStep:
    """One unit of model output: tool calls, tool results and optional text."""

    text: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()

    @classmethod
    def coerce(cls, raw: Any) -> "StreamStep | None":
        """Normalize a mapping/attribute object into a step; ``None`` if unusable."""

        if isinstance(raw, StreamStep):
            return raw
        if raw is None or isinstance(raw, (str, bytes, int, float, bool)):
            return None
        text = read_field(raw, "text")
        calls = [ToolCall.coerce(item) for item in _as_items(read_field(raw, "toolCalls", "tool_calls"))]
        results = [ToolResult.coerce(item) for item in _as_items(read_field(raw, "toolResults", "tool_results"))]
        return cls(
            text=text if isinstance(text, str) else None,
            tool_calls=tuple(call for call in calls if call is not None),
            tool_results=tuple(result for result in results if result is not None),
        )


@dataclass(slots=True)
class ReconciledMessage:
    """Assistant message handed verbatim to the persistence collaborator."""

    id: str
    parts: list[MessagePart]
    role: str = "assistant"

    def tool_parts(self) -> list[ToolInvocationPart]:
        return [part for part in self.parts if isinstance(part, ToolInvocationPart)]

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "parts": [part.as_payload() for part in self.parts],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ReconciledMessage":
        """Rebuild a message from its persisted form (see :meth:`as_payload`).

        Unknown part types are dropped. A tool part that already carries an
        output is treated as resolved whatever its recorded state.
        """

        parts: list[MessagePart] = []
        raw_parts = payload.get("parts")
        for raw in raw_parts if isinstance(raw_parts, (list, tuple)) else ():
            part = _part_from_payload(raw)
            if part is not None:
                parts.append(part)
        return cls(
            id=str(payload.get("id") or ""),
            role=str(payload.get("role") or "assistant"),
            parts=parts,
        )


def _part_from_payload(raw: Any) -> MessagePart | None:
    if not isinstance(raw, Mapping):
        return None
    part_type = raw.get("type")
    if part_type == "text":
        text = raw.get("text")
        return TextPart(text=text) if isinstance(text, str) else None
    if part_type == "step-start":
        return StepBoundaryPart()
    if not isinstance(part_type, str) or not part_type.startswith("tool-"):
        return None
    call_id = raw.get("toolCallId")
    if not call_id:
        return None
    output = raw.get("output")
    state = str(raw.get("state") or "call")
    resolved = state.startswith("output") or output is not None
    raw_input = raw.get("input")
    return ToolInvocationPart(
        tool_name=part_type[len("tool-"):],
        tool_call_id=str(call_id),
        input=dict(raw_input) if isinstance(raw_input, Mapping) else {},
        state="output-available" if resolved else "call",
        output=output,
    )


def _as_items(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []
