"""Reassembles step-wise model output into one ordered assistant message.

Each step contributes its tool calls first, then applies its tool results to
the matching calls (or appends orphan results), then its text. Steps keep
their input order. Missing or malformed fields degrade to fewer parts; the
reconciler performs no I/O and never raises.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from .models import (
    MessagePart,
    ReconciledMessage,
    StepBoundaryPart,
    StreamStep,
    TextPart,
    ToolInvocationPart,
    ToolResult,
    read_field,
)

__all__ = [
    "StreamReconciler",
    "build_response_message",
    "ensure_renderable_parts",
]

LOGGER = logging.getLogger(__name__)


class StreamReconciler:
    """Turns stream steps into :class:`MessagePart` lists."""

    def reconcile(self, steps: Any, fallback_text: str | None = None) -> list[MessagePart]:
        """Return the ordered parts for ``steps``.

        ``fallback_text`` is used only when no step produced text, for providers
        that report cumulative text instead of per-step text.
        """

        parts: list[MessagePart] = []
        for index, raw_step in enumerate(_iter_steps(steps)):
            step = StreamStep.coerce(raw_step)
            if step is None:
                LOGGER.debug("Skipping malformed stream step at index %d", index)
                continue
            self._apply_step(parts, step)

        has_text = any(isinstance(part, TextPart) for part in parts)
        if not has_text and isinstance(fallback_text, str) and fallback_text.strip():
            parts.append(TextPart(text=fallback_text))
        return parts

    def build_message(self, result: Any, fallback_id: str) -> ReconciledMessage:
        """Build the assistant message for a completed stream ``result``.

        ``result`` may expose ``id``, ``text`` and ``steps`` as keys or
        attributes; any of them may be absent.
        """

        steps = read_field(result, "steps")
        text = read_field(result, "text")
        parts = self.reconcile(steps, text if isinstance(text, str) else None)
        message_id = read_field(result, "id")
        return ReconciledMessage(
            id=str(message_id) if message_id else fallback_id,
            parts=parts,
        )

    def _apply_step(self, parts: list[MessagePart], step: StreamStep) -> None:
        for call in step.tool_calls:
            parts.append(
                ToolInvocationPart(
                    tool_name=call.tool_name,
                    tool_call_id=call.tool_call_id,
                    input=dict(call.input),
                    state="call",
                )
            )

        for result in step.tool_results:
            target = _find_unresolved(parts, result.tool_call_id)
            if target is not None:
                target.resolve(result.output, result.input)
                continue
            LOGGER.debug(
                "Orphan tool result %s (%s) appended without a matching call",
                result.tool_call_id,
                result.tool_name,
            )
            parts.append(_orphan_part(result))

        if step.text and step.text.strip():
            parts.append(TextPart(text=step.text))


def _iter_steps(steps: Any) -> Iterable[Any]:
    if isinstance(steps, (list, tuple)):
        return steps
    if steps is not None:
        LOGGER.debug("Ignoring non-sequence steps payload of type %s", type(steps).__name__)
    return ()


def _find_unresolved(parts: Sequence[MessagePart], tool_call_id: str) -> ToolInvocationPart | None:
    # Matching is by id only; the first unresolved call wins.
    for part in parts:
        if (
            isinstance(part, ToolInvocationPart)
            and part.tool_call_id == tool_call_id
            and not part.is_resolved
        ):
            return part
    return None


def _orphan_part(result: ToolResult) -> ToolInvocationPart:
    return ToolInvocationPart(
        tool_name=result.tool_name,
        tool_call_id=result.tool_call_id,
        input=dict(result.input or {}),
        state="output-available",
        output=result.output,
    )


_DEFAULT_RECONCILER = StreamReconciler()


def build_response_message(result: Any, fallback_id: str) -> ReconciledMessage:
    """Module-level shortcut for :meth:`StreamReconciler.build_message`."""

    return _DEFAULT_RECONCILER.build_message(result, fallback_id)


def ensure_renderable_parts(
    message: ReconciledMessage,
    fallback_text: str,
) -> tuple[ReconciledMessage, bool]:
    """Give a content-less message a single text part.

    Returns the (possibly new) message and whether the fallback was applied.
    Step boundaries alone do not count as content.
    """

    if any(not isinstance(part, StepBoundaryPart) for part in message.parts):
        return message, False
    return (
        ReconciledMessage(id=message.id, role=message.role, parts=[TextPart(text=fallback_text)]),
        True,
    )
