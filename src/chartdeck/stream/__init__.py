"""Stream reconciliation: model steps to ordered message parts."""

from .models import (
    MessagePart,
    ReconciledMessage,
    StepBoundaryPart,
    StreamStep,
    TextPart,
    ToolCall,
    ToolInvocationPart,
    ToolResult,
)
from .reconciler import StreamReconciler, build_response_message, ensure_renderable_parts

__all__ = [
    "MessagePart",
    "ReconciledMessage",
    "StepBoundaryPart",
    "StreamStep",
    "TextPart",
    "ToolCall",
    "ToolInvocationPart",
    "ToolResult",
    "StreamReconciler",
    "build_response_message",
    "ensure_renderable_parts",
]
