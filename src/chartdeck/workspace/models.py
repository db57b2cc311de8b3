"""Artifact records shown in the side workspace."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from ..memory.admission import AdmissionDecision

__all__ = [
    "ArtifactType",
    "ArtifactStatus",
    "ArtifactMetadata",
    "Artifact",
    "CreateResult",
    "ArtifactStats",
    "utc_timestamp",
]

ArtifactType = Literal["chart", "table"]
ArtifactStatus = Literal["loading", "completed", "error"]


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class ArtifactMetadata:
    chart_type: str | None = None
    data_points: int | None = None
    tool_name: str | None = None
    last_updated: str = field(default_factory=utc_timestamp)
    memory_estimate_bytes: int = 0


@dataclass(slots=True)
class Artifact:
    """A chart or table record. ``id`` is unique for the store's lifetime."""

    id: str
    type: ArtifactType
    title: str
    data: Any = None
    status: ArtifactStatus = "completed"
    metadata: ArtifactMetadata = field(default_factory=ArtifactMetadata)
    created_at: float = field(default_factory=time.time)
    canvas_name: str | None = None

    @property
    def type_hint(self) -> str:
        """Key into the memory multiplier table (``"table"`` or the chart type)."""
        if self.type == "table":
            return "table"
        return self.metadata.chart_type or "default"

    def as_payload(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class CreateResult:
    """Result of :meth:`ArtifactStore.create`; rejection is a value, not an exception."""

    ok: bool
    artifact: Artifact | None = None
    decision: AdmissionDecision | None = None
    updated: bool = False

    @property
    def reason(self) -> str | None:
        return self.decision.reason if self.decision is not None else None


@dataclass(slots=True, frozen=True)
class ArtifactStats:
    total: int
    by_type: dict[str, int]
    total_data_points: int
    estimated_memory_mb: int
    oldest_created_at: float | None
    newest_created_at: float | None
