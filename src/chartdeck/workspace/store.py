"""Ordered, keyed artifact collection gated by the admission controller.

The store never grows past the controller's effective ceiling: admission is
checked before insertion. Eviction is manual; :meth:`ArtifactStore.remove_oldest`
exists for explicit "free up space" actions and nothing here evicts on its own.
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Any, Iterator

from ..events import (
    ArtifactCreated,
    ArtifactRemoved,
    ArtifactsCleared,
    ArtifactUpdated,
    EventBus,
)
from ..memory.admission import AdmissionController
from ..memory.models import MIB
from ..services.telemetry import emit
from .models import Artifact, ArtifactMetadata, ArtifactStats, CreateResult, utc_timestamp

__all__ = ["ArtifactStore"]

LOGGER = logging.getLogger(__name__)
_UPDATABLE_FIELDS = frozenset({"type", "title", "data", "status", "metadata", "canvas_name"})
_METADATA_FIELDS = frozenset(item.name for item in fields(ArtifactMetadata))


class ArtifactStore:
    """Insertion-ordered artifacts keyed by id.

    Events Emitted:
        - ArtifactCreated: after an admitted insertion
        - ArtifactUpdated: after an in-place mutation
        - ArtifactRemoved: after explicit removal or eviction
        - ArtifactsCleared: after :meth:`clear`
    """

    def __init__(self, controller: AdmissionController, event_bus: EventBus | None = None) -> None:
        self._artifacts: dict[str, Artifact] = {}
        self._controller = controller
        self._bus = event_bus
        controller.bind_occupancy(self.__len__)

    @property
    def controller(self) -> AdmissionController:
        return self._controller

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, artifact: Artifact) -> CreateResult:
        """Insert ``artifact`` if admission allows it.

        An artifact whose id already exists is merged into the existing record
        instead; occupancy does not change, so no admission check applies.
        """

        existing = self._artifacts.get(artifact.id)
        if existing is not None:
            LOGGER.debug("Updating existing artifact %s instead of creating", artifact.id)
            self.update(
                artifact.id,
                type=artifact.type,
                title=artifact.title,
                data=artifact.data,
                status=artifact.status,
                metadata=artifact.metadata,
                canvas_name=artifact.canvas_name or existing.canvas_name,
            )
            return CreateResult(ok=True, artifact=self._artifacts[artifact.id], updated=True)

        decision = self._controller.can_admit(artifact.type_hint, artifact.metadata.data_points)
        if not decision.allowed:
            LOGGER.info("Artifact %s rejected: %s", artifact.id, decision.reason)
            return CreateResult(ok=False, decision=decision)
        if decision.warning:
            LOGGER.warning("Artifact %s admitted with warning: %s", artifact.id, decision.warning)

        artifact.metadata.memory_estimate_bytes = self._controller.estimate_artifact_memory(
            artifact.type_hint, artifact.metadata.data_points
        )
        self._artifacts[artifact.id] = artifact
        total = len(self._artifacts)
        LOGGER.debug(
            "Artifact added: id=%s type=%s title=%s total=%d memory_estimate_mb=%d",
            artifact.id,
            artifact.type,
            artifact.title,
            total,
            round(artifact.metadata.memory_estimate_bytes / MIB),
        )
        emit("artifact_created", {"artifact_id": artifact.id, "type": artifact.type, "total": total})
        self._publish(
            ArtifactCreated(
                artifact_id=artifact.id,
                artifact_type=artifact.type,
                status=artifact.status,
                total=total,
            )
        )
        self._after_occupancy_change()
        return CreateResult(ok=True, artifact=artifact, decision=decision)

    def update(self, artifact_id: str, **changes: Any) -> bool:
        """Mutate an existing artifact in place; unknown ids are a no-op returning False.

        A ``metadata`` change may be an :class:`ArtifactMetadata` or a mapping
        and is merged into the current metadata; ``last_updated`` is refreshed.
        """

        artifact = self._artifacts.get(artifact_id)
        if artifact is None:
            LOGGER.debug("Attempted to update non-existent artifact %s", artifact_id)
            return False
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update artifact fields: {sorted(unknown)}")

        metadata_change = changes.pop("metadata", None)
        for name, value in changes.items():
            setattr(artifact, name, value)
        artifact.metadata = _merge_metadata(artifact.metadata, metadata_change)

        changed = tuple(sorted(set(changes) | {"metadata"}))
        LOGGER.debug("Updated artifact %s (%s)", artifact_id, ", ".join(changed))
        self._publish(ArtifactUpdated(artifact_id=artifact_id, fields=changed))
        return True

    def remove(self, artifact_id: str) -> bool:
        return self._remove(artifact_id, reason="user")

    def remove_oldest(self, count: int) -> list[Artifact]:
        """Remove the ``count`` artifacts with the smallest ``created_at``.

        Ties keep insertion order. The removed artifacts are returned so the
        caller can notify the user.
        """

        if count <= 0:
            return []
        victims = sorted(self._artifacts.values(), key=lambda item: item.created_at)[:count]
        for artifact in victims:
            self._remove(artifact.id, reason="eviction")
        if victims:
            LOGGER.info("Removed %d oldest artifacts for cleanup", len(victims))
        return victims

    def clear(self) -> int:
        """Empty the store. Callers must reset the dedup keys alongside."""

        count = len(self._artifacts)
        self._artifacts.clear()
        LOGGER.debug("Cleared all %d artifacts", count)
        self._publish(ArtifactsCleared(count=count))
        self._after_occupancy_change()
        return count

    def _remove(self, artifact_id: str, *, reason: str) -> bool:
        artifact = self._artifacts.pop(artifact_id, None)
        if artifact is None:
            LOGGER.debug("Attempted to remove non-existent artifact %s", artifact_id)
            return False
        remaining = len(self._artifacts)
        LOGGER.debug(
            "Artifact removed: id=%s type=%s reason=%s remaining=%d",
            artifact_id,
            artifact.type,
            reason,
            remaining,
        )
        self._publish(ArtifactRemoved(artifact_id=artifact_id, reason=reason, remaining=remaining))
        self._after_occupancy_change()
        return True

    def _after_occupancy_change(self) -> None:
        self._controller.monitor.update_artifact_count(len(self._artifacts))
        self._controller.recompute_ceiling()

    def _publish(self, event: Any) -> None:
        if self._bus is not None:
            self._bus.publish(event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, artifact_id: str) -> Artifact | None:
        return self._artifacts.get(artifact_id)

    def list(self) -> list[Artifact]:
        return list(self._artifacts.values())

    def __len__(self) -> int:
        return len(self._artifacts)

    def __contains__(self, artifact_id: object) -> bool:
        return artifact_id in self._artifacts

    def __iter__(self) -> Iterator[Artifact]:
        return iter(list(self._artifacts.values()))

    def stats(self) -> ArtifactStats:
        by_type: dict[str, int] = {}
        total_points = 0
        total_memory = 0
        for artifact in self._artifacts.values():
            key = artifact.metadata.chart_type or artifact.type
            by_type[key] = by_type.get(key, 0) + 1
            total_points += artifact.metadata.data_points or 0
            total_memory += artifact.metadata.memory_estimate_bytes
        created = [artifact.created_at for artifact in self._artifacts.values()]
        return ArtifactStats(
            total=len(self._artifacts),
            by_type=by_type,
            total_data_points=total_points,
            estimated_memory_mb=round(total_memory / MIB),
            oldest_created_at=min(created) if created else None,
            newest_created_at=max(created) if created else None,
        )


def _merge_metadata(current: ArtifactMetadata, change: Any) -> ArtifactMetadata:
    updates: dict[str, Any] = {}
    if isinstance(change, ArtifactMetadata):
        updates = {
            name: getattr(change, name)
            for name in _METADATA_FIELDS
            if getattr(change, name) is not None and name not in {"last_updated", "memory_estimate_bytes"}
        }
    elif change:
        updates = {key: value for key, value in dict(change).items() if key in _METADATA_FIELDS}
    updates["last_updated"] = utc_timestamp()
    return replace(current, **updates)
