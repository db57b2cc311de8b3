"""Per-thread artifact session: the completion pipeline and its lifecycle.

One :class:`ArtifactSession` exists per conversation thread. It turns
reconciled assistant messages into workspace artifacts, at most once per
logical tool completion, and resets everything in a single synchronous
block when the thread changes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Sequence

from ..events import EventBus, SessionReset, WorkspaceShowRequested
from ..memory.admission import AdmissionController, AdmissionDecision, LimitsState
from ..memory.models import MemorySample
from ..memory.monitor import MemoryPressureMonitor, MemoryProbe
from ..services.settings import TABLE_TOOL_NAMES, WorkspaceSettings
from ..stream.models import ReconciledMessage, ToolInvocationPart
from ..stream.reconciler import StreamReconciler
from .dedup import InvocationDeduplicator, is_completed_result, resolve_artifact_id
from .models import Artifact, ArtifactMetadata, CreateResult
from .payload import build_artifact
from .scheduler import DebouncedTask
from .store import ArtifactStore

__all__ = ["ArtifactSession"]

LOGGER = logging.getLogger(__name__)

MessageLike = ReconciledMessage | Mapping[str, Any]


class ArtifactSession:
    """Owns the artifact store and every collaborator bound to one thread.

    Events Emitted:
        - WorkspaceShowRequested: when artifact tools appear and the user has
          not dismissed the workspace
        - SessionReset: after :meth:`switch_thread` or :meth:`teardown`
    """

    def __init__(
        self,
        settings: WorkspaceSettings | None = None,
        *,
        session_id: str | None = None,
        event_bus: EventBus | None = None,
        probes: Sequence[MemoryProbe] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._settings = (settings or WorkspaceSettings()).validate()
        self._bus: EventBus = event_bus or EventBus(
            () if self._settings.debug_logging else self._settings.quiet_events
        )
        self._monitor = MemoryPressureMonitor(
            warning_threshold=self._settings.memory_warning_percent,
            critical_threshold=self._settings.critical_threshold,
            per_artifact_mb=self._settings.per_artifact_memory_estimate_mb,
            probes=probes,
            event_bus=self._bus,
        )
        self._controller = AdmissionController(self._monitor, self._settings)
        self._store = ArtifactStore(self._controller, self._bus)
        self._dedup = InvocationDeduplicator()
        self._reconciler = StreamReconciler()
        self._tool_names = frozenset(self._settings.artifact_tool_names)
        self._session_id = session_id
        self._generation = 0
        self._debounce = DebouncedTask(self._settings.debounce_seconds, token=self._token, loop=loop)
        self._visible = False
        self._user_dismissed = False
        self._closed = False

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def settings(self) -> WorkspaceSettings:
        return self._settings

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def store(self) -> ArtifactStore:
        return self._store

    @property
    def dedup(self) -> InvocationDeduplicator:
        return self._dedup

    @property
    def monitor(self) -> MemoryPressureMonitor:
        return self._monitor

    @property
    def controller(self) -> AdmissionController:
        return self._controller

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def reconciler(self) -> StreamReconciler:
        return self._reconciler

    @property
    def debouncer(self) -> DebouncedTask:
        return self._debounce

    @property
    def closed(self) -> bool:
        return self._closed

    def _token(self) -> tuple[str | None, int]:
        return (self._session_id, self._generation)

    # ------------------------------------------------------------------
    # Completion pipeline
    # ------------------------------------------------------------------

    def is_artifact_tool(self, tool_name: str) -> bool:
        return tool_name in self._tool_names

    def process_message(self, message: MessageLike) -> list[Artifact]:
        """Create artifacts for every completed artifact tool in ``message``.

        Returns the artifacts newly inserted into the store. Placeholders
        completed in place and duplicates are not part of the result.
        """

        if self._closed:
            return []
        message = _coerce_message(message)
        if message.role != "assistant":
            return []

        artifact_parts = [part for part in message.tool_parts() if self.is_artifact_tool(part.tool_name)]
        if not artifact_parts:
            return []

        created: list[Artifact] = []
        for part in artifact_parts:
            artifact = self._process_part(message.id, part)
            if artifact is not None:
                created.append(artifact)

        self._request_workspace()
        return created

    def _process_part(self, message_id: str, part: ToolInvocationPart) -> Artifact | None:
        if not part.is_resolved or not is_completed_result(part.output):
            return None
        artifact_id = resolve_artifact_id(part.output, tool_name=part.tool_name)
        if not self._dedup.claim(message_id, artifact_id):
            return None
        artifact = build_artifact(part, artifact_id, table_tools=TABLE_TOOL_NAMES)
        if artifact is None:
            return None

        placeholder = self._store.get(artifact_id) or self._store.get(part.tool_call_id)
        if placeholder is not None:
            LOGGER.debug("Completing artifact %s from tool %s", placeholder.id, part.tool_name)
            self._store.update(
                placeholder.id,
                type=artifact.type,
                title=artifact.title,
                data=artifact.data,
                status="completed",
                metadata=artifact.metadata,
                canvas_name=artifact.canvas_name or placeholder.canvas_name,
            )
            return None

        result = self._store.create(artifact)
        if not result.ok:
            LOGGER.info(
                "Skipped artifact %s from tool %s: %s",
                artifact_id,
                part.tool_name,
                result.reason,
            )
            return None
        return result.artifact

    def schedule_processing(self, message: MessageLike) -> None:
        """Debounce :meth:`process_message`; only the latest call within the window runs."""

        if self._closed:
            return
        self._debounce.schedule(self.process_message, message)

    def hydrate(self, messages: Iterable[MessageLike]) -> list[Artifact]:
        """Replay stored history; already processed completions are skipped."""

        created: list[Artifact] = []
        for message in messages:
            created.extend(self.process_message(message))
        if created:
            LOGGER.debug("Hydrated %d artifacts for session %s", len(created), self._session_id)
        return created

    def reconcile(self, result: Any, *, fallback_id: str) -> ReconciledMessage:
        """Build the persisted assistant message for a finished model response."""
        return self._reconciler.build_message(result, fallback_id)

    # ------------------------------------------------------------------
    # Direct artifact operations
    # ------------------------------------------------------------------

    def add_loading_artifact(
        self,
        artifact_id: str,
        *,
        title: str,
        artifact_type: str = "chart",
        chart_type: str | None = None,
        tool_name: str | None = None,
    ) -> CreateResult:
        """Insert a ``loading`` placeholder that a later completion fills in."""

        placeholder = Artifact(
            id=artifact_id,
            type="table" if artifact_type == "table" else "chart",
            title=title,
            status="loading",
            metadata=ArtifactMetadata(
                chart_type="table" if artifact_type == "table" else chart_type,
                tool_name=tool_name,
            ),
        )
        return self._store.create(placeholder)

    def can_admit(
        self,
        artifact_type_hint: str | None = "default",
        estimated_data_points: int | None = 100,
    ) -> AdmissionDecision:
        return self._controller.can_admit(artifact_type_hint, estimated_data_points)

    def remove_artifact(self, artifact_id: str) -> bool:
        return self._store.remove(artifact_id)

    def free_up_space(self, count: int) -> list[Artifact]:
        """Remove the ``count`` oldest artifacts on explicit user request."""
        return self._store.remove_oldest(count)

    def limits_state(self) -> LimitsState:
        return self._controller.limits_state()

    async def refresh_memory(self) -> MemorySample:
        """Sample memory and recompute the admission ceiling from it."""

        self._monitor.update_artifact_count(len(self._store))
        sample = await self._monitor.sample()
        self._controller.recompute_ceiling()
        return sample

    # ------------------------------------------------------------------
    # Workspace visibility
    # ------------------------------------------------------------------

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def user_dismissed(self) -> bool:
        return self._user_dismissed

    def show_workspace(self) -> None:
        """Open the workspace explicitly; clears a previous manual dismissal."""

        self._user_dismissed = False
        if not self._visible:
            self._visible = True
            self._publish_show()

    def close_workspace(self) -> None:
        """Record a manual close; automatic opening stays off until the next show."""

        self._visible = False
        self._user_dismissed = True

    def _request_workspace(self) -> None:
        if self._visible or self._user_dismissed:
            return
        self._visible = True
        self._publish_show()

    def _publish_show(self) -> None:
        self._bus.publish(WorkspaceShowRequested(session_id=self._session_id, artifact_count=len(self._store)))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def switch_thread(self, thread_id: str | None) -> None:
        """Reset all per-thread state and bind the session to ``thread_id``."""

        if self._closed:
            raise RuntimeError("Session has been torn down")
        previous = self._session_id
        self._reset_state()
        self._session_id = thread_id
        LOGGER.debug("Artifact session switched: %s -> %s", previous, thread_id)
        self._bus.publish(SessionReset(previous_session_id=previous, session_id=thread_id))

    def teardown(self) -> None:
        """Release the session; later calls to the pipeline are no-ops."""

        if self._closed:
            return
        self._reset_state()
        self._monitor.stop_polling()
        self._closed = True
        LOGGER.debug("Artifact session %s torn down", self._session_id)
        self._bus.publish(SessionReset(previous_session_id=self._session_id, session_id=None))

    def _reset_state(self) -> None:
        self._debounce.cancel()
        self._generation += 1
        self._store.clear()
        self._dedup.reset()
        self._monitor.reset()
        self._controller.reset()
        self._visible = False
        self._user_dismissed = False


def _coerce_message(message: MessageLike) -> ReconciledMessage:
    if isinstance(message, ReconciledMessage):
        return message
    return ReconciledMessage.from_payload(message)
