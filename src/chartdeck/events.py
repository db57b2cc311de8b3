"""Event bus used as the channel between the artifact layer and its host.

The admission layer never calls into the rendering host directly; it
publishes fire-and-forget events here and the host subscribes to the ones it
cares about (for example :class:`WorkspaceShowRequested`).
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, TypeVar
from weakref import WeakMethod

from .services.settings import DEFAULT_QUIET_EVENTS

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Example::

        @dataclass(slots=True)
        class ArtifactRemoved(Event):
            artifact_id: str
            reason: str
    """

    pass


# =============================================================================
# Workspace Events
# =============================================================================


@dataclass(slots=True)
class WorkspaceShowRequested(Event):
    """Asks the host to make the artifact workspace visible.

    Attributes:
        session_id: The chat session/thread the request originates from.
        artifact_count: Number of artifacts currently in the store.
    """

    session_id: str | None
    artifact_count: int


@dataclass(slots=True)
class ArtifactCreated(Event):
    """Emitted after an artifact was admitted and inserted.

    Attributes:
        artifact_id: Identifier of the new artifact.
        artifact_type: ``"chart"`` or ``"table"``.
        status: Lifecycle status at insertion time.
        total: Store size after the insertion.
    """

    artifact_id: str
    artifact_type: str
    status: str
    total: int


@dataclass(slots=True)
class ArtifactUpdated(Event):
    """Emitted when an existing artifact is mutated in place.

    Attributes:
        artifact_id: Identifier of the updated artifact.
        fields: Names of the fields that changed.
    """

    artifact_id: str
    fields: tuple[str, ...]


@dataclass(slots=True)
class ArtifactRemoved(Event):
    """Emitted when an artifact leaves the store.

    Attributes:
        artifact_id: Identifier of the removed artifact.
        reason: ``"user"`` for explicit removal, ``"eviction"`` for
            :meth:`ArtifactStore.remove_oldest`.
        remaining: Store size after the removal.
    """

    artifact_id: str
    reason: str
    remaining: int


@dataclass(slots=True)
class ArtifactsCleared(Event):
    """Emitted when the store is emptied in one operation."""

    count: int


@dataclass(slots=True)
class PressureLevelChanged(Event):
    """Emitted when a fresh memory sample lands in a different pressure level.

    Attributes:
        previous: The level derived from the prior sample.
        current: The level derived from the latest sample.
        usage_percent: Latest usage as a percentage of the limit.
        source: Which measurement tier produced the sample.
    """

    previous: str
    current: str
    usage_percent: float
    source: str


@dataclass(slots=True)
class SessionReset(Event):
    """Emitted after a thread switch or teardown cleared all session state."""

    previous_session_id: str | None
    session_id: str | None


class EventBus:
    """Synchronous publish-subscribe channel between the workspace and its host.

    Dispatch is by exact event type. Bound methods are held weakly, so a
    panel that subscribes ``self.on_created`` stops receiving events once it
    is garbage collected. Plain functions and lambdas are held strongly.

    Every publish is logged at DEBUG except for the event types named in
    ``quiet_events`` (class names, as configured by
    :attr:`WorkspaceSettings.quiet_events`). Pass an empty collection to log
    every publish, which sessions do when ``debug_logging`` is on.

    Example::

        bus = EventBus()
        bus.subscribe(WorkspaceShowRequested, host.on_show_requested)
        bus.publish(WorkspaceShowRequested(session_id="t1", artifact_count=2))

    Not thread-safe; all calls run on the event-loop thread.
    """

    __slots__ = ("_handlers", "_quiet")

    def __init__(self, quiet_events: Iterable[str] = DEFAULT_QUIET_EVENTS) -> None:
        self._handlers: dict[type[Event], list[_Resolver]] = {}
        self._quiet = frozenset(quiet_events)

    @property
    def quiet_events(self) -> frozenset[str]:
        return self._quiet

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Register ``handler`` for ``event_type``; subscribing twice delivers twice."""

        self._handlers.setdefault(event_type, []).append(_resolver_for(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        resolvers = self._handlers.get(event_type, [])
        for index, resolve in enumerate(resolvers):
            if resolve() == handler:
                del resolvers[index]
                logger.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: Event) -> None:
        """Run every handler registered for ``type(event)`` in subscription order.

        A handler that raises is logged and the remaining handlers still run.
        Registrations whose owner has been collected are dropped afterwards.
        """

        event_type = type(event)
        resolvers = self._handlers.get(event_type)
        if event_type.__name__ not in self._quiet:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(resolvers or ()))
        if not resolvers:
            return

        for resolve in list(resolvers):
            handler = resolve()
            if handler is None:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %s failed on %s", _handler_name(handler), event_type.__name__)

        resolvers[:] = [resolve for resolve in resolvers if resolve() is not None]

    def clear(self) -> None:
        """Remove all registered handlers."""

        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[Event] | None = None) -> int:
        """Return the number of registrations for ``event_type``, or for all types."""

        if event_type is not None:
            return len(self._handlers.get(event_type, ()))
        return sum(len(resolvers) for resolvers in self._handlers.values())


_Resolver = Callable[[], Optional[Callable[[Any], None]]]


def _resolver_for(handler: Callable[[Any], None]) -> _Resolver:
    if inspect.ismethod(handler):
        return WeakMethod(handler)
    return lambda: handler


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "WorkspaceShowRequested",
    "ArtifactCreated",
    "ArtifactUpdated",
    "ArtifactRemoved",
    "ArtifactsCleared",
    "PressureLevelChanged",
    "SessionReset",
]
