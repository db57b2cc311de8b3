"""Cancellable debounced callbacks bound to a session token."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Hashable

__all__ = ["DebouncedTask"]

LOGGER = logging.getLogger(__name__)


class DebouncedTask:
    """Runs the most recently scheduled callback once the delay elapses quietly.

    Every :meth:`schedule` cancels the pending timer and starts a new one.
    The ``token`` callable is read when scheduling and again when firing;
    if it changed in between (thread switch, teardown) the callback is
    dropped instead of touching the new session's state.
    """

    def __init__(
        self,
        delay: float,
        *,
        token: Callable[[], Hashable],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._delay = max(0.0, float(delay))
        self._token = token
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._fired = 0
        self._dropped = 0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def fired_count(self) -> int:
        return self._fired

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def schedule(self, callback: Callable[..., Any], *args: Any) -> None:
        """(Re)start the timer for ``callback(*args)``."""

        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        scheduled_token = self._token()
        self._handle = loop.call_later(self._delay, self._fire, scheduled_token, callback, args)

    def cancel(self) -> bool:
        """Cancel the pending callback, if any. Returns whether one was pending."""

        handle = self._handle
        self._handle = None
        if handle is None:
            return False
        handle.cancel()
        return True

    def _fire(self, scheduled_token: Hashable, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self._handle = None
        if scheduled_token != self._token():
            self._dropped += 1
            LOGGER.debug("Dropping debounced callback scheduled for stale session %r", scheduled_token)
            return
        self._fired += 1
        try:
            callback(*args)
        except Exception:
            LOGGER.exception("Debounced callback %r failed", callback)
