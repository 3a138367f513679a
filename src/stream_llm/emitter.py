"""Observer registration for session and channel notifications.

Sessions and channels announce lifecycle changes (connected, disconnected,
push, broadcast...) through an EventEmitter. Listeners are plain callables;
a listener that returns an awaitable is scheduled on the running loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Named-event observer registry.

    Usage:
        unsubscribe = session.on("disconnected", lambda: print("bye"))
        ...
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Unsubscribe function
        """
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe() -> None:
            self.off(event, listener)

        return unsubscribe

    def once(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener that is removed after its first call."""

        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return listener(*args)

        return self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def _emit(self, event: str, *args: Any) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(*args)
            except Exception:
                logger.exception(f"Error in listener for {event!r}")
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

    def _schedule(self, event: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def done(finished: asyncio.Task[Any]) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error(f"Error in async listener for {event!r}", exc_info=error)

        task.add_done_callback(done)
