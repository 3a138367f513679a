"""Channel - broadcast one event to many sessions.

Usage:
    ticker = create_channel()

    async def on_connected(session: Session) -> None:
        ticker.register(session)

    ticker.broadcast({"price": 100.5}, "ticker-update")

    # Only some sessions
    ticker.broadcast(
        {"alert": "maintenance"},
        "alert",
        filter=lambda session: session.state.get("is_admin", False),
    )

Sessions deregister themselves automatically when they disconnect.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from .emitter import EventEmitter
from .encoding import DEFAULT_EVENT, generate_event_id
from .errors import StateError
from .session import Session

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT")
SessionStateT = TypeVar("SessionStateT")


class Channel(EventEmitter, Generic[StateT, SessionStateT]):
    """Registry of sessions that receive the same broadcasts.

    Notifications:
    - "session-registered" (session)
    - "session-deregistered" (session)
    - "session-disconnected" (session): a registered session went away
    - "broadcast" (data, event, event_id): once per broadcast call
    - "broadcast-error" (session, error): delivery to one recipient failed
    """

    def __init__(self, state: StateT | None = None):
        super().__init__()
        self.state: StateT = state if state is not None else {}  # type: ignore[assignment]
        # Session -> unsubscribe handle for its "disconnected" listener
        self._sessions: dict[Session[SessionStateT], Callable[[], None]] = {}

    @property
    def active_sessions(self) -> tuple[Session[SessionStateT], ...]:
        return tuple(self._sessions)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        return session in self._sessions

    def register(self, session: Session[SessionStateT]) -> Channel[StateT, SessionStateT]:
        """Register a connected session. Registering twice is a no-op.

        Raises:
            StateError: If the session is not connected
        """
        if session in self._sessions:
            return self

        if not session.is_connected:
            raise StateError("Cannot register a non-active session.")

        def on_disconnected() -> None:
            self._emit("session-disconnected", session)
            self.deregister(session)

        self._sessions[session] = session.once("disconnected", on_disconnected)
        logger.debug(f"Session registered ({self.session_count} active)")
        self._emit("session-registered", session)
        return self

    def deregister(self, session: Session[SessionStateT]) -> Channel[StateT, SessionStateT]:
        """Remove a session. Unknown sessions are ignored."""
        unsubscribe = self._sessions.pop(session, None)
        if unsubscribe is None:
            return self

        unsubscribe()
        logger.debug(f"Session deregistered ({self.session_count} active)")
        self._emit("session-deregistered", session)
        return self

    def broadcast(
        self,
        data: Any,
        event: str = DEFAULT_EVENT,
        *,
        event_id: str | None = None,
        filter: Callable[[Session[SessionStateT]], bool] | None = None,
    ) -> Channel[StateT, SessionStateT]:
        """Push the same event, with the same id, to every matching session.

        A failure for one recipient does not stop delivery to the others.
        """
        if event_id is None:
            event_id = generate_event_id()

        recipients = [s for s in tuple(self._sessions) if filter is None or filter(s)]

        for session in recipients:
            try:
                session.push(data, event, event_id)
            except Exception as e:
                logger.warning(f"Broadcast {event_id} not delivered to a session: {e}")
                self._emit("broadcast-error", session, e)

        self._emit("broadcast", data, event, event_id)
        return self


def create_channel(state: Any = None) -> Channel[Any, Any]:
    """Create a channel, optionally with initial state."""
    return Channel(state)
