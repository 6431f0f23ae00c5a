"""Project-scoped broadcast channels and session sinks."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class Session(Protocol):
    session_id: str

    def deliver(self, message: Message) -> None:
        """Queue ``message`` for the peer; must not block."""


@dataclass(slots=True)
class QueueSession:
    session_id: str
    received: list[Message] = field(default_factory=list)

    def deliver(self, message: Message) -> None:
        self.received.append(dict(message))


class WebSocketSession:
    """Session whose outbound messages are drained by an asyncio sender task.

    ``deliver`` may be called from worker threads; the hand-off goes through
    ``call_soon_threadsafe`` so the loop sees messages in enqueue order.
    """

    def __init__(self, session_id: str, loop: asyncio.AbstractEventLoop) -> None:
        self.session_id = session_id
        self._loop = loop
        self._queue: asyncio.Queue[Message | None] = asyncio.Queue()

    def deliver(self, message: Message) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, dict(message))

    def close(self) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    async def next_message(self) -> Message | None:
        return await self._queue.get()


class ChannelRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._members: dict[str, dict[str, Session]] = {}
        self._session_project: dict[str, str] = {}

    def join(self, session: Session, project_id: str) -> str | None:
        """Subscribe ``session`` to ``project_id``; return the project it left, if any."""
        with self._guard:
            previous = self._session_project.get(session.session_id)
            if previous is not None and previous != project_id:
                self._drop_locked(session.session_id, previous)
            self._members.setdefault(project_id, {})[session.session_id] = session
            self._session_project[session.session_id] = project_id
        if previous is not None and previous != project_id:
            logger.info("session %s left %s for %s", session.session_id, previous, project_id)
            return previous
        return None

    def leave(self, session_id: str) -> str | None:
        with self._guard:
            project_id = self._session_project.pop(session_id, None)
            if project_id is not None:
                self._drop_locked(session_id, project_id)
        return project_id

    def project_of(self, session_id: str) -> str | None:
        with self._guard:
            return self._session_project.get(session_id)

    def members(self, project_id: str) -> list[str]:
        with self._guard:
            return list(self._members.get(project_id, {}))

    def broadcast(self, project_id: str, message: Message, exclude: str | None = None) -> int:
        with self._guard:
            targets = [
                session
                for session_id, session in self._members.get(project_id, {}).items()
                if session_id != exclude
            ]
        for session in targets:
            try:
                session.deliver(message)
            except RuntimeError:
                # Delivery is best-effort; a closed peer simply misses the echo.
                logger.warning("dropping message for session %s", session.session_id, exc_info=True)
        return len(targets)

    def _drop_locked(self, session_id: str, project_id: str) -> None:
        members = self._members.get(project_id)
        if members is None:
            return
        members.pop(session_id, None)
        if not members:
            del self._members[project_id]
