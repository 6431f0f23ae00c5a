"""Per-project serialization points for read-modify-write of track state."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ProjectLocks:
    """Hands out one re-entrant lock per project id.

    Writers on the same project run one at a time; different projects never
    contend. Re-entrancy lets a restore hold the lock across its own
    checkpoint capture.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, project_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[project_id] = lock
            return lock

    @contextmanager
    def hold(self, project_id: str) -> Iterator[None]:
        with self.lock_for(project_id):
            yield

    def discard(self, project_id: str) -> None:
        with self._guard:
            self._locks.pop(project_id, None)
