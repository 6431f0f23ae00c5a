"""Authoritative project document store."""

from __future__ import annotations

import logging
import threading

from music_collab.errors import NotFoundError, PersistenceError
from music_collab.timeline.models import Project, Track, clone_tracks

logger = logging.getLogger(__name__)


class ProjectRepository:
    """In-process store holding the single authoritative copy of each project.

    Callers always receive detached copies; changes become visible only
    through ``save`` / ``replace_tracks``. Subclasses backed by a real
    database override ``_write`` and ``_remove``.
    """

    def __init__(self) -> None:
        self._items: dict[str, Project] = {}
        self._guard = threading.Lock()

    def create(self, name: str, owner: str, description: str = "") -> Project:
        project = Project.new(name=name, owner=owner, description=description)
        self._write(project.clone())
        logger.info("created project %s for %s", project.project_id, owner)
        return project

    def find(self, project_id: str) -> Project | None:
        with self._guard:
            item = self._items.get(project_id)
            return item.clone() if item is not None else None

    def get(self, project_id: str) -> Project:
        project = self.find(project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found")
        return project

    def exists(self, project_id: str) -> bool:
        with self._guard:
            return project_id in self._items

    def list_for_user(self, user_id: str) -> list[Project]:
        with self._guard:
            items = [
                item.clone()
                for item in self._items.values()
                if item.owner == user_id or user_id in item.collaborators
            ]
        return sorted(items, key=lambda item: item.updated_at, reverse=True)

    def save(self, project: Project) -> Project:
        project.touch()
        self._write(project.clone())
        return project

    def replace_tracks(self, project_id: str, tracks: list[Track]) -> Project:
        project = self.get(project_id)
        project.tracks = clone_tracks(tracks)
        return self.save(project)

    def delete(self, project_id: str) -> None:
        if not self.exists(project_id):
            raise NotFoundError(f"Project '{project_id}' not found")
        self._remove(project_id)

    def _write(self, project: Project) -> None:
        if not project.tracks:
            raise PersistenceError(f"Project '{project.project_id}' must keep at least one track")
        with self._guard:
            self._items[project.project_id] = project

    def _remove(self, project_id: str) -> None:
        with self._guard:
            self._items.pop(project_id, None)
