"""Project CRUD, role checks and the full-tracks write contract."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal
from uuid import uuid4

from music_collab.errors import ForbiddenError, InvalidOperationError, NotFoundError
from music_collab.project.locks import ProjectLocks
from music_collab.project.repository import ProjectRepository
from music_collab.project.schema import TimeSignatureDocument, TrackDocument, to_time_signature
from music_collab.timeline.models import AccessLevel, Project, Role, Track, clamp_bpm
from music_collab.versions.store import VersionStore

logger = logging.getLogger(__name__)

Permission = Literal["read", "write", "admin"]

_ALLOWED: dict[Permission, frozenset[AccessLevel]] = {
    "read": frozenset({"owner", "editor", "viewer"}),
    "write": frozenset({"owner", "editor"}),
    "admin": frozenset({"owner"}),
}


@dataclass(slots=True)
class ProjectUpdate:
    name: str | None = None
    description: str | None = None
    bpm: int | None = None
    time_signature: TimeSignatureDocument | None = None
    is_public: bool | None = None
    tracks: list[TrackDocument] | None = None


class ProjectService:
    def __init__(
        self,
        repository: ProjectRepository,
        versions: VersionStore,
        locks: ProjectLocks | None = None,
    ) -> None:
        self._repository = repository
        self._versions = versions
        self._locks = locks or versions.locks

    def create(self, user_id: str, name: str, description: str = "") -> Project:
        return self._repository.create(name=name, owner=user_id, description=description)

    def list_for_user(self, user_id: str) -> list[Project]:
        return self._repository.list_for_user(user_id)

    def get(self, project_id: str, user_id: str) -> Project:
        project = self._repository.get(project_id)
        self.require(project, user_id, "read")
        return project

    def update(self, project_id: str, user_id: str, changes: ProjectUpdate) -> Project:
        """Apply ``changes``; a ``tracks`` field snapshots the old tracks first."""
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            self.require(project, user_id, "write")

            if changes.name:
                project.name = changes.name
            if changes.description:
                project.description = changes.description
            if changes.bpm:
                project.bpm = clamp_bpm(changes.bpm)
            if changes.time_signature is not None:
                project.time_signature = to_time_signature(changes.time_signature)
            if changes.is_public is not None:
                project.is_public = changes.is_public
            if changes.tracks is not None:
                tracks = _materialize_tracks(changes.tracks)
                if not tracks:
                    raise InvalidOperationError("a project must keep at least one track")
                self._versions.capture(project_id, project.tracks, user_id)
                project.tracks = tracks

            return self._repository.save(project)

    def delete(self, project_id: str, user_id: str) -> None:
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            self.require(project, user_id, "admin")
            self._repository.delete(project_id)
            self._versions.forget(project_id)
        self._locks.discard(project_id)
        logger.info("deleted project %s", project_id)

    def add_track(self, project_id: str, user_id: str, name: str, instrument: str = "piano") -> Track:
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            self.require(project, user_id, "write")
            self._versions.capture(project_id, project.tracks, user_id)
            track = Track.new(name=name, instrument=instrument)
            project.tracks.append(track)
            self._repository.save(project)
        return track

    def remove_track(self, project_id: str, user_id: str, track_id: str) -> None:
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            self.require(project, user_id, "write")
            if project.find_track(track_id) is None:
                raise NotFoundError(f"Track '{track_id}' not found in project '{project_id}'")
            if len(project.tracks) <= 1:
                raise InvalidOperationError("cannot delete the last track of a project")
            self._versions.capture(project_id, project.tracks, user_id)
            project.tracks = [track for track in project.tracks if track.track_id != track_id]
            self._repository.save(project)

    def add_collaborator(self, project_id: str, user_id: str, collaborator_id: str, role: Role = "editor") -> Project:
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            self.require(project, user_id, "admin")
            if collaborator_id in project.collaborators:
                raise InvalidOperationError("User is already a collaborator")
            project.collaborators[collaborator_id] = role
            return self._repository.save(project)

    def remove_collaborator(self, project_id: str, user_id: str, collaborator_id: str) -> Project:
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            self.require(project, user_id, "admin")
            if collaborator_id == project.owner:
                raise InvalidOperationError("Cannot remove project owner")
            project.collaborators.pop(collaborator_id, None)
            return self._repository.save(project)

    @staticmethod
    def require(project: Project, user_id: str, permission: Permission) -> None:
        level = project.access_level(user_id)
        if level in _ALLOWED[permission]:
            return
        if permission == "read" and project.is_public:
            return
        raise ForbiddenError(f"Not authorized to {permission} project '{project.project_id}'")


def _materialize_tracks(documents: list[TrackDocument]) -> list[Track]:
    tracks: list[Track] = []
    seen: set[str] = set()
    for document in documents:
        track_id = document.id or str(uuid4())
        if track_id in seen:
            raise InvalidOperationError(f"duplicate track id '{track_id}'")
        seen.add(track_id)
        tracks.append(document.to_track(track_id))
    return tracks
