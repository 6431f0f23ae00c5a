"""Append-only version log with checkpointed restore."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Iterable

from music_collab.errors import NotFoundError
from music_collab.project.locks import ProjectLocks
from music_collab.project.repository import ProjectRepository
from music_collab.timeline.models import Track, Version, clone_tracks

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RestoreResult:
    version_number: int
    checkpoint: Version
    tracks: list[Track]


class VersionStore:
    def __init__(
        self,
        repository: ProjectRepository | None = None,
        locks: ProjectLocks | None = None,
    ) -> None:
        self._repository = repository
        self._locks = locks or ProjectLocks()
        self._versions: dict[str, list[Version]] = {}
        self._guard = threading.Lock()

    @property
    def locks(self) -> ProjectLocks:
        return self._locks

    def capture(
        self,
        project_id: str,
        prior_tracks: Iterable[Track],
        actor_id: str,
        label: str | None = None,
    ) -> Version:
        """Append a snapshot of ``prior_tracks`` as the next version.

        Must run before the mutation it guards is committed. Allocation of the
        version number and the append happen under the project lock, so
        concurrent writers never see a gap or a duplicate.
        """
        snapshot = clone_tracks(prior_tracks)
        with self._locks.hold(project_id):
            number = self.last_version_number(project_id) + 1
            version = Version.new(
                project_id=project_id,
                version_number=number,
                tracks=snapshot,
                created_by=actor_id,
                description=label,
            )
            with self._guard:
                self._versions.setdefault(project_id, []).append(version)
        logger.debug("captured version %d of project %s", number, project_id)
        return _detached(version)

    def last_version_number(self, project_id: str) -> int:
        with self._guard:
            items = self._versions.get(project_id, [])
            return max((item.version_number for item in items), default=0)

    def latest(self, project_id: str) -> Version | None:
        with self._guard:
            items = self._versions.get(project_id)
            return _detached(items[-1]) if items else None

    def list(self, project_id: str) -> list[Version]:
        with self._guard:
            items = list(self._versions.get(project_id, []))
        return [_detached(item) for item in sorted(items, key=lambda item: item.version_number, reverse=True)]

    def get(self, project_id: str, version_id: str) -> Version:
        with self._guard:
            for item in self._versions.get(project_id, []):
                if item.version_id == version_id:
                    return _detached(item)
        raise NotFoundError(f"Version '{version_id}' not found")

    def restore(self, project_id: str, version_id: str, actor_id: str) -> RestoreResult:
        if self._repository is None:
            raise RuntimeError("VersionStore.restore requires a project repository")
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            version = self.get(project_id, version_id)
            checkpoint = self.capture(
                project_id,
                project.tracks,
                actor_id,
                label=f"Before restore to version {version.version_number}",
            )
            project.tracks = clone_tracks(version.tracks)
            self._repository.save(project)
        logger.info(
            "restored project %s to version %d (checkpoint %d)",
            project_id,
            version.version_number,
            checkpoint.version_number,
        )
        return RestoreResult(
            version_number=version.version_number,
            checkpoint=checkpoint,
            tracks=clone_tracks(project.tracks),
        )

    def forget(self, project_id: str) -> None:
        with self._guard:
            self._versions.pop(project_id, None)


def _detached(version: Version) -> Version:
    # Stored snapshots are never handed out; callers get their own tracks.
    return replace(version, tracks=tuple(clone_tracks(version.tracks)))
