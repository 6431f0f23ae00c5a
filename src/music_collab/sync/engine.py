"""Toggle synchronization across sessions sharing a project."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

from music_collab.errors import NotFoundError, PersistenceError
from music_collab.project.locks import ProjectLocks
from music_collab.project.repository import ProjectRepository
from music_collab.sync.channel import ChannelRegistry, Message, Session
from music_collab.sync.messages import NoteToggleMessage
from music_collab.timeline.grid import STEP_SECONDS
from music_collab.timeline.models import EventKey, NoteEvent, Project, Track
from music_collab.versions.store import VersionStore

logger = logging.getLogger(__name__)

DEFAULT_VELOCITY = 100


@dataclass(frozen=True, slots=True)
class ToggleResult:
    project_id: str
    event: NoteEvent
    step: int
    active: bool
    delivered_to: int


def toggle_message(event: NoteEvent, step: int, active: bool) -> Message:
    return {
        "type": "noteToggle",
        "note": event.pitch,
        "step": step,
        "time": event.start_time,
        "duration": event.duration,
        "trackId": event.track_id,
        "velocity": event.velocity,
        "active": active,
    }


class SyncEngine:
    def __init__(
        self,
        repository: ProjectRepository,
        versions: VersionStore,
        channels: ChannelRegistry | None = None,
        locks: ProjectLocks | None = None,
        step_seconds: float = STEP_SECONDS,
    ) -> None:
        self._repository = repository
        self._versions = versions
        self._channels = channels or ChannelRegistry()
        self._locks = locks or versions.locks
        self._step_seconds = step_seconds

    @property
    def channels(self) -> ChannelRegistry:
        return self._channels

    def subscribe(self, session: Session, project_id: str) -> None:
        self._channels.join(session, project_id)

    def unsubscribe(self, session_id: str) -> None:
        self._channels.leave(session_id)

    def disconnect(self, session_id: str) -> None:
        project_id = self._channels.leave(session_id)
        if project_id is not None:
            logger.info("session %s disconnected from %s", session_id, project_id)

    def toggle(
        self,
        project_id: str,
        session_id: str,
        track_id: str | None,
        pitch: int,
        step: int,
        velocity: float | None = DEFAULT_VELOCITY,
        duration: float | None = None,
    ) -> ToggleResult | None:
        """Flip the (track, pitch, step) cell and echo the outcome to peers.

        Returns None when the toggle was dropped: bad pitch or step, unknown
        project, or a rejected write. Nothing is broadcast in those cases.
        """
        if not _is_valid_cell(pitch, step):
            logger.debug("dropping toggle with pitch=%r step=%r", pitch, step)
            return None
        start_time = step * self._step_seconds
        note_velocity = _clamp_velocity(velocity)
        note_duration = _clamp_duration(duration, self._step_seconds)

        with self._locks.hold(project_id):
            project = self._repository.find(project_id)
            if project is None or not project.tracks:
                logger.debug("dropping toggle for unknown project %s", project_id)
                return None
            track = _resolve_track(project, track_id)
            key = EventKey(track.track_id, pitch, start_time)

            # Remove first; insert only when nothing was removed.
            removed = track.events.pop(key, None)
            if removed is not None:
                event = removed
                active = False
            else:
                event = NoteEvent(
                    pitch=pitch,
                    start_time=start_time,
                    duration=note_duration,
                    velocity=note_velocity,
                    track_id=track.track_id,
                )
                track.events[key] = event
                active = True

            try:
                self._repository.save(project)
            except PersistenceError:
                logger.exception("toggle on project %s was not persisted; skipping broadcast", project_id)
                return None

            delivered = self._channels.broadcast(
                project_id,
                toggle_message(event, step, active),
                exclude=session_id,
            )
        return ToggleResult(
            project_id=project_id,
            event=event,
            step=step,
            active=active,
            delivered_to=delivered,
        )

    def handle_toggle_message(self, session_id: str, message: NoteToggleMessage) -> ToggleResult | None:
        event = message.event
        return self.toggle(
            project_id=message.project_id,
            session_id=session_id,
            track_id=event.track_id,
            pitch=event.note,
            step=event.step,
            velocity=event.velocity,
            duration=event.duration,
        )

    def bulk_replace(
        self,
        project_id: str,
        track_id: str,
        new_events: Iterable[NoteEvent],
        actor_id: str,
        label: str | None = None,
    ) -> Track:
        """Overwrite one track's events; peers are expected to re-fetch."""
        events = list(new_events)
        for event in events:
            event.validate()
        with self._locks.hold(project_id):
            project = self._repository.get(project_id)
            track = project.find_track(track_id)
            if track is None:
                raise NotFoundError(f"Track '{track_id}' not found in project '{project_id}'")
            self._versions.capture(project_id, project.tracks, actor_id, label)
            track.replace_events(events)
            self._repository.save(project)
        logger.info("replaced %d events on track %s of %s", len(track.events), track_id, project_id)
        return track.clone()


def _resolve_track(project: Project, track_id: str | None) -> Track:
    # Stale clients may send a track id that no longer exists; use the first track.
    return project.find_track(track_id) or project.tracks[0]


def _is_valid_cell(pitch: object, step: object) -> bool:
    if isinstance(pitch, bool) or isinstance(step, bool):
        return False
    if not isinstance(pitch, int) or not isinstance(step, int):
        return False
    return 0 <= pitch <= 127 and step >= 0


def _clamp_velocity(velocity: float | None) -> int:
    if velocity is None or not math.isfinite(velocity):
        return DEFAULT_VELOCITY
    return min(max(int(round(velocity)), 1), 127)


def _clamp_duration(duration: float | None, step_seconds: float) -> float:
    if duration is None or not math.isfinite(duration) or duration <= 0:
        return step_seconds
    return float(duration)
