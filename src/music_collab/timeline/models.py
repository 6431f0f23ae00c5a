"""Timeline domain models: note events, tracks, projects and versions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Iterable, Literal, NamedTuple
from uuid import uuid4

Role = Literal["editor", "viewer"]
AccessLevel = Literal["owner", "editor", "viewer", "none"]

MIN_BPM = 40
MAX_BPM = 300
DEFAULT_BPM = 120


class Instrument(str, Enum):
    SYNTH = "synth"
    PIANO = "piano"
    BASS = "bass"
    LEAD = "lead"


class EventKey(NamedTuple):
    track_id: str
    pitch: int
    start_time: float


@dataclass(frozen=True, slots=True)
class NoteEvent:
    pitch: int
    start_time: float
    duration: float
    velocity: int
    track_id: str
    kind: Literal["note"] = "note"

    def validate(self) -> None:
        if not (0 <= self.pitch <= 127):
            raise ValueError("pitch must be in range [0,127]")
        if self.start_time < 0:
            raise ValueError("start_time must be >= 0")
        if self.duration <= 0:
            raise ValueError("duration must be > 0")
        if not (1 <= self.velocity <= 127):
            raise ValueError("velocity must be in range [1,127]")

    @property
    def key(self) -> EventKey:
        return EventKey(self.track_id, self.pitch, self.start_time)

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


@dataclass(slots=True)
class Track:
    track_id: str
    name: str = "New Track"
    instrument: Instrument = Instrument.PIANO
    events: dict[EventKey, NoteEvent] = field(default_factory=dict)

    @staticmethod
    def new(name: str = "New Track", instrument: Instrument | str = Instrument.PIANO) -> Track:
        return Track(track_id=str(uuid4()), name=name, instrument=Instrument(instrument))

    def event_list(self) -> list[NoteEvent]:
        return list(self.events.values())

    def replace_events(self, events: Iterable[NoteEvent]) -> None:
        replaced: dict[EventKey, NoteEvent] = {}
        for event in events:
            if event.track_id != self.track_id:
                event = NoteEvent(
                    pitch=event.pitch,
                    start_time=event.start_time,
                    duration=event.duration,
                    velocity=event.velocity,
                    track_id=self.track_id,
                )
            replaced[event.key] = event
        self.events = replaced

    def clone(self) -> Track:
        # NoteEvent is frozen, so copying the mapping is a deep copy.
        return Track(
            track_id=self.track_id,
            name=self.name,
            instrument=self.instrument,
            events=dict(self.events),
        )


@dataclass(frozen=True, slots=True)
class TimeSignature:
    numerator: int = 4
    denominator: int = 4


@dataclass(slots=True)
class Project:
    project_id: str
    name: str
    owner: str
    tracks: list[Track] = field(default_factory=list)
    description: str = ""
    bpm: int = DEFAULT_BPM
    time_signature: TimeSignature = field(default_factory=TimeSignature)
    collaborators: dict[str, Role] = field(default_factory=dict)
    is_public: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def new(name: str, owner: str, description: str = "") -> Project:
        return Project(
            project_id=str(uuid4()),
            name=name or "Untitled Project",
            owner=owner,
            description=description,
            tracks=[Track.new(name="Piano", instrument=Instrument.PIANO)],
            collaborators={owner: "editor"},
        )

    def find_track(self, track_id: str | None) -> Track | None:
        if track_id is None:
            return None
        for track in self.tracks:
            if track.track_id == track_id:
                return track
        return None

    def access_level(self, user_id: str) -> AccessLevel:
        if user_id == self.owner:
            return "owner"
        return self.collaborators.get(user_id, "none")

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)

    def clone(self) -> Project:
        return Project(
            project_id=self.project_id,
            name=self.name,
            owner=self.owner,
            tracks=clone_tracks(self.tracks),
            description=self.description,
            bpm=self.bpm,
            time_signature=self.time_signature,
            collaborators=dict(self.collaborators),
            is_public=self.is_public,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True, slots=True)
class Version:
    version_id: str
    project_id: str
    version_number: int
    description: str
    tracks: tuple[Track, ...]
    created_by: str
    created_at: datetime

    @staticmethod
    def new(
        project_id: str,
        version_number: int,
        tracks: Iterable[Track],
        created_by: str,
        description: str | None = None,
    ) -> Version:
        return Version(
            version_id=str(uuid4()),
            project_id=project_id,
            version_number=version_number,
            description=description or f"Version {version_number}",
            tracks=tuple(clone_tracks(tracks)),
            created_by=created_by,
            created_at=datetime.now(UTC),
        )


def clone_tracks(tracks: Iterable[Track]) -> list[Track]:
    return [track.clone() for track in tracks]


def clamp_bpm(bpm: int) -> int:
    return min(max(int(bpm), MIN_BPM), MAX_BPM)


def key_of(event: NoteEvent) -> EventKey:
    return event.key


def has_event(track: Track, key: EventKey) -> bool:
    return key in track.events


def duration_of(project: Project) -> float:
    """Return the end time in seconds of the last-sounding event, 0.0 if none."""
    return max(
        (event.end_time for track in project.tracks for event in track.events.values()),
        default=0.0,
    )
