"""JSON document shapes for projects, tracks, note events and versions."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from music_collab.timeline.grid import STEP_SECONDS
from music_collab.timeline.models import (
    Instrument,
    NoteEvent,
    Project,
    TimeSignature,
    Track,
    Version,
)


class NoteEventDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Literal["note"] = "note"
    note: int = Field(ge=0, le=127)
    time: float = Field(ge=0)
    duration: float = STEP_SECONDS
    velocity: int = 100
    track_id: str | None = Field(default=None, alias="trackId")

    @field_validator("time")
    @classmethod
    def _finite_time(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("time must be finite")
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _clamp_duration(cls, value: object) -> float:
        try:
            duration = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return STEP_SECONDS
        if not math.isfinite(duration) or duration <= 0:
            return STEP_SECONDS
        return duration

    @field_validator("velocity", mode="before")
    @classmethod
    def _clamp_velocity(cls, value: object) -> int:
        try:
            velocity = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 100
        if not math.isfinite(velocity):
            return 100
        return min(max(int(round(velocity)), 1), 127)

    def to_event(self, track_id: str) -> NoteEvent:
        return NoteEvent(
            pitch=self.note,
            start_time=self.time,
            duration=self.duration,
            velocity=self.velocity,
            track_id=track_id,
        )

    @staticmethod
    def from_event(event: NoteEvent) -> NoteEventDocument:
        return NoteEventDocument(
            note=event.pitch,
            time=event.start_time,
            duration=event.duration,
            velocity=event.velocity,
            track_id=event.track_id,
        )


class TrackDocument(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = Field(default=None, alias="_id")
    name: str = "New Track"
    instrument: Instrument = Instrument.PIANO
    events: list[NoteEventDocument] = Field(default_factory=list)

    def to_track(self, track_id: str) -> Track:
        track = Track(track_id=track_id, name=self.name, instrument=self.instrument)
        track.replace_events(item.to_event(track_id) for item in self.events)
        return track

    @staticmethod
    def from_track(track: Track) -> TrackDocument:
        return TrackDocument(
            id=track.track_id,
            name=track.name,
            instrument=track.instrument,
            events=[NoteEventDocument.from_event(event) for event in track.events.values()],
        )


class TimeSignatureDocument(BaseModel):
    numerator: int = Field(default=4, ge=1, le=32)
    denominator: int = Field(default=4, ge=1, le=32)


class CollaboratorDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str
    role: Literal["editor", "viewer"]


class ProjectDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    description: str
    owner: str
    bpm: int
    time_signature: TimeSignatureDocument = Field(alias="timeSignature")
    tracks: list[TrackDocument]
    collaborators: list[CollaboratorDocument]
    is_public: bool = Field(alias="isPublic")
    duration: float
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @staticmethod
    def from_project(project: Project, duration: float) -> ProjectDocument:
        return ProjectDocument(
            id=project.project_id,
            name=project.name,
            description=project.description,
            owner=project.owner,
            bpm=project.bpm,
            time_signature=TimeSignatureDocument(
                numerator=project.time_signature.numerator,
                denominator=project.time_signature.denominator,
            ),
            tracks=[TrackDocument.from_track(track) for track in project.tracks],
            collaborators=[
                CollaboratorDocument(user=user_id, role=role) for user_id, role in project.collaborators.items()
            ],
            is_public=project.is_public,
            duration=duration,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class VersionDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    version: int
    description: str
    created_at: datetime = Field(alias="createdAt")
    created_by: str = Field(alias="createdBy")

    @staticmethod
    def from_version(version: Version) -> VersionDocument:
        return VersionDocument(
            id=version.version_id,
            version=version.version_number,
            description=version.description,
            created_at=version.created_at,
            created_by=version.created_by,
        )


def to_time_signature(document: TimeSignatureDocument) -> TimeSignature:
    return TimeSignature(numerator=document.numerator, denominator=document.denominator)
