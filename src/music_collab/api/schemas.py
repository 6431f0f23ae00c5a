"""FastAPI request/response schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from music_collab.project.schema import TimeSignatureDocument, TrackDocument
from music_collab.timeline.models import Instrument


class CreateProjectRequest(BaseModel):
    name: str = Field(default="Untitled Project", max_length=200)
    description: str = ""


class UpdateProjectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    description: str | None = None
    bpm: int | None = None
    time_signature: TimeSignatureDocument | None = Field(default=None, alias="timeSignature")
    is_public: bool | None = Field(default=None, alias="isPublic")
    tracks: list[TrackDocument] | None = None


class AddTrackRequest(BaseModel):
    name: str = "New Track"
    instrument: Instrument = Instrument.PIANO


class AddCollaboratorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(min_length=1, alias="userId")
    role: Literal["editor", "viewer"] = "editor"


class RestoreResponse(BaseModel):
    message: str
    version: int
    checkpoint: int
    tracks: list[TrackDocument]


class GridRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Unset fields fall back to the server's configured grid.
    steps: int | None = Field(default=None, ge=1, le=256)
    step_seconds: float | None = Field(default=None, gt=0, le=10, alias="stepSeconds")
    pitch_min: int = Field(default=60, ge=0, le=127, alias="pitchMin")
    pitch_max: int = Field(default=72, ge=0, le=127, alias="pitchMax")


class SuggestRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    grid: GridRequest = Field(default_factory=GridRequest)
    track_id: str | None = Field(default=None, alias="trackId")


class SuggestedNotePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    note: int = Field(ge=0, le=127)
    step: int = Field(ge=0)
    duration_steps: int = Field(default=1, ge=1, alias="durationSteps")
    velocity: int = Field(default=100, ge=1, le=127)


class SuggestionPayload(BaseModel):
    id: str
    title: str
    description: str
    notes: list[SuggestedNotePayload]


class SuggestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    suggestion: SuggestionPayload
    source: str
    fallback_reason: str | None = Field(default=None, alias="fallbackReason")


class ApplySuggestionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    track_id: str = Field(min_length=1, alias="trackId")
    notes: list[SuggestedNotePayload] = Field(min_length=1)
    grid: GridRequest = Field(default_factory=GridRequest)


class MessageResponse(BaseModel):
    message: str
