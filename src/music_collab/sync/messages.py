"""Real-time channel payloads."""

from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from music_collab.errors import MalformedInputError


class NoteToggleEvent(BaseModel):
    # Unknown fields from older clients are dropped, never stored.
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Literal["noteToggle"] = "noteToggle"
    note: int = Field(ge=0, le=127)
    step: int = Field(ge=0)
    time: float | None = None
    duration: float | None = None
    track_id: str | None = Field(default=None, alias="trackId")
    velocity: float | None = None

    @field_validator("time", "duration", "velocity")
    @classmethod
    def _finite_or_none(cls, value: float | None) -> float | None:
        if value is None or not math.isfinite(value):
            return None
        return value


class NoteToggleMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Literal["noteToggle"] = "noteToggle"
    project_id: str = Field(min_length=1, alias="projectId")
    event: NoteToggleEvent


class JoinMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Literal["join"] = "join"
    project_id: str = Field(min_length=1, alias="projectId")


ChannelMessage = JoinMessage | NoteToggleMessage


def parse_channel_message(raw: Any) -> ChannelMessage:
    if not isinstance(raw, dict):
        raise MalformedInputError("channel message must be a JSON object")
    kind = raw.get("type")
    try:
        if kind == "join":
            return JoinMessage.model_validate(raw)
        if kind == "noteToggle":
            return NoteToggleMessage.model_validate(raw)
    except ValidationError as exc:
        raise MalformedInputError(f"invalid {kind} message: {exc.error_count()} error(s)") from exc
    raise MalformedInputError(f"unsupported channel message type '{kind}'")
