"""Suggestion domain models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from music_collab.timeline.grid import GridSpec

SuggestionSource = Literal["llm-based", "pattern", "pattern-fallback"]


@dataclass(frozen=True, slots=True)
class SuggestedNote:
    note: int
    step: int
    duration_steps: int
    velocity: int = 100

    def to_payload(self) -> dict[str, int]:
        return {
            "note": self.note,
            "step": self.step,
            "durationSteps": self.duration_steps,
            "velocity": self.velocity,
        }


@dataclass(slots=True)
class NoteSuggestion:
    suggestion_id: str
    title: str
    description: str
    notes: list[SuggestedNote]
    source: SuggestionSource
    fallback_reason: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def new(
        title: str,
        description: str,
        notes: list[SuggestedNote],
        source: SuggestionSource,
        fallback_reason: str | None = None,
    ) -> NoteSuggestion:
        return NoteSuggestion(
            suggestion_id=str(uuid4()),
            title=title,
            description=description,
            notes=notes,
            source=source,
            fallback_reason=fallback_reason,
        )


@dataclass(slots=True)
class SuggestRequest:
    prompt: str = ""
    grid: GridSpec = field(default_factory=GridSpec)
    track_id: str | None = None


def validate_notes(raw_notes: list[Any], grid: GridSpec) -> list[SuggestedNote]:
    """Keep usable candidate notes and clamp them into the grid.

    Entries that are not objects, carry non-finite numbers, or fall outside
    the pitch/step range are dropped; the rest are rounded and clamped.
    """
    output: list[SuggestedNote] = []
    for item in raw_notes:
        if not isinstance(item, dict):
            continue
        try:
            note = float(item.get("note"))  # type: ignore[arg-type]
            step = float(item.get("step"))  # type: ignore[arg-type]
            duration_steps = float(item.get("durationSteps"))  # type: ignore[arg-type]
            raw_velocity = item.get("velocity")
            velocity = 100.0 if raw_velocity is None else float(raw_velocity)
        except (TypeError, ValueError):
            continue
        if not all(math.isfinite(value) for value in (note, step, duration_steps)):
            continue
        if not (0 <= note <= 127 and 0 <= step < grid.steps and duration_steps >= 1):
            continue
        if not math.isfinite(velocity) or velocity == 0:
            velocity = 100.0
        output.append(
            SuggestedNote(
                note=min(max(round(note), grid.pitch_min), grid.pitch_max),
                step=min(max(round(step), 0), grid.steps - 1),
                duration_steps=min(max(round(duration_steps), 1), grid.steps),
                velocity=min(max(round(velocity), 1), 127),
            )
        )
    return output
