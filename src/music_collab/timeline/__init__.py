"""Timeline domain exports."""

from music_collab.timeline.grid import (
    GRID_STEPS,
    STEP_SECONDS,
    ActiveCells,
    GridSpec,
    seconds_to_step,
    step_to_seconds,
)
from music_collab.timeline.models import (
    EventKey,
    Instrument,
    NoteEvent,
    Project,
    TimeSignature,
    Track,
    Version,
    clone_tracks,
    duration_of,
    has_event,
    key_of,
)

__all__ = [
    "ActiveCells",
    "EventKey",
    "GRID_STEPS",
    "GridSpec",
    "Instrument",
    "NoteEvent",
    "Project",
    "STEP_SECONDS",
    "TimeSignature",
    "Track",
    "Version",
    "clone_tracks",
    "duration_of",
    "has_event",
    "key_of",
    "seconds_to_step",
    "step_to_seconds",
]
