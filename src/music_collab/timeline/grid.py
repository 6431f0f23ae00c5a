"""Step grid helpers and the client-side active-cell projection."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from music_collab.timeline.models import NoteEvent, Track

STEP_SECONDS = 0.25
GRID_STEPS = 16
PITCH_LOW = 60
PITCH_HIGH = 72

Cell = tuple[int, int]


@dataclass(frozen=True, slots=True)
class GridSpec:
    steps: int = GRID_STEPS
    step_seconds: float = STEP_SECONDS
    pitch_min: int = PITCH_LOW
    pitch_max: int = PITCH_HIGH

    def validate(self) -> None:
        if self.steps <= 0:
            raise ValueError("steps must be positive")
        if not (self.step_seconds > 0 and math.isfinite(self.step_seconds)):
            raise ValueError("step_seconds must be a positive number")
        if not (0 <= self.pitch_min <= self.pitch_max <= 127):
            raise ValueError("pitch range must lie within [0,127]")

    def contains_step(self, step: int) -> bool:
        return 0 <= step < self.steps


def step_to_seconds(step: int, step_seconds: float = STEP_SECONDS) -> float:
    return step * step_seconds


def seconds_to_step(seconds: float, step_seconds: float = STEP_SECONDS) -> int:
    return int(round(seconds / step_seconds))


def toggle_cell(cells: set[Cell], cell: Cell) -> bool:
    """Flip ``cell`` in place and return whether it is now active."""
    if cell in cells:
        cells.discard(cell)
        return False
    cells.add(cell)
    return True


@dataclass(slots=True)
class ActiveCells:
    """Projection of a track's note events onto (pitch, step) grid cells.

    Rebuilt from the canonical event list on load, then kept current by
    applying the same toggle locally and for every remote echo.
    """

    grid: GridSpec = field(default_factory=GridSpec)
    cells: set[Cell] = field(default_factory=set)

    @staticmethod
    def from_events(events: Iterable[NoteEvent], grid: GridSpec | None = None) -> ActiveCells:
        spec = grid or GridSpec()
        cells: set[Cell] = set()
        for event in events:
            step = seconds_to_step(event.start_time, spec.step_seconds)
            if spec.contains_step(step):
                cells.add((event.pitch, step))
        return ActiveCells(grid=spec, cells=cells)

    @staticmethod
    def from_track(track: Track, grid: GridSpec | None = None) -> ActiveCells:
        return ActiveCells.from_events(track.events.values(), grid)

    def is_active(self, pitch: int, step: int) -> bool:
        return (pitch, step) in self.cells

    def toggle(self, pitch: int, step: int) -> bool:
        return toggle_cell(self.cells, (pitch, step))

    def apply_remote(self, pitch: int, step: int, active: bool | None = None) -> None:
        # Older peers send no resulting state; fall back to a plain flip.
        if active is None:
            self.toggle(pitch, step)
        elif active:
            self.cells.add((pitch, step))
        else:
            self.cells.discard((pitch, step))
