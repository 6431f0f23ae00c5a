"""Deterministic note patterns used when no model is reachable."""

from __future__ import annotations

from music_collab.suggestions.models import NoteSuggestion, SuggestedNote, SuggestionSource

# (note, step, duration_steps)
_BASSLINE: tuple[tuple[int, int, int], ...] = ((36, 0, 4), (41, 4, 4), (43, 8, 4), (36, 12, 4))
_MELODY: tuple[tuple[int, int, int], ...] = (
    (72, 0, 1),
    (74, 1, 1),
    (76, 2, 1),
    (77, 3, 1),
    (79, 4, 2),
    (77, 6, 1),
    (76, 7, 1),
    (74, 8, 2),
)
_HARMONY: tuple[tuple[int, int, int], ...] = ((60, 0, 2), (64, 2, 2), (67, 4, 2), (72, 6, 2))


def pattern_suggestion(
    prompt: str,
    reason: str,
    source: SuggestionSource = "pattern",
    fallback_reason: str | None = None,
) -> NoteSuggestion:
    lowered = (prompt or "").lower()
    if "bass" in lowered:
        title, pattern = "Bassline", _BASSLINE
    elif "melody" in lowered or "lead" in lowered:
        title, pattern = "Melody", _MELODY
    else:
        title, pattern = "Harmony", _HARMONY
    return NoteSuggestion.new(
        title=title,
        description=f"{reason} Using a simple {title.lower()} pattern.",
        notes=[SuggestedNote(note=note, step=step, duration_steps=length) for note, step, length in pattern],
        source=source,
        fallback_reason=fallback_reason,
    )
