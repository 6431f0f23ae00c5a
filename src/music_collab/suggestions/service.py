"""Suggestion service: ask the model, fall back to patterns, merge into a track."""

from __future__ import annotations

import logging

from music_collab.suggestions.llm import SuggestionLLMEngine
from music_collab.suggestions.models import NoteSuggestion, SuggestedNote, SuggestRequest
from music_collab.suggestions.patterns import pattern_suggestion
from music_collab.sync.engine import SyncEngine
from music_collab.timeline.grid import GridSpec, step_to_seconds
from music_collab.timeline.models import NoteEvent, Project, Track

logger = logging.getLogger(__name__)


class SuggestionService:
    def __init__(
        self,
        engine: SyncEngine,
        llm_engine: SuggestionLLMEngine | None = None,
        fallback_to_pattern_on_llm_error: bool = True,
    ) -> None:
        self._engine = engine
        self._llm = llm_engine or SuggestionLLMEngine.from_env()
        self._fallback_to_pattern_on_llm_error = fallback_to_pattern_on_llm_error

    def suggest(self, project: Project, request: SuggestRequest) -> NoteSuggestion:
        """Return a suggestion whose ``source`` and ``fallback_reason`` describe how it was made."""
        request.grid.validate()
        if not self._llm.configured:
            return pattern_suggestion(request.prompt, reason="AI model not configured.")
        try:
            return self._llm.suggest(project, request)
        except Exception as exc:
            if not self._fallback_to_pattern_on_llm_error:
                raise
            reason = _format_reason(exc)
            logger.warning("suggestion model failed for project %s: %s", project.project_id, reason)
            return pattern_suggestion(
                request.prompt,
                reason="AI service unavailable.",
                source="pattern-fallback",
                fallback_reason=reason,
            )

    def apply(
        self,
        project_id: str,
        track_id: str,
        notes: list[SuggestedNote],
        actor_id: str,
        grid: GridSpec | None = None,
    ) -> Track:
        """Replace the track's notes with ``notes``; one entry per (pitch, step) cell."""
        spec = grid or GridSpec()
        events: dict[tuple[int, int], NoteEvent] = {}
        for item in notes:
            if not spec.contains_step(item.step) or not (0 <= item.note <= 127):
                continue
            cell = (item.note, item.step)
            if cell in events:
                continue
            events[cell] = NoteEvent(
                pitch=item.note,
                start_time=step_to_seconds(item.step, spec.step_seconds),
                duration=max(item.duration_steps, 1) * spec.step_seconds,
                velocity=min(max(item.velocity, 1), 127),
                track_id=track_id,
            )
        return self._engine.bulk_replace(
            project_id,
            track_id,
            events.values(),
            actor_id,
            label="Applied AI suggestion",
        )


def _format_reason(exc: Exception) -> str:
    text = str(exc).strip().replace("\n", " ")
    if not text:
        return "llm_error"
    return text if len(text) <= 120 else text[:117] + "..."
