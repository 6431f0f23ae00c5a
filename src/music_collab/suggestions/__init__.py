"""Suggestion intake exports."""

from music_collab.suggestions.llm import SuggestionEngineError, SuggestionLLMEngine
from music_collab.suggestions.models import NoteSuggestion, SuggestedNote, SuggestRequest, validate_notes
from music_collab.suggestions.patterns import pattern_suggestion
from music_collab.suggestions.service import SuggestionService

__all__ = [
    "NoteSuggestion",
    "SuggestRequest",
    "SuggestedNote",
    "SuggestionEngineError",
    "SuggestionLLMEngine",
    "SuggestionService",
    "pattern_suggestion",
    "validate_notes",
]
