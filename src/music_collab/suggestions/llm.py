"""LLM-based note suggestion integration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from music_collab.suggestions.models import NoteSuggestion, SuggestRequest, validate_notes
from music_collab.timeline.grid import seconds_to_step
from music_collab.timeline.models import Project

logger = logging.getLogger(__name__)

_HTTPTransport = Callable[[str, dict[str, object], dict[str, str], float], dict[str, object]]

_SYSTEM_PROMPT = (
    "You are a music composition assistant. Return ONLY valid JSON (no markdown) "
    'shaped as {"title": str, "description": str, "notes": [{"note": int, "step": int, '
    '"durationSteps": int, "velocity": int}]}. Provide 4 to 12 notes that sound musical '
    "as a harmony/melody layer."
)
_DEFAULT_PROMPT = "Suggest a simple harmony that fits the existing notes. Prefer consonant intervals and repeatable loop."
_EXISTING_NOTE_LIMIT = 64


class SuggestionEngineError(RuntimeError):
    """Raised when the model cannot produce a usable suggestion."""


@dataclass(slots=True)
class SuggestionLLMEngine:
    endpoint: str = ""
    api_key: str = ""
    timeout_sec: float = 6.0
    model: str = ""
    transport: _HTTPTransport | None = None

    @staticmethod
    def from_env() -> SuggestionLLMEngine:
        endpoint = os.getenv("MUSIC_COLLAB_LLM_ENDPOINT", "").strip()
        api_key = os.getenv("MUSIC_COLLAB_LLM_API_KEY", "").strip()
        model = os.getenv("MUSIC_COLLAB_LLM_MODEL", "").strip()
        timeout_raw = os.getenv("MUSIC_COLLAB_LLM_TIMEOUT_SEC", "6.0").strip()
        try:
            timeout = float(timeout_raw)
        except ValueError:
            timeout = 6.0
        return SuggestionLLMEngine(
            endpoint=endpoint,
            api_key=api_key,
            timeout_sec=max(timeout, 0.1),
            model=model,
        )

    @property
    def configured(self) -> bool:
        return bool(self.endpoint)

    def suggest(self, project: Project, request: SuggestRequest) -> NoteSuggestion:
        request.grid.validate()
        if not self.endpoint:
            raise SuggestionEngineError("MUSIC_COLLAB_LLM_ENDPOINT is not configured")

        payload = {
            "task": "note_suggest",
            "system": _SYSTEM_PROMPT,
            "prompt": request.prompt or _DEFAULT_PROMPT,
            "grid": {
                "steps": request.grid.steps,
                "stepSeconds": request.grid.step_seconds,
                "pitchMin": request.grid.pitch_min,
                "pitchMax": request.grid.pitch_max,
            },
            "project": _project_context(project),
            "existing": _existing_notes(project, request),
            "model": self.model or None,
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        transport = self.transport or _default_http_transport
        try:
            response = transport(self.endpoint, payload, headers, self.timeout_sec)
        except (HTTPError, URLError, OSError, TimeoutError) as exc:
            raise SuggestionEngineError(f"LLM request failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SuggestionEngineError(f"LLM response decode failed: {exc}") from exc

        return _parse_suggestion(response, request)


def _default_http_transport(
    endpoint: str,
    payload: dict[str, object],
    headers: dict[str, str],
    timeout_sec: float,
) -> dict[str, object]:
    body = json.dumps(payload).encode("utf-8")
    req = Request(endpoint, data=body, headers=headers, method="POST")
    with urlopen(req, timeout=timeout_sec) as resp:  # noqa: S310
        raw = resp.read().decode("utf-8")
    decoded = json.loads(raw)
    if not isinstance(decoded, dict):
        raise SuggestionEngineError("LLM response must be a JSON object")
    return decoded


def _project_context(project: Project) -> dict[str, Any]:
    return {
        "bpm": project.bpm,
        "timeSignature": {
            "numerator": project.time_signature.numerator,
            "denominator": project.time_signature.denominator,
        },
        "tracks": [
            {"name": track.name, "instrument": track.instrument.value, "eventCount": len(track.events)}
            for track in project.tracks
        ],
    }


def _existing_notes(project: Project, request: SuggestRequest) -> list[dict[str, int]]:
    track = project.find_track(request.track_id) or project.tracks[0]
    grid = request.grid
    output: list[dict[str, int]] = []
    for event in list(track.events.values())[-_EXISTING_NOTE_LIMIT:]:
        step = seconds_to_step(event.start_time, grid.step_seconds)
        if not grid.contains_step(step):
            continue
        output.append(
            {
                "note": event.pitch,
                "step": step,
                "durationSteps": max(1, seconds_to_step(event.duration, grid.step_seconds)),
            }
        )
    return output


def _parse_suggestion(payload: dict[str, object], request: SuggestRequest) -> NoteSuggestion:
    body: object = payload
    content = payload.get("content")
    if "notes" not in payload and isinstance(content, str):
        body = _extract_json_object(content)
    if not isinstance(body, dict) or not isinstance(body.get("notes"), list):
        raise SuggestionEngineError("LLM response could not be parsed as a note suggestion")

    notes = validate_notes(body["notes"], request.grid)
    if not notes:
        raise SuggestionEngineError("LLM response has no valid notes")
    return NoteSuggestion.new(
        title=str(body.get("title") or "AI Suggestion"),
        description=str(body.get("description") or ""),
        notes=notes,
        source="llm-based",
    )


def _extract_json_object(text: str) -> object:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        logger.debug("model content is not JSON: %.80s", text)
        return None
