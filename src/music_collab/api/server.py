"""HTTP and real-time endpoints for collaborative sequence editing."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from music_collab.api.schemas import (
    AddCollaboratorRequest,
    AddTrackRequest,
    ApplySuggestionRequest,
    CreateProjectRequest,
    GridRequest,
    MessageResponse,
    RestoreResponse,
    SuggestedNotePayload,
    SuggestionPayload,
    SuggestRequestBody,
    SuggestResponse,
    UpdateProjectRequest,
)
from music_collab.audio.renderer import RenderedAudio, render, render_version
from music_collab.audio.wav import CONTENT_TYPE, export_filename
from music_collab.config import Settings
from music_collab.errors import (
    ForbiddenError,
    InvalidOperationError,
    MalformedInputError,
    NotFoundError,
    PersistenceError,
)
from music_collab.logging_config import configure_logging
from music_collab.project.locks import ProjectLocks
from music_collab.project.repository import ProjectRepository
from music_collab.project.schema import ProjectDocument, TrackDocument, VersionDocument
from music_collab.project.service import ProjectService, ProjectUpdate
from music_collab.suggestions.llm import SuggestionLLMEngine
from music_collab.suggestions.models import SuggestedNote, SuggestRequest
from music_collab.suggestions.service import SuggestionService
from music_collab.sync.channel import ChannelRegistry, WebSocketSession
from music_collab.sync.engine import SyncEngine
from music_collab.sync.messages import JoinMessage, parse_channel_message
from music_collab.timeline.grid import GridSpec
from music_collab.timeline.models import Project, Track, Version, duration_of
from music_collab.versions.store import VersionStore

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[Exception], int], ...] = (
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (InvalidOperationError, 400),
    (MalformedInputError, 400),
    (PersistenceError, 500),
)


def create_app(
    settings: Settings | None = None,
    repository: ProjectRepository | None = None,
    llm_engine: SuggestionLLMEngine | None = None,
) -> FastAPI:
    config = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        configure_logging(config)
        logger.info("music-collab API starting (env=%s)", config.env)
        yield

    app = FastAPI(title="music-collab API", version="0.1.0", lifespan=lifespan)
    store = repository or ProjectRepository()
    locks = ProjectLocks()
    versions = VersionStore(repository=store, locks=locks)
    engine = SyncEngine(store, versions, ChannelRegistry(), locks, step_seconds=config.step_seconds)
    projects = ProjectService(store, versions, locks)
    suggestions = SuggestionService(engine, llm_engine=llm_engine)

    app.state.settings = config
    app.state.repository = store
    app.state.versions = versions
    app.state.engine = engine

    for error_type, status_code in _STATUS_BY_ERROR:
        app.add_exception_handler(error_type, _error_handler(status_code))

    @app.get("/")
    def root() -> dict[str, str]:
        return {
            "service": "music-collab API",
            "status": "ok",
            "health": "/api/health",
            "docs": "/docs",
        }

    @app.get("/favicon.ico", include_in_schema=False)
    def favicon() -> Response:
        return Response(status_code=204)

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/projects", response_model=list[ProjectDocument])
    def list_projects(x_user_id: str = Header(min_length=1)) -> list[ProjectDocument]:
        return [_project_document(item) for item in projects.list_for_user(x_user_id)]

    @app.post("/api/projects", response_model=ProjectDocument, status_code=201)
    def create_project(payload: CreateProjectRequest, x_user_id: str = Header(min_length=1)) -> ProjectDocument:
        project = projects.create(x_user_id, name=payload.name, description=payload.description)
        return _project_document(project)

    @app.get("/api/projects/{project_id}", response_model=ProjectDocument)
    def get_project(project_id: str, x_user_id: str = Header(min_length=1)) -> ProjectDocument:
        return _project_document(projects.get(project_id, x_user_id))

    @app.put("/api/projects/{project_id}", response_model=ProjectDocument)
    def update_project(
        project_id: str,
        payload: UpdateProjectRequest,
        x_user_id: str = Header(min_length=1),
    ) -> ProjectDocument:
        changes = ProjectUpdate(
            name=payload.name,
            description=payload.description,
            bpm=payload.bpm,
            time_signature=payload.time_signature,
            is_public=payload.is_public,
            tracks=payload.tracks,
        )
        return _project_document(projects.update(project_id, x_user_id, changes))

    @app.delete("/api/projects/{project_id}", response_model=MessageResponse)
    def delete_project(project_id: str, x_user_id: str = Header(min_length=1)) -> MessageResponse:
        projects.delete(project_id, x_user_id)
        return MessageResponse(message="Project removed")

    @app.post("/api/projects/{project_id}/tracks", response_model=TrackDocument, status_code=201)
    def add_track(
        project_id: str,
        payload: AddTrackRequest,
        x_user_id: str = Header(min_length=1),
    ) -> TrackDocument:
        track = projects.add_track(project_id, x_user_id, name=payload.name, instrument=payload.instrument)
        return TrackDocument.from_track(track)

    @app.delete("/api/projects/{project_id}/tracks/{track_id}", response_model=MessageResponse)
    def remove_track(project_id: str, track_id: str, x_user_id: str = Header(min_length=1)) -> MessageResponse:
        projects.remove_track(project_id, x_user_id, track_id)
        return MessageResponse(message="Track removed")

    @app.get("/api/projects/{project_id}/collaborators")
    def list_collaborators(project_id: str, x_user_id: str = Header(min_length=1)) -> list[dict[str, str]]:
        project = projects.get(project_id, x_user_id)
        return [{"user": user_id, "role": role} for user_id, role in project.collaborators.items()]

    @app.post("/api/projects/{project_id}/collaborators")
    def add_collaborator(
        project_id: str,
        payload: AddCollaboratorRequest,
        x_user_id: str = Header(min_length=1),
    ) -> dict[str, str]:
        projects.add_collaborator(project_id, x_user_id, payload.user_id, payload.role)
        return {"user": payload.user_id, "role": payload.role}

    @app.delete("/api/projects/{project_id}/collaborators/{user_id}", response_model=MessageResponse)
    def remove_collaborator(
        project_id: str,
        user_id: str,
        x_user_id: str = Header(min_length=1),
    ) -> MessageResponse:
        projects.remove_collaborator(project_id, x_user_id, user_id)
        return MessageResponse(message="Collaborator removed")

    @app.get("/api/projects/{project_id}/versions", response_model=list[VersionDocument])
    def list_versions(project_id: str, x_user_id: str = Header(min_length=1)) -> list[VersionDocument]:
        projects.get(project_id, x_user_id)
        return [VersionDocument.from_version(item) for item in versions.list(project_id)]

    @app.post("/api/projects/{project_id}/versions/{version_id}/restore", response_model=RestoreResponse)
    def restore_version(project_id: str, version_id: str, x_user_id: str = Header(min_length=1)) -> RestoreResponse:
        project = store.get(project_id)
        projects.require(project, x_user_id, "write")
        result = versions.restore(project_id, version_id, x_user_id)
        return RestoreResponse(
            message="Restored to version",
            version=result.version_number,
            checkpoint=result.checkpoint.version_number,
            tracks=[TrackDocument.from_track(track) for track in result.tracks],
        )

    @app.get("/api/projects/{project_id}/export")
    def export_project(project_id: str, x_user_id: str = Header(min_length=1)) -> Response:
        project = projects.get(project_id, x_user_id)
        _ensure_renderable(project.tracks, config)
        audio = render(project, sample_rate=config.sample_rate)
        return _wav_response(audio, project.name)

    @app.get("/api/projects/{project_id}/versions/{version_id}/export")
    def export_version(project_id: str, version_id: str, x_user_id: str = Header(min_length=1)) -> Response:
        project = projects.get(project_id, x_user_id)
        version: Version = versions.get(project_id, version_id)
        _ensure_renderable(version.tracks, config)
        audio = render_version(version, sample_rate=config.sample_rate)
        return _wav_response(audio, f"{project.name}-v{version.version_number}")

    @app.post("/api/projects/{project_id}/suggestions", response_model=SuggestResponse)
    def suggest_notes(
        project_id: str,
        payload: SuggestRequestBody,
        x_user_id: str = Header(min_length=1),
    ) -> SuggestResponse:
        project = projects.get(project_id, x_user_id)
        request = SuggestRequest(
            prompt=payload.prompt,
            grid=_grid_spec(payload.grid, config),
            track_id=payload.track_id,
        )
        try:
            suggestion = suggestions.suggest(project, request)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return SuggestResponse(
            suggestion=SuggestionPayload(
                id=suggestion.suggestion_id,
                title=suggestion.title,
                description=suggestion.description,
                notes=[SuggestedNotePayload.model_validate(item.to_payload()) for item in suggestion.notes],
            ),
            source=suggestion.source,
            fallback_reason=suggestion.fallback_reason,
        )

    @app.post("/api/projects/{project_id}/suggestions/apply", response_model=TrackDocument)
    def apply_suggestion(
        project_id: str,
        payload: ApplySuggestionRequest,
        x_user_id: str = Header(min_length=1),
    ) -> TrackDocument:
        project = store.get(project_id)
        projects.require(project, x_user_id, "write")
        notes = [
            SuggestedNote(
                note=item.note,
                step=item.step,
                duration_steps=item.duration_steps,
                velocity=item.velocity,
            )
            for item in payload.notes
        ]
        grid = _grid_spec(payload.grid, config)
        track = suggestions.apply(project_id, payload.track_id, notes, x_user_id, grid=grid)
        return TrackDocument.from_track(track)

    @app.websocket("/ws")
    async def realtime(websocket: WebSocket) -> None:
        await websocket.accept()
        session = WebSocketSession(str(uuid4()), asyncio.get_running_loop())
        sender = asyncio.create_task(_pump(websocket, session))
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))
                text = frame.get("text")
                if text is None:
                    logger.debug("dropping binary frame from %s", session.session_id)
                    continue
                await _handle_frame(engine, websocket, session, text)
        except WebSocketDisconnect:
            pass
        finally:
            engine.disconnect(session.session_id)
            session.close()
            sender.cancel()
            with suppress(asyncio.CancelledError):
                await sender

    return app


async def _handle_frame(engine: SyncEngine, websocket: WebSocket, session: WebSocketSession, text: str) -> None:
    try:
        message = parse_channel_message(json.loads(text))
    except (json.JSONDecodeError, MalformedInputError) as exc:
        # Real-time channel is best-effort: malformed frames are dropped.
        logger.debug("dropping frame from %s: %s", session.session_id, exc)
        return
    if isinstance(message, JoinMessage):
        engine.subscribe(session, message.project_id)
        await websocket.send_json({"type": "joined", "projectId": message.project_id})
        return
    await run_in_threadpool(engine.handle_toggle_message, session.session_id, message)


async def _pump(websocket: WebSocket, session: WebSocketSession) -> None:
    while True:
        message = await session.next_message()
        if message is None:
            return
        try:
            await websocket.send_json(message)
        except (RuntimeError, WebSocketDisconnect):
            return


def _error_handler(status_code: int):
    async def handler(_request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("request failed: %s", exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def _project_document(project: Project) -> ProjectDocument:
    return ProjectDocument.from_project(project, duration=duration_of(project))


def _grid_spec(payload: GridRequest, settings: Settings) -> GridSpec:
    spec = GridSpec(
        steps=payload.steps or settings.grid_steps,
        step_seconds=payload.step_seconds or settings.step_seconds,
        pitch_min=payload.pitch_min,
        pitch_max=payload.pitch_max,
    )
    try:
        spec.validate()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return spec


def _ensure_renderable(tracks: list[Track] | tuple[Track, ...], settings: Settings) -> None:
    end = max((event.end_time for track in tracks for event in track.events.values()), default=0.0)
    if end > settings.max_render_sec:
        raise HTTPException(
            status_code=400,
            detail=f"timeline is {end:.1f}s long; export is limited to {settings.max_render_sec:.0f}s",
        )


def _wav_response(audio: RenderedAudio, name: str) -> Response:
    body = audio.to_bytes()
    return Response(
        content=body,
        media_type=CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(name)}"'},
    )


app = create_app()
