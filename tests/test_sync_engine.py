from music_collab.errors import NotFoundError, PersistenceError
from music_collab.project.locks import ProjectLocks
from music_collab.project.repository import ProjectRepository
from music_collab.sync.channel import ChannelRegistry, QueueSession
from music_collab.sync.engine import SyncEngine
from music_collab.sync.messages import NoteToggleMessage
from music_collab.timeline.models import NoteEvent, Project, Track
from music_collab.versions.store import VersionStore

import pytest


class _FlakyRepository(ProjectRepository):
    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    def _write(self, project: Project) -> None:
        if self.fail_writes:
            raise PersistenceError("store unavailable")
        super()._write(project)


def _setup(repository: ProjectRepository | None = None) -> tuple[ProjectRepository, VersionStore, SyncEngine, Project]:
    repo = repository or ProjectRepository()
    locks = ProjectLocks()
    versions = VersionStore(repository=repo, locks=locks)
    engine = SyncEngine(repo, versions, ChannelRegistry(), locks)
    project = repo.create(name="Jam", owner="alice")
    return repo, versions, engine, project


def _events(repo: ProjectRepository, project_id: str, index: int = 0) -> dict:
    return dict(repo.get(project_id).tracks[index].events)


def test_toggle_on_then_off_scenario() -> None:
    repo, versions, engine, project = _setup()
    track_id = project.tracks[0].track_id

    first = engine.toggle(project.project_id, "s1", track_id, pitch=60, step=0, velocity=100)
    assert first is not None and first.active is True
    stored = list(_events(repo, project.project_id).values())
    assert stored == [NoteEvent(pitch=60, start_time=0.0, duration=0.25, velocity=100, track_id=track_id)]

    second = engine.toggle(project.project_id, "s1", track_id, pitch=60, step=0, velocity=100)
    assert second is not None and second.active is False
    assert _events(repo, project.project_id) == {}
    assert versions.list(project.project_id) == []


def test_toggle_twice_restores_original_event_set() -> None:
    repo, _, engine, project = _setup()
    track_id = project.tracks[0].track_id
    for step in (0, 3, 5):
        engine.toggle(project.project_id, "s1", track_id, pitch=64, step=step)
    before = _events(repo, project.project_id)

    for pitch, step in ((64, 3), (70, 9)):
        engine.toggle(project.project_id, "s1", track_id, pitch=pitch, step=step)
        engine.toggle(project.project_id, "s2", track_id, pitch=pitch, step=step)
        assert _events(repo, project.project_id) == before


def test_toggle_broadcasts_to_peers_but_not_origin() -> None:
    _, _, engine, project = _setup()
    alice = QueueSession("alice")
    bob = QueueSession("bob")
    carol = QueueSession("carol")
    for session in (alice, bob, carol):
        engine.subscribe(session, project.project_id)
    track_id = project.tracks[0].track_id

    result = engine.toggle(project.project_id, "alice", track_id, pitch=62, step=2, velocity=90)

    assert result is not None
    assert result.delivered_to == 2
    assert alice.received == []
    expected = {
        "type": "noteToggle",
        "note": 62,
        "step": 2,
        "time": 0.5,
        "duration": 0.25,
        "trackId": track_id,
        "velocity": 90,
        "active": True,
    }
    assert bob.received == [expected]
    assert carol.received == [expected]


def test_broadcast_preserves_commit_order() -> None:
    _, _, engine, project = _setup()
    bob = QueueSession("bob")
    engine.subscribe(bob, project.project_id)
    track_id = project.tracks[0].track_id

    for step in range(6):
        engine.toggle(project.project_id, "alice", track_id, pitch=60 + step, step=step)
    engine.toggle(project.project_id, "alice", track_id, pitch=60, step=0)

    assert [(item["note"], item["active"]) for item in bob.received] == [
        (60, True),
        (61, True),
        (62, True),
        (63, True),
        (64, True),
        (65, True),
        (60, False),
    ]


def test_joining_another_project_leaves_previous_channel() -> None:
    repo, _, engine, first = _setup()
    second = repo.create(name="Other", owner="alice")
    bob = QueueSession("bob")
    engine.subscribe(bob, first.project_id)
    engine.subscribe(bob, second.project_id)

    engine.toggle(first.project_id, "alice", first.tracks[0].track_id, pitch=60, step=0)
    assert bob.received == []
    engine.toggle(second.project_id, "alice", second.tracks[0].track_id, pitch=60, step=0)
    assert len(bob.received) == 1

    engine.disconnect("bob")
    engine.toggle(second.project_id, "alice", second.tracks[0].track_id, pitch=61, step=0)
    assert len(bob.received) == 1


def test_unknown_track_falls_back_to_first_track() -> None:
    repo, _, engine, project = _setup()
    first_track = project.tracks[0].track_id

    result = engine.toggle(project.project_id, "s1", "deleted-track", pitch=60, step=1)

    assert result is not None
    assert result.event.track_id == first_track
    assert len(_events(repo, project.project_id)) == 1


def test_invalid_or_unknown_targets_are_dropped_silently() -> None:
    repo, _, engine, project = _setup()
    bob = QueueSession("bob")
    engine.subscribe(bob, project.project_id)
    track_id = project.tracks[0].track_id

    assert engine.toggle("missing-project", "s1", track_id, pitch=60, step=0) is None
    assert engine.toggle(project.project_id, "s1", track_id, pitch=128, step=0) is None
    assert engine.toggle(project.project_id, "s1", track_id, pitch=60, step=-1) is None
    assert engine.toggle(project.project_id, "s1", track_id, pitch=60, step=1.5) is None  # type: ignore[arg-type]
    assert _events(repo, project.project_id) == {}
    assert bob.received == []


def test_velocity_and_duration_are_clamped() -> None:
    repo, _, engine, project = _setup()
    track_id = project.tracks[0].track_id

    loud = engine.toggle(project.project_id, "s1", track_id, pitch=60, step=0, velocity=500, duration=-1)
    quiet = engine.toggle(project.project_id, "s1", track_id, pitch=61, step=0, velocity=float("nan"), duration=0.5)

    assert loud is not None and loud.event.velocity == 127 and loud.event.duration == 0.25
    assert quiet is not None and quiet.event.velocity == 100 and quiet.event.duration == 0.5


def test_failed_write_is_not_broadcast() -> None:
    repo = _FlakyRepository()
    _, _, engine, project = _setup(repo)
    bob = QueueSession("bob")
    engine.subscribe(bob, project.project_id)
    repo.fail_writes = True

    result = engine.toggle(project.project_id, "alice", project.tracks[0].track_id, pitch=60, step=0)

    assert result is None
    assert bob.received == []
    repo.fail_writes = False
    assert _events(repo, project.project_id) == {}


def test_handle_toggle_message_uses_step_for_start_time() -> None:
    repo, _, engine, project = _setup()
    track_id = project.tracks[0].track_id
    message = NoteToggleMessage.model_validate(
        {
            "type": "noteToggle",
            "projectId": project.project_id,
            "event": {
                "type": "noteToggle",
                "note": 67,
                "step": 4,
                "time": 99.0,
                "duration": 0.5,
                "trackId": track_id,
                "velocity": 80,
                "color": "red",
            },
        }
    )

    result = engine.handle_toggle_message("alice", message)

    assert result is not None
    assert result.event == NoteEvent(pitch=67, start_time=1.0, duration=0.5, velocity=80, track_id=track_id)
    assert len(_events(repo, project.project_id)) == 1


def test_bulk_replace_captures_prior_state_without_broadcast() -> None:
    repo, versions, engine, project = _setup()
    bob = QueueSession("bob")
    engine.subscribe(bob, project.project_id)
    track_id = project.tracks[0].track_id
    engine.toggle(project.project_id, "alice", track_id, pitch=60, step=0)
    bob.received.clear()
    before = repo.get(project.project_id).tracks

    track = engine.bulk_replace(
        project.project_id,
        track_id,
        [
            NoteEvent(pitch=72, start_time=0.5, duration=0.5, velocity=90, track_id="ignored"),
            NoteEvent(pitch=74, start_time=1.0, duration=0.25, velocity=90, track_id=track_id),
        ],
        actor_id="alice",
    )

    assert sorted(event.pitch for event in track.events.values()) == [72, 74]
    assert all(event.track_id == track_id for event in track.events.values())
    assert bob.received == []
    history = versions.list(project.project_id)
    assert len(history) == 1
    assert list(history[0].tracks) == before


def test_bulk_replace_unknown_track_raises_not_found() -> None:
    _, _, engine, project = _setup()

    with pytest.raises(NotFoundError):
        engine.bulk_replace(project.project_id, "missing", [], actor_id="alice")


def test_track_clone_keeps_engine_state_detached() -> None:
    repo, _, engine, project = _setup()
    track = Track.new(name="Bass", instrument="bass")
    repo.replace_tracks(project.project_id, [project.tracks[0], track])

    engine.toggle(project.project_id, "s1", track.track_id, pitch=40, step=0)

    assert track.events == {}
    assert len(_events(repo, project.project_id, index=1)) == 1
