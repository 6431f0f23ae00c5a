import pytest

from music_collab.errors import MalformedInputError
from music_collab.sync.channel import ChannelRegistry, QueueSession
from music_collab.sync.messages import JoinMessage, NoteToggleMessage, parse_channel_message


def test_join_and_toggle_messages_parse() -> None:
    join = parse_channel_message({"type": "join", "projectId": "p1"})
    toggle = parse_channel_message(
        {
            "type": "noteToggle",
            "projectId": "p1",
            "event": {"type": "noteToggle", "note": 61, "step": 3, "trackId": "t1", "velocity": float("inf")},
        }
    )

    assert isinstance(join, JoinMessage) and join.project_id == "p1"
    assert isinstance(toggle, NoteToggleMessage)
    assert toggle.event.note == 61
    assert toggle.event.track_id == "t1"
    assert toggle.event.velocity is None
    assert toggle.event.duration is None


@pytest.mark.parametrize(
    "raw",
    [
        "join",
        {"type": "leave", "projectId": "p1"},
        {"type": "join"},
        {"type": "noteToggle", "projectId": "p1", "event": {"note": 200, "step": 0}},
        {"type": "noteToggle", "projectId": "p1", "event": {"note": 60, "step": -2}},
    ],
)
def test_malformed_messages_are_rejected(raw: object) -> None:
    with pytest.raises(MalformedInputError):
        parse_channel_message(raw)


def test_registry_broadcast_excludes_sender_and_reports_count() -> None:
    registry = ChannelRegistry()
    alice = QueueSession("alice")
    bob = QueueSession("bob")
    registry.join(alice, "p1")
    registry.join(bob, "p1")

    delivered = registry.broadcast("p1", {"type": "noteToggle"}, exclude="alice")

    assert delivered == 1
    assert alice.received == []
    assert bob.received == [{"type": "noteToggle"}]
    assert sorted(registry.members("p1")) == ["alice", "bob"]


def test_registry_join_moves_session_between_projects() -> None:
    registry = ChannelRegistry()
    bob = QueueSession("bob")

    assert registry.join(bob, "p1") is None
    assert registry.join(bob, "p2") == "p1"
    assert registry.members("p1") == []
    assert registry.project_of("bob") == "p2"
    assert registry.leave("bob") == "p2"
    assert registry.project_of("bob") is None
