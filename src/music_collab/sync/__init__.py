"""Real-time synchronization exports."""

from music_collab.sync.channel import ChannelRegistry, QueueSession, Session, WebSocketSession
from music_collab.sync.engine import SyncEngine, ToggleResult, toggle_message
from music_collab.sync.messages import JoinMessage, NoteToggleEvent, NoteToggleMessage, parse_channel_message

__all__ = [
    "ChannelRegistry",
    "JoinMessage",
    "NoteToggleEvent",
    "NoteToggleMessage",
    "QueueSession",
    "Session",
    "SyncEngine",
    "ToggleResult",
    "WebSocketSession",
    "parse_channel_message",
    "toggle_message",
]
