"""Version store exports."""

from music_collab.versions.store import RestoreResult, VersionStore

__all__ = ["RestoreResult", "VersionStore"]
