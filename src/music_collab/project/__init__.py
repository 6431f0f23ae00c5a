"""Project document store exports.

``ProjectService`` lives in ``music_collab.project.service``; it depends on the
version store, which in turn depends on this package.
"""

from music_collab.project.locks import ProjectLocks
from music_collab.project.repository import ProjectRepository
from music_collab.project.schema import NoteEventDocument, ProjectDocument, TrackDocument, VersionDocument

__all__ = [
    "NoteEventDocument",
    "ProjectDocument",
    "ProjectLocks",
    "ProjectRepository",
    "TrackDocument",
    "VersionDocument",
]
