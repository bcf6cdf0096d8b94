"""Storage layer for notesync."""

from notesync.storage.engine import StorageEngine
from notesync.storage.note_repository import NoteRepository
from notesync.storage.sync_tracker import SyncStatusTracker

__all__ = [
    "StorageEngine",
    "NoteRepository",
    "SyncStatusTracker",
]
