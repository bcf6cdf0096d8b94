"""Named note operations with structured results.

Every method returns ``{"success": bool, "data"?, "error"?, "message"?,
"count"?}`` and never raises: faults are logged and reported in the result so
nothing escapes into the transport.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from notesync.exceptions import NotesyncError
from notesync.models.schema import Note
from notesync.services.sync_service import SyncService
from notesync.storage.note_repository import BulkItem, NoteRepository
from notesync.storage.sync_tracker import SyncStatusTracker

logger = logging.getLogger(__name__)

NOT_FOUND = "Note not found"

Result = Dict[str, Any]


def _dump(note: Note) -> Dict[str, Any]:
    return note.model_dump(mode="json")


def _dump_all(notes: List[Note]) -> List[Dict[str, Any]]:
    return [_dump(n) for n in notes]


class NoteOperations:
    """Operation surface over the repository, tracker and sync service."""

    def __init__(
        self,
        repository: NoteRepository,
        tracker: SyncStatusTracker,
        sync_service: SyncService,
    ):
        self.repository = repository
        self.tracker = tracker
        self.sync_service = sync_service

    def format_error(self, operation: str, error: Exception) -> Result:
        """Build a failure result in a consistent way.

        Domain errors carry their own message; anything else is logged with
        a stack trace and reported generically with a reference id.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, NotesyncError):
            logger.error(
                f"[{error.code.name}] [{error_id}] {operation}: {error.message}",
                extra={"error_details": error.details},
            )
            return {"success": False, "error": error.message}

        logger.error(
            f"Unexpected error in {operation} [{error_id}]: {error}", exc_info=True
        )
        return {
            "success": False,
            "error": f"An unexpected error occurred (ref: {error_id})",
        }

    def add(self, title: str, content: Optional[str] = "") -> Result:
        try:
            note = self.repository.add(title, content)
            return {"success": True, "data": _dump(note)}
        except Exception as e:
            return self.format_error("add", e)

    def get_by_id(self, note_id: int) -> Result:
        try:
            note = self.repository.get_by_id(note_id)
            if note is None:
                return {"success": False, "error": NOT_FOUND}
            return {"success": True, "data": _dump(note)}
        except Exception as e:
            return self.format_error("get_by_id", e)

    def list_notes(
        self, sort_by: Optional[str] = "created_at", order: Optional[str] = "DESC"
    ) -> Result:
        try:
            notes = self.repository.list_notes(sort_by, order)
            return {"success": True, "data": _dump_all(notes), "count": len(notes)}
        except Exception as e:
            return self.format_error("list_notes", e)

    def update(self, note_id: int, title: str, content: Optional[str]) -> Result:
        try:
            note = self.repository.update(note_id, title, content)
            if note is None:
                return {"success": False, "error": NOT_FOUND}
            return {"success": True, "data": _dump(note)}
        except Exception as e:
            return self.format_error("update", e)

    def delete(self, note_id: int) -> Result:
        try:
            deleted = self.repository.delete(note_id)
            return {
                "success": deleted,
                "message": "Note deleted" if deleted else NOT_FOUND,
            }
        except Exception as e:
            return self.format_error("delete", e)

    def add_bulk(self, notes: Sequence[BulkItem]) -> Result:
        try:
            ids = self.repository.add_bulk(notes)
            return {"success": True, "data": ids, "count": len(ids)}
        except Exception as e:
            return self.format_error("add_bulk", e)

    def search(self, query: Optional[str]) -> Result:
        try:
            notes = self.repository.search(query)
            return {"success": True, "data": _dump_all(notes), "count": len(notes)}
        except Exception as e:
            return self.format_error("search", e)

    def notes_pending_sync(self) -> Result:
        try:
            notes = self.tracker.notes_pending_sync()
            return {"success": True, "data": _dump_all(notes), "count": len(notes)}
        except Exception as e:
            return self.format_error("notes_pending_sync", e)

    def stats(self) -> Result:
        try:
            return {"success": True, "data": self.repository.stats()}
        except Exception as e:
            return self.format_error("stats", e)

    def sync_with_backend(self, api_url: Optional[str] = None) -> Result:
        return self.sync_service.sync(api_url).to_dict()

    def sync_status(self) -> Result:
        return {"success": True, "data": self.sync_service.get_status()}
