"""Sync status ledger over the notes table."""

import logging
from typing import Iterable, List

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from notesync.exceptions import ErrorCode, StorageError
from notesync.models.db_models import DBNote
from notesync.models.schema import Note, SyncStatus, utc_now
from notesync.storage.engine import StorageEngine
from notesync.storage.note_repository import NoteRepository
from notesync.utils import unique_ids

logger = logging.getLogger(__name__)

# Statuses the next sync cycle retries
_NEEDS_SYNC = (SyncStatus.PENDING.value, SyncStatus.ERROR.value)


class SyncStatusTracker:
    """Tracks which notes still need to reach the remote.

    Only touches ``sync_status`` and ``synced_at``; title and content are
    owned by NoteRepository.
    """

    def __init__(self, storage: StorageEngine):
        self.storage = storage

    def notes_pending_sync(self) -> List[Note]:
        """Get notes whose status is pending or error, oldest first."""
        stmt = (
            select(DBNote)
            .where(DBNote.sync_status.in_(_NEEDS_SYNC))
            .order_by(DBNote.created_at.asc(), DBNote.id.asc())
        )
        try:
            with self.storage.session() as session:
                db_notes = session.execute(stmt).scalars().all()
                return [NoteRepository._db_note_to_model(n) for n in db_notes]
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to load notes pending sync: {e}",
                operation="notes_pending_sync",
                original_error=e,
            ) from e

    def mark_synced(self, ids: Iterable[int]) -> int:
        """Mark notes as accepted by the remote.

        Returns:
            Number of notes updated. An empty id list is a no-op returning 0.
        """
        return self._set_status(
            ids,
            {"sync_status": SyncStatus.SYNCED.value, "synced_at": utc_now()},
            operation="mark_synced",
        )

    def mark_error(self, ids: Iterable[int]) -> int:
        """Mark notes as rejected by the remote; synced_at is left as is.

        Returns:
            Number of notes updated. An empty id list is a no-op returning 0.
        """
        return self._set_status(
            ids,
            {"sync_status": SyncStatus.ERROR.value},
            operation="mark_error",
        )

    def _set_status(self, ids: Iterable[int], values: dict, operation: str) -> int:
        """Apply one UPDATE ... WHERE id IN (...) over the whole id list."""
        id_list = unique_ids(ids)
        if not id_list:
            return 0

        stmt = (
            update(DBNote)
            .where(DBNote.id.in_(id_list))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            with self.storage.session() as session:
                result = session.execute(stmt)
                session.commit()
                changed = result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed for {len(id_list)} notes: {e}")
            raise StorageError(
                f"Failed to update sync status: {e}",
                operation=operation,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        logger.debug(f"{operation}: {changed} of {len(id_list)} notes updated")
        return changed
