"""Repository for note storage and retrieval."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from notesync.exceptions import (
    BulkOperationError,
    ErrorCode,
    StorageError,
    ValidationError,
)
from notesync.models.db_models import DBNote
from notesync.models.schema import (
    Note,
    NoteDraft,
    SortColumn,
    SortOrder,
    SyncStatus,
    ensure_timezone_aware,
    utc_now,
)
from notesync.storage.engine import StorageEngine
from notesync.utils import escape_like_pattern

logger = logging.getLogger(__name__)

BulkItem = Union[NoteDraft, Mapping[str, Any]]


@contextmanager
def _storage_errors(
    operation: str, code: ErrorCode = ErrorCode.STORAGE_READ_FAILED
) -> Iterator[None]:
    """Re-raise engine errors as StorageError carrying the operation name."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Storage error during {operation}: {e}")
        raise StorageError(
            f"Failed to {operation.replace('_', ' ')} note(s): {e}",
            operation=operation,
            code=code,
            original_error=e,
        ) from e


class NoteRepository:
    """Repository for note storage and retrieval.

    The only writer of the ``notes`` table. Every statement is built from
    SQLAlchemy expressions, so values always travel as bound parameters.
    A missing id is reported as ``None``/``False``, never as an exception.
    """

    def __init__(self, storage: StorageEngine):
        """Initialize the repository.

        Args:
            storage: Open storage engine shared with the sync tracker.
        """
        self.storage = storage

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        """Convert a database row to a Note model."""
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content,
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
            synced_at=ensure_timezone_aware(db_note.synced_at),
            sync_status=SyncStatus(db_note.sync_status),
        )

    def add(self, title: str, content: Optional[str] = "") -> Note:
        """Create a new note with status pending.

        Returns:
            The persisted note, read back so it carries the engine-assigned
            id and timestamps.
        """
        now = utc_now()
        with _storage_errors("add", ErrorCode.STORAGE_WRITE_FAILED):
            with self.storage.session() as session:
                db_note = DBNote(
                    title=title,
                    content=content if content is not None else "",
                    created_at=now,
                    updated_at=now,
                    sync_status=SyncStatus.PENDING.value,
                )
                session.add(db_note)
                session.commit()
                note_id = db_note.id

        logger.debug(f"Added note {note_id}")
        return self.get_by_id(note_id)

    def get_by_id(self, note_id: int) -> Optional[Note]:
        """Get a note by ID.

        Returns:
            Note object if found, None otherwise
        """
        with _storage_errors("get"):
            with self.storage.session() as session:
                db_note = session.get(DBNote, note_id)
                if db_note is None:
                    return None
                return self._db_note_to_model(db_note)

    def list_notes(
        self,
        sort_by: Union[SortColumn, str, None] = SortColumn.CREATED_AT,
        order: Union[SortOrder, str, None] = SortOrder.DESC,
    ) -> List[Note]:
        """List all notes in the requested order.

        Args:
            sort_by: Column to sort by. Anything outside SortColumn falls
                     back to created_at.
            order: 'ASC' or 'DESC' in any case. Anything other than ASC
                   falls back to DESC.

        Returns:
            List of Note objects. Ties are broken by id in the same direction.
        """
        column = SortColumn.coerce(sort_by)
        direction = SortOrder.coerce(order)
        col = getattr(DBNote, column.value)

        query = select(DBNote)
        if direction is SortOrder.ASC:
            query = query.order_by(col.asc(), DBNote.id.asc())
        else:
            query = query.order_by(col.desc(), DBNote.id.desc())

        with _storage_errors("list"):
            with self.storage.session() as session:
                db_notes = session.execute(query).scalars().all()
                return [self._db_note_to_model(n) for n in db_notes]

    def update(
        self, note_id: int, title: str, content: Optional[str]
    ) -> Optional[Note]:
        """Overwrite title and content.

        Always refreshes updated_at and resets the sync status to pending,
        even when nothing changed or the note was already synced.

        Returns:
            The updated note, or None if no note has this id.
        """
        stmt = (
            update(DBNote)
            .where(DBNote.id == note_id)
            .values(
                title=title,
                content=content if content is not None else "",
                updated_at=utc_now(),
                sync_status=SyncStatus.PENDING.value,
            )
            .execution_options(synchronize_session=False)
        )
        with _storage_errors("update", ErrorCode.STORAGE_WRITE_FAILED):
            with self.storage.session() as session:
                result = session.execute(stmt)
                session.commit()
                changed = result.rowcount

        if changed == 0:
            return None
        return self.get_by_id(note_id)

    def delete(self, note_id: int) -> bool:
        """Hard-delete a note.

        Returns:
            True if a row was removed, False if no note has this id.
        """
        stmt = delete(DBNote).where(DBNote.id == note_id)
        with _storage_errors("delete", ErrorCode.STORAGE_DELETE_FAILED):
            with self.storage.session() as session:
                result = session.execute(stmt)
                session.commit()
                deleted = result.rowcount > 0

        if deleted:
            logger.debug(f"Deleted note {note_id}")
        return deleted

    @staticmethod
    def _to_draft(item: BulkItem, index: int) -> NoteDraft:
        """Accept a NoteDraft or a mapping with title/content keys."""
        if isinstance(item, NoteDraft):
            return item
        if not isinstance(item, Mapping):
            raise ValidationError(
                "Bulk items must be objects with a title and optional content",
                field=f"notes[{index}]",
                value=item,
            )
        try:
            return NoteDraft.model_validate(dict(item))
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid bulk item at position {index}: {e.errors()[0]['msg']}",
                field=f"notes[{index}]",
                value=item,
            ) from e

    def add_bulk(self, items: Sequence[BulkItem]) -> List[int]:
        """Insert many notes in one transaction.

        Either every row is committed or none is: if any insert fails, the
        whole batch is rolled back.

        Args:
            items: NoteDraft objects or mappings with ``title`` and optional
                   ``content``.

        Returns:
            The assigned ids, in input order.

        Raises:
            ValidationError: If an item is not a note-shaped object.
            BulkOperationError: If the engine rejected the batch.
        """
        drafts = [self._to_draft(item, i) for i, item in enumerate(items)]
        if not drafts:
            return []

        now = utc_now()
        ids: List[int] = []
        failed_index: Optional[int] = None
        with self.storage.session() as session:
            try:
                for index, draft in enumerate(drafts):
                    failed_index = index
                    db_note = DBNote(
                        title=draft.title,
                        content=draft.content if draft.content is not None else "",
                        created_at=now,
                        updated_at=now,
                        sync_status=SyncStatus.PENDING.value,
                    )
                    session.add(db_note)
                    session.flush()
                    ids.append(db_note.id)

                failed_index = None
                # This is the commit point - nothing is visible before it
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Bulk insert failed, rolled back {len(drafts)} notes: {e}")
                raise BulkOperationError(
                    f"Bulk insert failed: {e}",
                    operation="add_bulk",
                    total_count=len(drafts),
                    failed_index=failed_index,
                    original_error=e,
                ) from e

        logger.info(f"Bulk inserted {len(ids)} notes")
        return ids

    def search(self, query: Optional[str]) -> List[Note]:
        """Find notes whose title or content contains ``query``.

        Matching uses SQLite's LIKE (case-insensitive for ASCII). Wildcards in
        the query are escaped, so the match is a literal substring. An empty
        query matches every note.

        Returns:
            Matching notes, newest first.
        """
        search_term = escape_like_pattern(query or "")
        pattern = f"%{search_term}%"
        stmt = (
            select(DBNote)
            .where(
                or_(
                    DBNote.title.like(pattern, escape="\\"),
                    DBNote.content.like(pattern, escape="\\"),
                )
            )
            .order_by(DBNote.created_at.desc(), DBNote.id.desc())
        )
        with _storage_errors("search"):
            with self.storage.session() as session:
                db_notes = session.execute(stmt).scalars().all()
                return [self._db_note_to_model(n) for n in db_notes]

    def count_notes(self) -> int:
        """Get total count of notes."""
        with _storage_errors("count"):
            with self.storage.session() as session:
                return session.execute(select(func.count(DBNote.id))).scalar() or 0

    def stats(self) -> Dict[str, int]:
        """Get note counts, total and per sync status.

        Returns:
            Dict with keys total, pending, synced and error.
        """
        with _storage_errors("stats"):
            with self.storage.session() as session:
                rows = session.execute(
                    select(DBNote.sync_status, func.count(DBNote.id))
                    .group_by(DBNote.sync_status)
                ).all()

        by_status = {status.value: 0 for status in SyncStatus}
        for status, count in rows:
            by_status[status] = count
        return {
            "total": sum(by_status.values()),
            "pending": by_status[SyncStatus.PENDING.value],
            "synced": by_status[SyncStatus.SYNCED.value],
            "error": by_status[SyncStatus.ERROR.value],
        }
