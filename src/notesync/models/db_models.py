"""SQLAlchemy database models for notesync."""
import logging
from typing import List

from sqlalchemy import (Column, DateTime, Index, Integer, String, Text,
                        create_engine, event, inspect, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from notesync.models.schema import SyncStatus, utc_now

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    # AUTOINCREMENT keeps ids monotonic: a deleted id is never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=True, default="")
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)
    synced_at = Column(DateTime, nullable=True)
    sync_status = Column(
        String(16),
        default=SyncStatus.PENDING.value,
        server_default=SyncStatus.PENDING.value,
        nullable=False,
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return (
            f"<Note(id={self.id}, title='{self.title}', "
            f"sync_status='{self.sync_status}')>"
        )


# Default listing order is newest first
Index("idx_notes_created_at", DBNote.created_at.desc())
# Pending-sync lookups
Index("idx_notes_sync_status", DBNote.sync_status)
# Search and title sort
Index("idx_notes_title", DBNote.title)


def create_db_engine(db_url: str) -> Engine:
    """Create the engine for one database file with hardened configuration.

    The engine holds a single connection (StaticPool) for the whole process;
    SQLite is single-writer, so every repository shares that connection.
    Each connection gets:
    - WAL (Write-Ahead Logging) mode so readers are not blocked by the writer
    - NORMAL synchronous mode (good balance of safety vs speed)
    - a busy timeout so a locked file waits instead of failing at once
    """
    engine = create_engine(
        db_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    """Create the notes table and its indexes, upgrading older schemas.

    Safe to run on every startup: creation is conditional on absence.
    """
    Base.metadata.create_all(engine)

    # Run migrations for schema updates
    _migrate_add_sync_columns(engine)

    # create_all skips indexes of tables that already existed
    for index in DBNote.__table__.indexes:
        index.create(bind=engine, checkfirst=True)


def _migrate_add_sync_columns(engine: Engine) -> List[str]:
    """Migration: add sync bookkeeping columns to databases that predate them.

    SQLite doesn't support IF NOT EXISTS for ADD COLUMN, so we check
    the schema first. This is idempotent and safe to run multiple times.

    Returns:
        Names of the columns that were added.
    """
    inspector = inspect(engine)
    columns = [col['name'] for col in inspector.get_columns('notes')]
    added = []

    with engine.connect() as conn:
        if 'synced_at' not in columns:
            conn.execute(text("ALTER TABLE notes ADD COLUMN synced_at DATETIME"))
            added.append('synced_at')
        if 'sync_status' not in columns:
            conn.execute(text(
                "ALTER TABLE notes ADD COLUMN sync_status VARCHAR(16) "
                "NOT NULL DEFAULT 'pending'"
            ))
            added.append('sync_status')
        conn.commit()

    if added:
        logger.info(f"Migrated notes table, added columns: {added}")
    return added


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
