"""Storage engine adapter: the single point of contact with the SQLite file."""

import logging
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notesync.config import config
from notesync.exceptions import ErrorCode, StorageError
from notesync.models.db_models import create_db_engine, get_session_factory, init_db

logger = logging.getLogger(__name__)


class StorageEngine:
    """Owns the connection to one note database.

    Construct with :meth:`open` and release with :meth:`close`, or use the
    instance as a context manager so the connection is released on every
    exit path::

        with StorageEngine.open(path) as storage:
            storage.migrate()
            repository = NoteRepository(storage)
    """

    def __init__(self, engine: Engine, path: Optional[Path] = None):
        self._engine = engine
        self._path = path
        self._session_factory = get_session_factory(engine)
        self._closed = False

    @classmethod
    def open(cls, path: Optional[Union[str, Path]] = None) -> "StorageEngine":
        """Open (creating if absent) the database file at ``path``.

        Args:
            path: Database file. Relative paths are resolved against
                  ``config.base_dir``. If None, uses ``config.database_path``.

        Raises:
            StorageError: If the file cannot be opened.
        """
        try:
            if path is None:
                db_path = config.get_database_path()
            else:
                db_path = config.get_absolute_path(Path(path))
                db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create database directory: {e.strerror or e}",
                operation="open",
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
                original_error=e,
            ) from e

        engine = create_db_engine(f"sqlite:///{db_path}")
        try:
            # Connect eagerly so a bad path fails here, not on first query
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            engine.dispose()
            raise StorageError(
                f"Failed to open database {db_path.name}",
                operation="open",
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
                original_error=e,
            ) from e

        logger.info(f"Opened note database: {db_path}")
        return cls(engine, db_path)

    @property
    def path(self) -> Optional[Path]:
        """Path of the database file."""
        return self._path

    @property
    def engine(self) -> Engine:
        """The SQLAlchemy engine; raises once the adapter is closed."""
        self._ensure_open()
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError(
                "Database connection is closed",
                operation="connect",
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
            )

    def session(self) -> Session:
        """Start a new ORM session on the shared connection."""
        self._ensure_open()
        return self._session_factory()

    def migrate(self) -> None:
        """Ensure the notes table and its indexes exist.

        Idempotent; call on every startup.

        Raises:
            StorageError: If the schema cannot be created. The application
                          cannot proceed without it.
        """
        self._ensure_open()
        try:
            init_db(self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Schema migration failed: {e}")
            raise StorageError(
                "Failed to initialize database schema",
                operation="migrate",
                code=ErrorCode.SCHEMA_MIGRATION_FAILED,
                original_error=e,
            ) from e
        logger.debug("Database schema is up to date")

    def journal_mode(self) -> str:
        """Report the journal mode of the open connection (``wal`` normally)."""
        with self.engine.connect() as conn:
            return str(conn.execute(text("PRAGMA journal_mode")).scalar()).lower()

    def close(self) -> None:
        """Release the connection. Later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        logger.info("Database connection closed")

    def __enter__(self) -> "StorageEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<StorageEngine(path='{self._path}', {state})>"
