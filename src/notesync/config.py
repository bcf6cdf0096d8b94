"""Configuration module for notesync."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notesync import __version__
from notesync.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default log directory
_USER_ENV = Path.home() / ".notesync" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Upper bound for the sync request timeout (seconds)
_MAX_SYNC_TIMEOUT = 600.0


class NotesyncConfig(BaseModel):
    """Configuration for the note store and its sync client."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTESYNC_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTESYNC_DATABASE_PATH", "data/notesync.db")
        )
    )
    # Remote sync configuration
    sync_api_url: str = Field(
        default_factory=lambda: os.getenv(
            "NOTESYNC_SYNC_API_URL", "http://localhost:3000"
        )
    )
    # Seconds before an in-flight sync request is abandoned
    sync_timeout: float = Field(
        default_factory=lambda: float(os.getenv("NOTESYNC_SYNC_TIMEOUT", "30"))
    )
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTESYNC_LOG_DIR"))
            if os.getenv("NOTESYNC_LOG_DIR")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTESYNC_LOG_LEVEL", "INFO").upper()
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("NOTESYNC_SERVER_NAME", "notesync"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_sync_config(self) -> "NotesyncConfig":
        """Validate sync settings."""
        if self.sync_timeout <= 0:
            raise ConfigurationError(
                "sync_timeout must be > 0", config_key="sync_timeout"
            )
        if self.sync_timeout > _MAX_SYNC_TIMEOUT:
            logger.warning(
                "sync_timeout=%.1fs is unusually long; a hung remote will block "
                "the sync cycle for that long.",
                self.sync_timeout,
            )
        if not self.sync_api_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                "sync_api_url must be an http(s) URL", config_key="sync_api_url"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_database_path(self) -> Path:
        """Get the absolute database file path, creating its directory."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return db_path


# Create a global config instance
config = NotesyncConfig()
