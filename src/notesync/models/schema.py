"""Data models for notesync."""

import datetime
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(
    dt_value: Optional[datetime.datetime],
) -> Optional[datetime.datetime]:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite stores DATETIME values without an offset, so every value read back
    from the database passes through here.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise
        unchanged. ``None`` is passed through.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class SyncStatus(str, Enum):
    """Sync state of a note relative to the remote store."""

    PENDING = "pending"  # Latest local state not yet accepted by the remote
    SYNCED = "synced"  # Remote accepted the latest local state
    ERROR = "error"  # Remote looked at the note and rejected it


class SortColumn(str, Enum):
    """Columns a note listing may be ordered by."""

    ID = "id"
    TITLE = "title"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"

    @classmethod
    def coerce(cls, value: Union["SortColumn", str, None]) -> "SortColumn":
        """Map any input to a sort column, falling back to ``created_at``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.CREATED_AT


class SortOrder(str, Enum):
    """Direction of a note listing."""

    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def coerce(cls, value: Union["SortOrder", str, None]) -> "SortOrder":
        """Map any input to a direction; only ``asc`` (any case) is ascending."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.upper() == "ASC":
            return cls.ASC
        return cls.DESC


class Note(BaseModel):
    """A persisted note with its sync bookkeeping."""

    id: int = Field(..., description="Engine-assigned row id")
    title: str = Field(..., description="Title of the note")
    content: str = Field(default="", description="Content of the note")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )
    synced_at: Optional[datetime.datetime] = Field(
        default=None, description="When the remote last accepted the note (UTC)"
    )
    sync_status: SyncStatus = Field(
        default=SyncStatus.PENDING, description="Sync state of the note"
    )

    model_config = {"extra": "forbid"}

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, v: Optional[str]) -> str:
        """Treat a NULL content column as empty text."""
        return "" if v is None else v

    def to_sync_payload(self) -> Dict[str, Any]:
        """Project the note to the shape sent to the remote.

        Sync bookkeeping (``synced_at``, ``sync_status``) is never sent.
        """
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class NoteDraft(BaseModel):
    """Title/content pair accepted by bulk insert."""

    title: Optional[str] = Field(default=None, description="Title of the note")
    content: Optional[str] = Field(default="", description="Content of the note")

    model_config = {"extra": "ignore"}


class SyncRequest(BaseModel):
    """Body of ``POST /api/sync``."""

    notes: List[Dict[str, Any]] = Field(default_factory=list)


class SyncResponse(BaseModel):
    """Body the remote returns from a 2xx ``POST /api/sync``."""

    synced_ids: List[int] = Field(default_factory=list, alias="syncedIds")
    failed_ids: List[int] = Field(default_factory=list, alias="failedIds")
    message: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("synced_ids", "failed_ids", mode="before")
    @classmethod
    def validate_id_list(cls, v: Any) -> Any:
        """A JSON null list means no ids."""
        return [] if v is None else v


class SyncOutcome(str, Enum):
    """How a sync cycle ended."""

    SYNCED = "synced"  # Remote answered and statuses were reconciled
    NOTHING_TO_SYNC = "nothing_to_sync"
    OFFLINE = "offline"  # Remote unreachable; no status was touched
    REMOTE_ERROR = "remote_error"  # Remote answered with a failure; no status was touched
    STORAGE_ERROR = "storage_error"
    BUSY = "busy"  # Another cycle was already running
    FAILED = "failed"  # Unexpected error


@dataclass
class SyncResult:
    """Structured outcome of one sync cycle.

    Attributes:
        outcome: How the cycle ended.
        synced: Number of notes the remote accepted.
        failed: Number of notes the remote rejected.
        message: Human-readable summary.
        error: Failure description, if the cycle failed.
        remote_message: Message returned by the remote, if any.
    """

    outcome: SyncOutcome
    synced: int = 0
    failed: int = 0
    message: str = ""
    error: Optional[str] = None
    remote_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome in (SyncOutcome.SYNCED, SyncOutcome.NOTHING_TO_SYNC)

    @property
    def offline(self) -> bool:
        return self.outcome is SyncOutcome.OFFLINE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the caller-visible result shape."""
        result: Dict[str, Any] = {
            "success": self.success,
            "outcome": self.outcome.value,
            "synced": self.synced,
            "failed": self.failed,
            "message": self.message,
        }
        if self.error:
            result["error"] = self.error
        if self.offline:
            result["offline"] = True
        if self.remote_message:
            result["remote_message"] = self.remote_message
        return result
