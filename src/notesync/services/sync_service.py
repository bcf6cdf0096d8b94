"""Sync service: pushes pending notes to the remote API in one batch.

One cycle is strictly sequential: collect the notes that still need to
reach the remote, send them in a single POST, then reconcile local sync
statuses from the remote's own accept/reject lists. The remote call is the
only blocking step and runs under a bounded timeout.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from notesync.config import config
from notesync.exceptions import ErrorCode, StorageError, SyncError, failed_ids_preview
from notesync.models.schema import (
    Note,
    SyncOutcome,
    SyncRequest,
    SyncResponse,
    SyncResult,
)
from notesync.storage.sync_tracker import SyncStatusTracker
from notesync.utils import unique_ids

logger = logging.getLogger(__name__)

SYNC_PATH = "/api/sync"

OFFLINE_ERROR = "Network error: App appears to be offline"
OFFLINE_MESSAGE = (
    "Cannot sync while offline. Changes will be synced when connection is restored."
)
FAILED_MESSAGE = "Sync failed. Please try again later."


class SyncService:
    """Runs sync cycles against the remote ``/api/sync`` endpoint."""

    def __init__(
        self,
        tracker: SyncStatusTracker,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Initialize the service.

        Args:
            tracker: Sync status ledger of the local store.
            api_url: Base URL of the remote API. Defaults to config.sync_api_url.
            timeout: Seconds before the remote call is abandoned.
                     Defaults to config.sync_timeout.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self.tracker = tracker
        self._api_url = api_url or config.sync_api_url
        self._timeout = timeout if timeout is not None else config.sync_timeout
        self._transport = transport
        self._sync_lock = threading.Lock()
        self._last_sync_time: Optional[datetime] = None
        self._last_result: Optional[SyncResult] = None

    @property
    def in_progress(self) -> bool:
        """Whether a sync cycle is currently running."""
        return self._sync_lock.locked()

    def get_status(self) -> Dict[str, Any]:
        """Get sync status information."""
        return {
            "api_url": self._api_url,
            "timeout": self._timeout,
            "in_progress": self.in_progress,
            "last_sync_time": (
                self._last_sync_time.isoformat() if self._last_sync_time else None
            ),
            "last_outcome": (
                self._last_result.outcome.value if self._last_result else None
            ),
        }

    def sync(self, api_url: Optional[str] = None) -> SyncResult:
        """Run one sync cycle. Never raises.

        A call made while another cycle is running on this service returns
        a BUSY result without contacting the remote.

        Args:
            api_url: Base URL override for this cycle.

        Returns:
            SyncResult describing how the cycle ended.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.warning("Sync requested while another sync cycle is running")
            return SyncResult(
                SyncOutcome.BUSY,
                message="A sync is already in progress.",
                error="Sync already in progress",
            )

        try:
            result = self._run_cycle(api_url or self._api_url)
        except Exception as e:
            logger.error(f"Unexpected sync failure: {e}", exc_info=True)
            result = SyncResult(SyncOutcome.FAILED, message=FAILED_MESSAGE, error=str(e))
        finally:
            self._sync_lock.release()

        self._last_sync_time = datetime.now(timezone.utc)
        self._last_result = result
        logger.info(
            f"Sync cycle finished: outcome={result.outcome.value}, "
            f"synced={result.synced}, failed={result.failed}"
        )
        return result

    def _run_cycle(self, api_url: str) -> SyncResult:
        """Collect, transmit, interpret, reconcile, report."""
        try:
            pending = self.tracker.notes_pending_sync()
        except StorageError as e:
            logger.error(f"Could not collect notes pending sync: {e}")
            return SyncResult(
                SyncOutcome.STORAGE_ERROR, message=FAILED_MESSAGE, error=e.message
            )

        if not pending:
            return SyncResult(SyncOutcome.NOTHING_TO_SYNC, message="No notes to sync")

        logger.info(f"Sending {len(pending)} notes to {api_url}")
        try:
            response = self._post_batch(api_url, pending)
        except SyncError as e:
            if e.offline:
                logger.warning(f"Sync skipped, remote unreachable: {e}")
                return SyncResult(
                    SyncOutcome.OFFLINE, message=OFFLINE_MESSAGE, error=OFFLINE_ERROR
                )
            logger.error(f"Sync rejected by remote: {e}")
            return SyncResult(
                SyncOutcome.REMOTE_ERROR, message=FAILED_MESSAGE, error=e.message
            )

        return self._reconcile(pending, response)

    def _post_batch(self, api_url: str, notes: List[Note]) -> SyncResponse:
        """Send the batch and parse the remote's answer.

        Raises:
            SyncError: SYNC_OFFLINE on any transport failure (unreachable
                       host, timeout, dropped connection, proxy failure);
                       SYNC_REMOTE_FAILED on a non-2xx status;
                       SYNC_INVALID_RESPONSE on an unreadable body.
        """
        url = api_url.rstrip("/") + SYNC_PATH
        body = SyncRequest(notes=[note.to_sync_payload() for note in notes])

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(url, json=body.model_dump())
                response.raise_for_status()
        except httpx.TransportError as e:
            raise SyncError(
                f"Remote unreachable: {e}",
                operation="transmit",
                code=ErrorCode.SYNC_OFFLINE,
                original_error=e,
            ) from e
        except httpx.HTTPStatusError as e:
            raise SyncError(
                f"Sync failed: {e.response.status_code} {e.response.reason_phrase}",
                operation="transmit",
                status_code=e.response.status_code,
                code=ErrorCode.SYNC_REMOTE_FAILED,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise SyncError(
                f"Sync request failed: {e}",
                operation="transmit",
                code=ErrorCode.SYNC_REMOTE_FAILED,
                original_error=e,
            ) from e

        try:
            return SyncResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise SyncError(
                "Remote returned an invalid sync response",
                operation="interpret",
                status_code=response.status_code,
                code=ErrorCode.SYNC_INVALID_RESPONSE,
                original_error=e,
            ) from e

    def _reconcile(self, sent: List[Note], response: SyncResponse) -> SyncResult:
        """Apply the remote's accept/reject lists to local statuses.

        Both status passes are attempted even if the first one fails.
        """
        sent_ids = {note.id for note in sent}
        synced_ids = unique_ids(i for i in response.synced_ids if i in sent_ids)
        failed_ids = unique_ids(i for i in response.failed_ids if i in sent_ids)

        unknown = [
            i for i in response.synced_ids + response.failed_ids if i not in sent_ids
        ]
        if unknown:
            logger.warning(
                f"Remote returned {len(unknown)} ids that were not sent, ignoring: "
                f"{failed_ids_preview(unknown)}"
            )

        errors: List[str] = []
        try:
            self.tracker.mark_synced(synced_ids)
        except StorageError as e:
            errors.append(e.message)
        try:
            self.tracker.mark_error(failed_ids)
        except StorageError as e:
            errors.append(e.message)

        if errors:
            return SyncResult(
                SyncOutcome.STORAGE_ERROR,
                synced=len(synced_ids),
                failed=len(failed_ids),
                message="Remote answered but local sync statuses could not be updated.",
                error="; ".join(errors),
                remote_message=response.message,
            )

        message = f"Synced {len(synced_ids)} notes successfully"
        if failed_ids:
            message += f", {len(failed_ids)} rejected by the remote"
        return SyncResult(
            SyncOutcome.SYNCED,
            synced=len(synced_ids),
            failed=len(failed_ids),
            message=message,
            remote_message=response.message,
        )
