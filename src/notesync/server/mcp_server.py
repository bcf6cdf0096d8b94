"""MCP server exposing the note operations as tools."""

import json
import logging
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from notesync.config import config
from notesync.observability import metrics, timed_operation
from notesync.server.operations import NoteOperations
from notesync.services.sync_service import SyncService
from notesync.storage.engine import StorageEngine
from notesync.storage.note_repository import NoteRepository
from notesync.storage.sync_tracker import SyncStatusTracker

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB


def _validate_note_input(title: Any, content: Any = None) -> Optional[str]:
    """Check a title/content pair at the tool boundary.

    Returns:
        An error message, or None when the input is acceptable.
    """
    if title is not None and not isinstance(title, str):
        return "Title must be a string"
    if content is not None and not isinstance(content, str):
        return "Content must be a string"
    if not title or not title.strip():
        return "Title is required"
    if len(title) > MAX_TITLE_LENGTH:
        return f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
    if content and len(content) > MAX_CONTENT_LENGTH:
        return f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
    return None


class NotesMcpServer:
    """MCP server for the note store."""

    def __init__(self, storage: StorageEngine, sync_service: Optional[SyncService] = None):
        """Initialize the MCP server.

        Args:
            storage: Open, migrated storage engine. The caller owns its
                     lifetime and closes it after run() returns.
            sync_service: Sync service to use. Built from config if None.
        """
        self.mcp = FastMCP(config.server_name)
        repository = NoteRepository(storage)
        tracker = SyncStatusTracker(storage)
        if sync_service is None:
            sync_service = SyncService(
                tracker, api_url=config.sync_api_url, timeout=config.sync_timeout
            )
        self.operations = NoteOperations(repository, tracker, sync_service)
        self._register_tools()
        logger.info("Notes MCP server initialized")

    @staticmethod
    def _respond(op: Dict[str, Any], result: Dict[str, Any]) -> str:
        """Record the outcome on the timed operation and serialize the result."""
        op["success"] = result.get("success", False)
        if not op["success"]:
            op["error"] = result.get("error") or result.get("message")
        if "count" in result:
            op["result_count"] = result["count"]
        return json.dumps(result, indent=2)

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="notes_add")
        def notes_add(title: str, content: str = "") -> str:
            """Create a new note. It starts out pending sync.
            Args:
                title: The title of the note (required)
                content: The body of the note
            """
            with timed_operation("notes_add", title=title[:30]) as op:
                error = _validate_note_input(title, content)
                if error:
                    return self._respond(op, {"success": False, "error": error})
                return self._respond(op, self.operations.add(title, content))

        @self.mcp.tool(name="notes_get")
        def notes_get(note_id: int) -> str:
            """Get a note by its id.
            Args:
                note_id: The id of the note
            """
            with timed_operation("notes_get", note_id=note_id) as op:
                return self._respond(op, self.operations.get_by_id(note_id))

        @self.mcp.tool(name="notes_list")
        def notes_list(sort_by: str = "created_at", order: str = "DESC") -> str:
            """List all notes.
            Args:
                sort_by: One of id, title, created_at, updated_at (default created_at)
                order: ASC or DESC (default DESC)
            """
            with timed_operation("notes_list", sort_by=sort_by, order=order) as op:
                return self._respond(op, self.operations.list_notes(sort_by, order))

        @self.mcp.tool(name="notes_update")
        def notes_update(note_id: int, title: str, content: str = "") -> str:
            """Replace a note's title and content. The note becomes pending sync again.
            Args:
                note_id: The id of the note
                title: The new title
                content: The new content
            """
            with timed_operation("notes_update", note_id=note_id) as op:
                error = _validate_note_input(title, content)
                if error:
                    return self._respond(op, {"success": False, "error": error})
                return self._respond(op, self.operations.update(note_id, title, content))

        @self.mcp.tool(name="notes_delete")
        def notes_delete(note_id: int) -> str:
            """Permanently delete a note.
            Args:
                note_id: The id of the note
            """
            with timed_operation("notes_delete", note_id=note_id) as op:
                return self._respond(op, self.operations.delete(note_id))

        @self.mcp.tool(name="notes_add_bulk")
        def notes_add_bulk(notes: str) -> str:
            """Create many notes at once; either all are created or none.
            Args:
                notes: JSON array of objects with "title" and optional "content"
            """
            with timed_operation("notes_add_bulk") as op:
                try:
                    items = json.loads(notes)
                except json.JSONDecodeError as e:
                    return self._respond(
                        op, {"success": False, "error": f"Invalid JSON: {e.msg}"}
                    )
                if not isinstance(items, list):
                    return self._respond(
                        op, {"success": False, "error": "Expected a JSON array of notes"}
                    )
                for index, item in enumerate(items):
                    error = _validate_note_input(
                        item.get("title") if isinstance(item, dict) else None,
                        item.get("content") if isinstance(item, dict) else None,
                    )
                    if error:
                        return self._respond(
                            op, {"success": False, "error": f"notes[{index}]: {error}"}
                        )
                return self._respond(op, self.operations.add_bulk(items))

        @self.mcp.tool(name="notes_search")
        def notes_search(query: str) -> str:
            """Find notes whose title or content contains the query.
            Args:
                query: Text to look for (an empty query returns every note)
            """
            with timed_operation("notes_search", query=query[:30]) as op:
                return self._respond(op, self.operations.search(query))

        @self.mcp.tool(name="notes_pending_sync")
        def notes_pending_sync() -> str:
            """List the notes the next sync will send, oldest first."""
            with timed_operation("notes_pending_sync") as op:
                return self._respond(op, self.operations.notes_pending_sync())

        @self.mcp.tool(name="notes_stats")
        def notes_stats() -> str:
            """Count notes in total and by sync status."""
            with timed_operation("notes_stats") as op:
                return self._respond(op, self.operations.stats())

        @self.mcp.tool(name="notes_sync")
        def notes_sync(api_url: Optional[str] = None) -> str:
            """Send every pending or failed note to the remote API.
            Args:
                api_url: Base URL of the remote (defaults to the configured one)
            """
            with timed_operation("notes_sync", api_url=api_url or "default") as op:
                return self._respond(op, self.operations.sync_with_backend(api_url))

        @self.mcp.tool(name="notes_sync_status")
        def notes_sync_status() -> str:
            """Show whether a sync is running and how the last one ended."""
            with timed_operation("notes_sync_status") as op:
                return self._respond(op, self.operations.sync_status())

        @self.mcp.tool(name="notes_metrics")
        def notes_metrics() -> str:
            """Show call counts, error counts and timings for every tool."""
            # Read before timing this call so it does not count itself
            result = {
                "success": True,
                "data": {
                    "version": config.server_version,
                    "summary": metrics.get_summary(),
                    "operations": metrics.get_metrics(),
                },
            }
            with timed_operation("notes_metrics") as op:
                return self._respond(op, result)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
