# tests/test_mcp_server.py
"""Tests for the MCP server tools."""
import json
from unittest.mock import MagicMock, patch

import pytest

from notesync.observability import metrics
from notesync.server.mcp_server import (
    MAX_TITLE_LENGTH,
    NotesMcpServer,
    _validate_note_input,
)


class TestMcpServer:
    """Tests for the NotesMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, storage, sync_service):
        """Create a server with FastMCP mocked so tools can be called directly."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        with patch("notesync.server.mcp_server.FastMCP", return_value=self.mock_mcp):
            self.server = NotesMcpServer(storage, sync_service=sync_service)
        yield self.server

    def call(self, name, **kwargs):
        return json.loads(self.registered_tools[name](**kwargs))

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == {
            "notes_add", "notes_get", "notes_list", "notes_update",
            "notes_delete", "notes_add_bulk", "notes_search",
            "notes_pending_sync", "notes_stats", "notes_sync",
            "notes_sync_status", "notes_metrics",
        }

    def test_add_and_get(self):
        created = self.call("notes_add", title="Hello", content="World")
        assert created["success"] is True
        note_id = created["data"]["id"]

        fetched = self.call("notes_get", note_id=note_id)
        assert fetched["data"]["content"] == "World"

    def test_add_requires_title(self):
        result = self.call("notes_add", title="   ")
        assert result == {"success": False, "error": "Title is required"}
        assert self.call("notes_stats")["data"]["total"] == 0

    def test_list_update_delete(self):
        note_id = self.call("notes_add", title="b")["data"]["id"]
        self.call("notes_add", title="a")

        listed = self.call("notes_list", sort_by="title", order="asc")
        assert [n["title"] for n in listed["data"]] == ["a", "b"]

        updated = self.call("notes_update", note_id=note_id, title="c", content="")
        assert updated["data"]["title"] == "c"

        assert self.call("notes_delete", note_id=note_id)["success"] is True
        assert self.call("notes_get", note_id=note_id)["success"] is False

    def test_update_requires_title(self):
        note_id = self.call("notes_add", title="keep")["data"]["id"]
        result = self.call("notes_update", note_id=note_id, title="")
        assert result["success"] is False
        assert self.call("notes_get", note_id=note_id)["data"]["title"] == "keep"

    def test_add_bulk(self):
        payload = json.dumps([{"title": "one"}, {"title": "two", "content": "2"}])
        result = self.call("notes_add_bulk", notes=payload)
        assert result["success"] is True
        assert result["count"] == 2

    def test_add_bulk_invalid_json(self):
        result = self.call("notes_add_bulk", notes="[{not json")
        assert result["success"] is False
        assert result["error"].startswith("Invalid JSON")

    def test_add_bulk_not_a_list(self):
        result = self.call("notes_add_bulk", notes='{"title": "x"}')
        assert result["error"] == "Expected a JSON array of notes"

    def test_add_bulk_item_without_title(self):
        payload = json.dumps([{"title": "ok"}, {"content": "missing"}])
        result = self.call("notes_add_bulk", notes=payload)
        assert result == {"success": False, "error": "notes[1]: Title is required"}
        assert self.call("notes_stats")["data"]["total"] == 0

    def test_add_bulk_non_string_fields(self):
        result = self.call("notes_add_bulk", notes='[{"title": 5}]')
        assert result == {"success": False, "error": "notes[0]: Title must be a string"}

        payload = json.dumps([{"title": "ok"}, {"title": "x", "content": ["a"]}])
        result = self.call("notes_add_bulk", notes=payload)
        assert result == {"success": False, "error": "notes[1]: Content must be a string"}
        assert self.call("notes_stats")["data"]["total"] == 0

    def test_search_and_pending(self):
        self.call("notes_add", title="grocery list")
        assert self.call("notes_search", query="grocery")["count"] == 1
        assert self.call("notes_pending_sync")["count"] == 1

    def test_sync_tool(self, fake_backend):
        self.call("notes_add", title="x")
        result = self.call("notes_sync")
        assert result["success"] is True
        assert result["synced"] == 1
        assert fake_backend.call_count == 1
        assert self.call("notes_sync_status")["data"]["last_outcome"] == "synced"

    def test_sync_tool_offline(self, fake_backend):
        self.call("notes_add", title="x")
        fake_backend.go_offline()
        result = self.call("notes_sync")
        assert result["offline"] is True
        assert metrics.get_metrics()["notes_sync"]["error_count"] == 1

    def test_tools_record_metrics(self):
        self.call("notes_add", title="x")
        self.call("notes_get", note_id=9999)
        recorded = metrics.get_metrics()
        assert recorded["notes_add"]["success_count"] == 1
        assert recorded["notes_get"]["error_count"] == 1
        assert recorded["notes_get"]["last_error"] == "Note not found"

    def test_metrics_tool(self):
        self.call("notes_add", title="x")
        self.call("notes_get", note_id=9999)

        result = self.call("notes_metrics")

        assert result["success"] is True
        data = result["data"]
        assert data["version"]
        assert data["summary"]["total_operations"] == 2
        assert data["summary"]["total_errors"] == 1
        assert set(data["operations"]) == {"notes_add", "notes_get"}
        assert data["operations"]["notes_get"]["last_error"] == "Note not found"
        assert metrics.get_metrics()["notes_metrics"]["count"] == 1

    def test_run_delegates_to_fastmcp(self):
        self.server.run()
        self.mock_mcp.run.assert_called_once()


class TestInputValidation:
    """Boundary checks on titles and content."""

    def test_valid(self):
        assert _validate_note_input("Title", "body") is None

    def test_missing_title(self):
        assert _validate_note_input(None) == "Title is required"

    def test_title_too_long(self):
        assert "maximum length" in _validate_note_input("x" * (MAX_TITLE_LENGTH + 1))

    def test_non_string_title(self):
        assert _validate_note_input(42, "body") == "Title must be a string"
        assert _validate_note_input(["a"]) == "Title must be a string"

    def test_non_string_content(self):
        assert _validate_note_input("Title", {"text": "x"}) == "Content must be a string"
