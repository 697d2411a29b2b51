# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
import json
from unittest.mock import MagicMock, patch

import pytest

from scratchpad_mcp.exceptions import StoreUnavailableError
from scratchpad_mcp.models.schema import generate_id
from scratchpad_mcp.server.mcp_server import ScratchpadMcpServer


class TestMcpServer:
    """Tests for the ScratchpadMcpServer class."""

    @pytest.fixture(autouse=True)
    def server(self, note_service):
        """Create a server whose FastMCP tool decorator captures functions."""
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper

        self.mock_mcp.tool = mock_tool_decorator
        self.service = note_service

        with patch("scratchpad_mcp.server.mcp_server.FastMCP", return_value=self.mock_mcp):
            self.server = ScratchpadMcpServer(service=note_service)
        yield self.server

    def call(self, name, **kwargs):
        return self.registered_tools[name](**kwargs)

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == {
            "list_categories",
            "get_notes",
            "search_notes",
            "get_recent_notes",
            "get_note",
            "create_note",
            "delete_note",
        }

    def test_create_note_tool(self):
        result = json.loads(
            self.call("create_note", category="Content Ideas", content="A thread idea")
        )
        assert result["category"] == "content-ideas"
        assert result["content"] == "A thread idea"
        assert len(result["id"]) == 24
        assert result["createdAt"] == result["updatedAt"]

    def test_create_note_validation_error(self):
        result = self.call("create_note", category="ideas", content="   ")
        assert result.startswith("Error:")
        assert "Content is required" in result

    def test_get_note_tool(self):
        note = self.service.create("ideas", "Body")
        result = json.loads(self.call("get_note", id=note.id))
        assert result["id"] == note.id
        assert result["content"] == "Body"

    def test_get_note_invalid_id(self):
        result = self.call("get_note", id="bogus")
        assert result.startswith("Error:")
        assert "Invalid note ID" in result

    def test_get_note_not_found(self):
        missing = generate_id()
        result = self.call("get_note", id=missing)
        assert result == f"Error: Note with ID '{missing}' not found"

    def test_get_notes_tool(self):
        a = self.service.create("ideas", "A")
        b = self.service.create("ideas", "B")
        self.service.create("other", "C")
        result = json.loads(self.call("get_notes", category="Ideas"))
        assert [n["id"] for n in result] == [b.id, a.id]

    def test_get_notes_requires_category(self):
        assert self.call("get_notes", category="  ").startswith("Error:")

    def test_get_notes_pagination(self):
        notes = [self.service.create("ideas", str(i)) for i in range(3)]
        result = json.loads(self.call("get_notes", category="ideas", limit=1, offset=1))
        assert [n["id"] for n in result] == [notes[1].id]

    def test_search_notes_tool(self):
        hit = self.service.create("ideas", "python generators")
        self.service.create("ideas", "gardening")
        result = json.loads(self.call("search_notes", query="python"))
        assert [n["id"] for n in result] == [hit.id]

    def test_search_notes_requires_query(self):
        assert self.call("search_notes", query="").startswith("Error:")

    def test_search_notes_rejects_bad_date(self):
        self.service.create("ideas", "python")
        result = self.call("search_notes", query="python", since="last tuesday")
        assert result.startswith("Error:")
        assert "since" in result

    def test_search_notes_accepts_dates(self):
        hit = self.service.create("ideas", "python")
        result = json.loads(
            self.call(
                "search_notes",
                query="python",
                since="2000-01-01",
                until="2999-01-01T00:00:00Z",
            )
        )
        assert [n["id"] for n in result] == [hit.id]

    def test_get_recent_notes_tool(self):
        a = self.service.create("one", "A")
        b = self.service.create("two", "B")
        result = json.loads(self.call("get_recent_notes"))
        assert [n["id"] for n in result] == [b.id, a.id]

    def test_get_recent_notes_rejects_bad_date(self):
        assert self.call("get_recent_notes", since="soon").startswith("Error:")

    def test_list_categories_tool(self):
        self.service.create("ideas", "A")
        self.service.create("ideas", "B")
        result = json.loads(self.call("list_categories"))
        assert result[0]["name"] == "ideas"
        assert result[0]["count"] == 2
        assert "lastNote" in result[0]

    def test_list_categories_empty(self):
        assert json.loads(self.call("list_categories")) == []

    def test_delete_note_tool(self):
        note = self.service.create("ideas", "A")
        assert "deleted" in self.call("delete_note", id=note.id)
        result = self.call("delete_note", id=note.id)
        assert result.startswith("Error:")
        assert "not found" in result

    def test_store_failure_is_generic(self):
        with patch.object(
            self.service,
            "list_categories",
            side_effect=StoreUnavailableError("database is locked"),
        ):
            result = self.call("list_categories")
        assert result.startswith("Error: The note store is unavailable (ref: ")
        assert "locked" not in result

    def test_unexpected_error_is_generic(self):
        with patch.object(self.service, "recent", side_effect=RuntimeError("kaboom")):
            result = self.call("get_recent_notes")
        assert result.startswith("Error: An unexpected error occurred")
        assert "kaboom" not in result

    def test_run_uses_transport(self):
        self.server.run("streamable-http")
        self.mock_mcp.run.assert_called_once_with(transport="streamable-http")
