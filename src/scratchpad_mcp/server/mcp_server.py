"""MCP server implementation for the Scratchpad."""

import json
import logging
import uuid
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from scratchpad_mcp.config import config
from scratchpad_mcp.exceptions import ScratchpadError, StorageError, ValidationError
from scratchpad_mcp.models.schema import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_RECENT_LIMIT,
    ListQuery,
    RecentQuery,
    SearchQuery,
    parse_date_filter,
)
from scratchpad_mcp.observability import timed_operation
from scratchpad_mcp.services.note_service import NoteService

logger = logging.getLogger(__name__)


def _to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _parse_tool_date(value: Optional[str], field: str):
    """Parse an optional date argument, rejecting values that cannot be read."""
    if value is None or not value.strip():
        return None
    parsed = parse_date_filter(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid '{field}' date: use RFC 3339 (2024-05-01T10:00:00Z) "
            f"or YYYY-MM-DD",
            field=field,
            value=value,
        )
    return parsed


class ScratchpadMcpServer:
    """MCP server exposing the note store as agent tools."""

    def __init__(self, service: NoteService, name: Optional[str] = None):
        """Initialize the MCP server.

        Args:
            service: Note service shared with the other adapters.
            name: Server name reported to clients. Defaults to config.server_name.
        """
        self.service = service
        self.mcp = FastMCP(name or config.server_name, version=config.server_version)
        self._register_tools()
        logger.info("Scratchpad MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, StorageError):
            # Store failures - don't expose database internals
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: The note store is unavailable (ref: {error_id})"
        elif isinstance(error, ScratchpadError):
            logger.warning(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="list_categories")
        def list_categories() -> str:
            """List all note categories with note counts and last activity.
            Categories are ordered by most recent note first.
            """
            with timed_operation("tool_list_categories") as op:
                try:
                    categories = self.service.list_categories()
                    op["result_count"] = len(categories)
                    return _to_json([c.to_dict() for c in categories])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="get_notes")
        def get_notes(
            category: str, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0
        ) -> str:
            """Get notes from a category, newest first.
            Args:
                category: Category name (e.g. "twitter-analytics", "Content Ideas")
                limit: Maximum number of notes to return (default 50, max 200)
                offset: Number of notes to skip for pagination
            """
            with timed_operation("tool_get_notes", category=category) as op:
                try:
                    if not category or not category.strip():
                        raise ValidationError("category is required", field="category")
                    notes = self.service.list(
                        ListQuery(category=category, limit=limit, offset=offset)
                    )
                    op["result_count"] = len(notes)
                    return _to_json([n.to_dict() for n in notes])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="search_notes")
        def search_notes(
            query: str,
            category: Optional[str] = None,
            since: Optional[str] = None,
            until: Optional[str] = None,
            limit: int = DEFAULT_LIST_LIMIT,
        ) -> str:
            """Full-text search across note content, best matches first.
            Args:
                query: Words to search for; FTS5 syntax (OR, "phrases", prefix*) is allowed
                category: Optional category to search within
                since: Only notes created at or after this date (RFC 3339 or YYYY-MM-DD)
                until: Only notes created at or before this date (RFC 3339 or YYYY-MM-DD)
                limit: Maximum number of results (default 50, max 200)
            """
            with timed_operation("tool_search_notes", query=(query or "")[:30]) as op:
                try:
                    if not query or not query.strip():
                        raise ValidationError("query is required", field="query")
                    notes = self.service.search(
                        SearchQuery(
                            query=query,
                            category=category,
                            since=_parse_tool_date(since, "since"),
                            until=_parse_tool_date(until, "until"),
                            limit=limit,
                        )
                    )
                    op["result_count"] = len(notes)
                    return _to_json([n.to_dict() for n in notes])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="get_recent_notes")
        def get_recent_notes(
            limit: int = DEFAULT_RECENT_LIMIT, since: Optional[str] = None
        ) -> str:
            """Get the most recent notes across all categories.
            Args:
                limit: Maximum number of notes (default 20, max 100)
                since: Only notes created at or after this date (RFC 3339 or YYYY-MM-DD)
            """
            with timed_operation("tool_get_recent_notes") as op:
                try:
                    notes = self.service.recent(
                        RecentQuery(limit=limit, since=_parse_tool_date(since, "since"))
                    )
                    op["result_count"] = len(notes)
                    return _to_json([n.to_dict() for n in notes])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="get_note")
        def get_note(id: str) -> str:
            """Get a single note by its ID.
            Args:
                id: The 24-character note ID
            """
            with timed_operation("tool_get_note", note_id=id):
                try:
                    return _to_json(self.service.get(id).to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="create_note")
        def create_note(category: str, content: str) -> str:
            """Capture a new markdown note in a category.
            Args:
                category: Category name; normalized to lowercase with hyphens
                content: Markdown content of the note
            """
            with timed_operation("tool_create_note", category=(category or "")[:30]) as op:
                try:
                    note = self.service.create(category, content)
                    op["note_id"] = note.id
                    return _to_json(note.to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="delete_note")
        def delete_note(id: str) -> str:
            """Delete a note by its ID.
            Args:
                id: The 24-character note ID
            """
            with timed_operation("tool_delete_note", note_id=id):
                try:
                    self.service.delete(id)
                    return f"Note deleted successfully: {id.lower()}"
                except Exception as e:
                    return self.format_error_response(e)

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server on the given transport ("stdio" or "streamable-http")."""
        self.mcp.run(transport=transport)
