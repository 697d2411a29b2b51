"""Storage layer for the Scratchpad MCP server."""
from scratchpad_mcp.storage.fts_index import FtsIndex
from scratchpad_mcp.storage.note_repository import NoteRepository

__all__ = ["FtsIndex", "NoteRepository"]
