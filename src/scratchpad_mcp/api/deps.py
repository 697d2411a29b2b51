"""Dependency injection for FastAPI routes.

The note service is built once by ``create_app`` and stored on
``app.state``; routes receive it through ``Depends(get_note_service)``.
"""

from typing import Optional

from fastapi import Request

from scratchpad_mcp.services.note_service import NoteService


def get_note_service(request: Request) -> NoteService:
    return request.app.state.note_service


def parse_int(value: Optional[str], default: int) -> int:
    """Parse an integer query parameter, falling back to default when malformed."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default
