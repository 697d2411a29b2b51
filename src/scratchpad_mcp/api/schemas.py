"""Request bodies for the REST API."""

from pydantic import BaseModel, Field


class NoteCreate(BaseModel):
    """Body of ``POST /api/notes``; validation happens in the note service."""

    category: str = Field(default="", description="Category name")
    content: str = Field(default="", description="Markdown content")
