"""Note API routes.

CRUD, search and aggregation over the note store. All service calls are
wrapped in run_sync so blocking database access stays off the event loop.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from scratchpad_mcp.api.async_utils import run_sync
from scratchpad_mcp.api.deps import get_note_service, parse_int
from scratchpad_mcp.api.schemas import NoteCreate
from scratchpad_mcp.models.schema import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_RECENT_LIMIT,
    ListQuery,
    RecentQuery,
    SearchQuery,
    normalize_category,
    parse_date_filter,
)
from scratchpad_mcp import observability

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.post("/notes", status_code=201)
async def create_note(body: NoteCreate, service=Depends(get_note_service)):
    """Capture a new note."""
    note = await run_sync(service.create, body.category, body.content)
    return note.to_dict()


@router.get("/notes")
async def list_notes(
    category: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    service=Depends(get_note_service),
):
    """List notes newest first, optionally filtered by category."""
    query = ListQuery(
        category=category,
        limit=parse_int(limit, DEFAULT_LIST_LIMIT),
        offset=parse_int(offset, 0),
    )
    notes = await run_sync(service.list, query)
    return [n.to_dict() for n in notes]


@router.get("/notes/search")
async def search_notes(
    q: Optional[str] = None,
    category: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    service=Depends(get_note_service),
):
    """Search notes.

    Unparseable ``since``/``until`` values are ignored.
    """
    query = SearchQuery(
        query=q,
        category=category,
        since=parse_date_filter(since),
        until=parse_date_filter(until),
        limit=parse_int(limit, DEFAULT_LIST_LIMIT),
        offset=parse_int(offset, 0),
    )
    notes = await run_sync(service.search, query)
    return [n.to_dict() for n in notes]


@router.get("/notes/recent")
async def recent_notes(
    limit: Optional[str] = None,
    since: Optional[str] = None,
    service=Depends(get_note_service),
):
    """Most recent notes across all categories."""
    query = RecentQuery(
        limit=parse_int(limit, DEFAULT_RECENT_LIMIT),
        since=parse_date_filter(since),
    )
    notes = await run_sync(service.recent, query)
    return [n.to_dict() for n in notes]


@router.get("/notes/{note_id}")
async def get_note(note_id: str, service=Depends(get_note_service)):
    note = await run_sync(service.get, note_id)
    return note.to_dict()


@router.delete("/notes/{note_id}", status_code=204)
async def delete_note(note_id: str, service=Depends(get_note_service)):
    await run_sync(service.delete, note_id)
    return Response(status_code=204)


@router.get("/categories")
async def list_categories(service=Depends(get_note_service)):
    """Category summaries, most recently active first."""
    categories = await run_sync(service.list_categories)
    return [c.to_dict() for c in categories]


@router.get("/stats")
async def stats(
    category: Optional[str] = Query(None), service=Depends(get_note_service)
):
    """Note count (total or per category) plus per-operation metrics."""
    total = await run_sync(service.count, category)
    return {
        "total": total,
        "category": normalize_category(category) or None,
        "operations": observability.metrics.get_metrics(),
    }
