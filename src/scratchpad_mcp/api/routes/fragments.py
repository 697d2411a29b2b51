"""HTML pages and fragments for the browser UI.

Fragments are partial HTML documents meant to be swapped into a page;
note bodies are markdown rendered by the note service.
"""

import html
import logging
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from scratchpad_mcp.api.async_utils import run_sync
from scratchpad_mcp.api.deps import get_note_service, parse_int
from scratchpad_mcp.models.schema import (
    DEFAULT_LIST_LIMIT,
    CategorySummary,
    ListQuery,
    Note,
    SearchQuery,
    parse_date_filter,
)
from scratchpad_mcp.services.note_service import NoteService

logger = logging.getLogger(__name__)

router = APIRouter()

DISPLAY_TIME_FORMAT = "%Y-%m-%d %H:%M UTC"


def category_url(name: str) -> str:
    """Link to a category page; the name is percent-encoded as one path segment."""
    return html.escape(f"/category/{quote(name, safe='')}")


def render_note_card(note: Note, rendered: str) -> str:
    created = note.created_at
    return (
        f'<article class="note-card" id="note-{note.id}">'
        f'<header><a class="category" href="{category_url(note.category)}">'
        f"{html.escape(note.category)}</a> "
        f'<time datetime="{created.isoformat()}">'
        f"{created.strftime(DISPLAY_TIME_FORMAT)}</time></header>"
        f'<div class="note-content">{rendered}</div>'
        f"</article>"
    )


def render_note_list(service: NoteService, notes: List[Note]) -> str:
    if not notes:
        return '<p class="empty">No notes found.</p>'
    cards = "".join(
        render_note_card(note, service.render_markdown(note.content)) for note in notes
    )
    return f'<div class="note-list">{cards}</div>'


def render_category_list(categories: List[CategorySummary]) -> str:
    if not categories:
        return '<p class="empty">No categories yet.</p>'
    items = "".join(
        f'<li><a href="{category_url(c.name)}">{html.escape(c.name)}</a> '
        f'<span class="count">{c.count}</span> '
        f'<time datetime="{c.last_note.isoformat()}">'
        f"{c.last_note.strftime(DISPLAY_TIME_FORMAT)}</time></li>"
        for c in categories
    )
    return f'<ul class="category-list">{items}</ul>'


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        f"<body><main>{body}</main></body></html>"
    )


@router.get("/", response_class=HTMLResponse)
async def home_page(service=Depends(get_note_service)):
    """Category overview with the total note count."""
    categories = await run_sync(service.list_categories)
    total = await run_sync(service.count)
    body = (
        f"<h1>Scratchpad</h1><p class=\"total\">{total} notes</p>"
        f"{render_category_list(categories)}"
    )
    return _page("Scratchpad", body)


@router.get("/category/{name:path}", response_class=HTMLResponse)
async def category_page(name: str, service=Depends(get_note_service)):
    """A category's heading, its total count and its latest notes."""
    notes = await run_sync(
        service.list, ListQuery(category=name, limit=DEFAULT_LIST_LIMIT)
    )
    total = await run_sync(service.count, name)
    body = (
        f"<h1>{html.escape(name)}</h1><p class=\"total\">{total} notes</p>"
        f"{render_note_list(service, notes)}"
    )
    return _page(name, body)


@router.get("/fragments/notes", response_class=HTMLResponse)
async def notes_fragment(
    category: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    service=Depends(get_note_service),
):
    query = ListQuery(
        category=category,
        limit=parse_int(limit, DEFAULT_LIST_LIMIT),
        offset=parse_int(offset, 0),
    )
    notes = await run_sync(service.list, query)
    return render_note_list(service, notes)


@router.get("/fragments/search", response_class=HTMLResponse)
async def search_fragment(
    q: Optional[str] = None,
    category: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    limit: Optional[str] = None,
    service=Depends(get_note_service),
):
    query = SearchQuery(
        query=q,
        category=category,
        since=parse_date_filter(since),
        until=parse_date_filter(until),
        limit=parse_int(limit, DEFAULT_LIST_LIMIT),
    )
    notes = await run_sync(service.search, query)
    heading = ""
    if query.has_text:
        heading = (
            f'<p class="search-summary">{len(notes)} results for '
            f"<strong>{html.escape(q.strip())}</strong></p>"
        )
    return heading + render_note_list(service, notes)


def render_search_form(
    categories: List[CategorySummary],
    q: str = "",
    category: str = "",
    since: str = "",
    until: str = "",
) -> str:
    options = ['<option value="">All categories</option>']
    for c in categories:
        selected = " selected" if c.name == category else ""
        options.append(
            f'<option value="{html.escape(c.name)}"{selected}>'
            f"{html.escape(c.name)} ({c.count})</option>"
        )
    return (
        '<form class="search-form" method="get" action="/search">'
        f'<input type="search" name="q" value="{html.escape(q)}" '
        'placeholder="Search notes">'
        f'<select name="category">{"".join(options)}</select>'
        f'<input type="date" name="since" value="{html.escape(since)}">'
        f'<input type="date" name="until" value="{html.escape(until)}">'
        '<button type="submit">Search</button>'
        "</form>"
    )


@router.get("/search", response_class=HTMLResponse)
async def search_page(
    q: Optional[str] = None,
    category: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    service=Depends(get_note_service),
):
    """Full search page: filter form over every category, then results."""
    categories = await run_sync(service.list_categories)
    form = render_search_form(
        categories, q or "", category or "", since or "", until or ""
    )
    results = ""
    if (q and q.strip()) or category or since or until:
        results = await search_fragment(
            q=q, category=category, since=since, until=until, service=service
        )
    body = (
        f"<h1>Search</h1>{form}"
        f'<section class="search-results">{results}</section>'
    )
    return _page("Search", body)
