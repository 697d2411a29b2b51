"""Service layer for note capture and retrieval."""

import html
import logging
from typing import List, Optional
from urllib.parse import urlsplit

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from scratchpad_mcp.exceptions import (
    ErrorCode,
    InvalidIdentifierError,
    ValidationError,
)
from scratchpad_mcp.models.schema import (
    MAX_CATEGORY_LENGTH,
    MAX_CONTENT_LENGTH,
    CategorySummary,
    ListQuery,
    Note,
    RecentQuery,
    SearchQuery,
    is_valid_note_id,
    normalize_category,
)
from scratchpad_mcp.observability import timed_operation
from scratchpad_mcp.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["fenced_code", "tables"]

# URL schemes allowed in rendered links and images; relative URLs always pass
SAFE_URL_SCHEMES = {"", "http", "https", "mailto"}


class _SafeUrlTreeprocessor(Treeprocessor):
    """Blank out link and image URLs with schemes such as javascript:."""

    def run(self, root):
        for element in root.iter():
            for attr in ("href", "src"):
                url = element.get(attr)
                if url is None:
                    continue
                try:
                    scheme = urlsplit(url.strip()).scheme.lower()
                except ValueError:
                    scheme = "invalid"
                if scheme not in SAFE_URL_SCHEMES:
                    element.set(attr, "")
        return None


class EscapeHtmlExtension(Extension):
    """Render raw HTML in notes as text and drop unsafe link targets.

    Notes come from untrusted clients, so embedded tags are shown
    literally instead of being passed through to the page.
    """

    def extendMarkdown(self, md):
        md.preprocessors.deregister("html_block")
        md.inlinePatterns.deregister("html")
        md.treeprocessors.register(_SafeUrlTreeprocessor(md), "safe_urls", 0)


class NoteService:
    """Orchestrates validation and normalization in front of the note store.

    Adapters (REST, HTML fragments, MCP tools) talk to this class only; it
    never holds note state of its own.
    """

    def __init__(self, repository: NoteRepository):
        self.repository = repository

    @staticmethod
    def _validate_id(id: str) -> str:
        if not is_valid_note_id(id):
            raise InvalidIdentifierError(id)
        return id.lower()

    @staticmethod
    def _normalize_filter(category: Optional[str]) -> Optional[str]:
        return normalize_category(category) or None

    def create(self, category: str, content: str) -> Note:
        """Create a note in a category.

        The category is normalized (lowercase, trimmed, spaces to hyphens).

        Raises:
            ValidationError: If the category or content is empty or too long.
        """
        category = category or ""
        content = content or ""
        if len(category) > MAX_CATEGORY_LENGTH:
            raise ValidationError(
                f"Category exceeds maximum length of {MAX_CATEGORY_LENGTH} characters",
                field="category",
                code=ErrorCode.INPUT_TOO_LONG,
            )
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters",
                field="content",
                code=ErrorCode.INPUT_TOO_LONG,
            )
        normalized = normalize_category(category)
        if not normalized:
            raise ValidationError(
                "Category is required",
                field="category",
                value=category,
                code=ErrorCode.NOTE_CATEGORY_REQUIRED,
            )
        if not content.strip():
            raise ValidationError(
                "Content is required",
                field="content",
                code=ErrorCode.NOTE_CONTENT_REQUIRED,
            )

        with timed_operation("create_note", category=normalized) as op:
            note = self.repository.insert(Note(category=normalized, content=content))
            op["note_id"] = note.id
        logger.info(f"Created note {note.id} in category '{normalized}'")
        return note

    def get(self, id: str) -> Note:
        """Fetch a note by ID."""
        note_id = self._validate_id(id)
        with timed_operation("get_note", note_id=note_id):
            return self.repository.find_by_id(note_id)

    def delete(self, id: str) -> None:
        """Delete a note by ID; deleting a missing note raises NoteNotFoundError."""
        note_id = self._validate_id(id)
        with timed_operation("delete_note", note_id=note_id):
            self.repository.delete(note_id)
        logger.info(f"Deleted note {note_id}")

    def list(self, query: ListQuery) -> List[Note]:
        query = ListQuery(
            category=self._normalize_filter(query.category),
            limit=query.limit,
            offset=query.offset,
        )
        with timed_operation("list_notes", category=query.category) as op:
            notes = self.repository.list(query)
            op["result_count"] = len(notes)
        return notes

    def search(self, query: SearchQuery) -> List[Note]:
        query = SearchQuery(
            query=query.query.strip() if query.query else None,
            category=self._normalize_filter(query.category),
            since=query.since,
            until=query.until,
            limit=query.limit,
            offset=query.offset,
        )
        with timed_operation("search_notes", query=query.query) as op:
            notes = self.repository.search(query)
            op["result_count"] = len(notes)
        return notes

    def recent(self, query: RecentQuery) -> List[Note]:
        with timed_operation("get_recent_notes", limit=query.limit) as op:
            notes = self.repository.get_recent(query)
            op["result_count"] = len(notes)
        return notes

    def list_categories(self) -> List[CategorySummary]:
        with timed_operation("list_categories") as op:
            categories = self.repository.list_categories()
            op["result_count"] = len(categories)
        return categories

    def count(self, category: Optional[str] = None) -> int:
        with timed_operation("count_notes", category=category):
            return self.repository.count(self._normalize_filter(category))

    def render_markdown(self, content: str) -> str:
        """Render note content to HTML.

        Raw HTML inside the note is escaped. Never raises: when rendering
        fails the content is returned HTML-escaped.
        """
        try:
            renderer = markdown.Markdown(
                extensions=MARKDOWN_EXTENSIONS + [EscapeHtmlExtension()]
            )
            return renderer.convert(content)
        except Exception as e:
            logger.warning(f"Markdown rendering failed, returning escaped content: {e}")
            return html.escape(content)
