"""Tests for the NoteService class."""
from unittest.mock import patch

import pytest

from scratchpad_mcp.exceptions import (
    ErrorCode,
    InvalidIdentifierError,
    NoteNotFoundError,
    ValidationError,
)
from scratchpad_mcp.models.schema import (
    MAX_CATEGORY_LENGTH,
    MAX_CONTENT_LENGTH,
    ListQuery,
    RecentQuery,
    SearchQuery,
    generate_id,
)


class TestCreate:
    """Tests for note creation."""

    def test_create_normalizes_category(self, note_service):
        note = note_service.create("  Twitter Analytics ", "Engagement is up")
        assert note.category == "twitter-analytics"
        assert note.id is not None

    def test_create_keeps_content_verbatim(self, note_service):
        content = "  # Title\n\n- item  \n"
        note = note_service.create("ideas", content)
        assert note_service.get(note.id).content == content

    @pytest.mark.parametrize("category", ["", "   ", None])
    def test_empty_category_rejected(self, note_service, category):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create(category, "content")
        assert exc_info.value.code == ErrorCode.NOTE_CATEGORY_REQUIRED

    @pytest.mark.parametrize("content", ["", "   ", "\n\t", None])
    def test_blank_content_rejected(self, note_service, content):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create("ideas", content)
        assert exc_info.value.code == ErrorCode.NOTE_CONTENT_REQUIRED

    def test_oversize_category_rejected(self, note_service):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create("c" * (MAX_CATEGORY_LENGTH + 1), "content")
        assert exc_info.value.code == ErrorCode.INPUT_TOO_LONG

    def test_oversize_content_rejected(self, note_service):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create("ideas", "x" * (MAX_CONTENT_LENGTH + 1))
        assert exc_info.value.code == ErrorCode.INPUT_TOO_LONG

    def test_failed_create_stores_nothing(self, note_service):
        with pytest.raises(ValidationError):
            note_service.create("ideas", "   ")
        assert note_service.count() == 0


class TestLookup:
    """Tests for get and delete by ID."""

    def test_get_invalid_id(self, note_service):
        with pytest.raises(InvalidIdentifierError):
            note_service.get("xyz")

    def test_get_missing(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.get(generate_id())

    def test_delete_twice(self, note_service):
        note = note_service.create("ideas", "x")
        note_service.delete(note.id)
        with pytest.raises(NoteNotFoundError):
            note_service.delete(note.id)

    def test_delete_invalid_id(self, note_service):
        with pytest.raises(InvalidIdentifierError):
            note_service.delete("")


class TestQueries:
    """Tests for category-filter normalization on reads."""

    def test_list_normalizes_category_filter(self, note_service):
        note = note_service.create("Content Ideas", "x")
        results = note_service.list(ListQuery(category=" CONTENT IDEAS "))
        assert [n.id for n in results] == [note.id]

    def test_search_normalizes_category_filter(self, note_service):
        note = note_service.create("content-ideas", "thread about python")
        note_service.create("other", "python elsewhere")
        results = note_service.search(SearchQuery(query="python", category="Content Ideas"))
        assert [n.id for n in results] == [note.id]

    def test_blank_search_text_lists_newest_first(self, note_service):
        a = note_service.create("ideas", "a")
        b = note_service.create("ideas", "b")
        results = note_service.search(SearchQuery(query="   "))
        assert [n.id for n in results] == [b.id, a.id]

    def test_count_normalizes_category(self, note_service):
        note_service.create("Content Ideas", "x")
        assert note_service.count("content ideas") == 1
        assert note_service.count() == 1

    def test_recent_and_categories(self, note_service):
        note_service.create("one", "a")
        b = note_service.create("two", "b")
        assert note_service.recent(RecentQuery(limit=1))[0].id == b.id
        assert [c.name for c in note_service.list_categories()] == ["two", "one"]

    def test_operations_are_timed(self, note_service, isolated_metrics):
        note_service.create("ideas", "x")
        note_service.list(ListQuery())
        recorded = isolated_metrics.get_metrics()
        assert recorded["create_note"]["success_count"] == 1
        assert recorded["list_notes"]["count"] == 1


class TestRenderMarkdown:
    """Tests for markdown rendering."""

    def test_renders_heading(self, note_service):
        assert "<h1>Title</h1>" in note_service.render_markdown("# Title")

    def test_renders_fenced_code(self, note_service):
        html = note_service.render_markdown("```\nprint('hi')\n```")
        assert "<code>" in html

    def test_renders_tables(self, note_service):
        html = note_service.render_markdown("| a | b |\n|---|---|\n| 1 | 2 |")
        assert "<table>" in html

    def test_failure_returns_escaped_content(self, note_service):
        raw = "# Title\n\n<b>body</b> & more"
        with patch("markdown.Markdown", side_effect=RuntimeError("boom")):
            rendered = note_service.render_markdown(raw)
        assert rendered == "# Title\n\n&lt;b&gt;body&lt;/b&gt; &amp; more"

    def test_inline_html_is_escaped(self, note_service):
        html = note_service.render_markdown("hello <script>alert(1)</script>")
        assert "<script>" not in html
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html

    def test_html_block_is_escaped(self, note_service):
        html = note_service.render_markdown("<div onclick=\"x()\">\nhi\n</div>")
        assert "<div" not in html
        assert "&lt;div" in html

    def test_javascript_link_is_dropped(self, note_service):
        html = note_service.render_markdown("[click](javascript:alert(1))")
        assert "javascript:" not in html
        assert "click" in html

    def test_http_link_is_kept(self, note_service):
        html = note_service.render_markdown("[docs](https://example.com/x)")
        assert 'href="https://example.com/x"' in html
