"""Tests for the data models and query descriptors."""
import datetime
from datetime import timezone

import pytest
from pydantic import ValidationError

from scratchpad_mcp.models.schema import (
    CategorySummary,
    ListQuery,
    Note,
    RecentQuery,
    SearchQuery,
    generate_id,
    is_valid_note_id,
    normalize_category,
    parse_date_filter,
)


class TestNormalizeCategory:
    """Tests for category normalization."""

    @pytest.mark.parametrize(
        "raw",
        ["twitter-analytics", "Twitter Analytics", "  Twitter Analytics ", "TWITTER-analytics"],
    )
    def test_equivalent_labels_normalize_identically(self, raw):
        assert normalize_category(raw) == "twitter-analytics"

    def test_normalization_is_idempotent(self):
        once = normalize_category(" Content Ideas ")
        assert normalize_category(once) == once == "content-ideas"

    def test_each_interior_space_becomes_a_hyphen(self):
        assert normalize_category("a  b") == "a--b"

    def test_empty_and_none(self):
        assert normalize_category("") == ""
        assert normalize_category("   ") == ""
        assert normalize_category(None) == ""


class TestNoteIds:
    """Tests for note ID generation and validation."""

    def test_generated_ids_are_24_hex(self):
        note_id = generate_id()
        assert len(note_id) == 24
        assert is_valid_note_id(note_id)
        int(note_id, 16)

    def test_generated_ids_are_unique(self):
        ids = {generate_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_id_embeds_creation_second(self):
        before = int(datetime.datetime.now(timezone.utc).timestamp())
        note_id = generate_id()
        assert int(note_id[:8], 16) >= before - 1

    @pytest.mark.parametrize(
        "value", ["", "abc", "z" * 24, "0" * 23, "0" * 25, None, 42, "../etc/passwd"]
    )
    def test_invalid_ids(self, value):
        assert not is_valid_note_id(value)

    def test_uppercase_hex_is_valid(self):
        assert is_valid_note_id("ABCDEF0123456789ABCDEF01")


class TestNoteModel:
    """Tests for the Note model."""

    def test_note_creation_normalizes_category(self):
        note = Note(category="  Content Ideas ", content="Some **markdown**")
        assert note.category == "content-ideas"
        assert note.content == "Some **markdown**"
        assert note.id is None
        assert note.created_at is None

    def test_empty_category_rejected(self):
        with pytest.raises(ValidationError):
            Note(category="   ", content="text")

    def test_blank_content_rejected(self):
        with pytest.raises(ValidationError):
            Note(category="ideas", content=" \n\t ")

    def test_malformed_id_rejected(self):
        with pytest.raises(ValidationError):
            Note(id="not-an-id", category="ideas", content="text")

    def test_id_is_lowercased(self):
        note = Note(id="ABCDEF0123456789ABCDEF01", category="ideas", content="x")
        assert note.id == "abcdef0123456789abcdef01"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            Note(category="ideas", content="x", title="nope")

    def test_to_dict_uses_camel_case(self):
        now = datetime.datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        note = Note(
            id=generate_id(), category="ideas", content="x", created_at=now, updated_at=now
        )
        data = note.to_dict()
        assert set(data) == {"id", "category", "content", "createdAt", "updatedAt"}
        assert data["createdAt"] == "2024-05-01T10:00:00+00:00"

    def test_category_summary_to_dict(self):
        last = datetime.datetime(2024, 5, 1, tzinfo=timezone.utc)
        summary = CategorySummary(name="ideas", count=3, last_note=last)
        assert summary.to_dict() == {
            "name": "ideas",
            "count": 3,
            "lastNote": "2024-05-01T00:00:00+00:00",
        }


class TestQueryClamping:
    """Tests for limit and offset clamping."""

    @pytest.mark.parametrize(
        "limit,expected", [(0, 50), (-5, 50), (1, 1), (50, 50), (200, 200), (201, 200), (10_000, 200)]
    )
    def test_list_limit(self, limit, expected):
        assert ListQuery(limit=limit).clamped().limit == expected
        assert SearchQuery(limit=limit).clamped().limit == expected

    @pytest.mark.parametrize(
        "limit,expected", [(0, 20), (-1, 20), (7, 7), (100, 100), (101, 100)]
    )
    def test_recent_limit(self, limit, expected):
        assert RecentQuery(limit=limit).clamped().limit == expected

    def test_negative_offset_becomes_zero(self):
        assert ListQuery(offset=-10).clamped().offset == 0
        assert SearchQuery(offset=-1).clamped().offset == 0

    def test_large_offset_kept(self):
        assert ListQuery(offset=5000).clamped().offset == 5000

    def test_clamped_returns_copy(self):
        query = ListQuery(category="ideas", limit=0)
        clamped = query.clamped()
        assert query.limit == 0
        assert clamped.category == "ideas"

    def test_search_has_text(self):
        assert SearchQuery(query="python").has_text
        assert not SearchQuery(query="   ").has_text
        assert not SearchQuery().has_text


class TestParseDateFilter:
    """Tests for boundary date parsing."""

    def test_plain_date_is_midnight_utc(self):
        assert parse_date_filter("2024-05-01") == datetime.datetime(
            2024, 5, 1, tzinfo=timezone.utc
        )

    def test_rfc3339_with_z(self):
        assert parse_date_filter("2024-05-01T10:30:00Z") == datetime.datetime(
            2024, 5, 1, 10, 30, tzinfo=timezone.utc
        )

    def test_rfc3339_with_offset(self):
        parsed = parse_date_filter("2024-05-01T12:00:00+02:00")
        assert parsed == datetime.datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_naive_timestamp_treated_as_utc(self):
        parsed = parse_date_filter("2024-05-01T10:00:00")
        assert parsed.tzinfo is not None
        assert parsed == datetime.datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", "2024-13-01", "05/01/2024"])
    def test_unparseable_returns_none(self, value):
        assert parse_date_filter(value) is None
