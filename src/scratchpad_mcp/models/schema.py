"""Data models for the Scratchpad MCP server."""

import datetime
import os
import re
import threading
import time
from dataclasses import dataclass, replace
from datetime import timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# Note IDs are 12-byte handles rendered as 24 hex characters
NOTE_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

# Pagination bounds
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
DEFAULT_RECENT_LIMIT = 20
MAX_RECENT_LIMIT = 100

# Boundary limits for creation input
MAX_CATEGORY_LENGTH = 200
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB

DATE_ONLY_FORMAT = "%Y-%m-%d"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: datetime.datetime) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite stores timestamps without an offset, so values read back from
    the database are naive UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def to_naive_utc(dt_value: datetime.datetime) -> datetime.datetime:
    """Convert a datetime to the naive-UTC form stored in the database."""
    return ensure_timezone_aware(dt_value).astimezone(timezone.utc).replace(tzinfo=None)


def normalize_category(value: Optional[str]) -> str:
    """Normalize a category label.

    Lowercases, trims surrounding whitespace and replaces every space with a
    hyphen, so "  Content Ideas " and "content-ideas" name the same category.

    Examples:
        "Twitter Analytics" -> "twitter-analytics"
        "content-ideas" -> "content-ideas"
    """
    if not value:
        return ""
    return value.lower().strip().replace(" ", "-")


# Process-local state for ID generation, re-seeded after fork
_id_lock = threading.Lock()
_id_pid = -1
_id_process_bytes = b""
_id_counter = 0


def generate_id() -> str:
    """Generate a unique 24-character hex note ID.

    Layout (12 bytes):
        - 4 bytes: seconds since the epoch, big-endian
        - 5 bytes: random value unique to this process
        - 3 bytes: counter, seeded randomly per process

    IDs created by the same process sort by creation second and counter.
    """
    global _id_pid, _id_process_bytes, _id_counter

    with _id_lock:
        pid = os.getpid()
        if pid != _id_pid:
            _id_pid = pid
            _id_process_bytes = os.urandom(5)
            _id_counter = int.from_bytes(os.urandom(3), "big")

        _id_counter = (_id_counter + 1) % 0xFFFFFF
        timestamp = int(time.time()) & 0xFFFFFFFF

        raw = (
            timestamp.to_bytes(4, "big")
            + _id_process_bytes
            + _id_counter.to_bytes(3, "big")
        )
        return raw.hex()


def is_valid_note_id(value: Any) -> bool:
    """Check whether a value is a well-formed note ID."""
    return isinstance(value, str) and bool(NOTE_ID_PATTERN.match(value))


def parse_date_filter(value: Optional[str]) -> Optional[datetime.datetime]:
    """Parse a boundary date filter.

    Accepts a full RFC 3339 / ISO 8601 timestamp ("2024-05-01T10:00:00Z")
    or a plain calendar date ("2024-05-01", midnight UTC). Naive timestamps
    are treated as UTC.

    Returns:
        A timezone-aware datetime, or None when the value is empty or
        cannot be parsed.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        parsed = datetime.datetime.strptime(value, DATE_ONLY_FORMAT)
        return parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    candidate = value
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return ensure_timezone_aware(parsed)


def _clamp_limit(limit: int, default: int, maximum: int) -> int:
    if limit <= 0:
        return default
    return min(limit, maximum)


@dataclass(frozen=True)
class ListQuery:
    """Parameters for listing notes, newest first.

    Attributes:
        category: Optional exact-match category filter (normalized form).
        limit: Page size; defaults to 50, capped at 200.
        offset: Number of notes to skip.
    """

    category: Optional[str] = None
    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0

    def clamped(self) -> "ListQuery":
        """Return a copy with limit and offset forced into bounds."""
        return replace(
            self,
            limit=_clamp_limit(self.limit, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT),
            offset=max(self.offset, 0),
        )


@dataclass(frozen=True)
class SearchQuery:
    """Parameters for full-text search.

    Attributes:
        query: Optional full-text query over note content.
        category: Optional exact-match category filter (normalized form).
        since: Inclusive lower bound on created_at.
        until: Inclusive upper bound on created_at.
        limit: Page size; defaults to 50, capped at 200.
        offset: Number of notes to skip.
    """

    query: Optional[str] = None
    category: Optional[str] = None
    since: Optional[datetime.datetime] = None
    until: Optional[datetime.datetime] = None
    limit: int = DEFAULT_LIST_LIMIT
    offset: int = 0

    @property
    def has_text(self) -> bool:
        return bool(self.query and self.query.strip())

    def clamped(self) -> "SearchQuery":
        """Return a copy with limit and offset forced into bounds."""
        return replace(
            self,
            limit=_clamp_limit(self.limit, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT),
            offset=max(self.offset, 0),
        )


@dataclass(frozen=True)
class RecentQuery:
    """Parameters for the cross-category recent notes view."""

    limit: int = DEFAULT_RECENT_LIMIT
    since: Optional[datetime.datetime] = None

    def clamped(self) -> "RecentQuery":
        """Return a copy with limit forced into the recent bounds."""
        return replace(
            self,
            limit=_clamp_limit(self.limit, DEFAULT_RECENT_LIMIT, MAX_RECENT_LIMIT),
        )


class Note(BaseModel):
    """A categorized markdown note.

    ``id``, ``created_at`` and ``updated_at`` are assigned by the store on
    insert and are None on a note that has not been persisted yet.
    """

    id: Optional[str] = Field(default=None, description="Unique ID of the note")
    category: str = Field(..., description="Normalized category label")
    content: str = Field(..., description="Markdown content of the note")
    created_at: Optional[datetime.datetime] = Field(
        default=None, description="When the note was created (UTC)"
    )
    updated_at: Optional[datetime.datetime] = Field(
        default=None, description="Equal to created_at; notes are never edited"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: Optional[str]) -> Optional[str]:
        """Validate the ID format when one is set."""
        if v is None:
            return None
        if not is_valid_note_id(v):
            raise ValueError("Note ID must be a 24-character hex string")
        return v.lower()

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        """Normalize the category and reject empty labels."""
        normalized = normalize_category(v)
        if not normalized:
            raise ValueError("Category cannot be empty")
        return normalized

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Validate that the content is not blank."""
        if not v.strip():
            raise ValueError("Content cannot be empty")
        return v

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with camelCase keys and ISO timestamps."""
        return {
            "id": self.id,
            "category": self.category,
            "content": self.content,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class CategorySummary:
    """Aggregated view of one category, derived from the live note set.

    Attributes:
        name: Normalized category label.
        count: Number of notes in the category.
        last_note: Most recent created_at among its notes.
    """

    name: str
    count: int
    last_note: datetime.datetime

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation with camelCase keys."""
        return {
            "name": self.name,
            "count": self.count,
            "lastNote": self.last_note.isoformat(),
        }
