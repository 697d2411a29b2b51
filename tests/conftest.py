"""Common test fixtures for the Scratchpad MCP server."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from scratchpad_mcp.models.db_models import DBNote, init_db
from scratchpad_mcp.models.schema import to_naive_utc
from scratchpad_mcp.observability import MetricsCollector
from scratchpad_mcp.services.note_service import NoteService
from scratchpad_mcp.storage.note_repository import NoteRepository


@pytest.fixture(autouse=True)
def isolated_metrics():
    """Record metrics into a throwaway collector instead of ~/.scratchpad."""
    with tempfile.TemporaryDirectory() as temp_dir:
        collector = MetricsCollector(
            metrics_file=Path(temp_dir) / "metrics.json", auto_save_interval=0
        )
        with patch("scratchpad_mcp.observability.metrics", collector):
            yield collector


@pytest.fixture
def engine():
    """In-memory SQLite engine with tables and FTS5 index created."""
    engine = init_db("sqlite:///:memory:", timeout=1.0)
    yield engine
    engine.dispose()


@pytest.fixture
def note_repository(engine):
    """Create a test note repository."""
    return NoteRepository(engine)


@pytest.fixture
def note_service(note_repository):
    """Create a test NoteService."""
    return NoteService(note_repository)


@pytest.fixture
def set_created_at(note_repository):
    """Rewrite a stored note's timestamps, for date-range scenarios."""

    def _set(note_id, when):
        with note_repository.session_factory() as session:
            db_note = session.query(DBNote).filter(DBNote.id == note_id).one()
            db_note.created_at = to_naive_utc(when)
            db_note.updated_at = to_naive_utc(when)
            session.commit()

    return _set
