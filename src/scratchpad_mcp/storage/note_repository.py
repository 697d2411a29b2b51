"""Repository for note storage, retrieval and aggregation."""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from scratchpad_mcp.exceptions import (
    ErrorCode,
    InvalidIdentifierError,
    NoteNotFoundError,
    SearchError,
    StorageError,
    StoreUnavailableError,
)
from scratchpad_mcp.models.db_models import DBNote, get_session_factory
from scratchpad_mcp.models.schema import (
    CategorySummary,
    ListQuery,
    Note,
    RecentQuery,
    SearchQuery,
    ensure_timezone_aware,
    generate_id,
    is_valid_note_id,
    to_naive_utc,
    utc_now,
)
from scratchpad_mcp.storage.fts_index import FtsIndex, notes_fts

logger = logging.getLogger(__name__)

# SQLite messages that mean the store could not be reached in time
_UNAVAILABLE_MARKERS = ("database is locked", "unable to open", "database is busy")


def _is_unavailable(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _UNAVAILABLE_MARKERS)


def _is_corruption(error: Exception) -> bool:
    message = str(error).lower()
    return "malformed" in message or "corrupt" in message


class NoteRepository:
    """Note store backed by SQLite with an FTS5 content index.

    The engine is built once by the caller (see ``init_db``) and shared by
    every request; each operation opens its own short-lived session.
    An in-memory engine holds a single SQLite connection for every thread,
    so operations on it are serialized through a lock. In-memory stores are
    meant for tests and demos; a database file serves concurrent clients.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = get_session_factory(engine)
        self.fts = FtsIndex(engine)
        self._lock = (
            threading.RLock() if isinstance(engine.pool, StaticPool) else None
        )
        self._initialize_with_health_check()

    def _initialize_with_health_check(self) -> None:
        """Rebuild the FTS5 index on startup when its integrity check fails."""
        with self._serialized():
            if self.fts.check_integrity():
                return
            logger.warning("FTS5 index unhealthy, attempting rebuild...")
            self.fts.attempt_recovery()

    @contextmanager
    def _serialized(self) -> Iterator[None]:
        if self._lock is None:
            yield
            return
        with self._lock:
            yield

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Short-lived ORM session, holding the connection lock if there is one."""
        with self._serialized():
            with self.session_factory() as session:
                yield session

    @contextmanager
    def _translate_errors(
        self, operation: str, code: ErrorCode = ErrorCode.STORAGE_READ_FAILED
    ) -> Iterator[None]:
        """Map SQLAlchemy failures onto the storage exception hierarchy."""
        try:
            yield
        except PoolTimeoutError as e:
            raise StoreUnavailableError(
                "Timed out waiting for a database connection",
                operation=operation,
                code=ErrorCode.STORAGE_TIMEOUT,
                original_error=e,
            ) from e
        except OperationalError as e:
            if _is_unavailable(e):
                raise StoreUnavailableError(
                    "Note store is unavailable",
                    operation=operation,
                    original_error=e,
                ) from e
            raise StorageError(
                f"Failed to {operation.replace('_', ' ')}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to {operation.replace('_', ' ')}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        return Note(
            id=db_note.id,
            category=db_note.category,
            content=db_note.content,
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, note: Note) -> Note:
        """Persist a new note, assigning its ID and timestamps.

        Any ID or timestamps already on ``note`` are ignored.

        Returns:
            The stored note.
        """
        now = utc_now()
        stored = note.model_copy(
            update={"id": generate_id(), "created_at": now, "updated_at": now}
        )
        with self._translate_errors("insert_note", ErrorCode.STORAGE_WRITE_FAILED):
            with self._session() as session:
                session.add(
                    DBNote(
                        id=stored.id,
                        category=stored.category,
                        content=stored.content,
                        created_at=to_naive_utc(now),
                        updated_at=to_naive_utc(now),
                    )
                )
                session.commit()
        logger.debug(f"Inserted note {stored.id} in category '{stored.category}'")
        return stored

    def delete(self, id: str) -> None:
        """Delete a note by ID.

        Raises:
            InvalidIdentifierError: If the ID is malformed.
            NoteNotFoundError: If no note has this ID.
        """
        if not is_valid_note_id(id):
            raise InvalidIdentifierError(id)
        note_id = id.lower()
        with self._translate_errors("delete_note", ErrorCode.STORAGE_DELETE_FAILED):
            with self._session() as session:
                result = session.execute(delete(DBNote).where(DBNote.id == note_id))
                session.commit()
                deleted = result.rowcount
        if deleted == 0:
            raise NoteNotFoundError(note_id)
        logger.debug(f"Deleted note {note_id}")

    # =========================================================================
    # Reads
    # =========================================================================

    def find_by_id(self, id: str) -> Note:
        """Fetch a single note.

        Raises:
            InvalidIdentifierError: If the ID is malformed.
            NoteNotFoundError: If no note has this ID.
        """
        if not is_valid_note_id(id):
            raise InvalidIdentifierError(id)
        note_id = id.lower()
        with self._translate_errors("get_note"):
            with self._session() as session:
                db_note = session.scalar(select(DBNote).where(DBNote.id == note_id))
                if db_note is None:
                    raise NoteNotFoundError(note_id)
                return self._db_note_to_model(db_note)

    def list(self, query: ListQuery) -> List[Note]:
        """List notes newest first, optionally within one category."""
        query = query.clamped()
        stmt = select(DBNote)
        if query.category:
            stmt = stmt.where(DBNote.category == query.category)
        stmt = (
            stmt.order_by(DBNote.created_at.desc(), DBNote.seq.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        with self._translate_errors("list_notes"):
            with self._session() as session:
                db_notes = session.execute(stmt).scalars().all()
                return [self._db_note_to_model(n) for n in db_notes]

    def get_recent(self, query: RecentQuery) -> List[Note]:
        """Most recent notes across all categories."""
        query = query.clamped()
        stmt = select(DBNote)
        if query.since is not None:
            stmt = stmt.where(DBNote.created_at >= to_naive_utc(query.since))
        stmt = stmt.order_by(DBNote.created_at.desc(), DBNote.seq.desc()).limit(
            query.limit
        )
        with self._translate_errors("get_recent_notes"):
            with self._session() as session:
                db_notes = session.execute(stmt).scalars().all()
                return [self._db_note_to_model(n) for n in db_notes]

    @staticmethod
    def _apply_search_filters(stmt: Any, query: SearchQuery) -> Any:
        if query.category:
            stmt = stmt.where(DBNote.category == query.category)
        if query.since is not None:
            stmt = stmt.where(DBNote.created_at >= to_naive_utc(query.since))
        if query.until is not None:
            stmt = stmt.where(DBNote.created_at <= to_naive_utc(query.until))
        return stmt

    def search(self, query: SearchQuery) -> List[Note]:
        """Search notes by content, category and creation date.

        With query text, results are ordered by FTS5 relevance (best first),
        then newest first. Without text, newest first. Notes created at the
        same instant come back in reverse insertion order.
        """
        query = query.clamped()

        if not query.has_text:
            stmt = self._apply_search_filters(select(DBNote), query)
            stmt = (
                stmt.order_by(DBNote.created_at.desc(), DBNote.seq.desc())
                .offset(query.offset)
                .limit(query.limit)
            )
            with self._translate_errors("search_notes"):
                with self._session() as session:
                    db_notes = session.execute(stmt).scalars().all()
                    return [self._db_note_to_model(n) for n in db_notes]

        if not self.fts.available:
            return self._like_search(query)

        try:
            return self._fts_search(query)
        except PoolTimeoutError as e:
            raise StoreUnavailableError(
                "Timed out waiting for a database connection",
                operation="search_notes",
                code=ErrorCode.STORAGE_TIMEOUT,
                original_error=e,
            ) from e
        except OperationalError as e:
            if _is_unavailable(e):
                raise StoreUnavailableError(
                    "Note store is unavailable",
                    operation="search_notes",
                    original_error=e,
                ) from e
            if self.fts.is_passthrough(query.query):
                logger.info(f"FTS5 rejected query syntax, retrying as plain terms: {e}")
                try:
                    return self._fts_search(query, literal=True)
                except OperationalError as retry_error:
                    logger.warning(
                        f"FTS5 query failed, falling back to LIKE search: {retry_error}"
                    )
                    return self._like_search(query)
            logger.warning(f"FTS5 query failed, falling back to LIKE search: {e}")
            return self._like_search(query)
        except SQLAlchemyDatabaseError as e:
            if not _is_corruption(e):
                raise StorageError(
                    "Failed to search notes",
                    operation="search_notes",
                    original_error=e,
                ) from e
            logger.error(f"FTS5 index corrupted during search: {e}")
            with self._serialized():
                recovered = self.fts.attempt_recovery()
            if recovered:
                try:
                    return self._fts_search(query)
                except SQLAlchemyDatabaseError as retry_error:
                    logger.error(f"FTS5 search failed after rebuild: {retry_error}")
            return self._like_search(query)

    def _fts_search(
        self, query: SearchQuery, literal: Optional[bool] = None
    ) -> List[Note]:
        stmt = (
            select(DBNote, FtsIndex.score_column())
            .join(notes_fts, FtsIndex.join_condition())
            .where(self.fts.match_clause(query.query, literal))
        )
        stmt = self._apply_search_filters(stmt, query)
        stmt = (
            stmt.order_by(
                FtsIndex.score_column().asc(),
                DBNote.created_at.desc(),
                DBNote.seq.desc(),
            )
            .offset(query.offset)
            .limit(query.limit)
        )
        with self._session() as session:
            rows = session.execute(stmt).all()
            return [self._db_note_to_model(row[0]) for row in rows]

    def _like_search(self, query: SearchQuery) -> List[Note]:
        """Substring search used when FTS5 cannot serve the query."""
        stmt = select(DBNote).where(FtsIndex.like_clause(query.query))
        stmt = self._apply_search_filters(stmt, query)
        stmt = (
            stmt.order_by(DBNote.created_at.desc(), DBNote.seq.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        try:
            with self._translate_errors("search_notes"):
                with self._session() as session:
                    db_notes = session.execute(stmt).scalars().all()
                    return [self._db_note_to_model(n) for n in db_notes]
        except StoreUnavailableError:
            raise
        except StorageError as e:
            raise SearchError(
                f"Search failed: {e.message}", query=query.query
            ) from e

    # =========================================================================
    # Aggregation
    # =========================================================================

    def list_categories(self) -> List[CategorySummary]:
        """Summarize every category that currently has notes.

        Ordered by most recent activity, then name.
        """
        last_note = func.max(DBNote.created_at).label("last_note")
        stmt = (
            select(DBNote.category, func.count(DBNote.seq).label("note_count"), last_note)
            .group_by(DBNote.category)
            .order_by(last_note.desc(), DBNote.category.asc())
        )
        with self._translate_errors("list_categories"):
            with self._session() as session:
                rows = session.execute(stmt).all()
        return [
            CategorySummary(
                name=row.category,
                count=row.note_count,
                last_note=ensure_timezone_aware(row.last_note),
            )
            for row in rows
        ]

    def count(self, category: Optional[str] = None) -> int:
        """Count all notes, or the notes in one category."""
        stmt = select(func.count(DBNote.seq))
        if category:
            stmt = stmt.where(DBNote.category == category)
        with self._translate_errors("count_notes"):
            with self._session() as session:
                return session.execute(stmt).scalar() or 0

    def check_health(self) -> Dict[str, Any]:
        """Report store reachability, note count and FTS5 state."""
        health: Dict[str, Any] = {"healthy": True, "fts_ok": self.fts.available}
        try:
            health["note_count"] = self.count()
        except StorageError as e:
            health["healthy"] = False
            health["error"] = e.message
        return health
