"""SQLAlchemy database models for the Scratchpad MCP server."""
from typing import Optional

from sqlalchemy import (Column, DateTime, Index, Integer, String, Text,
                        create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from scratchpad_mcp.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBNote(Base):
    """Database model for a note.

    ``seq`` is an INTEGER PRIMARY KEY, so it aliases the SQLite rowid. It is
    the FTS5 content rowid and the insertion-order tie-break for notes that
    share a created_at value. ``id`` is the external handle.
    """
    __tablename__ = "notes"
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(24), unique=True, nullable=False)
    category = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_notes_category", category),
        Index("ix_notes_created_at", created_at.desc()),
        Index("ix_notes_category_created_at", category, created_at.desc()),
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', category='{self.category}')>"


def init_db(
    database_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Engine:
    """Initialize the database with hardened configuration.

    Applies SQLite settings for crash resilience and bounded waiting:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    - busy timeout and pool timeout so a locked store fails instead of hanging
    - StaticPool for in-memory databases so every session sees the same data;
      that one connection is shared across threads, so NoteRepository
      serializes access to it (in-memory mode is for tests and demos)

    Args:
        database_url: SQLAlchemy URL. Defaults to config.get_db_url().
        timeout: Seconds to wait on a locked database or busy pool.
            Defaults to config.store_timeout.

    Returns:
        The configured engine, with tables, indexes and the FTS5 index created.
    """
    url = database_url or config.get_db_url()
    timeout = timeout if timeout is not None else config.store_timeout
    connect_args = {"timeout": timeout, "check_same_thread": False}

    if ":memory:" in url:
        engine = create_engine(
            url,
            connect_args=connect_args,
            poolclass=StaticPool,
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            url,
            connect_args=connect_args,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=timeout,
            pool_recycle=3600,
            pool_pre_ping=True,
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")
        cursor.close()

    Base.metadata.create_all(engine)
    init_fts5(engine)

    return engine


def init_fts5(engine: Engine) -> None:
    """Initialize the FTS5 full-text index over note content.

    Creates an external-content FTS5 table mirroring notes.content and
    triggers that keep it in sync on insert and delete. Notes are never
    edited, so no update trigger is needed.
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                content,
                content='notes',
                content_rowid='seq'
            )
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_ai AFTER INSERT ON notes BEGIN
                INSERT INTO notes_fts(rowid, content)
                VALUES (NEW.seq, NEW.content);
            END
        """))

        conn.execute(text("""
            CREATE TRIGGER IF NOT EXISTS notes_ad AFTER DELETE ON notes BEGIN
                INSERT INTO notes_fts(notes_fts, rowid, content)
                VALUES ('delete', OLD.seq, OLD.content);
            END
        """))

        conn.commit()


def rebuild_fts_index(engine: Engine) -> int:
    """Rebuild the FTS5 index from the notes table.

    Returns:
        Number of notes indexed.
    """
    with engine.connect() as conn:
        conn.execute(text("INSERT INTO notes_fts(notes_fts) VALUES('rebuild')"))
        conn.commit()
        count = conn.execute(text("SELECT COUNT(*) FROM notes")).scalar()

    return count or 0


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)
