"""FTS5 full-text search index for Scratchpad notes.

Encapsulates FTS5 query construction, graceful degradation and recovery
logic. The note repository composes these predicates into its own
filtered, paginated statements.
"""
import logging
import re
from typing import Any, Optional

from sqlalchemy import column, func, literal_column, or_, table, text
from sqlalchemy.engine import Engine

from scratchpad_mcp.models.db_models import DBNote, rebuild_fts_index
from scratchpad_mcp.utils import escape_like_pattern

logger = logging.getLogger(__name__)

FTS5_KEYWORDS = {"AND", "OR", "NOT", "NEAR"}

# Lightweight handle on the virtual table for use in Core statements
notes_fts = table("notes_fts", column("rowid"))


class FtsIndex:
    """FTS5 full-text search index with graceful degradation.

    Args:
        engine: SQLAlchemy engine used for database access.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.available: bool = True

    # ------------------------------------------------------------------
    # Statement building
    # ------------------------------------------------------------------

    @staticmethod
    def score_column() -> Any:
        """bm25 relevance of the current row; lower is more relevant."""
        return func.bm25(literal_column("notes_fts")).label("score")

    @staticmethod
    def join_condition() -> Any:
        return notes_fts.c.rowid == DBNote.seq

    def match_clause(self, query: str, literal: Optional[bool] = None) -> Any:
        """WHERE clause matching note content against a user query."""
        return literal_column("notes_fts").op("MATCH")(
            self.build_match_query(query, literal)
        )

    @staticmethod
    def like_clause(query: str) -> Any:
        """LIKE-based substitute for MATCH used when FTS5 is unavailable.

        Matches notes containing any of the query's terms.
        """
        terms = FtsIndex._tokenize(query) or [query.strip()]
        return or_(
            *(
                DBNote.content.like(f"%{escape_like_pattern(term)}%", escape="\\")
                for term in terms
            )
        )

    # ------------------------------------------------------------------
    # Query escaping helpers
    # ------------------------------------------------------------------

    def build_match_query(self, query: str, literal: Optional[bool] = None) -> str:
        """Translate user text into an FTS5 MATCH expression.

        Plain text becomes an OR of quoted terms, so any term matches and
        notes containing more of them rank higher. Queries that already use
        FTS5 syntax (operators, phrases, prefix search, column filters) are
        passed through unchanged.
        """
        if literal is None:
            literal = self._should_escape(query)
        if not literal:
            return query
        terms = self._tokenize(query)
        if not terms:
            return self._quote(query.strip())
        return " OR ".join(self._quote(term) for term in terms)

    def is_passthrough(self, query: str) -> bool:
        """True when the query is sent to FTS5 as written."""
        return not self._should_escape(query)

    @staticmethod
    def _should_escape(query: str) -> bool:
        """Auto-detect whether a query needs FTS5 escaping."""
        words = query.split()
        if any(word in FTS5_KEYWORDS for word in words):
            return False
        if query.count('"') >= 2:
            return False
        if re.search(r"\b\w+\*", query):
            return False
        # "content" is the only column, so other "word:" text is prose
        if re.search(r"\bcontent\s*:", query):
            return False
        return True

    @staticmethod
    def _tokenize(query: str) -> list:
        cleaned = re.sub(r'["*^]', " ", query)
        return [word for word in cleaned.split() if word]

    @staticmethod
    def _quote(term: str) -> str:
        return '"' + term.replace('"', '""') + '"'

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def rebuild(self) -> int:
        """Rebuild the FTS5 index from the notes table."""
        return rebuild_fts_index(self.engine)

    def check_integrity(self) -> bool:
        """Run the FTS5 integrity check; False when the index is damaged."""
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    text("INSERT INTO notes_fts(notes_fts) VALUES('integrity-check')")
                )
            return True
        except Exception as e:
            logger.warning(f"FTS5 integrity check failed: {e}")
            return False

    def attempt_recovery(self) -> bool:
        """Attempt to recover FTS5 by rebuilding the index.

        Disables FTS5 for the rest of the session when the rebuild fails.
        """
        try:
            count = self.rebuild()
            logger.info(f"FTS5 index rebuilt with {count} notes")
            return True
        except Exception as e:
            logger.error(f"FTS5 rebuild failed: {e}. Disabling FTS5 for this session.")
            self.available = False
            return False

