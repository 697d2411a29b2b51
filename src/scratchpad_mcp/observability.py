"""Logging and per-operation metrics for the Scratchpad.

Every note operation (create_note, search_notes, ...) runs inside
``timed_operation``, which logs its start and end and feeds the process-wide
``metrics`` collector. The collector's snapshot is served by ``/api/stats``
and written to a JSON file so counts survive restarts.
"""
import json
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".scratchpad" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".scratchpad" / "metrics.json"
LOG_FILE_NAME = "scratchpad.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Every module logger lives under this name
ROOT_LOGGER_NAME = "scratchpad_mcp"


def _has_file_handler(target: logging.Logger, log_file: Path) -> bool:
    return any(
        isinstance(h, RotatingFileHandler) and Path(h.baseFilename).resolve() == log_file
        for h in target.handlers
    )


def _has_console_handler(target: logging.Logger) -> bool:
    return any(type(h) is logging.StreamHandler for h in target.handlers)


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``scratchpad_mcp`` loggers to a rotating file (and stderr).

    Safe to call more than once: handlers already attached for the same
    file, or a console handler, are not added again.

    Args:
        log_dir: Directory for scratchpad.log. Defaults to ~/.scratchpad/logs/
        level: Logging level for the hierarchy and its handlers
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files to keep
        console: Also log to stderr; stdout belongs to the stdio MCP transport

    Returns:
        The log directory.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    new_handlers = []
    if not _has_file_handler(app_logger, log_file):
        new_handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )
    if console and not _has_console_handler(app_logger):
        new_handlers.append(logging.StreamHandler())
    for handler in new_handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)

    app_logger.info(f"Logging to {log_file} (rotating at {max_bytes} bytes)")
    return log_path


def _sanitize_error_message(
    message: Optional[str], max_length: int = 200
) -> Optional[str]:
    """Shorten an error message for the metrics file.

    The home directory is shown as ``~``, whitespace is collapsed, and long
    messages are cut to max_length characters ending in ``...``.
    """
    if message is None:
        return None
    cleaned = " ".join(message.replace(str(Path.home()), "~").split())
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[: max_length - 3] + "..."


@dataclass
class OperationMetrics:
    """Running totals for one operation name."""

    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[str] = None

    def record(self, duration_ms: float, error: Optional[str] = None) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if error is None:
            self.success_count += 1
            return
        self.error_count += 1
        self.last_error = _sanitize_error_message(error)
        self.last_error_time = datetime.now(timezone.utc).isoformat()

    def snapshot(self) -> Dict[str, Any]:
        """Rounded view of the totals, as served by /api/stats."""
        average = self.total_duration_ms / self.count if self.count else 0.0
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": self.success_count / self.count if self.count else 0,
            "avg_duration_ms": round(average, 2),
            "min_duration_ms": round(self.min_duration_ms or 0.0, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_error": self.last_error,
            "last_error_time": self.last_error_time,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "OperationMetrics":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in state.items() if k in known})


class MetricsCollector:
    """Thread-safe per-operation counters and timings.

    Totals are loaded from ``metrics_file`` at startup and written back every
    ``auto_save_interval`` operations (0 disables auto-save) and on shutdown.
    """

    def __init__(
        self,
        metrics_file: Optional[Union[str, Path]] = None,
        auto_save_interval: int = 100,
    ):
        self._metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE
        self._auto_save_interval = auto_save_interval
        self._lock = Lock()
        self._operations: Dict[str, OperationMetrics] = {}
        self._unsaved = 0
        self._load_metrics()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Add one run of ``operation``; ``error`` is kept only for failures."""
        with self._lock:
            entry = self._operations.setdefault(operation, OperationMetrics())
            entry.record(duration_ms, None if success else (error or "unknown error"))
            self._unsaved += 1
            if 0 < self._auto_save_interval <= self._unsaved:
                self._save_metrics_unlocked()

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every recorded operation, keyed by name."""
        with self._lock:
            return {name: m.snapshot() for name, m in self._operations.items()}

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._unsaved = 0

    def _load_metrics(self) -> bool:
        if not self._metrics_file.exists():
            return False
        try:
            data = json.loads(self._metrics_file.read_text(encoding="utf-8"))
            self._operations = {
                name: OperationMetrics.from_state(state)
                for name, state in data.get("operations", {}).items()
            }
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable metrics file {self._metrics_file}: {e}")
            self._operations = {}
            return False
        logger.debug(f"Loaded metrics for {len(self._operations)} operations")
        return True

    def _save_metrics_unlocked(self) -> bool:
        data = {
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": {name: asdict(m) for name, m in self._operations.items()},
        }
        temp_file = self._metrics_file.with_suffix(".tmp")
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
            temp_file.replace(self._metrics_file)
        except OSError as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False
        self._unsaved = 0
        return True

    def save_metrics(self) -> bool:
        """Write the current totals to the metrics file."""
        with self._lock:
            return self._save_metrics_unlocked()


# Process-wide collector; tests swap it out for a throwaway one
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """Time a note operation and record it in ``metrics``.

    Yields a dict the caller can fill with result details (result_count,
    note_id); they are appended to the END log line. Exceptions propagate
    after being recorded as a failure.

        with timed_operation("search_notes", query=text) as op:
            notes = repository.search(query)
            op["result_count"] = len(notes)
    """
    ref = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    args = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"[{ref}] START {operation} ({args})")

    error: Optional[str] = None
    started = time.perf_counter()
    try:
        yield details
    except Exception as e:
        error = str(e) or type(e).__name__
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        outcome = "OK" if error is None else f"ERROR: {error}"
        extra = ", ".join(f"{k}={v}" for k, v in details.items())
        logger.debug(
            f"[{ref}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] {extra}"
        )
