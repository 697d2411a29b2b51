"""Configuration module for the Scratchpad MCP server."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from scratchpad_mcp import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default database
_USER_ENV = Path.home() / ".scratchpad" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class ScratchpadConfig(BaseModel):
    """Configuration for the Scratchpad server."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("SCRATCHPAD_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("SCRATCHPAD_DATABASE_PATH", "data/db/scratchpad.db")
        )
    )
    # When True, the store lives in an in-memory SQLite database and is
    # discarded on exit. Demo and test use only: its single shared
    # connection serializes every request
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("SCRATCHPAD_IN_MEMORY_DB", "false")
    )
    # Seconds to wait for a locked database or a pooled connection before
    # failing the request with StoreUnavailableError
    store_timeout: float = Field(
        default_factory=lambda: float(os.getenv("SCRATCHPAD_STORE_TIMEOUT", "5"))
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("SCRATCHPAD_SERVER_NAME", "Scratchpad"))
    server_version: str = Field(default=__version__)
    host: str = Field(default_factory=lambda: os.getenv("SCRATCHPAD_HOST", "0.0.0.0"))
    port: int = Field(
        default_factory=lambda: int(os.getenv("SCRATCHPAD_PORT", "7521"))
    )
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("SCRATCHPAD_LOG_LEVEL", "INFO").upper()
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("SCRATCHPAD_LOG_DIR"))
            if os.getenv("SCRATCHPAD_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_server_config(self) -> "ScratchpadConfig":
        """Validate network and store settings."""
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.store_timeout <= 0:
            raise ValueError("store_timeout must be > 0")
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(
                "Unknown log level %r, falling back to INFO", self.log_level
            )
            self.log_level = "INFO"
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite:///:memory:"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = ScratchpadConfig()
