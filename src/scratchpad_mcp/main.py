#!/usr/bin/env python
"""Main entry point for the Scratchpad server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

import uvicorn

from scratchpad_mcp.api import create_app
from scratchpad_mcp.config import config
from scratchpad_mcp.models.db_models import init_db
from scratchpad_mcp.observability import configure_logging, metrics
from scratchpad_mcp.server.mcp_server import ScratchpadMcpServer
from scratchpad_mcp.services.note_service import NoteService
from scratchpad_mcp.storage.note_repository import NoteRepository


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Scratchpad note server")
    parser.add_argument(
        "--transport",
        help="stdio runs the MCP server alone; http serves the web app, "
        "REST API and MCP (at /mcp)",
        choices=["stdio", "http"],
        default=os.environ.get("SCRATCHPAD_TRANSPORT", "stdio"),
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("SCRATCHPAD_DATABASE_PATH"),
    )
    parser.add_argument(
        "--in-memory",
        help="Keep notes in an in-memory database, discarded on exit "
        "(tests and demos; requests are serialized)",
        action="store_true",
    )
    parser.add_argument("--host", help="HTTP bind address", type=str)
    parser.add_argument("--port", help="HTTP port", type=int)
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level,
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.in_memory:
        config.in_memory_db = True
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main(argv=None):
    """Run the Scratchpad server."""
    args = parse_args(argv)
    update_config(args)

    # Console + persistent file logging with rotation
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    atexit.register(_save_metrics_on_exit)

    # Single engine shared by every adapter
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    service = NoteService(NoteRepository(engine))
    server = ScratchpadMcpServer(service=service)

    try:
        if args.transport == "stdio":
            logger.info("Starting Scratchpad MCP server on stdio")
            server.run("stdio")
        else:
            app = create_app(service, mcp_server=server)
            logger.info(f"Starting Scratchpad on http://{config.host}:{config.port}")
            uvicorn.run(app, host=config.host, port=config.port, log_level="warning")
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
