"""FastAPI application factory."""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from scratchpad_mcp.api.exceptions import register_exception_handlers
from scratchpad_mcp.api.routes import fragments, health, notes
from scratchpad_mcp.config import config
from scratchpad_mcp.server.mcp_server import ScratchpadMcpServer
from scratchpad_mcp.services.note_service import NoteService

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of each HTTP request."""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} "
            f"({duration_ms:.2f}ms)"
        )
        return response


def create_app(
    service: NoteService, mcp_server: Optional[ScratchpadMcpServer] = None
) -> FastAPI:
    """Create and configure the web application.

    Args:
        service: Note service shared by every route.
        mcp_server: When given, its streamable HTTP transport is mounted at /mcp.
    """
    lifespan = None
    mcp_app = None
    if mcp_server is not None:
        mcp_server.mcp.settings.streamable_http_path = "/"
        mcp_app = mcp_server.mcp.streamable_http_app()

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with mcp_server.mcp.session_manager.run():
                logger.info("MCP streamable HTTP transport mounted at /mcp")
                yield

    app = FastAPI(
        title=config.server_name,
        description="Categorized markdown notes: capture, search and browse",
        version=config.server_version,
        lifespan=lifespan,
    )
    app.state.note_service = service

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(notes.router)
    app.include_router(fragments.router)

    if mcp_app is not None:
        app.mount("/mcp", mcp_app)

    return app
