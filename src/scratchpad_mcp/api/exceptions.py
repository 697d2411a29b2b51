"""Exception handling for FastAPI routes.

Maps the ScratchpadError hierarchy onto HTTP responses with a
``{"error": message, "code": code_name}`` body.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from scratchpad_mcp.exceptions import (
    ErrorCode,
    InvalidIdentifierError,
    NoteNotFoundError,
    ScratchpadError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def error_status(exc: ScratchpadError) -> int:
    """HTTP status code for a domain error."""
    if isinstance(exc, NoteNotFoundError):
        return 404
    if isinstance(exc, (ValidationError, InvalidIdentifierError)):
        return 400
    if isinstance(exc, StorageError):
        return 503
    return 500


def _error_body(message: str, code: str) -> dict:
    return {"error": message, "code": code}


def register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application.

    Usage:
        app = FastAPI()
        register_exception_handlers(app)
    """

    @app.exception_handler(ScratchpadError)
    async def scratchpad_error_handler(
        request: Request, exc: ScratchpadError
    ) -> JSONResponse:
        status_code = error_status(exc)
        if status_code >= 500:
            error_id = str(uuid.uuid4())[:8]
            logger.error(
                f"[{exc.code.name}] [{error_id}] {request.method} {request.url.path}: "
                f"{exc.message}",
                extra={"error_details": exc.details},
            )
            message = (
                "Note store is unavailable"
                if isinstance(exc, StorageError)
                else "Internal server error"
            )
            return JSONResponse(
                status_code=status_code,
                content=_error_body(f"{message} (ref: {error_id})", exc.code.name),
            )

        logger.info(f"[{exc.code.name}] {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content=_error_body(exc.message, exc.code.name),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info(f"Invalid request body on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content=_error_body(
                "Invalid request body", ErrorCode.VALIDATION_FAILED.name
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        error_id = str(uuid.uuid4())[:8]
        logger.exception(
            f"Unhandled exception [{error_id}] on {request.method} {request.url.path}"
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                f"Internal server error (ref: {error_id})", "INTERNAL_ERROR"
            ),
        )
