"""Error taxonomy and the JSON error envelope.

Every failure leaves the API as ``{"success": false, "message": "..."}``.
Soft degradations (metadata extraction, owner linkage, notifications) are
logged inside the services and never reach this module.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class FileVaultError(Exception):
    """Base class for errors that map to a structured API response."""

    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(FileVaultError):
    """Missing file, malformed email, invalid id format."""

    status_code = 400
    default_message = "Invalid input"


class PayloadTooLarge(InvalidInput):
    """Upload exceeds the configured size ceiling."""

    status_code = 413
    default_message = "File too large"


class NotFound(FileVaultError):
    status_code = 404
    default_message = "Not found"


class Conflict(FileVaultError):
    status_code = 409
    default_message = "Already exists"


class StorageFailure(FileVaultError):
    """Bytes could not be written to or read from the storage root."""

    status_code = 500
    default_message = "Storage unavailable"


class PersistenceFailure(FileVaultError):
    """The record store rejected a write."""

    status_code = 500
    default_message = "Failed to save file record"


def error_body(message: str) -> dict:
    return {"success": False, "message": message}


def register_error_handlers(app: FastAPI) -> None:
    """Attach handlers that turn errors into the success/message envelope."""

    @app.exception_handler(FileVaultError)
    async def filevault_error_handler(request: Request, exc: FileVaultError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        fields = [f for f in fields if f]
        message = "Invalid request"
        if fields:
            message = f"Invalid request: {', '.join(fields)}"
        return JSONResponse(status_code=400, content=error_body(message))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
