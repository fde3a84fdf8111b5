"""Application exceptions and the handlers that turn them into responses.

Every failure leaves the API in the same envelope shape:
``{"success": false, "message": "..."}``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(CatalogError):
    """A required field is missing or malformed."""

    status_code = 400


class ConflictError(CatalogError):
    """A unique slug or username is already taken."""

    status_code = 400


class InUseError(CatalogError):
    """A parent row cannot be deleted while other rows reference it."""

    status_code = 409


class NotFoundError(CatalogError):
    status_code = 404


class AuthError(CatalogError):
    """Missing, malformed or expired credential.

    The message never says which check failed.
    """

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ObjectStoreError(CatalogError):
    """The WebDAV store rejected a request or could not be reached."""

    status_code = 500


def error_body(message: str) -> dict:
    return {"success": False, "message": message}


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers that render every error as the standard envelope."""

    @app.exception_handler(CatalogError)
    async def handle_catalog_error(request: Request, exc: CatalogError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            message = "Internal server error"
        else:
            message = exc.message
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = "Route not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = "Invalid request"
        return JSONResponse(status_code=400, content=error_body(message))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("Internal server error"))
