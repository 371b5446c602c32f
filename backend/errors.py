"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(CatalogError):
    def __init__(self, what: str):
        super().__init__(f"{what} not found", status_code=404)


class CatalogQueryError(CatalogError):
    """A query against the catalog store failed. Surfaces as a plain 500."""

    def __init__(self, operation: str):
        super().__init__(f"Catalog query failed: {operation}", status_code=500)


def not_found_response(what: str) -> JSONResponse:
    """404 body returned from inside cached routes, so it follows the cache contract."""
    return JSONResponse({"error": f"{what} not found"}, status_code=404)


# Errors that become a response inside a cached route instead of escaping it
HANDLED_ERRORS = (CatalogError, ValueError)


def error_response(exc: Exception) -> JSONResponse:
    """Turn a known application error into its ``{"error": ...}`` response.

    Used by the app's exception handlers and by the response cache, which
    stores these bodies like any other response.
    """
    if isinstance(exc, CatalogQueryError):
        logger.error("%s", exc, exc_info=exc.__cause__)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    if isinstance(exc, CatalogError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)
    if isinstance(exc, ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)
    raise TypeError(f"No error response for {type(exc).__name__}") from exc


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(CatalogError)
    async def handle_catalog_error(_request: Request, exc: CatalogError):
        return error_response(exc)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return error_response(exc)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
