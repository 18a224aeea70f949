"""
Exception → HTTP translation.

Services raise ``ConnectorError`` subclasses; this is the only place they
become responses.  Bodies carry a short public message, details go to the log.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from connectors.errors import ConnectorError

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConnectorError)
    async def connector_error(request: Request, exc: ConnectorError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s (%s)",
                request.method, request.url.path, type(exc).__name__, exc.message,
            )
        else:
            logger.info(
                "%s %s → %d %s",
                request.method, request.url.path, exc.status_code, type(exc).__name__,
            )
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        logger.info("%s %s → 400 %s", request.method, request.url.path, exc.errors())
        return _error(400, "invalid request")

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "internal error")
