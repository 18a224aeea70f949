"""
Global middleware.
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def register_middleware(app: FastAPI) -> None:
    """Attach app-level middleware."""

    @app.middleware("http")
    async def correlation_and_timing(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        response.headers[CORRELATION_HEADER] = correlation_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug(
            "[%s] %s %s → %d — %.3fs",
            correlation_id, request.method, request.url.path, response.status_code, elapsed,
        )
        return response
