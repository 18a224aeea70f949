"""
Outbound HTTP helpers shared by OAuth clients and file providers.

``send_with_retry`` retries transient failures only — transport errors and
5xx responses — with exponential backoff.  4xx responses are returned to the
caller immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from config.settings import config

logger = logging.getLogger(__name__)


def make_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """New ``AsyncClient`` with the configured timeout (``transport`` is for tests)."""
    return httpx.AsyncClient(timeout=config.http_timeout_seconds, transport=transport)


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: Optional[int] = None,
    backoff: Optional[float] = None,
    **kwargs: Any,
) -> httpx.Response:
    attempts = max(1, max_attempts if max_attempts is not None else config.http_max_attempts)
    delay = config.http_backoff_seconds if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "%s %s attempt %d/%d failed (%s) — retrying",
                method, url, attempt, attempts, type(exc).__name__,
            )
        else:
            if resp.status_code < 500 or attempt >= attempts:
                return resp
            logger.warning(
                "%s %s attempt %d/%d returned %d — retrying",
                method, url, attempt, attempts, resp.status_code,
            )
        await asyncio.sleep(delay * (2 ** (attempt - 1)))

    raise RuntimeError("unreachable")  # pragma: no cover
