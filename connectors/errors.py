"""
Domain errors raised by the linking and file services.

Each error carries the HTTP status it maps to and a short message that is
safe to return to a client.  Anything more detailed (provider response
bodies, stack traces) is logged where the error is raised and never
attached to ``message``.
"""

from __future__ import annotations

from typing import Optional


class ConnectorError(Exception):
    """Base for every error the API boundary knows how to translate."""

    status_code: int = 500
    default_message: str = "internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class StateExpiredOrReused(ConnectorError):
    """Callback presented a ``state`` that is unknown, expired or already consumed."""

    status_code = 410
    default_message = "state expired or already used"


class ProviderExchangeFailed(ConnectorError):
    """Token endpoint rejected the request or omitted a required token."""

    status_code = 502
    default_message = "token exchange with provider failed"


class NotLinked(ConnectorError):
    status_code = 404
    default_message = "provider account not linked"


class DecryptionFailed(ConnectorError):
    """Stored ciphertext was tampered with or encrypted under another key."""

    status_code = 500
    default_message = "internal error"


class ProviderApiError(ConnectorError):
    """Non-2xx from a provider's file API."""

    status_code = 502
    default_message = "upstream provider request failed"

    def __init__(self, provider: str, upstream_status: int, message: Optional[str] = None):
        self.provider = provider
        self.upstream_status = upstream_status
        super().__init__(message)


class InvalidPageToken(ConnectorError):
    status_code = 400
    default_message = "invalid page token"


class ProviderNotRegistered(ConnectorError):
    status_code = 404
    default_message = "provider not available"
