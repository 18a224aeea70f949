"""
BaseOAuthClient — abstract interface for all OAuth2 + PKCE provider clients.

Every provider (Google, Microsoft, …) subclasses this and supplies its
endpoints and provider-specific authorize parameters.  The token endpoint
handling (exchange / refresh / response parsing) is shared because both
providers speak standard RFC 6749 form posts.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from connectors.errors import ProviderExchangeFailed
from connectors.http import make_client, send_with_retry
from utils.schemas import ProviderType, TokenSet

logger = logging.getLogger(__name__)


def _expires_at(expires_in: Any) -> datetime:
    """``now + max(expires_in, 0)``; missing or malformed values count as 0."""
    try:
        seconds = max(int(expires_in), 0)
    except (TypeError, ValueError):
        seconds = 0
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


class BaseOAuthClient(ABC):
    """Abstract base for all provider OAuth clients."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._transport = transport

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider(self) -> ProviderType:
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable: 'Google Drive', 'OneDrive'."""
        ...

    @property
    @abstractmethod
    def authorize_endpoint(self) -> str:
        ...

    @property
    @abstractmethod
    def token_endpoint(self) -> str:
        ...

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    # ── OAuth flow ──────────────────────────────────────────────────────

    def extra_authorize_params(self) -> Dict[str, str]:
        """Provider-specific query parameters added to the authorize URL."""
        return {}

    def build_authorize_url(
        self,
        state: str,
        code_challenge: str,
        redirect_uri: str,
        scopes: List[str],
    ) -> str:
        """
        Build the provider's authorization URL.  Pure: same inputs, same URL.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        params.update(self.extra_authorize_params())
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    async def exchange_code(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> TokenSet:
        """
        Exchange the authorization code (plus PKCE verifier) for tokens.

        Raises ``ProviderExchangeFailed`` if the provider errors or does not
        hand out a refresh token — that means offline access was not granted.
        """
        data = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            }
        )
        refresh_token = data.get("refresh_token")
        if not refresh_token:
            logger.error(
                "%s did not return a refresh token; offline access was not granted",
                self.display_name,
            )
            raise ProviderExchangeFailed(
                f"{self.display_name} did not return a refresh token"
            )
        return self._to_token_set(data, refresh_token)

    async def refresh(self, refresh_token: str) -> TokenSet:
        """
        Get a new access token.  Providers often omit ``refresh_token`` in the
        response; the one passed in is kept in that case.
        """
        data = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        return self._to_token_set(data, data.get("refresh_token") or refresh_token)

    async def revoke(self, refresh_token: str) -> None:
        """
        Revoke the refresh token at the provider.  Best-effort: failures are
        logged and swallowed.
        """
        try:
            await self._revoke(refresh_token)
        except Exception as exc:
            logger.warning(
                "%s token revocation failed or token already revoked: %s",
                self.display_name, exc,
            )

    @abstractmethod
    async def _revoke(self, refresh_token: str) -> None:
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return make_client(self._transport)

    async def _post_token(self, payload: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await send_with_retry(
                    client,
                    "POST",
                    self.token_endpoint,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.error("%s token endpoint unreachable: %s", self.display_name, exc)
            raise ProviderExchangeFailed() from exc

        if resp.status_code >= 400:
            logger.error(
                "%s token endpoint returned %d: %s",
                self.display_name, resp.status_code, resp.text[:500],
            )
            raise ProviderExchangeFailed()

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error("%s: failed to parse token response JSON", self.display_name)
            raise ProviderExchangeFailed() from exc

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.error("%s: token response without access_token", self.display_name)
            raise ProviderExchangeFailed(
                f"{self.display_name} did not return an access token"
            )
        return data

    @staticmethod
    def _to_token_set(data: Dict[str, Any], refresh_token: str) -> TokenSet:
        return TokenSet(
            access_token=data["access_token"],
            refresh_token=refresh_token,
            expires_at_utc=_expires_at(data.get("expires_in")),
            scopes=(data.get("scope") or "").split(),
        )
