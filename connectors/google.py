"""
GoogleOAuthClient — OAuth2 + PKCE web flow for Google Drive.

``access_type=offline`` and ``prompt=consent`` make Google hand out a refresh
token on every consent, not only the first one.
"""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from config.settings import config
from connectors.base import BaseOAuthClient
from utils.schemas import ProviderType

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"


class GoogleOAuthClient(BaseOAuthClient):
    """OAuth2 client for Google."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        access_type: Optional[str] = None,
        prompt: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            client_id if client_id is not None else config.google_client_id,
            client_secret if client_secret is not None else config.google_client_secret,
            transport=transport,
        )
        self.access_type = access_type if access_type is not None else config.google_access_type
        self.prompt = prompt if prompt is not None else config.google_prompt

    @property
    def provider(self) -> ProviderType:
        return ProviderType.GOOGLE

    @property
    def display_name(self) -> str:
        return "Google Drive"

    @property
    def authorize_endpoint(self) -> str:
        return _GOOGLE_AUTH_URL

    @property
    def token_endpoint(self) -> str:
        return _GOOGLE_TOKEN_URL

    def extra_authorize_params(self) -> Dict[str, str]:
        params = {"access_type": self.access_type}
        if self.prompt:
            params["prompt"] = self.prompt
        return params

    async def _revoke(self, refresh_token: str) -> None:
        async with self._client() as client:
            resp = await client.post(_GOOGLE_REVOKE_URL, data={"token": refresh_token})
            resp.raise_for_status()
