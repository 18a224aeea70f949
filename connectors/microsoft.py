"""
MicrosoftOAuthClient — OAuth2 + PKCE for OneDrive via the Microsoft identity
platform (v2.0 endpoints).

Endpoints are tenant-scoped; ``common`` accepts both work/school and personal
accounts.  Refresh tokens are only issued when ``offline_access`` is among
the requested scopes.
"""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from config.settings import config
from connectors.base import BaseOAuthClient
from utils.schemas import ProviderType

_AUTHORITY_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0"


class MicrosoftOAuthClient(BaseOAuthClient):
    """OAuth2 client for Microsoft (OneDrive / Graph)."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        tenant_id: Optional[str] = None,
        prompt: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            client_id if client_id is not None else config.microsoft_client_id,
            client_secret if client_secret is not None else config.microsoft_client_secret,
            transport=transport,
        )
        tenant = (tenant_id if tenant_id is not None else config.microsoft_tenant_id) or "common"
        self.prompt = prompt if prompt is not None else config.microsoft_prompt
        authority = _AUTHORITY_TEMPLATE.format(tenant=tenant)
        self._authorize_url = f"{authority}/authorize"
        self._token_url = f"{authority}/token"
        self._logout_url = f"{authority}/logout"

    @property
    def provider(self) -> ProviderType:
        return ProviderType.MICROSOFT

    @property
    def display_name(self) -> str:
        return "OneDrive"

    @property
    def authorize_endpoint(self) -> str:
        return self._authorize_url

    @property
    def token_endpoint(self) -> str:
        return self._token_url

    def extra_authorize_params(self) -> Dict[str, str]:
        params = {"response_mode": "query"}
        if self.prompt:
            params["prompt"] = self.prompt
        return params

    async def _revoke(self, refresh_token: str) -> None:
        # Microsoft has no RFC 7009 endpoint for delegated tokens; the logout
        # endpoint is tried and usually rejects it.
        async with self._client() as client:
            resp = await client.post(
                self._logout_url,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "token": refresh_token,
                },
            )
            resp.raise_for_status()
