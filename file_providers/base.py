"""
BaseFileProvider — list / metadata / view-URL over a provider's file API.

Subclasses only translate between the provider's JSON and our schemas; token
resolution, retries and error mapping live here.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from connectors.errors import ProviderApiError
from connectors.http import make_client, send_with_retry
from connectors.token_manager import AccessTokenManager
from utils.schemas import FileListPage, FileMetadata, ProviderType

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_size(value: Any) -> Optional[int]:
    """Drive returns sizes as strings, Graph as numbers; folders have none."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class BaseFileProvider(ABC):
    def __init__(
        self,
        token_manager: AccessTokenManager,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token_manager = token_manager
        self._transport = transport

    @property
    @abstractmethod
    def provider(self) -> ProviderType:
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @abstractmethod
    async def list(
        self,
        user_id: str,
        folder_id: Optional[str] = None,
        page_size: int = 50,
        page_token: Optional[str] = None,
    ) -> FileListPage:
        ...

    @abstractmethod
    async def get_metadata(self, user_id: str, file_id: str) -> FileMetadata:
        ...

    @abstractmethod
    async def get_view_url(self, user_id: str, file_id: str) -> str:
        ...

    async def _get_json(
        self,
        user_id: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Authorised GET; non-2xx becomes ``ProviderApiError`` (details logged only)."""
        token = await self._token_manager.get_access_token(user_id, self.provider)
        try:
            async with make_client(self._transport) as client:
                resp = await send_with_retry(
                    client,
                    "GET",
                    url,
                    params=params,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.error("%s API unreachable: %s", self.display_name, exc)
            raise ProviderApiError(self.provider.value, 0) from exc

        if resp.status_code >= 400:
            logger.error(
                "%s API error: %d %s",
                self.display_name, resp.status_code, resp.text[:1000],
            )
            raise ProviderApiError(self.provider.value, resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            logger.error("%s API returned non-JSON body", self.display_name)
            raise ProviderApiError(self.provider.value, resp.status_code) from exc
