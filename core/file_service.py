"""
FileService — file listings across every linked provider.

The aggregated view fans out one ``list`` per linked provider concurrently.
A provider that fails or exceeds its timeout contributes nothing; it never
aborts the whole aggregation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from config.settings import config
from connectors.registry import ProviderRegistry
from connectors.token_store import BaseTokenStore
from file_providers.base import BaseFileProvider
from utils.schemas import (
    FileListPage,
    FileMetadata,
    ProviderAccount,
    ProviderFileItem,
    ProviderType,
)

logger = logging.getLogger(__name__)


class FileService:
    def __init__(
        self,
        token_store: BaseTokenStore,
        file_providers: ProviderRegistry[BaseFileProvider],
        provider_timeout: Optional[float] = None,
    ):
        self._tokens = token_store
        self._providers = file_providers
        self._timeout = (
            config.provider_timeout_seconds if provider_timeout is None else provider_timeout
        )

    async def get_files_from_all_providers(
        self, user_id: str, page_size: int = 50
    ) -> List[ProviderFileItem]:
        accounts = await self._tokens.get_all_by_user(user_id)
        if not accounts:
            logger.info("User %s has no linked accounts", user_id)
            return []

        results = await asyncio.gather(
            *[self._list_one(user_id, account, page_size) for account in accounts]
        )

        merged = [item for items in results for item in items]
        merged.sort(key=lambda f: f.modified_utc, reverse=True)

        logger.info(
            "Aggregated %d files from %d providers for user %s",
            len(merged), len(accounts), user_id,
        )
        return merged

    async def _list_one(
        self, user_id: str, account: ProviderAccount, page_size: int
    ) -> List[ProviderFileItem]:
        provider = account.provider
        try:
            file_provider = self._providers.get(provider)
            page = await asyncio.wait_for(
                file_provider.list(user_id, None, page_size, None),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Listing %s for user %s timed out after %.1fs",
                provider.value, user_id, self._timeout,
            )
            return []
        except Exception:
            logger.exception("Failed to fetch files from %s for user %s", provider.value, user_id)
            return []

        return [
            ProviderFileItem(**item.model_dump(), provider=provider)
            for item in page.items
        ]

    async def get_files_by_provider(
        self,
        user_id: str,
        provider: ProviderType,
        folder_id: Optional[str] = None,
        page_size: int = 50,
        page_token: Optional[str] = None,
    ) -> FileListPage:
        return await self._providers.get(provider).list(user_id, folder_id, page_size, page_token)

    async def get_file_metadata(
        self, user_id: str, provider: ProviderType, file_id: str
    ) -> FileMetadata:
        return await self._providers.get(provider).get_metadata(user_id, file_id)

    async def get_file_view_url(
        self, user_id: str, provider: ProviderType, file_id: str
    ) -> str:
        return await self._providers.get(provider).get_view_url(user_id, file_id)
