"""
Token manager — resolve a usable access token for a user + provider.

This is the single interface file providers use before calling a provider
API.  Access tokens are cached in-process per (user, provider) until
``expires_at_utc`` minus a skew; on a miss the stored refresh token is
decrypted and exchanged, and the (possibly rotated) refresh token, expiry
and scopes are written back through the token store.

Refresh, re-link and disconnect for the same (user, provider) are serialised
through one per-key lock (``exclusive``), so a refresh in flight can neither
resurrect a disconnected account nor overwrite a freshly linked one.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, Optional, Tuple

from config.settings import config
from connectors.base import BaseOAuthClient
from connectors.errors import NotLinked
from connectors.registry import ProviderRegistry
from connectors.token_store import BaseTokenStore
from utils.schemas import ProviderType

logger = logging.getLogger(__name__)

_Key = Tuple[str, ProviderType]


class AccessTokenManager:
    def __init__(
        self,
        token_store: BaseTokenStore,
        oauth_clients: ProviderRegistry[BaseOAuthClient],
        *,
        skew_seconds: Optional[int] = None,
    ):
        self._tokens = token_store
        self._oauth = oauth_clients
        self._skew = timedelta(
            seconds=config.access_token_skew_seconds if skew_seconds is None else skew_seconds
        )
        self._cache: Dict[_Key, Tuple[str, datetime]] = {}
        # key -> (lock, number of holders and waiters); dropped when unused
        self._locks: Dict[_Key, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _locked(self, key: _Key) -> AsyncIterator[None]:
        lock, users = self._locks.get(key) or (asyncio.Lock(), 0)
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def _cached(self, key: _Key) -> Optional[str]:
        hit = self._cache.get(key)
        if hit is None:
            return None
        if hit[1] > datetime.now(timezone.utc) + self._skew:
            return hit[0]
        del self._cache[key]
        return None

    @asynccontextmanager
    async def exclusive(self, user_id: str, provider: ProviderType) -> AsyncIterator[None]:
        """
        Hold the (user, provider) lock while the caller rewrites or removes the
        stored account.  The cached access token is dropped on exit.
        """
        key = (user_id, ProviderType(provider))
        try:
            async with self._locked(key):
                yield
        finally:
            self._cache.pop(key, None)

    async def get_access_token(self, user_id: str, provider: ProviderType) -> str:
        """
        Return a bearer token for ``user_id`` at ``provider``.

        Raises ``NotLinked`` if the user never linked this provider (or
        disconnected meanwhile), ``DecryptionFailed`` / ``ProviderExchangeFailed``
        if the stored refresh token cannot be used.
        """
        key = (user_id, ProviderType(provider))
        token = self._cached(key)
        if token:
            return token

        async with self._locked(key):
            # Another request may have refreshed while we waited.
            token = self._cached(key)
            if token:
                return token

            account = await self._tokens.get(user_id, key[1])
            if account is None:
                raise NotLinked(f"{key[1].value} account not linked")

            client = self._oauth.get(key[1])
            refreshed = await client.refresh(self._tokens.decrypt(account.encrypted_refresh_token))
            stored = await self._tokens.update_tokens(
                account.update_from(refreshed, self._tokens.encrypt)
            )
            if stored is None:
                raise NotLinked(f"{key[1].value} account not linked")

            self._cache[key] = (refreshed.access_token, refreshed.expires_at_utc)
            logger.info("Refreshed %s access token for user %s", key[1].value, user_id)
            return refreshed.access_token

    def invalidate(self, user_id: str, provider: ProviderType) -> None:
        self._cache.pop((user_id, ProviderType(provider)), None)
