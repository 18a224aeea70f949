"""
LinkProviderService — starts and completes provider linking.

Per attempt:  Started → (consent at provider) → Callback-Pending → Linked | Failed.

``start`` runs for an authenticated user.  ``callback`` is reached through
the provider's redirect and is anonymous: the user is taken from the stored
``LinkState``, never from the request.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import timedelta
from typing import Callable, List, Optional, Union

from config.settings import config
from connectors.base import BaseOAuthClient
from connectors.crypto import code_challenge, new_code_verifier, new_state
from connectors.errors import DecryptionFailed, StateExpiredOrReused
from connectors.registry import ProviderRegistry
from connectors.state_store import BaseStateStore
from connectors.token_manager import AccessTokenManager
from connectors.token_store import BaseTokenStore
from utils.schemas import ConnectionStatus, ProviderAccount, ProviderType

logger = logging.getLogger(__name__)


class LinkProviderService:
    def __init__(
        self,
        oauth_clients: ProviderRegistry[BaseOAuthClient],
        token_store: BaseTokenStore,
        state_store: BaseStateStore,
        token_manager: Optional[AccessTokenManager] = None,
        state_ttl: Optional[timedelta] = None,
    ):
        self._oauth = oauth_clients
        self._tokens = token_store
        self._states = state_store
        self._token_manager = token_manager
        self._state_ttl = state_ttl or timedelta(seconds=config.state_ttl_seconds)

    async def start(
        self,
        user_id: str,
        provider: ProviderType,
        redirect_uri: str,
        scopes: List[str],
    ) -> str:
        """Persist a fresh PKCE state and return the provider's authorize URL."""
        client = self._oauth.get(provider)

        state = new_state()
        verifier = new_code_verifier()
        await self._states.save(state, user_id, verifier, client.provider, self._state_ttl)

        logger.info("Link started: user=%s provider=%s", user_id, client.provider.value)
        return client.build_authorize_url(state, code_challenge(verifier), redirect_uri, scopes)

    def _exclusive(self, user_id: str, provider: ProviderType):
        """Serialise with token refreshes for the pair (no-op without a token manager)."""
        if self._token_manager is None:
            return nullcontext()
        return self._token_manager.exclusive(user_id, provider)

    async def callback(
        self,
        state: str,
        code: str,
        redirect_uri: Union[str, Callable[[ProviderType], str]],
        provider: Optional[ProviderType] = None,
    ) -> ProviderAccount:
        """
        Consume ``state``, exchange ``code`` and store the linked account.

        ``redirect_uri`` may be a callable; it is then resolved for the
        state's provider, which is the one the authorize request was sent to.

        Raises ``StateExpiredOrReused`` when the state is unknown or was
        already used.  Exchange errors propagate untouched: the code is
        single-use so there is nothing to retry.
        """
        link = await self._states.take(state)
        if link is None:
            logger.warning("Callback with unknown, expired or reused state")
            raise StateExpiredOrReused()

        if provider is not None and ProviderType(provider) != link.provider:
            logger.warning(
                "Callback route provider %s does not match state provider %s; using state",
                ProviderType(provider).value, link.provider.value,
            )

        if callable(redirect_uri):
            redirect_uri = redirect_uri(link.provider)

        client = self._oauth.get(link.provider)
        tokens = await client.exchange_code(code, link.code_verifier, redirect_uri)

        async with self._exclusive(link.user_id, link.provider):
            account = await self._tokens.get(link.user_id, link.provider)
            if account is None:
                account = ProviderAccount.new(link.user_id, link.provider)
            stored = await self._tokens.upsert(account.update_from(tokens, self._tokens.encrypt))

        logger.info(
            "Linked: user=%s provider=%s scopes=%s",
            link.user_id, link.provider.value, stored.scope_csv,
        )
        return stored

    async def discard_state(self, state: str) -> None:
        """Consume ``state`` without linking (provider reported an error)."""
        if await self._states.take(state) is not None:
            logger.info("Discarded link state after provider error")

    async def disconnect(self, user_id: str, provider: ProviderType) -> None:
        """
        Revoke (best-effort) and forget the linked account.  Idempotent.

        Runs under the pair's lock: a refresh in flight finishes first, and
        none can start until the row is gone.
        """
        provider = ProviderType(provider)
        async with self._exclusive(user_id, provider):
            account = await self._tokens.get(user_id, provider)
            if account is None:
                return
            client = self._oauth.try_get(provider)
            if client is not None:
                try:
                    refresh_token = self._tokens.decrypt(account.encrypted_refresh_token)
                except DecryptionFailed:
                    logger.warning(
                        "Stored %s token for user %s is unreadable; skipping revocation",
                        provider.value, user_id,
                    )
                else:
                    await client.revoke(refresh_token)
            await self._tokens.delete(user_id, provider)
        logger.info("Disconnected %s for user %s", provider.value, user_id)

    async def connection_status(self, user_id: str) -> List[ConnectionStatus]:
        """One entry per available provider, linked or not."""
        linked = {a.provider: a for a in await self._tokens.get_all_by_user(user_id)}
        statuses = []
        for provider in self._oauth.providers():
            account = linked.get(provider)
            statuses.append(
                ConnectionStatus(
                    provider=provider,
                    connected=account is not None,
                    scopes=account.scopes if account else [],
                    expires_at_utc=account.expires_at_utc if account else None,
                )
            )
        return statuses
