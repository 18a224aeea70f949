"""
Tests for AccessTokenManager caching and refresh.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from connectors.errors import NotLinked, ProviderExchangeFailed
from connectors.registry import ProviderRegistry
from connectors.state_store import InMemoryStateStore
from connectors.token_manager import AccessTokenManager
from connectors.token_store import InMemoryTokenStore
from core.link_service import LinkProviderService
from utils.schemas import ProviderAccount, ProviderType, TokenSet


def _token_set(access="at-1", refresh="rt-1", expires_in=3600) -> TokenSet:
    return TokenSet(
        access_token=access,
        refresh_token=refresh,
        expires_at_utc=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        scopes=["drive.readonly"],
    )


def _oauth_client(*refresh_results) -> MagicMock:
    client = MagicMock()
    client.provider = ProviderType.GOOGLE
    client.refresh = AsyncMock(side_effect=list(refresh_results))
    return client


async def _linked_store(cipher, refresh="rt-stored") -> InMemoryTokenStore:
    store = InMemoryTokenStore(cipher)
    await store.upsert(
        ProviderAccount.new("user-1", ProviderType.GOOGLE).update_from(
            _token_set(refresh=refresh), store.encrypt
        )
    )
    return store


def _manager(store, client, skew=60) -> AccessTokenManager:
    registry = ProviderRegistry("OAuth client", {ProviderType.GOOGLE: client})
    return AccessTokenManager(store, registry, skew_seconds=skew)


class TestAccessTokenManager:
    @pytest.mark.asyncio
    async def test_not_linked(self, cipher):
        manager = _manager(InMemoryTokenStore(cipher), _oauth_client())
        with pytest.raises(NotLinked):
            await manager.get_access_token("user-1", ProviderType.GOOGLE)

    @pytest.mark.asyncio
    async def test_refreshes_with_decrypted_token_and_persists_rotation(self, cipher):
        store = await _linked_store(cipher, refresh="rt-stored")
        client = _oauth_client(_token_set(access="at-new", refresh="rt-rotated"))
        manager = _manager(store, client)

        token = await manager.get_access_token("user-1", ProviderType.GOOGLE)

        assert token == "at-new"
        client.refresh.assert_awaited_once_with("rt-stored")
        account = await store.get("user-1", ProviderType.GOOGLE)
        assert store.decrypt(account.encrypted_refresh_token) == "rt-rotated"

    @pytest.mark.asyncio
    async def test_cached_token_is_reused(self, cipher):
        store = await _linked_store(cipher)
        client = _oauth_client(_token_set(access="at-1"), _token_set(access="at-2"))
        manager = _manager(store, client)

        first = await manager.get_access_token("user-1", ProviderType.GOOGLE)
        second = await manager.get_access_token("user-1", ProviderType.GOOGLE)

        assert first == second == "at-1"
        assert client.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_token_inside_skew_window_is_refreshed(self, cipher):
        store = await _linked_store(cipher)
        client = _oauth_client(
            _token_set(access="at-1", expires_in=30),
            _token_set(access="at-2", expires_in=3600),
        )
        manager = _manager(store, client, skew=60)

        assert await manager.get_access_token("user-1", ProviderType.GOOGLE) == "at-1"
        assert await manager.get_access_token("user-1", ProviderType.GOOGLE) == "at-2"

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, cipher):
        store = await _linked_store(cipher)
        client = _oauth_client(_token_set(access="at-1"), _token_set(access="at-2"))
        manager = _manager(store, client)

        await manager.get_access_token("user-1", ProviderType.GOOGLE)
        manager.invalidate("user-1", ProviderType.GOOGLE)

        assert await manager.get_access_token("user-1", ProviderType.GOOGLE) == "at-2"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, cipher):
        store = await _linked_store(cipher)

        async def slow_refresh(_refresh_token):
            await asyncio.sleep(0.01)
            return _token_set(access="at-shared")

        client = _oauth_client()
        client.refresh = AsyncMock(side_effect=slow_refresh)
        manager = _manager(store, client)

        tokens = await asyncio.gather(
            *[manager.get_access_token("user-1", ProviderType.GOOGLE) for _ in range(5)]
        )

        assert set(tokens) == {"at-shared"}
        assert client.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates_and_is_not_cached(self, cipher):
        store = await _linked_store(cipher)
        client = _oauth_client(ProviderExchangeFailed(), _token_set(access="at-ok"))
        manager = _manager(store, client)

        with pytest.raises(ProviderExchangeFailed):
            await manager.get_access_token("user-1", ProviderType.GOOGLE)
        assert await manager.get_access_token("user-1", ProviderType.GOOGLE) == "at-ok"

    @pytest.mark.asyncio
    async def test_refresh_without_scope_keeps_stored_scopes(self, cipher):
        store = await _linked_store(cipher)
        unchanged_grant = _token_set(access="at-2").model_copy(update={"scopes": []})
        manager = _manager(store, _oauth_client(unchanged_grant))

        await manager.get_access_token("user-1", ProviderType.GOOGLE)

        account = await store.get("user-1", ProviderType.GOOGLE)
        assert account.scopes == ["drive.readonly"]

    @pytest.mark.asyncio
    async def test_locks_are_released_after_use(self, cipher):
        store = await _linked_store(cipher)
        client = _oauth_client(_token_set(access="at-1"))
        manager = _manager(store, client)

        await asyncio.gather(
            *[manager.get_access_token("user-1", ProviderType.GOOGLE) for _ in range(3)]
        )
        with pytest.raises(NotLinked):
            await manager.get_access_token("user-2", ProviderType.GOOGLE)

        assert manager._locks == {}

    @pytest.mark.asyncio
    async def test_expired_entry_is_evicted_on_read(self, cipher):
        manager = _manager(InMemoryTokenStore(cipher), _oauth_client())
        manager._cache[("user-1", ProviderType.GOOGLE)] = (
            "at-old",
            datetime.now(timezone.utc) - timedelta(minutes=5),
        )

        with pytest.raises(NotLinked):
            await manager.get_access_token("user-1", ProviderType.GOOGLE)

        assert manager._cache == {}


class TestRefreshVersusDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_during_refresh_stays_disconnected(self, cipher):
        store = await _linked_store(cipher)
        refresh_started, release_refresh = asyncio.Event(), asyncio.Event()

        async def gated_refresh(_refresh_token):
            refresh_started.set()
            await release_refresh.wait()
            return _token_set(access="at-late", refresh="rt-late")

        client = _oauth_client()
        client.refresh = AsyncMock(side_effect=gated_refresh)
        client.revoke = AsyncMock()
        manager = _manager(store, client)
        service = LinkProviderService(
            ProviderRegistry("OAuth client", {ProviderType.GOOGLE: client}),
            store,
            InMemoryStateStore(),
            manager,
        )

        refresh = asyncio.create_task(manager.get_access_token("user-1", ProviderType.GOOGLE))
        await refresh_started.wait()
        disconnect = asyncio.create_task(service.disconnect("user-1", ProviderType.GOOGLE))
        await asyncio.sleep(0)
        release_refresh.set()
        await asyncio.gather(refresh, disconnect)

        assert await store.get("user-1", ProviderType.GOOGLE) is None
        # the rotated token is the one revoked
        client.revoke.assert_awaited_once_with("rt-late")
        with pytest.raises(NotLinked):
            await manager.get_access_token("user-1", ProviderType.GOOGLE)
        assert client.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_never_recreates_a_deleted_account(self, cipher):
        store = await _linked_store(cipher)

        async def refresh_after_delete(_refresh_token):
            await store.delete("user-1", ProviderType.GOOGLE)
            return _token_set(access="at-orphan")

        client = _oauth_client()
        client.refresh = AsyncMock(side_effect=refresh_after_delete)
        manager = _manager(store, client)

        with pytest.raises(NotLinked):
            await manager.get_access_token("user-1", ProviderType.GOOGLE)

        assert await store.get("user-1", ProviderType.GOOGLE) is None
        assert manager._cache == {}
