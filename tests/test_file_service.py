"""
Tests for FileService aggregation and delegation.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from connectors.errors import ProviderApiError, ProviderNotRegistered
from connectors.registry import ProviderRegistry
from connectors.token_store import InMemoryTokenStore
from core.file_service import FileService
from utils.schemas import FileItem, FileListPage, FileMetadata, ProviderAccount, ProviderType, TokenSet

_T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _item(file_id: str, day: int) -> FileItem:
    return FileItem(id=file_id, name=f"{file_id}.txt", modified_utc=_T0 + timedelta(days=day))


def _file_provider(provider: ProviderType, result=None, side_effect=None) -> MagicMock:
    fp = MagicMock()
    fp.provider = provider
    fp.list = AsyncMock(return_value=result, side_effect=side_effect)
    fp.get_metadata = AsyncMock()
    fp.get_view_url = AsyncMock()
    return fp


async def _store_with(cipher, *providers) -> InMemoryTokenStore:
    store = InMemoryTokenStore(cipher)
    tokens = TokenSet(access_token="at", refresh_token="rt", expires_at_utc=_T0)
    for provider in providers:
        await store.upsert(ProviderAccount.new("user-1", provider).update_from(tokens, store.encrypt))
    return store


def _service(store, *file_providers, timeout=5.0) -> FileService:
    registry = ProviderRegistry("File provider", {fp.provider: fp for fp in file_providers})
    return FileService(store, registry, provider_timeout=timeout)


class TestAggregation:
    @pytest.mark.asyncio
    async def test_merges_and_sorts_newest_first(self, cipher):
        store = await _store_with(cipher, ProviderType.GOOGLE, ProviderType.MICROSOFT)
        google = _file_provider(
            ProviderType.GOOGLE, FileListPage(items=[_item("g-old", 1), _item("g-new", 5)])
        )
        onedrive = _file_provider(
            ProviderType.MICROSOFT, FileListPage(items=[_item("m-mid", 3)])
        )
        service = _service(store, google, onedrive)

        files = await service.get_files_from_all_providers("user-1", page_size=20)

        assert [f.id for f in files] == ["g-new", "m-mid", "g-old"]
        assert [f.provider for f in files] == [
            ProviderType.GOOGLE,
            ProviderType.MICROSOFT,
            ProviderType.GOOGLE,
        ]
        google.list.assert_awaited_once_with("user-1", None, 20, None)

    @pytest.mark.asyncio
    async def test_naive_and_aware_timestamps_sort_together(self, cipher):
        store = await _store_with(cipher, ProviderType.GOOGLE, ProviderType.MICROSOFT)
        # naive values are UTC; +02:00 noon is 10:00 UTC
        google = _file_provider(
            ProviderType.GOOGLE,
            FileListPage(items=[FileItem(id="g-naive", name="g", modified_utc=datetime(2024, 1, 2, 11))]),
        )
        onedrive = _file_provider(
            ProviderType.MICROSOFT,
            FileListPage(
                items=[
                    FileItem(
                        id="m-cest",
                        name="m",
                        modified_utc=datetime(2024, 1, 2, 12, tzinfo=timezone(timedelta(hours=2))),
                    )
                ]
            ),
        )
        service = _service(store, google, onedrive)

        files = await service.get_files_from_all_providers("user-1")

        assert [f.id for f in files] == ["g-naive", "m-cest"]
        assert all(f.modified_utc.utcoffset() == timedelta(0) for f in files)

    @pytest.mark.asyncio
    async def test_failing_provider_is_isolated(self, cipher):
        store = await _store_with(cipher, ProviderType.GOOGLE, ProviderType.MICROSOFT)
        google = _file_provider(ProviderType.GOOGLE, side_effect=ProviderApiError("google", 500))
        onedrive = _file_provider(
            ProviderType.MICROSOFT, FileListPage(items=[_item("m1", 1)])
        )
        service = _service(store, google, onedrive)

        files = await service.get_files_from_all_providers("user-1")

        assert [f.id for f in files] == ["m1"]

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, cipher):
        store = await _store_with(cipher, ProviderType.GOOGLE, ProviderType.MICROSOFT)

        async def hang(*_args):
            await asyncio.sleep(10)

        google = _file_provider(ProviderType.GOOGLE, side_effect=hang)
        onedrive = _file_provider(
            ProviderType.MICROSOFT, FileListPage(items=[_item("m1", 1)])
        )
        service = _service(store, google, onedrive, timeout=0.05)

        files = await asyncio.wait_for(service.get_files_from_all_providers("user-1"), timeout=2)

        assert [f.id for f in files] == ["m1"]

    @pytest.mark.asyncio
    async def test_all_providers_failing_yields_empty(self, cipher):
        store = await _store_with(cipher, ProviderType.GOOGLE, ProviderType.MICROSOFT)
        google = _file_provider(ProviderType.GOOGLE, side_effect=RuntimeError("boom"))
        onedrive = _file_provider(ProviderType.MICROSOFT, side_effect=RuntimeError("boom"))

        assert await _service(store, google, onedrive).get_files_from_all_providers("user-1") == []

    @pytest.mark.asyncio
    async def test_no_linked_accounts(self, cipher):
        google = _file_provider(ProviderType.GOOGLE, FileListPage())
        service = _service(InMemoryTokenStore(cipher), google)

        assert await service.get_files_from_all_providers("user-1") == []
        google.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_linked_providers_are_queried(self, cipher):
        store = await _store_with(cipher, ProviderType.MICROSOFT)
        google = _file_provider(ProviderType.GOOGLE, FileListPage(items=[_item("g1", 1)]))
        onedrive = _file_provider(ProviderType.MICROSOFT, FileListPage(items=[_item("m1", 1)]))

        files = await _service(store, google, onedrive).get_files_from_all_providers("user-1")

        assert [f.id for f in files] == ["m1"]
        google.list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_linked_but_unregistered_provider_is_skipped(self, cipher):
        store = await _store_with(cipher, ProviderType.GOOGLE, ProviderType.MICROSOFT)
        google = _file_provider(ProviderType.GOOGLE, FileListPage(items=[_item("g1", 1)]))

        files = await _service(store, google).get_files_from_all_providers("user-1")

        assert [f.id for f in files] == ["g1"]


class TestDelegation:
    @pytest.mark.asyncio
    async def test_get_files_by_provider(self, cipher):
        page = FileListPage(items=[_item("g1", 1)], next_page_token="next")
        google = _file_provider(ProviderType.GOOGLE, page)
        service = _service(InMemoryTokenStore(cipher), google)

        result = await service.get_files_by_provider("user-1", ProviderType.GOOGLE, "folder", 10, "tok")

        assert result is page
        google.list.assert_awaited_once_with("user-1", "folder", 10, "tok")

    @pytest.mark.asyncio
    async def test_errors_propagate(self, cipher):
        google = _file_provider(ProviderType.GOOGLE, side_effect=ProviderApiError("google", 403))
        service = _service(InMemoryTokenStore(cipher), google)

        with pytest.raises(ProviderApiError):
            await service.get_files_by_provider("user-1", ProviderType.GOOGLE)

    @pytest.mark.asyncio
    async def test_unregistered_provider(self, cipher):
        service = _service(InMemoryTokenStore(cipher), _file_provider(ProviderType.GOOGLE))
        with pytest.raises(ProviderNotRegistered):
            await service.get_file_metadata("user-1", ProviderType.MICROSOFT, "x")

    @pytest.mark.asyncio
    async def test_metadata_and_view_url(self, cipher):
        google = _file_provider(ProviderType.GOOGLE)
        google.get_metadata.return_value = FileMetadata(id="g1", name="a")
        google.get_view_url.return_value = "https://drive.google.com/g1"
        service = _service(InMemoryTokenStore(cipher), google)

        meta = await service.get_file_metadata("user-1", ProviderType.GOOGLE, "g1")
        url = await service.get_file_view_url("user-1", ProviderType.GOOGLE, "g1")

        assert meta.id == "g1"
        assert url == "https://drive.google.com/g1"
        google.get_metadata.assert_awaited_once_with("user-1", "g1")


class TestModifiedTimestamps:
    def test_metadata_timestamp_is_normalised_to_utc(self):
        meta = FileMetadata(
            id="f1",
            name="f1.txt",
            modified_utc=datetime(2024, 1, 2, 12, tzinfo=timezone(timedelta(hours=-5))),
        )
        assert meta.modified_utc == datetime(2024, 1, 2, 17, tzinfo=timezone.utc)
        assert meta.modified_utc.tzinfo == timezone.utc

    def test_missing_metadata_timestamp_stays_missing(self):
        assert FileMetadata(id="f1", name="f1.txt").modified_utc is None
