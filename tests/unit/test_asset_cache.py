"""Unit tests for the AssetCache (LRU eviction, size limits, stable handles)."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

import httpx
import pytest

from spaceboard.providers.assets.asset_cache import AssetCache
from spaceboard.providers.storage.blob_store import FilesystemBlobStore, MemoryBlobStore
from spaceboard.providers.storage.filesystem_storage import FilesystemStorageBackend
from spaceboard.providers.storage.memory_storage import MemoryStorageBackend
from spaceboard.utils.errors import AssetTooLargeError
from spaceboard.utils.hashing import asset_key
from tests.conftest import PNG_BYTES, FakeClock, image_transport

MakeAssetCache = Callable[..., AssetCache]

URL_A = "https://images.example.com/a.png"
URL_B = "https://images.example.com/b.png"
URL_C = "https://images.example.com/c.png"
URL_D = "https://images.example.com/d.png"


# ======================================================================
# Download and lookup
# ======================================================================


class TestSetAndGet:
    @pytest.mark.asyncio
    async def test_set_downloads_once_and_get_hits(
        self, make_asset_cache: MakeAssetCache, asset_calls: list[str]
    ) -> None:
        cache = make_asset_cache()

        handle = await cache.set(URL_A)
        assert handle is not None
        assert await cache.get(URL_A) == handle
        assert await cache.set(URL_A) == handle
        assert asset_calls == [URL_A]

    @pytest.mark.asyncio
    async def test_get_miss_for_unknown_url(self, make_asset_cache: MakeAssetCache) -> None:
        cache = make_asset_cache()
        assert await cache.get(URL_A) is None
        assert cache.get_stats().miss_rate == 1.0

    @pytest.mark.asyncio
    async def test_read_bytes_returns_content_and_mime(
        self, make_asset_cache: MakeAssetCache
    ) -> None:
        cache = make_asset_cache()
        await cache.set(URL_A)
        assert await cache.read_bytes(URL_A) == (PNG_BYTES, "image/png")

    @pytest.mark.asyncio
    async def test_content_type_parameters_are_stripped(
        self, make_asset_cache: MakeAssetCache
    ) -> None:
        calls: list[str] = []
        cache = make_asset_cache(image_transport(calls, content_type="image/png; q=1"))
        await cache.set(URL_A)
        payload = await cache.read_bytes(URL_A)
        assert payload is not None and payload[1] == "image/png"

    @pytest.mark.asyncio
    async def test_mime_falls_back_to_extension(self, make_asset_cache: MakeAssetCache) -> None:
        calls: list[str] = []
        cache = make_asset_cache(image_transport(calls, content_type=""))
        url = "https://images.example.com/photo.jpg"
        await cache.set(url)
        payload = await cache.read_bytes(url)
        assert payload is not None and payload[1] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_http_error_yields_none(self, make_asset_cache: MakeAssetCache) -> None:
        calls: list[str] = []
        cache = make_asset_cache(image_transport(calls, status_code=404))
        assert await cache.set(URL_A) is None
        assert await cache.has(URL_A) is False

    @pytest.mark.asyncio
    async def test_transport_error_yields_none(self, make_asset_cache: MakeAssetCache) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        cache = make_asset_cache(httpx.MockTransport(handler))
        assert await cache.set(URL_A) is None

    @pytest.mark.asyncio
    async def test_expired_asset_is_removed_on_get(
        self, make_asset_cache: MakeAssetCache, clock: FakeClock
    ) -> None:
        cache = make_asset_cache()
        await cache.set(URL_A, ttl=1_000)
        clock.advance(1_001)

        assert await cache.get(URL_A) is None
        assert cache.urls() == []


# ======================================================================
# Size limits and eviction
# ======================================================================


class TestSizeLimits:
    @pytest.mark.asyncio
    async def test_oversized_asset_is_rejected(self, make_asset_cache: MakeAssetCache) -> None:
        cache = make_asset_cache(max_asset_size=len(PNG_BYTES) - 1)

        assert await cache.set(URL_A) is None
        assert await cache.get_cached_asset_url(URL_A) == URL_A
        assert cache.total_size == 0

    @pytest.mark.asyncio
    async def test_ensure_space_rejects_more_than_capacity(
        self, make_asset_cache: MakeAssetCache
    ) -> None:
        cache = make_asset_cache(max_cache_size=100)
        with pytest.raises(AssetTooLargeError):
            await cache.ensure_space(101)

    @pytest.mark.asyncio
    async def test_evicts_least_recently_accessed(
        self, make_asset_cache: MakeAssetCache, clock: FakeClock
    ) -> None:
        cache = make_asset_cache(max_cache_size=3 * len(PNG_BYTES))
        for url in (URL_A, URL_B, URL_C):
            await cache.set(url)
            clock.advance(1_000)

        await cache.get(URL_A)
        clock.advance(1_000)
        await cache.set(URL_D)

        assert set(cache.urls()) == {URL_A, URL_C, URL_D}
        assert cache.total_size <= 3 * len(PNG_BYTES)
        assert cache.get_stats().available_space == 0

    @pytest.mark.asyncio
    async def test_eviction_deletes_bytes(
        self, make_asset_cache: MakeAssetCache, clock: FakeClock
    ) -> None:
        blobs = MemoryBlobStore()
        cache = make_asset_cache(max_cache_size=len(PNG_BYTES), blob_store=blobs)
        await cache.set(URL_A)
        clock.advance(1_000)
        await cache.set(URL_B)

        assert blobs.exists(asset_key(URL_A)) is False
        assert blobs.exists(asset_key(URL_B)) is True


    @pytest.mark.asyncio
    async def test_concurrent_sets_stay_within_budget(
        self, make_asset_cache: MakeAssetCache, tmp_path: Path
    ) -> None:
        files = tmp_path / "files"
        cache = make_asset_cache(
            max_cache_size=2 * len(PNG_BYTES),
            blob_store=FilesystemBlobStore(files),
            index_store=FilesystemStorageBackend(tmp_path / "index"),
        )

        handles = await asyncio.gather(*(cache.set(url) for url in (URL_A, URL_B, URL_C)))

        assert all(handle is not None for handle in handles)
        assert cache.total_size <= 2 * len(PNG_BYTES)
        assert len(cache.urls()) == 2
        assert sorted(p.name for p in files.iterdir()) == sorted(
            asset_key(url) for url in cache.urls()
        )


# ======================================================================
# Stable handles
# ======================================================================


class TestStableHandles:
    @pytest.mark.asyncio
    async def test_repeated_lookups_return_same_handle(
        self, make_asset_cache: MakeAssetCache, asset_calls: list[str]
    ) -> None:
        cache = make_asset_cache()
        first = await cache.get_cached_asset_url(URL_A)
        second = await cache.get_cached_asset_url(URL_A)

        assert first == second
        assert first.startswith("blob:")
        assert asset_calls == [URL_A]

    @pytest.mark.asyncio
    async def test_dead_handle_is_reminted_without_download(
        self, make_asset_cache: MakeAssetCache, asset_calls: list[str]
    ) -> None:
        blobs = MemoryBlobStore()
        cache = make_asset_cache(blob_store=blobs)
        first = await cache.get_cached_asset_url(URL_A)

        blobs.release(first)
        second = await cache.get_cached_asset_url(URL_A)

        assert second != first
        assert await blobs.is_live(second) is True
        assert asset_calls == [URL_A]

    @pytest.mark.asyncio
    async def test_expired_asset_gets_a_fresh_handle(
        self, make_asset_cache: MakeAssetCache, clock: FakeClock, asset_calls: list[str]
    ) -> None:
        blobs = MemoryBlobStore()
        cache = make_asset_cache(blob_store=blobs)
        first = await cache.get_cached_asset_url(URL_A, ttl=1_000)
        clock.advance(5_000)

        second = await cache.get_cached_asset_url(URL_A, ttl=1_000)

        assert second != first
        assert await blobs.is_live(first) is False
        assert asset_calls == [URL_A, URL_A]

    @pytest.mark.asyncio
    async def test_reused_handle_counts_as_an_access(
        self, make_asset_cache: MakeAssetCache, clock: FakeClock
    ) -> None:
        cache = make_asset_cache(max_cache_size=2 * len(PNG_BYTES))
        first = await cache.get_cached_asset_url(URL_A)
        clock.advance(1_000)
        await cache.get_cached_asset_url(URL_B)
        clock.advance(1_000)
        assert await cache.get_cached_asset_url(URL_A) == first
        clock.advance(1_000)

        await cache.set(URL_C)

        assert set(cache.urls()) == {URL_A, URL_C}
        assert cache.get_stats().hit_rate > 0.0

    @pytest.mark.asyncio
    async def test_non_http_urls_pass_through(self, make_asset_cache: MakeAssetCache) -> None:
        cache = make_asset_cache()
        assert await cache.get_cached_asset_url("blob:abc") == "blob:abc"
        assert await cache.get_cached_asset_url("data:image/png;base64,AA==") == (
            "data:image/png;base64,AA=="
        )

    @pytest.mark.asyncio
    async def test_filesystem_handles_are_paths(
        self, make_asset_cache: MakeAssetCache, tmp_path: Path
    ) -> None:
        cache = make_asset_cache(
            blob_store=FilesystemBlobStore(tmp_path / "files"),
            index_store=FilesystemStorageBackend(tmp_path),
        )
        handle = await cache.get_cached_asset_url(URL_A)
        assert Path(handle).read_bytes() == PNG_BYTES


# ======================================================================
# Persistence and maintenance
# ======================================================================


class TestPersistence:
    @pytest.mark.asyncio
    async def test_index_and_bytes_survive_restart(
        self, make_asset_cache: MakeAssetCache, asset_calls: list[str]
    ) -> None:
        records = MemoryStorageBackend(prefix="asset_data_")
        index = MemoryStorageBackend(prefix="asset_index_")
        first = make_asset_cache(blob_store=MemoryBlobStore(records), index_store=index)
        await first.set(URL_A)

        second = make_asset_cache(blob_store=MemoryBlobStore(records), index_store=index)
        assert await second.has(URL_A) is True
        assert await second.get(URL_A) is not None
        assert asset_calls == [URL_A]

    @pytest.mark.asyncio
    async def test_missing_bytes_read_as_miss(self, make_asset_cache: MakeAssetCache) -> None:
        records = MemoryStorageBackend(prefix="asset_data_")
        cache = make_asset_cache(blob_store=MemoryBlobStore(records))
        await cache.set(URL_A)
        records.clear()

        assert await cache.get(URL_A) is None
        assert cache.urls() == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_delete(self, make_asset_cache: MakeAssetCache) -> None:
        cache = make_asset_cache()
        await cache.set(URL_A)
        assert await cache.delete(URL_A) is True
        assert await cache.delete(URL_A) is False
        assert await cache.has(URL_A) is False

    @pytest.mark.asyncio
    async def test_cleanup_removes_expired_only(
        self, make_asset_cache: MakeAssetCache, clock: FakeClock
    ) -> None:
        cache = make_asset_cache()
        await cache.set(URL_A, ttl=1_000)
        await cache.set(URL_B)
        clock.advance(2_000)

        assert await cache.cleanup() == 1
        assert cache.urls() == [URL_B]

    @pytest.mark.asyncio
    async def test_clear_resets_everything(self, make_asset_cache: MakeAssetCache) -> None:
        cache = make_asset_cache()
        await cache.get_cached_asset_url(URL_A)
        await cache.get_cached_asset_url(URL_B)

        assert await cache.clear() == 2
        stats = cache.get_stats()
        assert stats.total_assets == 0
        assert stats.total_size == 0
        assert stats.hit_rate == 0.0
