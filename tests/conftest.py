"""Shared pytest fixtures for the SpaceBoard test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from spaceboard.config.settings import Settings
from spaceboard.models.cache import RateLimitPolicy
from spaceboard.providers.assets.asset_cache import AssetCache
from spaceboard.providers.cache.persistent_cache import PersistentKeyValueCache
from spaceboard.providers.cache.volatile_cache import VolatileKeyValueCache
from spaceboard.providers.storage.blob_store import MemoryBlobStore
from spaceboard.providers.storage.memory_storage import MemoryStorageBackend
from spaceboard.services.cache_manager import CacheManager
from spaceboard.services.rate_limiter import RateLimiter

HOUR_MS = 60 * 60 * 1000
START_MS = 1_700_000_000_000

# A tiny but valid PNG signature plus padding; content is never decoded.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 56


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeSleep:
    """Records requested sleeps and advances a FakeClock instead of waiting."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self._clock.advance(int(seconds * 1000))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def image_transport(
    calls: list[str],
    body: bytes = PNG_BYTES,
    content_type: str = "image/png",
    status_code: int = 200,
) -> httpx.MockTransport:
    """Serve *body* for every request, recording each requested URL."""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(status_code, content=body, headers={"content-type": content_type})

    return httpx.MockTransport(handler)


def json_transport(routes: dict[str, Any]) -> httpx.MockTransport:
    """Serve JSON by URL path; a route value that is an int is returned as that status."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = routes.get(request.url.path)
        if payload is None:
            return httpx.Response(404, json={"detail": "not found"})
        if isinstance(payload, int):
            return httpx.Response(payload, json={"detail": "error"})
        return httpx.Response(200, json=payload)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Cache components wired to the fake clock
# ---------------------------------------------------------------------------


@pytest.fixture
def policy() -> RateLimitPolicy:
    return RateLimitPolicy()


@pytest.fixture
def rate_limiter(policy: RateLimitPolicy, clock: FakeClock, fake_sleep: FakeSleep) -> RateLimiter:
    return RateLimiter(policy=policy, clock=clock, sleep=fake_sleep)


@pytest.fixture
def volatile(clock: FakeClock) -> VolatileKeyValueCache:
    return VolatileKeyValueCache(default_ttl=24 * HOUR_MS, clock=clock)


@pytest.fixture
def persistent(tmp_path: Path, clock: FakeClock) -> PersistentKeyValueCache:
    return PersistentKeyValueCache(directory=tmp_path / "api", default_ttl=6 * HOUR_MS, clock=clock)


@pytest.fixture
def asset_calls() -> list[str]:
    return []


@pytest.fixture
def make_asset_cache(
    clock: FakeClock, asset_calls: list[str]
) -> Callable[..., AssetCache]:
    def _make(transport: httpx.MockTransport | None = None, **kwargs: Any) -> AssetCache:
        client = httpx.AsyncClient(transport=transport or image_transport(asset_calls))
        kwargs.setdefault("blob_store", MemoryBlobStore())
        kwargs.setdefault("index_store", MemoryStorageBackend(prefix="asset_index_"))
        return AssetCache(http_client=client, clock=clock, **kwargs)

    return _make


@pytest.fixture
def manager(
    volatile: VolatileKeyValueCache,
    persistent: PersistentKeyValueCache,
    make_asset_cache: Callable[..., AssetCache],
    rate_limiter: RateLimiter,
) -> CacheManager:
    return CacheManager(
        volatile=volatile,
        persistent=persistent,
        assets=make_asset_cache(),
        rate_limiter=rate_limiter,
        fetch_retries=0,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        cache_dir=str(tmp_path / "cache"),
        api_cache_dir=str(tmp_path / "cache" / "api"),
        assets_cache_dir=str(tmp_path / "cache" / "assets"),
        fetch_retries=0,
    )
