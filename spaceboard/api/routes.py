"""FastAPI routes for the SpaceBoard dashboard.

Every data route goes through the cache subsystem; the ``X-Cache`` header
reports where the body came from (HIT, MISS, STALE or RATE_LIMITED).

# Endpoint                    Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/astronauts             GET     Enriched crew roster (?refresh=true)
# /api/astronauts/cache       DELETE  Drop the cached roster
# /api/iss/now                GET     Current ISS position
# /api/images/proxy           GET     Cached image bytes (?url=...)
# /api/cache/stats            GET     Tier, asset and rate limiter stats
# /api/cache/cleanup          POST    Remove expired entries everywhere
# /api/health                 GET     Cache health report
#
# Services are read from app.state (populated by main.py's lifespan) and
# injected with Annotated[..., Depends(...)].
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from spaceboard.api.schemas import CleanupResponse, ClearCacheResponse, HealthResponse
from spaceboard.models.cache import CachedResult, CacheManagerStats, CacheStatus
from spaceboard.services.cache_manager import CacheManager
from spaceboard.services.context import CacheContext
from spaceboard.services.space_service import ASTRONAUTS_KEY, SpaceService
from spaceboard.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api")

_VERSION = "0.1.0"

# Browser cache lifetimes (seconds) for fresh responses.
_ASTRONAUTS_MAX_AGE = 3600
_ISS_MAX_AGE = 5
_IMAGE_MAX_AGE = 86400


def _get_context(request: Request) -> CacheContext:
    return request.app.state.cache_context


def _get_cache_manager(request: Request) -> CacheManager:
    return request.app.state.cache_context.manager


def _get_space_service(request: Request) -> SpaceService:
    return request.app.state.space_service


ContextDep = Annotated[CacheContext, Depends(_get_context)]
CacheManagerDep = Annotated[CacheManager, Depends(_get_cache_manager)]
SpaceServiceDep = Annotated[SpaceService, Depends(_get_space_service)]


def _cache_headers(status: CacheStatus, max_age: int) -> dict[str, str]:
    """``X-Cache`` plus a ``Cache-Control`` that never lets browsers keep stale data."""
    fresh = status in (CacheStatus.HIT, CacheStatus.MISS)
    return {
        "X-Cache": status.value,
        "Cache-Control": f"public, max-age={max_age}" if fresh else "no-cache",
    }


def _cached_json(result: CachedResult[Any], max_age: int) -> JSONResponse:
    return JSONResponse(content=result.data, headers=_cache_headers(result.status, max_age))


# ---------------------------------------------------------------------------
# Astronauts
# ---------------------------------------------------------------------------


@router.get("/astronauts")
async def get_astronauts(
    service: SpaceServiceDep,
    refresh: Annotated[bool, Query(description="Bypass both cache tiers")] = False,
) -> JSONResponse:
    result = await service.get_astronauts(force_refresh=refresh)
    return _cached_json(result, _ASTRONAUTS_MAX_AGE)


@router.delete("/astronauts/cache", response_model=ClearCacheResponse)
async def clear_astronauts_cache(service: SpaceServiceDep) -> ClearCacheResponse:
    cleared = await service.clear_astronauts()
    return ClearCacheResponse(cleared=cleared, key=ASTRONAUTS_KEY)


# ---------------------------------------------------------------------------
# ISS
# ---------------------------------------------------------------------------


@router.get("/iss/now")
async def get_iss_position(service: SpaceServiceDep) -> JSONResponse:
    result = await service.get_iss_position()
    return _cached_json(result, _ISS_MAX_AGE)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


@router.get("/images/proxy")
async def proxy_image(
    context: ContextDep,
    url: Annotated[str, Query(min_length=1, description="Absolute http(s) image URL")],
) -> Response:
    """Serve an image from the asset cache, downloading it on first use.

    Falls back to redirecting to the original URL when it cannot be cached.
    """
    if not url.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="url must be an absolute http(s) URL")

    was_cached = await context.assets.has(url)
    ref = await context.manager.fetch_asset(url)
    payload = await context.assets.read_bytes(url) if ref != url else None
    if payload is None:
        _logger.warning("image_proxy_fallback", url=url)
        return RedirectResponse(url, status_code=307, headers={"X-Cache": CacheStatus.MISS.value})

    data, mime_type = payload
    status = CacheStatus.HIT if was_cached else CacheStatus.MISS
    return Response(content=data, media_type=mime_type, headers=_cache_headers(status, _IMAGE_MAX_AGE))


# ---------------------------------------------------------------------------
# Cache maintenance and health
# ---------------------------------------------------------------------------


@router.get("/cache/stats", response_model=CacheManagerStats)
async def cache_stats(manager: CacheManagerDep) -> CacheManagerStats:
    return manager.get_stats()


@router.post("/cache/cleanup", response_model=CleanupResponse)
async def cache_cleanup(manager: CacheManagerDep) -> CleanupResponse:
    removed = await manager.cleanup()
    return CleanupResponse(removed=removed)


@router.get("/health", response_model=HealthResponse)
async def health(manager: CacheManagerDep) -> HealthResponse:
    report = manager.health_check()
    return HealthResponse(
        status="healthy" if report.healthy else "degraded",
        version=_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        healthy=report.healthy,
        issues=report.issues,
        recommendations=report.recommendations,
    )
