"""Cache-layer data models.

Defines Pydantic v2 models for cache entries, asset entries, rate-limit
state and the statistics/health snapshots the cache manager reports.

Timestamps are epoch milliseconds and TTLs are millisecond durations
throughout, because entries are persisted and reloaded across restarts
and must be comparable to a wall clock.

Mutability:
    CacheEntry and the result/stat snapshots are frozen.  AssetEntry and
    RateLimitState are deliberately mutable: the asset cache touches
    ``last_accessed`` on every hit, and the rate limiter updates its
    per-endpoint counters in place before persisting the whole map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

_T = TypeVar("_T")

RATE_LIMIT_WINDOW_MS = 60_000


class CacheTier(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Cache tiers, fastest first."""

    VOLATILE = "volatile"
    PERSISTENT = "persistent"
    ASSETS = "assets"


class CacheStatus(str, Enum):  # noqa: UP042 (StrEnum requires Python 3.11+)
    """Where a cached read was served from; rendered as the ``X-Cache`` header."""

    HIT = "HIT"                    # volatile or persistent tier
    MISS = "MISS"                  # fetched from origin
    STALE = "STALE"                # expired entry served after an origin failure
    RATE_LIMITED = "RATE_LIMITED"  # expired entry served after a rate-limit rejection


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """One cached value in a key-value tier.

    ``hash`` is a fingerprint of ``data`` used only to detect whether a
    refetched payload actually changed.
    """

    model_config = ConfigDict(frozen=True)

    data: Any
    timestamp: int
    ttl: int
    hash: str
    metadata: dict[str, Any] | None = None

    def age(self, now: int) -> int:
        return now - self.timestamp

    def is_expired(self, now: int) -> bool:
        """An entry is expired strictly after ``timestamp + ttl``."""
        return now - self.timestamp > self.ttl


class AssetEntry(BaseModel):
    """Index record for one cached binary asset.

    Keyed in the index by ``filename`` (the fingerprint of ``url`` plus its
    extension).  ``local_path`` is the durable reference to the stored
    bytes; it is never an ephemeral handle.
    """

    url: str
    local_path: str
    filename: str
    size: int
    mime_type: str
    timestamp: int
    last_accessed: int
    ttl: int
    hash: str
    metadata: dict[str, Any] | None = None

    def is_expired(self, now: int) -> bool:
        return now - self.timestamp > self.ttl


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimitPolicy(BaseModel):
    """Tunables for the rate limiter (see Settings.rate_limit_policy)."""

    model_config = ConfigDict(frozen=True)

    max_requests_per_minute: int = 60
    backoff_multiplier: float = 2.0
    initial_backoff_ms: int = 1_000
    max_backoff_ms: int = 32_000
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_ms: int = 60_000
    window_ms: int = RATE_LIMIT_WINDOW_MS
    stale_after_ms: int = 24 * 60 * 60 * 1000


class RateLimitState(BaseModel):
    """Per-endpoint rate limiter state, persisted as part of one map."""

    request_count: int = 0
    window_start: int = 0
    failure_count: int = 0
    last_failure: int = 0
    backoff_until: int = 0
    circuit_breaker_open: bool = False
    circuit_breaker_opened_at: int = 0
    # True between the cooldown expiring and the single probe reporting back.
    half_open: bool = False
    # When the half-open probe was admitted; 0 while none is outstanding.
    probe_started_at: int = 0

    def last_activity(self) -> int:
        return max(self.window_start, self.last_failure, self.circuit_breaker_opened_at)


class RateLimitResult(BaseModel):
    """Outcome of a rate-limit check; ``retry_after`` is in milliseconds."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    retry_after: int | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Write results
# ---------------------------------------------------------------------------


class TierWriteResult(BaseModel):
    """Result of one best-effort write (or delete) against one tier."""

    model_config = ConfigDict(frozen=True)

    tier: CacheTier
    key: str
    ok: bool
    error: str | None = None


class WriteOutcome(BaseModel):
    """Aggregate of the per-tier results of a multi-tier write."""

    model_config = ConfigDict(frozen=True)

    results: list[TierWriteResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> list[TierWriteResult]:
        return [r for r in self.results if not r.ok]


# ---------------------------------------------------------------------------
# Statistics and health
# ---------------------------------------------------------------------------


class CacheStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_entries: int = 0
    total_size: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    last_cleanup: int = 0


class AssetCacheStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_assets: int = 0
    total_size: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    last_cleanup: int = 0
    available_space: int = 0


class CacheManagerStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    persistent: CacheStats
    volatile: CacheStats
    assets: AssetCacheStats
    rate_limiting: dict[str, RateLimitState] = Field(default_factory=dict)


class HealthReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    healthy: bool
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class CachedResult(Generic[_T]):
    """A value returned by the cache manager together with where it came from."""

    data: _T
    status: CacheStatus
    writes: WriteOutcome | None = field(default=None, compare=False)
