"""Abstract base class for key-value cache tiers.

Defines the contract shared by the volatile (fast, small) and persistent
(durable) tiers that sit in front of the origin APIs.  Both tiers expose
the same operations so the cache manager can treat them uniformly.

Error contract: no method raises.  Storage failures are logged and turn
into a miss on read, or a failed :class:`TierWriteResult` on write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from spaceboard.models.cache import CacheEntry, CacheStats, CacheTier, TierWriteResult


class IKeyValueCache(ABC):
    """Contract for TTL key-value cache tiers.

    All operations are async so a tier can be backed by network or disk
    storage without blocking the event loop.
    """

    tier: CacheTier

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve the value stored under *key*.

        Returns
        -------
        Any or None
            The cached value if present and not expired; ``None`` otherwise.
            An expired entry is deleted as a side effect.
        """

    @abstractmethod
    async def set(
        self,
        key: str,
        data: Any,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TierWriteResult:
        """Store *data* under *key*.

        Parameters
        ----------
        key:
            The cache key.
        data:
            A JSON-compatible value.
        ttl:
            Time-to-live in milliseconds.  ``None`` uses the tier default.
        metadata:
            Optional free-form metadata stored alongside the entry.
        """

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""

    @abstractmethod
    async def delete(self, key: str) -> TierWriteResult:
        """Remove *key*.  Deleting a missing key succeeds."""

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry in the tier.  Returns the count removed."""

    @abstractmethod
    async def cleanup(self) -> int:
        """Remove expired and corrupt entries.  Returns the count removed."""

    @abstractmethod
    async def compare_and_update(
        self,
        key: str,
        data: Any,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Write *data* only if absent, expired, or its fingerprint changed.

        Returns ``True`` if a write occurred.
        """

    @abstractmethod
    async def get_stale(self, key: str) -> CacheEntry | None:
        """Return the stored entry for *key* regardless of its TTL."""

    @abstractmethod
    def get_stats(self) -> CacheStats:
        """Return entry count, stored size, hit/miss rates and last cleanup."""
