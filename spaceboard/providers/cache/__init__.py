"""Key-value cache tiers.

VolatileKeyValueCache is the fast in-memory tier checked first;
PersistentKeyValueCache is the durable tier behind it and the source of
stale fallbacks.  Both share KeyValueCache, which owns TTL expiry,
fingerprint-based change detection and quota eviction.
"""

from spaceboard.providers.cache.key_value_cache import KeyValueCache
from spaceboard.providers.cache.persistent_cache import PersistentKeyValueCache
from spaceboard.providers.cache.volatile_cache import VolatileKeyValueCache

__all__ = ["KeyValueCache", "PersistentKeyValueCache", "VolatileKeyValueCache"]
