"""Public interface definitions for storage, cache tiers and origin APIs.

Every origin API and storage medium is accessed exclusively through the
abstract base classes defined in this package, so backends can be swapped
(filesystem vs. in-memory, one telemetry API vs. another) without touching
the cache manager.
"""

from spaceboard.interfaces.cache_provider import IKeyValueCache
from spaceboard.interfaces.space_data_provider import (
    IAstronautDetailProvider,
    ICrewProvider,
    ITelemetryProvider,
)
from spaceboard.interfaces.storage_backend import IBlobStore, IStorageBackend

__all__ = [
    "IAstronautDetailProvider",
    "IBlobStore",
    "ICrewProvider",
    "IKeyValueCache",
    "IStorageBackend",
    "ITelemetryProvider",
]
