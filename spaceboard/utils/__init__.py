"""Utility modules for SpaceBoard.

- **errors** -- Exception hierarchy rooted at SpaceBoardError; origin,
  rate-limit, storage and asset failures each have their own subclass.
- **concurrency** -- bounded gather and in-flight request deduplication.
- **hashing** -- content fingerprints, asset keys and MIME type mapping.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production; per-request
  context binding and cache key shortening.
"""

from spaceboard.utils.concurrency import InFlightRegistry, throttled_gather
from spaceboard.utils.errors import (
    AssetTooLargeError,
    CircuitOpenError,
    ConfigurationError,
    FetchTimeoutError,
    OriginError,
    RateLimitError,
    SpaceBoardError,
    StorageError,
    StorageQuotaError,
)
from spaceboard.utils.hashing import asset_key, extension_from_url, fingerprint, mime_type_for
from spaceboard.utils.logging import configure_logging, get_logger, request_context

__all__ = [
    "AssetTooLargeError",
    "CircuitOpenError",
    "ConfigurationError",
    "FetchTimeoutError",
    "InFlightRegistry",
    "OriginError",
    "RateLimitError",
    "SpaceBoardError",
    "StorageError",
    "StorageQuotaError",
    "asset_key",
    "configure_logging",
    "extension_from_url",
    "fingerprint",
    "get_logger",
    "mime_type_for",
    "request_context",
    "throttled_gather",
]
