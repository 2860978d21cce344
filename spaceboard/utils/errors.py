"""Custom exception hierarchy for SpaceBoard.

All application exceptions inherit from :class:`SpaceBoardError`, which
carries an optional ``provider_name`` so error handlers can identify which
origin or cache tier (e.g. "open-notify", "persistent", "assets") caused the
failure.

    SpaceBoardError  (base -- catch-all for any SpaceBoard error)
    +-- OriginError            (origin API failure; carries HTTP status)
    +-- FetchTimeoutError      (origin call exceeded its deadline)
    +-- RateLimitError         (local rate-limit rejection; carries retry_after)
    |   +-- CircuitOpenError   (circuit breaker open, origin never contacted)
    +-- StorageError           (cache tier read/write failure)
    |   +-- StorageQuotaError  (storage backend out of space)
    +-- AssetTooLargeError     (asset exceeds the configured byte ceiling)
    +-- ConfigurationError     (startup / invalid config)

Only origin-side errors (OriginError, FetchTimeoutError, RateLimitError)
ever reach callers of the cache manager, and only when no stale entry can
be served instead.  Storage errors are always absorbed inside the cache
layer and degrade to a cache miss.
"""

from __future__ import annotations


class SpaceBoardError(Exception):
    """Base exception for all SpaceBoard errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[open-notify] HTTP 502``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Origin errors
# ---------------------------------------------------------------------------

class OriginError(SpaceBoardError):
    """Raised when an origin API call fails (network error, non-2xx response).

    ``status_code`` is the HTTP status when one was received.  The rate
    limiter reads it to amplify backoff on 429 responses.
    """

    def __init__(
        self,
        message: str = "Origin request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.status_code = status_code


class FetchTimeoutError(SpaceBoardError):
    """Raised when an origin fetch does not complete within its timeout."""

    def __init__(
        self,
        message: str = "Origin request timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(SpaceBoardError):
    """Raised when the local rate limiter refuses to contact an endpoint.

    ``retry_after_ms`` is how long the caller should wait before the
    endpoint will be admitted again.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        endpoint: str = "",
        retry_after_ms: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.endpoint = endpoint
        self.retry_after_ms = retry_after_ms
        self.reason = reason


class CircuitOpenError(RateLimitError):
    """Raised when the circuit breaker for an endpoint is open."""


# ---------------------------------------------------------------------------
# Cache-tier errors
# ---------------------------------------------------------------------------

class StorageError(SpaceBoardError):
    """Raised by storage backends when a record cannot be read or written."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageQuotaError(StorageError):
    """Raised when a write would exceed the backend's storage quota."""

    def __init__(
        self,
        message: str = "Storage quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AssetTooLargeError(SpaceBoardError):
    """Raised when a downloaded asset exceeds the configured size ceiling."""

    def __init__(
        self,
        message: str = "Asset too large",
        provider_name: str | None = None,
        size: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.size = size


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(SpaceBoardError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
