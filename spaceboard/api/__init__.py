"""SpaceBoard API layer: routes, schemas and middleware."""

from spaceboard.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from spaceboard.api.routes import router
from spaceboard.api.schemas import (
    CleanupResponse,
    ClearCacheResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "router",
    "CleanupResponse",
    "ClearCacheResponse",
    "ErrorResponse",
    "HealthResponse",
]
