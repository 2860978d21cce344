"""API middleware: request logging and error handling.

Starlette runs middleware last-added-first, so ``main.py`` adds
ErrorHandlingMiddleware before RequestLoggingMiddleware and the request log
records the final status after an error was converted.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from spaceboard.api.schemas import ErrorResponse
from spaceboard.utils.errors import (
    FetchTimeoutError,
    OriginError,
    RateLimitError,
    SpaceBoardError,
)
from spaceboard.utils.logging import get_logger, request_context

_logger: structlog.BoundLogger = get_logger(__name__)

# Origin unavailable and nothing cached to fall back on.
_UNAVAILABLE_ERRORS = (OriginError, FetchTimeoutError, RateLimitError)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with its status, cache status and duration.

    The caller's ``X-Request-ID`` (or a generated one) is bound to every
    cache event logged while the request runs and echoed on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        response: Response | None = None

        with request_context(request_id, method=request.method, path=str(request.url.path)):
            try:
                response = await call_next(request)
                response.headers[REQUEST_ID_HEADER] = request_id
                return response
            finally:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                _logger.info(
                    "http_request",
                    status=response.status_code if response else 500,
                    cache=response.headers.get("X-Cache") if response else None,
                    duration_ms=duration_ms,
                )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn uncaught ``SpaceBoardError`` subclasses into JSON error bodies.

    Origin and rate-limit failures become 503 (the cache had no stale copy
    to serve); anything else becomes 500.  Details stay in the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except SpaceBoardError as exc:
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            status_code = 503 if isinstance(exc, _UNAVAILABLE_ERRORS) else 500
            headers: dict[str, str] = {}
            if isinstance(exc, RateLimitError) and exc.retry_after_ms:
                headers["Retry-After"] = str(max(1, exc.retry_after_ms // 1000))
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)
