"""Shared GET-and-decode helper for the origin providers.

Maps every httpx failure onto the origin error types the rate limiter
understands: timeouts become ``FetchTimeoutError``, non-2xx responses
become ``OriginError`` carrying the status code (so a 429 amplifies the
backoff), and transport or decoding failures become plain ``OriginError``.
"""

from __future__ import annotations

from typing import Any

import httpx

from spaceboard.utils.errors import FetchTimeoutError, OriginError


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    provider_name: str,
    params: dict[str, Any] | None = None,
) -> Any:
    try:
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()
    except httpx.TimeoutException as exc:
        raise FetchTimeoutError(
            message=f"Timeout fetching {url}: {exc}", provider_name=provider_name
        ) from exc
    except httpx.HTTPStatusError as exc:
        raise OriginError(
            message=f"HTTP {exc.response.status_code} from {url}",
            provider_name=provider_name,
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise OriginError(
            message=f"HTTP error fetching {url}: {exc}", provider_name=provider_name
        ) from exc
    except ValueError as exc:
        raise OriginError(
            message=f"Invalid JSON from {url}: {exc}", provider_name=provider_name
        ) from exc
