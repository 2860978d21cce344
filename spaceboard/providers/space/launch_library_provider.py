"""Launch Library 2 astronaut detail provider.

Looks astronauts up by name substring (``?search=<name>&limit=1``) and
returns the first match.  The free tier allows only a handful of requests
per hour, so the space service rate-limits these calls under their own
endpoint name and degrades to "Unknown" fields when they fail.
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from spaceboard.interfaces.space_data_provider import IAstronautDetailProvider
from spaceboard.models.space import LaunchLibraryAstronaut
from spaceboard.providers.space.http_json import get_json
from spaceboard.utils.errors import OriginError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_URL = "https://ll.thespacedevs.com/2.2.0/astronaut/"


class LaunchLibraryProvider(IAstronautDetailProvider):
    """Astronaut biography and agency lookups."""

    def __init__(self, http_client: httpx.AsyncClient, url: str = _DEFAULT_URL) -> None:
        self._client = http_client
        self._url = url

    async def search_astronaut(self, name: str) -> LaunchLibraryAstronaut | None:
        payload = await get_json(
            self._client,
            self._url,
            self.get_provider_name(),
            params={"search": name, "limit": 1},
        )
        results = payload.get("results") if isinstance(payload, dict) else None
        if not results:
            logger.debug("launch_library_no_match", name=name)
            return None

        try:
            astronaut = LaunchLibraryAstronaut.model_validate(results[0])
        except ValidationError as exc:
            raise OriginError(
                message=f"Unexpected astronaut payload for {name!r}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("launch_library_match", name=name, match=astronaut.name)
        return astronaut

    def get_provider_name(self) -> str:
        return "launch-library"
