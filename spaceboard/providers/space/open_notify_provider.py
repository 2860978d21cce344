"""Open Notify crew provider.

Open Notify's ``astros.json`` lists everyone currently in space and the
craft they are aboard.  It has no key, no paging and no documented rate
limit, but it is frequently slow or down, which is why its response is
cached for hours.
"""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from spaceboard.interfaces.space_data_provider import ICrewProvider
from spaceboard.models.space import OpenNotifyResponse
from spaceboard.providers.space.http_json import get_json
from spaceboard.utils.errors import OriginError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_URL = "http://api.open-notify.org/astros.json"


class OpenNotifyProvider(ICrewProvider):
    """Current crew list from Open Notify."""

    def __init__(self, http_client: httpx.AsyncClient, url: str = _DEFAULT_URL) -> None:
        self._client = http_client
        self._url = url

    async def get_people(self) -> OpenNotifyResponse:
        payload = await get_json(self._client, self._url, self.get_provider_name())
        try:
            response = OpenNotifyResponse.model_validate(payload)
        except ValidationError as exc:
            raise OriginError(
                message=f"Unexpected crew payload: {exc.error_count()} validation errors",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("open_notify_crew_fetched", number=response.number)
        return response

    def get_provider_name(self) -> str:
        return "open-notify"
