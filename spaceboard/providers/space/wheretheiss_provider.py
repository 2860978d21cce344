"""Where the ISS At? telemetry provider (NORAD id 25544)."""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from spaceboard.interfaces.space_data_provider import ITelemetryProvider
from spaceboard.models.space import ISSPosition
from spaceboard.providers.space.http_json import get_json
from spaceboard.utils.errors import OriginError

_DEFAULT_URL = "https://api.wheretheiss.at/v1/satellites/25544"


class WhereTheISSProvider(ITelemetryProvider):
    def __init__(self, http_client: httpx.AsyncClient, url: str = _DEFAULT_URL) -> None:
        self._client = http_client
        self._url = url

    async def get_position(self) -> ISSPosition:
        payload = await get_json(self._client, self._url, self.get_provider_name())
        try:
            return ISSPosition.model_validate(payload)
        except ValidationError as exc:
            raise OriginError(
                message="Unexpected telemetry payload", provider_name=self.get_provider_name()
            ) from exc

    def get_provider_name(self) -> str:
        return "wheretheiss"
