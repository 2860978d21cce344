"""Unit tests for the origin API providers, using httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from spaceboard.providers.space.launch_library_provider import LaunchLibraryProvider
from spaceboard.providers.space.open_notify_provider import OpenNotifyProvider
from spaceboard.providers.space.wheretheiss_provider import WhereTheISSProvider
from spaceboard.utils.errors import FetchTimeoutError, OriginError
from tests.conftest import json_transport

ASTROS = {
    "message": "success",
    "number": 2,
    "people": [
        {"name": "Oleg Kononenko", "craft": "ISS"},
        {"name": "Ye Guangfu", "craft": "Tiangong"},
    ],
}

ISS_NOW = {
    "name": "iss",
    "id": 25544,
    "latitude": 50.1,
    "longitude": -120.4,
    "altitude": 420.3,
    "velocity": 27600.5,
    "visibility": "daylight",
    "footprint": 4500.0,
    "timestamp": 1700000000,
    "daynum": 2460000.5,
    "solar_lat": -19.5,
    "solar_lon": 300.2,
    "units": "kilometers",
}


def _client(transport: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport)


# ======================================================================
# OpenNotifyProvider
# ======================================================================


class TestOpenNotifyProvider:
    @pytest.mark.asyncio
    async def test_parses_crew_list(self) -> None:
        provider = OpenNotifyProvider(_client(json_transport({"/astros.json": ASTROS})))

        response = await provider.get_people()

        assert response.number == 2
        assert [p.craft for p in response.people] == ["ISS", "Tiangong"]
        assert provider.get_provider_name() == "open-notify"

    @pytest.mark.asyncio
    async def test_http_error_carries_status_code(self) -> None:
        provider = OpenNotifyProvider(_client(json_transport({"/astros.json": 502})))

        with pytest.raises(OriginError) as exc_info:
            await provider.get_people()
        assert exc_info.value.status_code == 502
        assert exc_info.value.provider_name == "open-notify"

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_origin_error(self) -> None:
        provider = OpenNotifyProvider(_client(json_transport({"/astros.json": {"oops": True}})))
        with pytest.raises(OriginError):
            await provider.get_people()

    @pytest.mark.asyncio
    async def test_timeout_maps_to_fetch_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        provider = OpenNotifyProvider(_client(httpx.MockTransport(handler)))
        with pytest.raises(FetchTimeoutError):
            await provider.get_people()

    @pytest.mark.asyncio
    async def test_invalid_json_is_origin_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>maintenance</html>")

        provider = OpenNotifyProvider(_client(httpx.MockTransport(handler)))
        with pytest.raises(OriginError):
            await provider.get_people()


# ======================================================================
# LaunchLibraryProvider
# ======================================================================


class TestLaunchLibraryProvider:
    @pytest.mark.asyncio
    async def test_searches_by_name_and_returns_first_match(self) -> None:
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(
                200,
                json={
                    "count": 1,
                    "results": [
                        {
                            "id": 1,
                            "name": "Oleg Kononenko",
                            "nationality": "Russian",
                            "agency": {"name": "Russian Federal Space Agency (ROSCOSMOS)"},
                            "flights_count": 5,
                        }
                    ],
                },
            )

        provider = LaunchLibraryProvider(_client(httpx.MockTransport(handler)))
        astronaut = await provider.search_astronaut("Oleg Kononenko")

        assert astronaut is not None
        assert astronaut.nationality == "Russian"
        assert astronaut.agency is not None and astronaut.agency.name.startswith("Russian")
        assert seen[0].params["search"] == "Oleg Kononenko"
        assert seen[0].params["limit"] == "1"

    @pytest.mark.asyncio
    async def test_no_results_returns_none(self) -> None:
        provider = LaunchLibraryProvider(
            _client(json_transport({"/2.2.0/astronaut/": {"count": 0, "results": []}}))
        )
        assert await provider.search_astronaut("Nobody") is None

    @pytest.mark.asyncio
    async def test_429_is_reported(self) -> None:
        provider = LaunchLibraryProvider(_client(json_transport({"/2.2.0/astronaut/": 429})))
        with pytest.raises(OriginError) as exc_info:
            await provider.search_astronaut("Oleg")
        assert exc_info.value.status_code == 429


# ======================================================================
# WhereTheISSProvider
# ======================================================================


class TestWhereTheISSProvider:
    @pytest.mark.asyncio
    async def test_parses_position(self) -> None:
        provider = WhereTheISSProvider(
            _client(json_transport({"/v1/satellites/25544": ISS_NOW}))
        )

        position = await provider.get_position()

        assert position.latitude == pytest.approx(50.1)
        assert position.visibility == "daylight"
        assert provider.get_provider_name() == "wheretheiss"

    @pytest.mark.asyncio
    async def test_missing_fields_are_origin_error(self) -> None:
        provider = WhereTheISSProvider(
            _client(json_transport({"/v1/satellites/25544": {"latitude": 1.0}}))
        )
        with pytest.raises(OriginError):
            await provider.get_position()
