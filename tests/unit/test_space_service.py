"""Unit tests for SpaceService (roster enrichment and telemetry caching)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from spaceboard.config.settings import Settings
from spaceboard.interfaces.space_data_provider import (
    IAstronautDetailProvider,
    ICrewProvider,
    ITelemetryProvider,
)
from spaceboard.models.cache import CacheStatus
from spaceboard.models.space import (
    Agency,
    CrewMember,
    ISSPosition,
    LaunchLibraryAstronaut,
    OpenNotifyResponse,
)
from spaceboard.services.cache_manager import CacheManager
from spaceboard.services.space_service import (
    SpaceService,
    estimate_launch_date,
    parse_days_in_space,
)
from spaceboard.utils.errors import OriginError
from tests.conftest import FakeClock

_DAY_MS = 24 * 60 * 60 * 1000


class FakeCrew(ICrewProvider):
    def __init__(self, people: list[CrewMember]) -> None:
        self.people = people
        self.calls = 0

    async def get_people(self) -> OpenNotifyResponse:
        self.calls += 1
        return OpenNotifyResponse(message="success", number=len(self.people), people=self.people)

    def get_provider_name(self) -> str:
        return "open-notify"


class FakeDetails(IAstronautDetailProvider):
    def __init__(
        self,
        known: dict[str, LaunchLibraryAstronaut],
        failing: set[str] | None = None,
    ) -> None:
        self.known = known
        self.failing = failing or set()
        self.searched: list[str] = []

    async def search_astronaut(self, name: str) -> LaunchLibraryAstronaut | None:
        self.searched.append(name)
        if name in self.failing:
            raise OriginError("HTTP 500", provider_name="launch-library", status_code=500)
        return self.known.get(name)

    def get_provider_name(self) -> str:
        return "launch-library"


class FakeTelemetry(ITelemetryProvider):
    async def get_position(self) -> ISSPosition:
        return ISSPosition(
            latitude=10.0,
            longitude=20.0,
            altitude=420.0,
            velocity=27600.0,
            visibility="eclipsed",
            footprint=4500.0,
            timestamp=1700000000,
            solar_lat=1.0,
            solar_lon=2.0,
        )

    def get_provider_name(self) -> str:
        return "wheretheiss"


KONONENKO = LaunchLibraryAstronaut(
    id=1,
    name="Oleg Kononenko",
    nationality="Russian",
    bio="Cosmonaut.",
    profile_image="https://images.example.com/kononenko.jpg",
    flights_count=5,
    spacewalks_count=7,
    last_flight="2023-09-15T15:44:00Z",
    time_in_space="P1000DT5H",
    agency=Agency(name="Roscosmos"),
)


@pytest.fixture
def crew() -> FakeCrew:
    return FakeCrew(
        [
            CrewMember(name="Oleg Kononenko", craft="ISS"),
            CrewMember(name="Ye Guangfu", craft="Tiangong"),
        ]
    )


def _service(
    manager: CacheManager,
    crew: ICrewProvider,
    details: IAstronautDetailProvider,
    settings: Settings,
    clock: FakeClock,
) -> SpaceService:
    return SpaceService(
        cache=manager,
        crew=crew,
        details=details,
        telemetry=FakeTelemetry(),
        settings=settings,
        clock=clock,
    )


# ======================================================================
# Helpers
# ======================================================================


class TestParsing:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("P1000DT5H", 1000),
            ("P45D", 45),
            ("210 days", 210),
            ("1 day", 1),
            ("PT5H", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_days_in_space(self, value: str | None, expected: int | None) -> None:
        assert parse_days_in_space(value) == expected

    def test_launch_date_prefers_last_flight(self) -> None:
        expected = int(datetime(2023, 9, 15, 15, 44, tzinfo=timezone.utc).timestamp() * 1000)
        assert estimate_launch_date("ISS", KONONENKO, now=0) == expected

    @pytest.mark.parametrize(("craft", "days"), [("ISS", 90), ("Tiangong", 60), ("Dragon", 30)])
    def test_launch_date_falls_back_to_craft_offset(self, craft: str, days: int) -> None:
        now = 1_700_000_000_000
        assert estimate_launch_date(craft, None, now) == now - days * _DAY_MS

    def test_unparsable_last_flight_uses_offset(self) -> None:
        details = KONONENKO.model_copy(update={"last_flight": "sometime"})
        now = 1_700_000_000_000
        assert estimate_launch_date("ISS", details, now) == now - 90 * _DAY_MS


# ======================================================================
# Roster
# ======================================================================


class TestAstronauts:
    @pytest.mark.asyncio
    async def test_builds_enriched_roster(
        self, manager: CacheManager, crew: FakeCrew, settings: Settings, clock: FakeClock
    ) -> None:
        service = _service(manager, crew, FakeDetails({"Oleg Kononenko": KONONENKO}), settings, clock)

        result = await service.get_astronauts()

        assert result.status == CacheStatus.MISS
        roster = result.data
        assert roster["number_of_people"] == 2
        oleg, ye = roster["astronauts"]
        assert oleg["country"] == "Russian"
        assert oleg["agency"] == "Roscosmos"
        assert oleg["flights_count"] == 5
        assert oleg["total_days_in_space"] == 1000
        assert ye["country"] == "Unknown"
        assert ye["agency"] == "Unknown"
        assert ye["launch_date"] == clock.now - 60 * _DAY_MS
        assert ye["total_days_in_space"] is None

    @pytest.mark.asyncio
    async def test_second_request_is_served_from_cache(
        self, manager: CacheManager, crew: FakeCrew, settings: Settings, clock: FakeClock
    ) -> None:
        service = _service(manager, crew, FakeDetails({}), settings, clock)

        await service.get_astronauts()
        second = await service.get_astronauts()

        assert second.status == CacheStatus.HIT
        assert crew.calls == 1

    @pytest.mark.asyncio
    async def test_force_refresh_refetches(
        self, manager: CacheManager, crew: FakeCrew, settings: Settings, clock: FakeClock
    ) -> None:
        service = _service(manager, crew, FakeDetails({}), settings, clock)

        await service.get_astronauts()
        refreshed = await service.get_astronauts(force_refresh=True)

        assert refreshed.status == CacheStatus.MISS
        assert crew.calls == 2

    @pytest.mark.asyncio
    async def test_failed_detail_lookup_degrades_to_unknown(
        self, manager: CacheManager, settings: Settings, clock: FakeClock
    ) -> None:
        crew = FakeCrew(
            [
                CrewMember(name="Oleg Kononenko", craft="ISS"),
                CrewMember(name="Broken Lookup", craft="ISS"),
            ]
        )
        details = FakeDetails({"Oleg Kononenko": KONONENKO}, failing={"Broken Lookup"})
        service = _service(manager, crew, details, settings, clock)

        result = await service.get_astronauts()

        oleg, broken = result.data["astronauts"]
        assert oleg["agency"] == "Roscosmos"
        assert broken["agency"] == "Unknown"
        assert manager.rate_limiter.get_failure_count("launch-library") == 1

    @pytest.mark.asyncio
    async def test_clear_astronauts(
        self, manager: CacheManager, crew: FakeCrew, settings: Settings, clock: FakeClock
    ) -> None:
        service = _service(manager, crew, FakeDetails({}), settings, clock)
        await service.get_astronauts()

        assert await service.clear_astronauts() is True
        await service.get_astronauts()
        assert crew.calls == 2


# ======================================================================
# Telemetry
# ======================================================================


class TestISSPosition:
    @pytest.mark.asyncio
    async def test_position_is_cached_briefly(
        self, manager: CacheManager, crew: FakeCrew, settings: Settings, clock: FakeClock
    ) -> None:
        service = _service(manager, crew, FakeDetails({}), settings, clock)

        first = await service.get_iss_position()
        second = await service.get_iss_position()
        clock.advance(settings.iss_ttl_ms + 1)
        third = await service.get_iss_position()

        assert first.status == CacheStatus.MISS
        assert first.data["latitude"] == 10.0
        assert second.status == CacheStatus.HIT
        assert third.status == CacheStatus.MISS
