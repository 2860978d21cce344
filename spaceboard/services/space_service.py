"""Astronaut roster and ISS telemetry, served through the cache manager.

The roster is the expensive read: one crew-list call to Open Notify, then
one Launch Library detail lookup per crew member (in batches of five, each
rate-limited under its own endpoint).  A failed detail lookup never fails
the roster; that astronaut simply keeps "Unknown" fields.  The whole
enriched roster is cached as one entry under ``astronauts``.

Launch dates are best estimates: Launch Library's ``last_flight`` when it
parses, otherwise a typical mid-expedition offset for the craft.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import structlog

from spaceboard.config.settings import Settings
from spaceboard.interfaces.space_data_provider import (
    IAstronautDetailProvider,
    ICrewProvider,
    ITelemetryProvider,
)
from spaceboard.models.cache import CachedResult
from spaceboard.models.space import (
    Astronaut,
    AstronautRoster,
    CrewMember,
    LaunchLibraryAstronaut,
)
from spaceboard.services.cache_manager import CacheManager
from spaceboard.utils.clock import Clock, now_ms
from spaceboard.utils.concurrency import throttled_gather
from spaceboard.utils.logging import get_logger

ASTRONAUTS_KEY = "astronauts"
ISS_POSITION_KEY = "iss-position"

_DETAIL_BATCH_SIZE = 5
# Detail lookups are best effort: a rejection or failure is not retried.
_DETAIL_RETRIES = 0
_DAY_MS = 24 * 60 * 60 * 1000

# Typical days since launch for a crew currently aboard each station.
_CRAFT_LAUNCH_OFFSET_DAYS = {"ISS": 90, "Tiangong": 60}
_DEFAULT_LAUNCH_OFFSET_DAYS = 30

_DAYS_RE = re.compile(r"^P?(\d+)(?:D|\s*days?)", re.IGNORECASE)


def _parse_iso_ms(value: str) -> int | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def estimate_launch_date(craft: str, details: LaunchLibraryAstronaut | None, now: int) -> int:
    """Best-guess launch time (epoch ms) for someone currently aboard *craft*."""
    if details is not None and details.last_flight:
        launched = _parse_iso_ms(details.last_flight)
        if launched is not None:
            return launched
    offset_days = _CRAFT_LAUNCH_OFFSET_DAYS.get(craft, _DEFAULT_LAUNCH_OFFSET_DAYS)
    return now - offset_days * _DAY_MS


def parse_days_in_space(time_in_space: str | None) -> int | None:
    """Whole days from Launch Library's ``time_in_space`` (``P123DT4H...`` or ``"123 days"``)."""
    if not time_in_space:
        return None
    match = _DAYS_RE.match(time_in_space.strip())
    return int(match.group(1)) if match else None


class SpaceService:
    """Cached access to the crew roster and the ISS position."""

    def __init__(
        self,
        cache: CacheManager,
        crew: ICrewProvider,
        details: IAstronautDetailProvider,
        telemetry: ITelemetryProvider,
        settings: Settings,
        clock: Clock = now_ms,
    ) -> None:
        self._cache = cache
        self._crew = crew
        self._details = details
        self._telemetry = telemetry
        self._settings = settings
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    async def _lookup_details(self, name: str) -> LaunchLibraryAstronaut | None:
        endpoint = self._details.get_provider_name()
        return await self._cache.rate_limiter.with_rate_limit(
            endpoint,
            lambda: self._details.search_astronaut(name),
            max_retries=_DETAIL_RETRIES,
        )

    async def _fetch_all_details(self, names: list[str]) -> dict[str, LaunchLibraryAstronaut]:
        found: dict[str, LaunchLibraryAstronaut] = {}
        for start in range(0, len(names), _DETAIL_BATCH_SIZE):
            batch = names[start : start + _DETAIL_BATCH_SIZE]
            results = await throttled_gather([self._lookup_details(name) for name in batch])
            for name, result in zip(batch, results):
                if isinstance(result, BaseException):
                    self._logger.warning("astronaut_details_failed", name=name, error=str(result))
                elif result is not None:
                    found[name.lower()] = result

        self._logger.info("astronaut_details_fetched", found=len(found), requested=len(names))
        return found

    def _enrich(
        self, member: CrewMember, details: LaunchLibraryAstronaut | None, now: int
    ) -> Astronaut:
        agency = details.agency.name if details and details.agency else None
        return Astronaut(
            name=member.name,
            craft=member.craft,
            country=(details.nationality if details else None) or "Unknown",
            agency=agency or "Unknown",
            bio=(details.bio if details else None) or "",
            profile_image_link=(details.profile_image if details else None) or "",
            profile_image_thumbnail=(details.profile_image_thumbnail if details else None) or "",
            flights_count=(details.flights_count if details else None) or 0,
            spacewalks_count=(details.spacewalks_count if details else None) or 0,
            date_of_birth=details.date_of_birth if details else None,
            launch_date=estimate_launch_date(member.craft, details, now),
            total_days_in_space=parse_days_in_space(details.time_in_space if details else None),
            last_update=datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat(),
        )

    async def _build_roster(self) -> dict[str, Any]:
        people = await self._crew.get_people()
        details = await self._fetch_all_details([member.name for member in people.people])

        now = self._clock()
        roster = AstronautRoster(
            number_of_people=people.number,
            message=people.message,
            timestamp=datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat(),
            astronauts=[
                self._enrich(member, details.get(member.name.lower()), now)
                for member in people.people
            ],
        )
        return roster.model_dump(mode="json")

    async def get_astronauts(self, force_refresh: bool = False) -> CachedResult[dict[str, Any]]:
        """The enriched roster, with where it was served from."""
        return await self._cache.fetch_with_cache_status(
            ASTRONAUTS_KEY,
            self._build_roster,
            ttl=self._settings.astronaut_data_ttl_ms,
            force_refresh=force_refresh,
            timeout=self._settings.roster_timeout_ms,
            endpoint=self._crew.get_provider_name(),
            metadata={"source": self._crew.get_provider_name()},
        )

    async def clear_astronauts(self) -> bool:
        outcome = await self._cache.clear_key(ASTRONAUTS_KEY)
        self._logger.info("astronaut_cache_cleared", ok=outcome.ok)
        return outcome.ok

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    async def _fetch_position(self) -> dict[str, Any]:
        position = await self._telemetry.get_position()
        return position.model_dump(mode="json")

    async def get_iss_position(self) -> CachedResult[dict[str, Any]]:
        return await self._cache.fetch_with_cache_status(
            ISS_POSITION_KEY,
            self._fetch_position,
            ttl=self._settings.iss_ttl_ms,
            endpoint=self._telemetry.get_provider_name(),
        )
