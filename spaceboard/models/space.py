"""Domain models for crew, astronaut detail and ISS telemetry data.

Raw origin payloads (``OpenNotifyResponse``, ``LaunchLibraryAstronaut``,
``ISSPosition``) are validated with ``extra="ignore"`` so new upstream
fields never break parsing.  ``Astronaut`` and ``AstronautRoster`` are the
enriched shapes served to the dashboard; they are what gets cached under
the ``astronauts`` key (as plain dicts via ``model_dump``).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Location origin (who is in space right now)
# ---------------------------------------------------------------------------


class CrewMember(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    craft: str


class OpenNotifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    message: str
    number: int
    people: list[CrewMember] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Detail origin (biography / agency)
# ---------------------------------------------------------------------------


class Agency(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    type: str | None = None


class LaunchLibraryAstronaut(BaseModel):
    """One result from the detail API's name-substring search."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    nationality: str | None = None
    date_of_birth: str | None = None
    bio: str | None = None
    profile_image: str | None = None
    profile_image_thumbnail: str | None = None
    flights_count: int | None = None
    spacewalks_count: int | None = None
    last_flight: str | None = None
    time_in_space: str | None = None
    agency: Agency | None = None


# ---------------------------------------------------------------------------
# Enriched roster served to the dashboard
# ---------------------------------------------------------------------------


class Astronaut(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    craft: str
    country: str = "Unknown"
    agency: str = "Unknown"
    bio: str = ""
    profile_image_link: str = ""
    profile_image_thumbnail: str = ""
    flights_count: int = 0
    spacewalks_count: int = 0
    date_of_birth: str | None = None
    position: str = "Astronaut"
    launch_date: int  # epoch ms (best estimate)
    total_days_in_space: int | None = None
    last_update: str


class AstronautRoster(BaseModel):
    model_config = ConfigDict(frozen=True)

    number_of_people: int
    message: str
    timestamp: str
    astronauts: list[Astronaut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Telemetry origin
# ---------------------------------------------------------------------------


class ISSPosition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    latitude: float
    longitude: float
    altitude: float
    velocity: float
    visibility: str
    footprint: float
    timestamp: int
    solar_lat: float
    solar_lon: float
    units: str = "kilometers"
