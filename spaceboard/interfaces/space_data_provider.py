"""Abstract base classes for the three origin APIs.

Each origin is accessed through one of these interfaces so the space
service can be tested with mocks and an origin can be swapped (e.g. a
different telemetry source) without touching the caching glue.

Error contract: implementations raise
:class:`~spaceboard.utils.errors.OriginError` (with ``status_code`` when
an HTTP response was received) or
:class:`~spaceboard.utils.errors.FetchTimeoutError`.  The rate limiter
relies on ``status_code`` to recognise 429 responses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from spaceboard.models.space import ISSPosition, LaunchLibraryAstronaut, OpenNotifyResponse


class ICrewProvider(ABC):
    """Who is in space right now, and aboard which craft."""

    @abstractmethod
    async def get_people(self) -> OpenNotifyResponse:
        """Fetch the current crew list."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the rate-limiter endpoint name for this origin."""


class IAstronautDetailProvider(ABC):
    """Biographical and agency details, queried by name substring."""

    @abstractmethod
    async def search_astronaut(self, name: str) -> LaunchLibraryAstronaut | None:
        """Return the best match for *name*, or ``None`` if there is none."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the rate-limiter endpoint name for this origin."""


class ITelemetryProvider(ABC):
    """Live ISS position."""

    @abstractmethod
    async def get_position(self) -> ISSPosition:
        """Fetch the current ISS position."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the rate-limiter endpoint name for this origin."""
