"""Origin API clients.

OpenNotifyProvider (crew list), LaunchLibraryProvider (astronaut details)
and WhereTheISSProvider (ISS telemetry), all over a shared
``httpx.AsyncClient``.
"""

from spaceboard.providers.space.launch_library_provider import LaunchLibraryProvider
from spaceboard.providers.space.open_notify_provider import OpenNotifyProvider
from spaceboard.providers.space.wheretheiss_provider import WhereTheISSProvider

__all__ = ["LaunchLibraryProvider", "OpenNotifyProvider", "WhereTheISSProvider"]
