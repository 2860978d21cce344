"""SpaceBoard: astronaut and ISS dashboard backend with layered caching."""

__version__ = "0.1.0"
