"""Pydantic response schemas for the SpaceBoard API.

Roster and telemetry payloads are served as the cached JSON they were
stored as; the schemas here cover the maintenance and health endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application and cache health."""

    status: str
    version: str
    timestamp: str
    healthy: bool
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class ClearCacheResponse(BaseModel):
    cleared: bool
    key: str


class CleanupResponse(BaseModel):
    """Expired entries removed per tier."""

    removed: dict[str, int]
