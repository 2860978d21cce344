"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g. MAX_REQUESTS_PER_MINUTE=30
#   2. **.env file** - key=value lines in the project root .env file
#
# Field name `max_requests_per_minute` maps to env var
# `MAX_REQUESTS_PER_MINUTE`.  Defaults below apply when neither exists.
# YAML defaults from config/config.yaml are layered underneath both by
# spaceboard/config/loader.py.
#
# Every duration is in MILLISECONDS unless the name ends in `_s`.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from spaceboard.models.cache import RateLimitPolicy

_HOUR_MS = 60 * 60 * 1000
_MB = 1024 * 1024


class Settings(BaseSettings):
    """SpaceBoard application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Cache directories ===
    cache_dir: str = "./cache"
    api_cache_dir: str = "./cache/api"
    assets_cache_dir: str = "./cache/assets"

    # === TTLs ===
    default_ttl_ms: int = 6 * _HOUR_MS
    astronaut_data_ttl_ms: int = 6 * _HOUR_MS
    asset_ttl_ms: int = 24 * _HOUR_MS
    iss_ttl_ms: int = 5_000  # telemetry changes every few seconds
    volatile_default_ttl_ms: int = 24 * _HOUR_MS

    # === Size limits ===
    max_cache_size: int = 100 * _MB
    max_asset_size: int = 5 * _MB
    volatile_quota_bytes: int = 5 * _MB  # localStorage-sized budget
    stable_handle_limit: int = 512

    # === Rate limiting ===
    max_requests_per_minute: int = 60
    backoff_multiplier: float = 2.0
    initial_backoff_ms: int = 1_000
    max_backoff_ms: int = 32_000
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_ms: int = 60_000
    rate_limit_sweep_interval_s: float = 60.0
    rate_limit_stale_after_ms: int = 24 * _HOUR_MS

    # === Origin fetches ===
    fetch_timeout_ms: int = 10_000
    # The roster fetch fans out to one detail lookup per crew member.
    roster_timeout_ms: int = 30_000
    fetch_retries: int = 3
    dedupe_fetches: bool = True

    # === Origins ===
    open_notify_url: str = "http://api.open-notify.org/astros.json"
    launch_library_url: str = "https://ll.thespacedevs.com/2.2.0/astronaut/"
    iss_url: str = "https://api.wheretheiss.at/v1/satellites/25544"
    http_user_agent: str = "SpaceBoard/1.0"
    http_timeout_s: float = 10.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 4108
    app_env: str = "development"
    log_level: str = "INFO"

    def rate_limit_policy(self) -> RateLimitPolicy:
        """Return the immutable rate-limiting policy derived from these settings."""
        return RateLimitPolicy(
            max_requests_per_minute=self.max_requests_per_minute,
            backoff_multiplier=self.backoff_multiplier,
            initial_backoff_ms=self.initial_backoff_ms,
            max_backoff_ms=self.max_backoff_ms,
            circuit_breaker_threshold=self.circuit_breaker_threshold,
            circuit_breaker_timeout_ms=self.circuit_breaker_timeout_ms,
            stale_after_ms=self.rate_limit_stale_after_ms,
        )
