"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# The YAML file is grouped into sections for readability:
#
#   cache:
#     default_ttl_ms: 21600000
#   rate_limit:
#     max_requests_per_minute: 60
#
# Section names are only organisational; each leaf key must be a field
# name on Settings.  Unknown keys are rejected so typos surface early.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from spaceboard.config.settings import Settings
from spaceboard.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml") -> Settings:
    """Load YAML defaults and layer environment-based Settings on top.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
              an error; env vars and built-in defaults still apply.

    Returns:
        Fully resolved :class:`Settings`.
    """
    config_path = Path(path)
    yaml_config: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

    flat = _flatten_sections(yaml_config)
    unknown = sorted(set(flat) - set(Settings.model_fields))
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys in {path}: {', '.join(unknown)}")

    # Settings() resolves env/.env; anything it set explicitly wins over YAML.
    env_settings = Settings()
    yaml_only = {k: v for k, v in flat.items() if k not in env_settings.model_fields_set}
    return Settings(**yaml_only)


def _flatten_sections(config: dict[str, Any]) -> dict[str, Any]:
    """Collapse one level of section nesting into a flat field mapping."""
    flat: dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat
