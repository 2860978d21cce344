"""Configuration module: exports Settings and load_config."""

from spaceboard.config.loader import load_config
from spaceboard.config.settings import Settings

__all__ = ["Settings", "load_config"]
