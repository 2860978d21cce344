"""Unit tests for Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from spaceboard.config.loader import load_config
from spaceboard.config.settings import Settings
from spaceboard.utils.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep a developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MAX_REQUESTS_PER_MINUTE", raising=False)
    monkeypatch.delenv("FETCH_RETRIES", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)


def _write_yaml(tmp_path: Path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.default_ttl_ms == 6 * 60 * 60 * 1000
        assert settings.max_cache_size == 100 * 1024 * 1024
        assert settings.app_port == 4108

    def test_rate_limit_policy_mirrors_settings(self) -> None:
        policy = Settings(max_requests_per_minute=10, circuit_breaker_threshold=2).rate_limit_policy()
        assert policy.max_requests_per_minute == 10
        assert policy.circuit_breaker_threshold == 2
        assert policy.window_ms == 60_000


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_config(str(tmp_path / "absent.yaml"))
        assert settings.fetch_retries == 3

    def test_sections_are_flattened(self, tmp_path: Path) -> None:
        path = _write_yaml(
            tmp_path,
            "rate_limit:\n  max_requests_per_minute: 20\nfetch:\n  fetch_retries: 1\n",
        )
        settings = load_config(path)
        assert settings.max_requests_per_minute == 20
        assert settings.fetch_retries == 1

    def test_environment_overrides_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MAX_REQUESTS_PER_MINUTE", "30")
        path = _write_yaml(tmp_path, "rate_limit:\n  max_requests_per_minute: 20\n")
        assert load_config(path).max_requests_per_minute == 30

    def test_unknown_keys_are_rejected(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, "cache:\n  default_tll_ms: 5\n")
        with pytest.raises(ConfigurationError, match="default_tll_ms"):
            load_config(path)

    def test_empty_file_is_allowed(self, tmp_path: Path) -> None:
        path = _write_yaml(tmp_path, "")
        assert load_config(path).app_env == "development"

    def test_repository_config_is_valid(self) -> None:
        repo_config = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        settings = load_config(str(repo_config))
        assert settings.iss_ttl_ms == 5_000
