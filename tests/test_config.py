"""Tests for settings loading."""

import pytest

from governor.config import Settings, get_settings


class TestThrottleSettings:
    """Environment values that cannot be used fall back to the defaults."""

    @pytest.mark.parametrize(
        "value, expected",
        [("1500", 1500.0), ("0", 0.0), ("abc", 2000.0), ("nan", 2000.0), ("-5", 2000.0)],
    )
    def test_spacing(self, monkeypatch: pytest.MonkeyPatch, value: str, expected: float) -> None:
        monkeypatch.setenv("RAPIDAPI_THROTTLE_MS", value)

        assert Settings(_env_file=None).throttle_spacing_ms == expected

    @pytest.mark.parametrize(
        "value, expected",
        [("3", 3), ("2.7", 2), ("0", 5), ("inf", 5), ("many", 5)],
    )
    def test_max_attempts(self, monkeypatch: pytest.MonkeyPatch, value: str, expected: int) -> None:
        monkeypatch.setenv("RAPIDAPI_MAX_ATTEMPTS", value)

        assert Settings(_env_file=None).throttle_max_attempts == expected

    def test_own_name_is_accepted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("THROTTLE_SPACING_MS", "250")

        assert Settings(_env_file=None).throttle_spacing_ms == 250.0

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("RAPIDAPI_THROTTLE_MS", "RAPIDAPI_MAX_ATTEMPTS", "THROTTLE_SPACING_MS", "THROTTLE_MAX_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.throttle_spacing_ms == 2000.0
        assert settings.throttle_max_attempts == 5
        assert settings.recent_errors_limit == 50


class TestGetSettings:
    """Tests for the cached accessor."""

    def test_is_cached(self) -> None:
        get_settings.cache_clear()

        assert get_settings() is get_settings()

        get_settings.cache_clear()
