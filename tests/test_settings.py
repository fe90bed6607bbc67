from __future__ import annotations

import pytest
from pydantic import ValidationError

from phigate.settings import Settings, get_settings, reset_settings


def test_defaults() -> None:
    s = Settings()
    assert s.timezone == "Asia/Tokyo"
    assert (s.key_slots, s.max_daily_usage) == (4, 20)
    assert (s.cooldown_long_s, s.cooldown_short_s) == (300, 60)
    assert s.cache_capacity == 200
    assert s.pubmed_base_url == "https://pubmed.ncbi.nlm.nih.gov/"
    assert s.store_backend == "memory"
    assert str(s.tz) == "Asia/Tokyo"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("PHIGATE_MAX_DAILY_USAGE", "5")
    monkeypatch.setenv("PHIGATE_TIMEZONE", "UTC")
    monkeypatch.setenv("PHIGATE_STORE_BACKEND", "redis")
    monkeypatch.setenv("PHIGATE_METRICS_ENABLED", "false")
    reset_settings()
    s = get_settings()
    assert s.max_daily_usage == 5
    assert s.timezone == "UTC"
    assert s.store_backend == "redis"
    assert s.metrics_enabled is False


def test_get_settings_is_cached_until_reset(monkeypatch) -> None:
    first = get_settings()
    monkeypatch.setenv("PHIGATE_CACHE_CAPACITY", "7")
    assert get_settings() is first
    reset_settings()
    assert get_settings().cache_capacity == 7


def test_base_url_gains_trailing_slash() -> None:
    assert Settings(pubmed_base_url=" https://mirror.test/pm ").pubmed_base_url == "https://mirror.test/pm/"


@pytest.mark.parametrize(
    "field, value",
    [
        ("timezone", "Mars/Olympus_Mons"),
        ("key_slots", 0),
        ("max_daily_usage", 0),
        ("store_backend", "sqlite"),
    ],
)
def test_rejects_bad_values(field: str, value: object) -> None:
    with pytest.raises(ValidationError):
        Settings(**{field: value})
