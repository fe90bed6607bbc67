"""Runtime configuration for the gate, the key rotator and the PMID cache.

Values come from the environment (prefix ``PHIGATE_``). ``get_settings()``
caches the parsed model; tests call ``reset_settings()`` after monkeypatching
the environment.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_PUBMED_BASE_URL = "https://pubmed.ncbi.nlm.nih.gov/"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PHIGATE_", extra="ignore")

    # --- Calendar ---
    timezone: str = Field(default=DEFAULT_TIMEZONE)

    # --- Key rotation ---
    key_slots: int = Field(default=4, ge=1, le=16)
    max_daily_usage: int = Field(default=20, ge=1)
    cooldown_long_s: int = Field(default=5 * 60, ge=1)
    cooldown_short_s: int = Field(default=60, ge=1)

    # --- PMID verification ---
    cache_capacity: int = Field(default=200, ge=1)
    pubmed_base_url: str = Field(default=DEFAULT_PUBMED_BASE_URL)
    probe_timeout_s: float = Field(default=10.0, gt=0)

    # --- Store ---
    store_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    store_namespace: str = Field(default="phigate")
    store_lock_ttl_s: int = Field(default=60, ge=1, le=3600)
    store_lock_wait_s: float = Field(default=10.0, ge=0)

    # --- Guard ---
    rulepack: str = Field(default="ja_clinical", description="Rule pack name or YAML path")

    # --- Observability ---
    log_level: str = Field(default="INFO")
    metrics_enabled: bool = Field(default=True)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        name = (value or "").strip()
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone: {value!r}") from exc
        return name

    @field_validator("pubmed_base_url")
    @classmethod
    def _trailing_slash(cls, value: str) -> str:
        url = value.strip()
        return url if url.endswith("/") else url + "/"

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def reset_settings() -> None:
    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings"]
