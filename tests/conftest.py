# tests/conftest.py
from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from prometheus_client import CollectorRegistry

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from phigate.observability import metrics  # noqa: E402
from phigate.settings import Settings, reset_settings  # noqa: E402

TOKYO = ZoneInfo("Asia/Tokyo")


class FakeClock:
    """Settable epoch-seconds clock."""

    def __init__(self, start: float) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)


def jst(y: int, m: int, d: int, hh: int = 9, mm: int = 0) -> float:
    return datetime(y, m, d, hh, mm, tzinfo=TOKYO).timestamp()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for var in list(os.environ):
        if var.startswith("PHIGATE_"):
            monkeypatch.delenv(var, raising=False)
    reset_settings()
    metrics.use_registry(CollectorRegistry())
    yield
    reset_settings()


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(jst(2026, 10, 19))


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if asyncio.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None
