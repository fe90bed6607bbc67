from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import pytest

from phigate.errors import StoreLockTimeout
from phigate.pmid import PmidVerifier
from phigate.store import PMID_CACHE, MemoryKVStore, RedisKVStore

try:
    from fakeredis.aioredis import FakeRedis as _FakeRedis  # type: ignore[import-not-found]
except Exception:  # pragma: no cover
    _FakeRedis = None  # noqa: N816

needs_fakeredis = pytest.mark.skipif(_FakeRedis is None, reason="fakeredis not installed")


class CountingProbe:
    def __init__(self, answers: Optional[Dict[str, bool]] = None, clock=None) -> None:
        self.answers = answers or {}
        self.calls: List[str] = []
        self._clock = clock

    async def check_exists(self, pmid: str) -> bool:
        self.calls.append(pmid)
        if self._clock is not None:
            self._clock.advance(1)
        return self.answers.get(pmid, True)


class ExplodingProbe:
    async def check_exists(self, pmid: str) -> bool:
        raise RuntimeError("resolver crashed")


@pytest.mark.asyncio
async def test_same_day_lookups_probe_once(settings, clock) -> None:
    store = MemoryKVStore()
    probe = CountingProbe({"111": True, "222": False})
    v = PmidVerifier(store, probe=probe, settings=settings, clock=clock)

    assert await v.verify(["111", "222"]) == {"111": True, "222": False}
    assert await v.verify(["222", "111"]) == {"222": False, "111": True}
    assert probe.calls == ["111", "222"]

    cached = store.peek(PMID_CACHE)
    assert cached["day"] == "2026-10-19"
    assert cached["items"]["222"] == {"verified": False, "observed_at": int(clock.now)}


@pytest.mark.asyncio
async def test_all_hits_do_not_write(settings, clock) -> None:
    store = MemoryKVStore()
    v = PmidVerifier(store, probe=CountingProbe(), settings=settings, clock=clock)
    await v.verify(["1", "2"])
    writes = store.writes
    await v.verify(["2", "1", "2"])
    assert store.writes == writes


@pytest.mark.asyncio
async def test_new_day_reprobes(settings, clock) -> None:
    store = MemoryKVStore()
    probe = CountingProbe({"333": False})
    v = PmidVerifier(store, probe=probe, settings=settings, clock=clock)
    await v.verify(["333"])

    probe.answers["333"] = True
    clock.advance(24 * 3600)
    assert await v.verify(["333"]) == {"333": True}
    assert probe.calls == ["333", "333"]
    assert store.peek(PMID_CACHE)["day"] == "2026-10-20"


@pytest.mark.asyncio
async def test_capacity_keeps_newest(settings, clock) -> None:
    store = MemoryKVStore()
    probe = CountingProbe(clock=clock)
    v = PmidVerifier(store, probe=probe, settings=settings, clock=clock)

    ids = [str(10000 + i) for i in range(205)]
    await v.verify(ids)

    items = store.peek(PMID_CACHE)["items"]
    assert len(items) == 200
    assert not set(ids[:5]) & set(items)
    assert set(ids[5:]) == set(items)


@pytest.mark.asyncio
async def test_capacity_across_calls(settings, clock) -> None:
    store = MemoryKVStore()
    v = PmidVerifier(store, probe=CountingProbe(clock=clock), settings=settings, clock=clock)
    await v.verify([str(i) for i in range(150)])
    await v.verify([str(i) for i in range(150, 260)])
    items = store.peek(PMID_CACHE)["items"]
    assert len(items) == 200
    assert "59" not in items and "60" in items and "259" in items


@pytest.mark.asyncio
async def test_probe_exception_counts_as_unverified(settings, clock) -> None:
    store = MemoryKVStore()
    v = PmidVerifier(store, probe=ExplodingProbe(), settings=settings, clock=clock)
    assert await v.verify(["404"]) == {"404": False}
    assert store.peek(PMID_CACHE)["items"]["404"]["verified"] is False


@pytest.mark.asyncio
async def test_empty_request_touches_nothing(settings, clock) -> None:
    store = MemoryKVStore()
    probe = CountingProbe()
    v = PmidVerifier(store, probe=probe, settings=settings, clock=clock)
    assert await v.verify([]) == {}
    assert probe.calls == []
    assert store.writes == 0


@pytest.mark.asyncio
async def test_corrupt_snapshot_is_replaced(settings, clock) -> None:
    store = MemoryKVStore({PMID_CACHE: "garbage"})
    v = PmidVerifier(store, probe=CountingProbe(), settings=settings, clock=clock)
    assert await v.verify(["7"]) == {"7": True}
    assert store.peek(PMID_CACHE)["day"] == "2026-10-19"


@pytest.mark.asyncio
async def test_capacity_is_configurable(clock) -> None:
    from phigate.settings import Settings

    store = MemoryKVStore()
    s = Settings(cache_capacity=3)
    v = PmidVerifier(store, probe=CountingProbe(clock=clock), settings=s, clock=clock)
    await v.verify(["a", "b", "c", "d", "e"])
    assert list(store.peek(PMID_CACHE)["items"]) == ["c", "d", "e"]


class BrokenStore(MemoryKVStore):
    async def get(self, key):
        raise ConnectionError("store down")

    async def set(self, key, value):
        raise ConnectionError("store down")


class BusyStore(MemoryKVStore):
    @asynccontextmanager
    async def lock(self, key):
        raise StoreLockTimeout(f"lock busy: {key}")
        yield  # pragma: no cover


@pytest.mark.asyncio
async def test_store_failures_still_answer(settings, clock) -> None:
    probe = CountingProbe({"8": False})
    v = PmidVerifier(BrokenStore(), probe=probe, settings=settings, clock=clock)
    assert await v.verify(["8", "9"]) == {"8": False, "9": True}


@pytest.mark.asyncio
async def test_lock_timeout_probes_without_caching(settings, clock) -> None:
    store = BusyStore()
    probe = CountingProbe()
    v = PmidVerifier(store, probe=probe, settings=settings, clock=clock)
    assert await v.verify(["1", "1", "2"]) == {"1": True, "2": True}
    assert probe.calls == ["1", "2"]
    assert store.writes == 0


class UnreachableLockStore(MemoryKVStore):
    @asynccontextmanager
    async def lock(self, key):
        raise ConnectionRefusedError(111, "Connect call failed")
        yield  # pragma: no cover


class FailingReleaseStore(MemoryKVStore):
    @asynccontextmanager
    async def lock(self, key):
        yield
        raise ConnectionError("connection reset during release")


@pytest.mark.asyncio
@pytest.mark.parametrize("store_cls", [UnreachableLockStore, FailingReleaseStore])
async def test_lock_errors_never_reach_the_caller(settings, clock, store_cls) -> None:
    probe = CountingProbe({"123": True, "456": False})
    v = PmidVerifier(store_cls(), probe=probe, settings=settings, clock=clock)
    assert await v.verify(["123", "456"]) == {"123": True, "456": False}


class SlowProbe:
    def __init__(self, store_key: str, redis) -> None:
        self.store_key = store_key
        self.redis = redis
        self.lock_seen: List[Optional[str]] = []

    async def check_exists(self, pmid: str) -> bool:
        self.lock_seen.append(await self.redis.get(self.store_key))
        await asyncio.sleep(0.01)
        return True


@pytest.mark.asyncio
async def test_concurrent_calls_keep_each_others_entries(settings, clock) -> None:
    store = MemoryKVStore()

    class Sleepy(CountingProbe):
        async def check_exists(self, pmid: str) -> bool:
            await asyncio.sleep(0.01)
            return await super().check_exists(pmid)

    a = PmidVerifier(store, probe=Sleepy(), settings=settings, clock=clock)
    b = PmidVerifier(store, probe=Sleepy(), settings=settings, clock=clock)
    await asyncio.gather(a.verify(["1", "2", "3"]), b.verify(["4", "5"]))
    assert set(store.peek(PMID_CACHE)["items"]) == {"1", "2", "3", "4", "5"}


@pytest.mark.asyncio
@needs_fakeredis
async def test_redis_lock_is_free_during_live_checks(settings, clock) -> None:
    r: Any = _FakeRedis(decode_responses=True)
    store = RedisKVStore(r, ns="v1", lock_ttl_s=1)
    probe = SlowProbe("v1:lock:pmid_cache", r)
    v = PmidVerifier(store, probe=probe, settings=settings, clock=clock)

    assert await v.verify([str(i) for i in range(5)]) == {str(i): True for i in range(5)}
    assert probe.lock_seen == [None] * 5
    assert len((await store.get(PMID_CACHE))["items"]) == 5
    assert await r.get("v1:lock:pmid_cache") is None
