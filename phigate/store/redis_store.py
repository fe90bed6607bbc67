"""Redis-backed key-value store with owner-token locks."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from redis.asyncio import Redis
from redis.exceptions import WatchError

from phigate.errors import StoreLockTimeout
from phigate.store.base import KVStore

_log = logging.getLogger(__name__)

_LOCK_POLL_S = 0.05


def _ns(ns: str, *parts: str) -> str:
    return ":".join((ns, *parts))


def _as_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return str(raw)


class RedisKVStore(KVStore):
    """JSON values under ``<ns>:kv:<key>``; locks under ``<ns>:lock:<key>``."""

    def __init__(
        self,
        redis: Redis,
        ns: str = "phigate",
        lock_ttl_s: int = 60,
        lock_wait_s: float = 10.0,
    ) -> None:
        self.r = redis
        self.ns = ns
        self.lock_ttl_ms = max(1, int(lock_ttl_s)) * 1000
        self.lock_wait_s = max(0.0, float(lock_wait_s))

    def _k(self, key: str) -> str:
        return _ns(self.ns, "kv", key)

    def _lk(self, key: str) -> str:
        return _ns(self.ns, "lock", key)

    async def get(self, key: str) -> Optional[Any]:
        raw = _as_text(await self.r.get(self._k(key)))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        await self.r.set(self._k(key), payload)

    async def _acquire(self, key: str) -> str:
        lock_key = self._lk(key)
        owner = secrets.token_urlsafe(16)
        deadline = time.monotonic() + self.lock_wait_s
        while True:
            ok = await self.r.set(lock_key, owner, px=self.lock_ttl_ms, nx=True)
            if ok:
                return owner
            if time.monotonic() >= deadline:
                raise StoreLockTimeout(f"lock wait exceeded for {key!r}")
            await asyncio.sleep(_LOCK_POLL_S)

    async def _release(self, key: str, owner: str) -> bool:
        """Delete the lock only while ``owner`` still holds it."""
        lock_key = self._lk(key)
        async with self.r.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(lock_key)
                current = _as_text(await pipe.get(lock_key))
                if current != owner:
                    return False
                pipe.multi()
                pipe.delete(lock_key)
                await pipe.execute()
                return True
            except WatchError:
                return False

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        owner = await self._acquire(key)
        try:
            yield
        finally:
            released = await self._release(key, owner)
            if not released:
                # TTL expired mid-section; another holder may have interleaved.
                _log.warning("store lock expired before release", extra={"store_key": key})
