"""Store package exports."""

from __future__ import annotations

from typing import Optional

from phigate.settings import Settings, get_settings

from .base import API_KEYS, KEY_USAGE, PMID_CACHE, KVStore
from .memory_store import MemoryKVStore
from .redis_store import RedisKVStore


def build_store(settings: Optional[Settings] = None) -> KVStore:
    """Construct the configured backend (``memory`` or ``redis``)."""
    s = settings or get_settings()
    if s.store_backend == "redis":
        from redis.asyncio import Redis

        client = Redis.from_url(s.redis_url, decode_responses=True)
        return RedisKVStore(
            client,
            ns=s.store_namespace,
            lock_ttl_s=s.store_lock_ttl_s,
            lock_wait_s=s.store_lock_wait_s,
        )
    return MemoryKVStore()


__all__ = [
    "API_KEYS",
    "KEY_USAGE",
    "PMID_CACHE",
    "KVStore",
    "MemoryKVStore",
    "RedisKVStore",
    "build_store",
]
