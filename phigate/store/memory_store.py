"""In-memory key-value store (tests, single-process use)."""

from __future__ import annotations

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from phigate.store.base import KVStore


class MemoryKVStore(KVStore):
    """Dict-backed store; NOT shared between processes."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self._locks: Dict[str, asyncio.Lock] = {}
        self.writes = 0

    async def get(self, key: str) -> Optional[Any]:
        # Copies keep callers from mutating stored state without a set().
        return copy.deepcopy(self._values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)
        self.writes += 1

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        mu = self._locks.setdefault(key, asyncio.Lock())
        async with mu:
            yield

    # ---- test/dev helpers ----
    def peek(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._values.get(key))
