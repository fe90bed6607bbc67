"""Durable key-value store interface."""

from __future__ import annotations

from typing import Any, AsyncContextManager, Optional, Protocol, runtime_checkable

# Logical keys owned by the components.
API_KEYS = "api_keys"
KEY_USAGE = "key_usage"
PMID_CACHE = "pmid_cache"


@runtime_checkable
class KVStore(Protocol):
    async def get(self, key: str) -> Optional[Any]:
        """Return the JSON-compatible value stored under ``key``, or None."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""
        ...

    def lock(self, key: str) -> AsyncContextManager[None]:
        """
        Serialise read-modify-write sequences on ``key``.

        Holders of the lock for the same key never interleave; different keys
        do not contend.
        """
        ...
