from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Protocol

from phigate.clock import Clock, calendar_day, system_clock
from phigate.observability import metrics
from phigate.pmid.cache import CacheEntry, VerificationCache, prune, reconcile
from phigate.pmid.probe import PubMedProbe
from phigate.settings import Settings, get_settings
from phigate.store.base import PMID_CACHE, KVStore

_log = logging.getLogger(__name__)


class ExistenceProbe(Protocol):
    async def check_exists(self, pmid: str) -> bool:
        ...


class PmidVerifier:
    """
    PMID existence checks memoised per calendar day.

    The cached snapshot is dropped when its day is not today, capped at
    ``cache_capacity`` entries (newest observations kept), and written back
    at most once per ``verify`` call, only when something new was probed.
    Live probes run outside the store lock. Store failures of any kind are
    logged and never reach the caller; the answers are returned uncached.
    """

    def __init__(
        self,
        store: KVStore,
        probe: Optional[ExistenceProbe] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._probe: ExistenceProbe = probe or PubMedProbe(settings=self._settings)
        self._clock = clock or system_clock

    def _now(self) -> float:
        return self._clock()

    def _today(self) -> str:
        return calendar_day(self._settings.tz, self._now())

    async def _read(self) -> VerificationCache:
        raw = await self._store.get(PMID_CACHE)
        return reconcile(self._today(), VerificationCache.from_dict(raw))

    async def _check_live(self, pmid: str) -> bool:
        try:
            return bool(await self._probe.check_exists(pmid))
        except Exception as exc:
            # Unverifiable is reported as unverified.
            _log.warning(
                "pmid probe raised",
                extra={"pmid": pmid, "error": exc.__class__.__name__},
            )
            return False

    async def verify(self, pmids: Iterable[str]) -> Dict[str, bool]:
        wanted = [str(p) for p in pmids]
        if not wanted:
            return {}

        try:
            cache = await self._read()
        except Exception as exc:
            _log.warning("pmid cache read failed", extra={"error": exc.__class__.__name__})
            cache = VerificationCache.empty(self._today())

        results: Dict[str, bool] = {}
        fresh: Dict[str, CacheEntry] = {}
        for pmid in wanted:
            if pmid in results:
                continue
            hit = cache.items.get(pmid)
            if hit is not None:
                results[pmid] = hit.verified
                metrics.pmid_lookup_inc("cache", hit.verified)
                continue

            ok = await self._check_live(pmid)
            results[pmid] = ok
            fresh[pmid] = CacheEntry(verified=ok, observed_at=int(self._now()))
            metrics.pmid_lookup_inc("live", ok)

        if fresh:
            await self._merge(fresh)
        return results

    async def _merge(self, fresh: Dict[str, CacheEntry]) -> None:
        """
        Fold newly probed entries into the stored snapshot.

        Probes run before this point, so the store lock is only held for one
        read and one write. The snapshot is re-read under the lock so entries
        written by a concurrent call in the meantime are kept.
        """
        try:
            async with self._store.lock(PMID_CACHE):
                cache = await self._read()
                cache.items.update(fresh)
                dropped = prune(cache, self._settings.cache_capacity)
                await self._store.set(PMID_CACHE, cache.to_dict())
        except Exception as exc:
            _log.warning(
                "pmid cache update skipped",
                extra={"added": len(fresh), "error": exc.__class__.__name__},
            )
            return

        if dropped:
            metrics.pmid_evictions_inc(dropped)
        _log.info(
            "pmid cache updated",
            extra={"added": len(fresh), "evicted": dropped, "size": len(cache)},
        )
