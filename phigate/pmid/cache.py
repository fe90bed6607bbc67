"""Day-scoped PMID verification snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class CacheEntry:
    verified: bool
    observed_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {"verified": self.verified, "observed_at": self.observed_at}


@dataclass
class VerificationCache:
    day: str
    items: Dict[str, CacheEntry] = field(default_factory=dict)

    @classmethod
    def empty(cls, day: str) -> "VerificationCache":
        return cls(day=day)

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["VerificationCache"]:
        if not isinstance(raw, Mapping) or not isinstance(raw.get("day"), str):
            return None
        items: Dict[str, CacheEntry] = {}
        raw_items = raw.get("items")
        if isinstance(raw_items, Mapping):
            for k, v in raw_items.items():
                if not isinstance(v, Mapping):
                    continue
                try:
                    items[str(k)] = CacheEntry(
                        verified=bool(v["verified"]),
                        observed_at=int(v["observed_at"]),
                    )
                except (KeyError, TypeError, ValueError):
                    continue
        return cls(day=raw["day"], items=items)

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day, "items": {k: e.to_dict() for k, e in self.items.items()}}

    def __len__(self) -> int:
        return len(self.items)


def reconcile(today: str, cache: Optional["VerificationCache"]) -> VerificationCache:
    """Keep ``cache`` only if it was written today; otherwise start empty."""
    if cache is None or cache.day != today:
        return VerificationCache.empty(today)
    return cache


def prune(cache: VerificationCache, capacity: int) -> int:
    """
    Keep at most ``capacity`` entries, newest ``observed_at`` first.

    Equal timestamps keep the later insertion. Returns how many entries were
    dropped.
    """
    over = len(cache.items) - capacity
    if over <= 0:
        return 0
    ordered = list(cache.items.items())
    ranked = sorted(
        range(len(ordered)),
        key=lambda i: (ordered[i][1].observed_at, i),
        reverse=True,
    )
    keep = sorted(ranked[: max(capacity, 0)])
    cache.items = {ordered[i][0]: ordered[i][1] for i in keep}
    return over
