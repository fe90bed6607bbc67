from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from phigate.clock import Clock, calendar_day, system_clock
from phigate.errors import KeysExhausted
from phigate.keys.slots import (
    CredentialSlot,
    SlotState,
    SlotStatus,
    dump_usage,
    normalize_keys,
    parse_usage,
    reconcile,
)
from phigate.observability import metrics
from phigate.settings import Settings, get_settings
from phigate.store.base import API_KEYS, KEY_USAGE, KVStore
from phigate.telemetry.logging import bind, mask_secret

_log = bind(logging.getLogger(__name__), component="keys")

AUTH_FAILURE_STATUSES = frozenset({401, 403})
THROTTLE_STATUSES = frozenset({429, 503})


@dataclass(frozen=True)
class ActiveKey:
    key: str = field(repr=False)
    index: int

    def __repr__(self) -> str:
        return f"ActiveKey(index={self.index}, key={mask_secret(self.key)!r})"


class KeyRotator:
    """
    Selects among a fixed pool of API keys with per-day quotas.

    Slot states:
      - active: selectable while under the daily quota
      - cooldown: skipped until ``cooldown_until``, then flips back to active
      - disabled: skipped for the rest of the day (auth failure) unless the
        key at that index is replaced through ``configure_keys``

    Every public method runs under the store lock for ``key_usage``.
    """

    def __init__(
        self,
        store: KVStore,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock or system_clock

    @property
    def slots(self) -> int:
        return self._settings.key_slots

    def _now(self) -> float:
        return self._clock()

    def _today(self) -> str:
        return calendar_day(self._settings.tz, self._now())

    async def _load_keys(self) -> List[str]:
        return normalize_keys(await self._store.get(API_KEYS), self.slots)

    async def _load_usage(self) -> Dict[int, CredentialSlot]:
        return parse_usage(await self._store.get(KEY_USAGE))

    async def _save_usage(self, usage: Dict[int, CredentialSlot]) -> None:
        await self._store.set(KEY_USAGE, dump_usage(usage))

    # ---- selection ------------------------------------------------------------

    async def get_active_key(self) -> ActiveKey:
        async with self._store.lock(KEY_USAGE):
            keys = await self._load_keys()
            usage, reset = reconcile(self._today(), await self._load_usage(), self.slots)
            if reset:
                await self._save_usage(usage)
                _log.info("daily usage reset", extra={"slots": reset})

            now = self._now()
            for i in range(self.slots):
                if not keys[i]:
                    continue
                slot = usage[i]
                if slot.state is SlotState.DISABLED:
                    continue
                if slot.state is SlotState.COOLDOWN:
                    if now < slot.cooldown_until:
                        continue
                    slot.state = SlotState.ACTIVE
                    slot.cooldown_until = 0.0
                    await self._save_usage(usage)
                    _log.info("cooldown expired", extra={"slot": i})
                if slot.count >= self._settings.max_daily_usage:
                    continue

                metrics.key_selected_inc(i)
                _log.debug(
                    "key selected",
                    extra={"slot": i, "count": slot.count, "key_prefix": mask_secret(keys[i])},
                )
                return ActiveKey(key=keys[i], index=i)

        metrics.keys_exhausted_inc()
        _log.warning("no usable key", extra={"configured": sum(1 for k in keys if k)})
        raise KeysExhausted()

    # ---- outcome reporting ----------------------------------------------------

    async def increment_usage(self, index: int) -> None:
        async with self._store.lock(KEY_USAGE):
            usage = await self._load_usage()
            slot = usage.get(index)
            if slot is None:
                return
            slot.count += 1
            await self._save_usage(usage)

    async def report_error(self, index: int, status: int) -> Optional[SlotState]:
        """
        Record a failed call made with the key at ``index``.

        401/403 disable the slot; 429/503 cool it down for the long window;
        any other status cools it down for the short window. Returns the new
        state, or None when the slot does not exist yet.
        """
        async with self._store.lock(KEY_USAGE):
            usage = await self._load_usage()
            slot = usage.get(index)
            if slot is None:
                return None

            code = int(status)
            if code in AUTH_FAILURE_STATUSES:
                slot.state = SlotState.DISABLED
            elif code in THROTTLE_STATUSES:
                slot.state = SlotState.COOLDOWN
                slot.cooldown_until = self._now() + self._settings.cooldown_long_s
            else:
                slot.state = SlotState.COOLDOWN
                slot.cooldown_until = self._now() + self._settings.cooldown_short_s
            await self._save_usage(usage)

        metrics.key_error_inc(index, slot.state.value)
        _log.warning(
            "key error reported",
            extra={"slot": index, "http_status": code, "state": slot.state.value},
        )
        return slot.state

    # ---- configuration & inspection ------------------------------------------

    async def configure_keys(self, keys: Iterable[str]) -> None:
        """
        Store the key list. Usage stats survive; a disabled slot whose key
        was replaced by a different non-empty value becomes active again.
        """
        new_keys = normalize_keys(list(keys), self.slots)
        async with self._store.lock(KEY_USAGE):
            old_keys = await self._load_keys()
            usage = await self._load_usage()
            revived: List[int] = []
            for i, key in enumerate(new_keys):
                slot = usage.get(i)
                if slot is None or slot.state is not SlotState.DISABLED:
                    continue
                if key and key != old_keys[i]:
                    slot.state = SlotState.ACTIVE
                    slot.cooldown_until = 0.0
                    revived.append(i)
            await self._store.set(API_KEYS, new_keys)
            if revived:
                await self._save_usage(usage)

        _log.info(
            "keys configured",
            extra={"configured": sum(1 for k in new_keys if k), "revived": revived},
        )

    async def describe(self) -> List[SlotStatus]:
        keys = await self._load_keys()
        usage = await self._load_usage()
        today = self._today()
        now = self._now()
        out: List[SlotStatus] = []
        for i in range(self.slots):
            slot = usage.get(i)
            if slot is None or slot.day != today:
                slot = CredentialSlot.fresh(today)
            remaining = 0.0
            if slot.state is SlotState.COOLDOWN:
                remaining = max(0.0, slot.cooldown_until - now)
            out.append(
                SlotStatus(
                    index=i,
                    configured=bool(keys[i]),
                    count=slot.count,
                    max_usage=self._settings.max_daily_usage,
                    state=slot.state,
                    cooldown_remaining_s=remaining,
                )
            )
        return out
