"""Credential slot state and its daily reconciliation.

Everything here is pure: the rotator loads raw store values, runs them
through these helpers and writes the result back.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class SlotState(str, Enum):
    ACTIVE = "active"
    COOLDOWN = "cooldown"
    DISABLED = "disabled"


@dataclass
class CredentialSlot:
    day: str
    count: int = 0
    state: SlotState = SlotState.ACTIVE
    cooldown_until: float = 0.0

    @classmethod
    def fresh(cls, day: str) -> "CredentialSlot":
        return cls(day=day)

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["CredentialSlot"]:
        """Parse a stored slot; unreadable records count as absent."""
        if not isinstance(raw, Mapping):
            return None
        try:
            return cls(
                day=str(raw["day"]),
                count=int(raw.get("count", 0)),
                state=SlotState(raw.get("state", SlotState.ACTIVE.value)),
                cooldown_until=float(raw.get("cooldown_until", 0.0)),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d


@dataclass(frozen=True)
class SlotStatus:
    """Read-only view of one slot, as a settings screen would show it."""

    index: int
    configured: bool
    count: int
    max_usage: int
    state: SlotState
    cooldown_remaining_s: float

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d


def slot_id(index: int) -> str:
    return f"key_{index}"


def parse_usage(raw: Any) -> Dict[int, CredentialSlot]:
    usage: Dict[int, CredentialSlot] = {}
    if not isinstance(raw, Mapping):
        return usage
    for k, v in raw.items():
        if not isinstance(k, str) or not k.startswith("key_"):
            continue
        try:
            index = int(k[len("key_"):])
        except ValueError:
            continue
        slot = CredentialSlot.from_dict(v)
        if slot is not None:
            usage[index] = slot
    return usage


def dump_usage(usage: Mapping[int, CredentialSlot]) -> Dict[str, Any]:
    return {slot_id(i): usage[i].to_dict() for i in sorted(usage)}


def normalize_keys(raw: Any, slots: int) -> List[str]:
    """Exactly ``slots`` strings; "" marks an unconfigured position."""
    items = list(raw) if isinstance(raw, (list, tuple)) else []
    out: List[str] = []
    for i in range(slots):
        v = items[i] if i < len(items) else ""
        out.append(v.strip() if isinstance(v, str) else "")
    return out


def reconcile(
    today: str, usage: Mapping[int, CredentialSlot], slots: int
) -> Tuple[Dict[int, CredentialSlot], List[int]]:
    """
    Reset every missing or stale slot among ``range(slots)``.

    Returns the reconciled mapping and the indices that were reset. Slots
    already stamped ``today`` keep their count and state.
    """
    out: Dict[int, CredentialSlot] = dict(usage)
    reset: List[int] = []
    for i in range(slots):
        cur = out.get(i)
        if cur is None or cur.day != today:
            out[i] = CredentialSlot.fresh(today)
            reset.append(i)
    return out, reset
