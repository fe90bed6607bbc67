"""Key rotation exports."""

from __future__ import annotations

from .rotator import ActiveKey, KeyRotator
from .slots import CredentialSlot, SlotState, SlotStatus, reconcile

__all__ = [
    "ActiveKey",
    "CredentialSlot",
    "KeyRotator",
    "SlotState",
    "SlotStatus",
    "reconcile",
]
