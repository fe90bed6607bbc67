from __future__ import annotations

from typing import Sequence, Tuple


class PhiGateError(Exception):
    """Base class for failures surfaced by phigate."""


class PhiBlocked(PhiGateError):
    """Input was classified RED and must not leave the machine."""

    def __init__(self, reasons: Sequence[str]) -> None:
        self.reasons: Tuple[str, ...] = tuple(reasons)
        super().__init__("PHI_BLOCK_ACTIVE: " + ", ".join(self.reasons))


class KeysExhausted(PhiGateError):
    """Every configured key is disabled, cooling down or over its daily quota."""

    def __init__(self, message: str = "ALL_KEYS_EXHAUSTED_OR_DISABLED") -> None:
        super().__init__(message)


class UpstreamCallFailed(PhiGateError):
    """The generation call answered with a non-success status."""

    def __init__(self, status: int, index: int) -> None:
        self.status = int(status)
        self.index = int(index)
        super().__init__(f"API_ERROR_{self.status}")


class StoreLockTimeout(PhiGateError, TimeoutError):
    """Raised when a store lock could not be acquired within the wait budget."""


class EmptyReply(PhiGateError):
    """The generation call succeeded but carried no text."""

    def __init__(self, index: int) -> None:
        self.index = int(index)
        super().__init__("NO_CONTENT")
