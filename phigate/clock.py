"""Wall clock and calendar-day helpers shared by the day-scoped stores."""

from __future__ import annotations

import time
from datetime import datetime, tzinfo
from typing import Callable, Optional

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


def calendar_day(tz: tzinfo, now: Optional[float] = None) -> str:
    """ISO ``YYYY-MM-DD`` for the instant ``now`` (epoch seconds) in ``tz``."""
    ts = time.time() if now is None else float(now)
    return datetime.fromtimestamp(ts, tz=tz).date().isoformat()
