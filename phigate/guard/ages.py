"""Age extraction and redaction.

Two passes run over the text, number+unit first and then label+number, each
replacing accepted matches with ``AGE_PLACEHOLDER``. A match touching a date
separator (``/``, ``-`` or ``.``) on either side, spaces skipped, is left alone
so that "2024/12/31" or "R6.2.7" never lose digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from re import Match, Pattern
from typing import Callable, List, Optional, Tuple

AGE_PLACEHOLDER = "[AGE_REDACTED]"

_DATE_SEPARATORS = frozenset("/-.")

_MONTH_UNITS = frozenset({"months", "month", "mo", "ヶ月", "か月", "ヵ月", "カ月"})

# Longer alternatives first so "months" is not cut to "mo".
_UNIT_AGE_RE = re.compile(
    r"(?<![A-Za-z0-9_])(\d{1,3})\s*"
    r"(歳|才|years|year|yrs|yr|yo|months|month|mo|ヶ月|か月|ヵ月|カ月)"
    r"(?![A-Za-z0-9_])",
    re.IGNORECASE,
)
_LABEL_AGE_RE = re.compile(
    r"(?<![A-Za-z0-9_])age[:\s]*(\d{1,3})(?![A-Za-z0-9_])",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class AgeScan:
    text: str
    ages: Tuple[float, ...]

    @property
    def first_age(self) -> Optional[float]:
        return self.ages[0] if self.ages else None


def _touches_date(m: Match[str]) -> bool:
    s = m.string
    prev_char = s[: m.start()].rstrip()[-1:]
    next_char = s[m.end():].lstrip()[:1]
    return prev_char in _DATE_SEPARATORS or next_char in _DATE_SEPARATORS


def _sub_ages(
    pattern: Pattern[str],
    text: str,
    to_years: Callable[[Match[str]], float],
    out: List[float],
) -> str:
    def repl(m: Match[str]) -> str:
        if _touches_date(m):
            return m.group(0)
        out.append(to_years(m))
        return AGE_PLACEHOLDER

    return pattern.sub(repl, text)


def _unit_years(m: Match[str]) -> float:
    value = int(m.group(1))
    if m.group(2).lower() in _MONTH_UNITS:
        return value / 12
    return float(value)


def _label_years(m: Match[str]) -> float:
    return float(int(m.group(1)))


def redact_ages(text: str) -> AgeScan:
    ages: List[float] = []
    out = _sub_ages(_UNIT_AGE_RE, text, _unit_years, ages)
    out = _sub_ages(_LABEL_AGE_RE, out, _label_years, ages)
    return AgeScan(text=out, ages=tuple(ages))


def categorize_age(age: float) -> str:
    if age < 1:
        return "Infant"
    if age < 6:
        return "0-5"
    if age < 18:
        return "6-17"
    if age < 40:
        return "18-39"
    if age < 65:
        return "40-64"
    return "65+"
