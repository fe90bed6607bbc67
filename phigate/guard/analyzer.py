from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from phigate.guard.ages import categorize_age, redact_ages
from phigate.guard.rules import Rule, RuleSet, default_rules
from phigate.observability import metrics

_log = logging.getLogger(__name__)


class Status(str, Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


@dataclass(frozen=True)
class Verdict:
    status: Status
    redacted_text: str
    age_context: Optional[str] = None
    block_reasons: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def allows_send(self) -> bool:
        return self.status is not Status.RED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "redacted_text": self.redacted_text,
            "age_context": self.age_context,
            "block_reasons": list(self.block_reasons),
        }


def _scan(rules: Iterable[Rule], text: str) -> List[Rule]:
    hits: List[Rule] = []
    for rule in rules:
        if rule.matches(text):
            hits.append(rule)
    return hits


def _unique_labels(hits: Iterable[Rule]) -> Tuple[str, ...]:
    # dict keeps first-seen order
    return tuple(dict.fromkeys(r.label for r in hits))


class PhiGuard:
    """
    Classify clinical free text before it leaves the machine.

    - Ages are always redacted first, whatever the outcome.
    - Any hard rule hit -> RED, soft rules are not consulted.
    - Otherwise any soft rule hit -> YELLOW.
    - Otherwise GREEN with no reasons.
    """

    def __init__(self, rules: Optional[RuleSet] = None) -> None:
        self._rules = rules

    @property
    def rules(self) -> RuleSet:
        return self._rules if self._rules is not None else default_rules()

    def analyze(self, text: Any) -> Verdict:
        raw = text if isinstance(text, str) else str(text)
        scan = redact_ages(raw)
        first = scan.first_age
        age_context = categorize_age(first) if first is not None else None

        rules = self.rules
        hard = _scan(rules.hard, scan.text)
        if hard:
            return self._finish(Status.RED, scan.text, age_context, hard)

        soft = _scan(rules.soft, scan.text)
        if soft:
            return self._finish(Status.YELLOW, scan.text, age_context, soft)

        return self._finish(Status.GREEN, scan.text, age_context, [])

    def _finish(
        self,
        status: Status,
        redacted: str,
        age_context: Optional[str],
        hits: List[Rule],
    ) -> Verdict:
        metrics.guard_verdict_inc(status.value)
        for rule in hits:
            metrics.guard_rule_hit_inc(rule.severity, rule.name)
        _log.debug(
            "guard verdict",
            extra={"status": status.value, "rules": [r.name for r in hits]},
        )
        return Verdict(
            status=status,
            redacted_text=redacted,
            age_context=age_context,
            block_reasons=_unique_labels(hits),
        )


def analyze(text: Any, rules: Optional[RuleSet] = None) -> Verdict:
    return PhiGuard(rules).analyze(text)
