from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Sequence

from prometheus_client import REGISTRY, CollectorRegistry, Counter

from phigate.settings import get_settings

_log = logging.getLogger(__name__)

_counters: Dict[str, Counter] = {}
_registry: CollectorRegistry = REGISTRY


# Metrics should never crash a gate, rotation or verification path.
def _best_effort(msg: str, fn: Callable[[], Any]) -> None:
    try:
        fn()
    except Exception as e:  # pragma: no cover
        _log.debug("%s: %s", msg, e)


def _enabled() -> bool:
    try:
        return bool(get_settings().metrics_enabled)
    except Exception:  # pragma: no cover
        return False


def _counter(name: str, doc: str, labels: Sequence[str]) -> Optional[Counter]:
    if not _enabled():
        return None
    ctr = _counters.get(name)
    if ctr is None:
        ctr = Counter(name, doc, list(labels), registry=_registry)
        _counters[name] = ctr
    return ctr


def use_registry(registry: CollectorRegistry) -> None:
    """Route subsequently created counters to ``registry`` (tests, embedding)."""
    global _registry
    _registry = registry
    _counters.clear()


# ---- Guard ---------------------------------------------------------------------


def guard_verdict_inc(status: str) -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_guard_verdicts_total",
            "Sensitivity gate verdicts by status",
            ["status"],
        )
        if ctr is not None:
            ctr.labels(status=status).inc()

    _best_effort("inc guard verdict", _inc)


def guard_rule_hit_inc(severity: str, rule: str) -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_guard_rule_hits_total",
            "Sensitivity gate rule matches",
            ["severity", "rule"],
        )
        if ctr is not None:
            ctr.labels(severity=severity, rule=rule).inc()

    _best_effort("inc guard rule hit", _inc)


# ---- Keys ----------------------------------------------------------------------


def key_selected_inc(slot: int) -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_key_selections_total",
            "Credential slot selections",
            ["slot"],
        )
        if ctr is not None:
            ctr.labels(slot=str(slot)).inc()

    _best_effort("inc key selection", _inc)


def key_error_inc(slot: int, outcome: str) -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_key_errors_total",
            "Credential errors reported, by resulting slot state",
            ["slot", "outcome"],
        )
        if ctr is not None:
            ctr.labels(slot=str(slot), outcome=outcome).inc()

    _best_effort("inc key error", _inc)


def keys_exhausted_inc() -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_keys_exhausted_total",
            "Selections that found no usable credential",
            [],
        )
        if ctr is not None:
            ctr.inc()

    _best_effort("inc keys exhausted", _inc)


# ---- PMID ----------------------------------------------------------------------


def pmid_lookup_inc(source: str, verified: bool) -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_pmid_lookups_total",
            "PMID verification lookups by source and result",
            ["source", "result"],
        )
        if ctr is not None:
            ctr.labels(source=source, result="verified" if verified else "unverified").inc()

    _best_effort("inc pmid lookup", _inc)


def pmid_evictions_inc(n: int) -> None:
    def _inc() -> None:
        ctr = _counter(
            "phigate_pmid_cache_evictions_total",
            "PMID cache entries dropped by the capacity cap",
            [],
        )
        if ctr is not None and n > 0:
            ctr.inc(n)

    _best_effort("inc pmid evictions", _inc)
