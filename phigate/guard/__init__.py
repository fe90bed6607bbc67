"""Sensitivity gate exports."""

from __future__ import annotations

from .ages import AGE_PLACEHOLDER, categorize_age, redact_ages
from .analyzer import PhiGuard, Status, Verdict, analyze
from .rules import Rule, RulePackError, RuleSet, default_rules, load_rulepack

__all__ = [
    "AGE_PLACEHOLDER",
    "PhiGuard",
    "Rule",
    "RulePackError",
    "RuleSet",
    "Status",
    "Verdict",
    "analyze",
    "categorize_age",
    "default_rules",
    "load_rulepack",
    "redact_ages",
]
