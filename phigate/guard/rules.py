from __future__ import annotations

import os
import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from re import Pattern
from typing import Any, Dict, Iterable, List, Literal, Mapping, Tuple, cast

import yaml

Severity = Literal["hard", "soft"]

DEFAULT_RULEPACK = "ja_clinical"


class RulePackError(ValueError):
    """A rule pack is malformed (missing fields, bad regex, duplicate names)."""


@dataclass(frozen=True)
class Rule:
    """One pattern bound to the reason label it reports."""

    name: str
    label: str
    severity: Severity
    pattern: Pattern[str]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


@dataclass(frozen=True)
class RuleSet:
    name: str
    hard: Tuple[Rule, ...]
    soft: Tuple[Rule, ...]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RuleSet":
        if not isinstance(data, Mapping):
            raise RulePackError("rule pack must be a mapping")
        name = str(data.get("name") or "unnamed")
        hard = _build_rules(data.get("hard") or [], "hard")
        soft = _build_rules(data.get("soft") or [], "soft")
        seen: set[str] = set()
        for rule in hard + soft:
            if rule.name in seen:
                raise RulePackError(f"duplicate rule name: {rule.name}")
            seen.add(rule.name)
        return cls(name=name, hard=hard, soft=soft)


def _build_rules(items: Iterable[Any], severity: Severity) -> Tuple[Rule, ...]:
    rules: List[Rule] = []
    for i, raw in enumerate(items):
        if not isinstance(raw, Mapping):
            raise RulePackError(f"{severity}[{i}] must be a mapping")
        name = str(raw.get("name") or "").strip()
        label = str(raw.get("label") or "").strip()
        source = raw.get("pattern")
        if not name or not label or not isinstance(source, str) or not source:
            raise RulePackError(f"{severity}[{i}] needs name, label and pattern")
        flags = re.IGNORECASE if raw.get("ignore_case") else 0
        try:
            compiled = re.compile(source, flags)
        except re.error as exc:
            raise RulePackError(f"{severity}[{i}] ({name}): {exc}") from exc
        rules.append(Rule(name=name, label=label, severity=severity, pattern=compiled))
    return tuple(rules)


def _read_pack(name_or_path: str) -> Dict[str, Any]:
    if os.path.sep in name_or_path or name_or_path.endswith((".yaml", ".yml")):
        with open(name_or_path, "r", encoding="utf-8") as f:
            return cast(Dict[str, Any], yaml.safe_load(f))
    res = resources.files("phigate.guard").joinpath("rulepacks").joinpath(f"{name_or_path}.yaml")
    if not res.is_file():
        raise RulePackError(f"unknown rule pack: {name_or_path}")
    return cast(Dict[str, Any], yaml.safe_load(res.read_text(encoding="utf-8")))


@lru_cache(maxsize=8)
def load_rulepack(name_or_path: str = DEFAULT_RULEPACK) -> RuleSet:
    """Load a bundled pack by name, or any YAML pack by file path."""
    return RuleSet.from_mapping(_read_pack(name_or_path))


def default_rules() -> RuleSet:
    from phigate.settings import get_settings

    return load_rulepack(get_settings().rulepack)
