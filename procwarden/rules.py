from __future__ import annotations
import json
import logging
import math
import threading
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .models import (
    Rule, Severity, Condition, CONDITION_TYPES,
    CpuAbove, MemAbove, DiskIoAbove, ZombieState,
)

log = logging.getLogger(__name__)

GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024

_KINDS = {c.kind: c for c in CONDITION_TYPES}


class RuleConfigError(ValueError):
    """A structured rule definition could not be turned into a Rule."""

    def __init__(self, message: str, entry: Any = None):
        super().__init__(message)
        self.entry = entry


def default_rules() -> List[Rule]:
    return [
        Rule(
            name="High CPU Usage",
            description="Process using more than 80% CPU for extended period",
            condition=CpuAbove(threshold_pct=80.0, duration_secs=60),
            severity=Severity.WARNING,
        ),
        Rule(
            name="Extreme CPU Usage",
            description="Process using more than 95% CPU",
            condition=CpuAbove(threshold_pct=95.0, duration_secs=10),
            severity=Severity.CRITICAL,
        ),
        Rule(
            name="High Memory Usage",
            description="Process using more than 2GB of RAM",
            condition=MemAbove(threshold_bytes=2 * GIB, duration_secs=30),
            severity=Severity.WARNING,
        ),
        Rule(
            name="Memory Leak Suspected",
            description="Process using more than 8GB of RAM",
            condition=MemAbove(threshold_bytes=8 * GIB, duration_secs=10),
            severity=Severity.CRITICAL,
        ),
        Rule(
            name="Zombie Process",
            description="Process is in zombie state",
            condition=ZombieState(),
            severity=Severity.WARNING,
        ),
        Rule(
            name="High Disk I/O",
            description="Process performing excessive disk operations",
            condition=DiskIoAbove(threshold_bps=100 * MIB, duration_secs=60),
            severity=Severity.WARNING,
        ),
    ]


class RuleSet:
    """
    Ordered, append-only rule collection.
    Readers get a tuple snapshot, so evaluation never sees a half-appended list.
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None):
        self._lock  = threading.Lock()
        self._rules: Tuple[Rule, ...] = tuple(default_rules() if rules is None else rules)

    def add(self, rule: Rule) -> None:
        with self._lock:
            self._rules = self._rules + (rule,)

    def rules(self) -> Tuple[Rule, ...]:
        with self._lock:
            return self._rules

    def __len__(self) -> int:
        return len(self.rules())

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules())


# ──────────────────────────────────────────────
# Structured configuration
# ──────────────────────────────────────────────
def condition_to_dict(cond: Condition) -> Dict[str, Any]:
    data: Dict[str, Any] = {"kind": cond.kind}
    for f in fields(cond):
        data[f.name] = getattr(cond, f.name)
    return data


def condition_from_dict(data: Dict[str, Any]) -> Condition:
    if not isinstance(data, dict):
        raise RuleConfigError("condition must be an object", data)
    kind = data.get("kind")
    cls = _KINDS.get(kind) if isinstance(kind, str) else None
    if cls is None:
        raise RuleConfigError(f"unknown condition kind: {kind!r}", data)

    names = [f.name for f in fields(cls)]
    params = {k: v for k, v in data.items() if k != "kind"}
    missing = [n for n in names if n not in params]
    extra   = [k for k in params if k not in names]
    if missing:
        raise RuleConfigError(f"{kind}: missing parameter(s) {', '.join(missing)}", data)
    if extra:
        raise RuleConfigError(f"{kind}: unexpected parameter(s) {', '.join(extra)}", data)
    for n in names:
        v = params[n]
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise RuleConfigError(f"{kind}: {n} must be a number", data)
        if not math.isfinite(v):
            raise RuleConfigError(f"{kind}: {n} must be finite", data)
        if v < 0:
            raise RuleConfigError(f"{kind}: {n} must not be negative", data)
    return cls(**params)


def rule_to_dict(rule: Rule) -> Dict[str, Any]:
    return {
        "name": rule.name,
        "description": rule.description,
        "severity": rule.severity.name.lower(),
        "condition": condition_to_dict(rule.condition),
    }


def rule_from_dict(data: Dict[str, Any]) -> Rule:
    if not isinstance(data, dict):
        raise RuleConfigError("rule must be an object", data)
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise RuleConfigError("rule needs a non-empty name", data)
    try:
        severity = Severity.parse(data.get("severity", "warning"))
    except KeyError:
        raise RuleConfigError(f"{name}: unknown severity {data.get('severity')!r}", data) from None
    if "condition" not in data:
        raise RuleConfigError(f"{name}: missing condition", data)
    return Rule(
        name=name,
        description=str(data.get("description", "")),
        condition=condition_from_dict(data["condition"]),
        severity=severity,
    )


def rules_to_config(rules: Iterable[Rule]) -> Dict[str, Any]:
    return {"rules": [rule_to_dict(r) for r in rules]}


def rules_from_config(data: Any) -> List[Rule]:
    # accept either {"rules": [...]} or a bare list
    entries = data.get("rules") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise RuleConfigError("expected a list of rules", data)
    return [rule_from_dict(e) for e in entries]


def save_rules(path: str, rules: Iterable[Rule]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(rules_to_config(rules), indent=2), encoding="utf-8")


def load_rules(path: str) -> List[Rule]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RuleConfigError(f"{path}: invalid JSON ({e})") from e
    rules = rules_from_config(data)
    log.info("Loaded %d rule(s) from %s", len(rules), path)
    return rules
