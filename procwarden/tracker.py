from __future__ import annotations
import logging
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .models import ViolationRecord

log = logging.getLogger(__name__)


class HistoryMode(str, Enum):
    # One sequence per process, every rule's records interleaved in it.
    # Pruning for one rule drops the other rules' records as well.
    SHARED   = "shared"
    # One sequence per (process, rule): no cross-rule interference.
    PER_RULE = "per_rule"


class ViolationTracker:
    """
    Sliding-window persistence tracker.

    Nothing but the violation timestamps is stored: whether a rule is clean,
    accumulating or firing for a process is recomputed from the retained
    records on every call to ``record``.

    Layout: ``{pid: {bucket: [ViolationRecord, ...]}}`` where bucket is
    ``None`` in SHARED mode and the rule name in PER_RULE mode.
    """

    def __init__(self, mode: HistoryMode = HistoryMode.SHARED, min_samples: int = 1):
        self.mode        = HistoryMode(mode)
        self.min_samples = max(1, int(min_samples))
        self._history: Dict[int, Dict[Optional[str], List[ViolationRecord]]] = {}
        self._lock = threading.RLock()

    def _bucket(self, rule_name: str) -> Optional[str]:
        return rule_name if self.mode is HistoryMode.PER_RULE else None

    # ── evaluation ────────────────────────────
    def record(self, pid: int, rule_name: str, duration_secs: float, now: float) -> bool:
        """
        Register that ``rule_name`` held for ``pid`` at ``now``.
        Returns True when the condition has now persisted for ``duration_secs``.

        Records exactly ``duration_secs`` old are kept (``ts >= cutoff``), unlike
        the strict ``>`` of the original engine, under which a non-zero
        duration could never be reached.
        """
        with self._lock:
            seq = self._history.setdefault(pid, {}).setdefault(self._bucket(rule_name), [])
            seq.append(ViolationRecord(rule_name=rule_name, ts=now))

            # Inclusive cutoff: a record exactly `duration` old still counts,
            # otherwise the span could never reach the duration.
            cutoff = now - duration_secs
            seq[:] = [v for v in seq if v.ts >= cutoff and v.rule_name == rule_name]

            if not seq or len(seq) < self.min_samples:
                return False
            return now - seq[0].ts >= duration_secs

    def reset(self, pid: int, rule_name: str) -> None:
        """Drop ``rule_name``'s records for ``pid`` (the condition stopped holding)."""
        with self._lock:
            buckets = self._history.get(pid)
            if not buckets:
                return
            seq = buckets.get(self._bucket(rule_name))
            if seq:
                seq[:] = [v for v in seq if v.rule_name != rule_name]

    # ── cleanup ───────────────────────────────
    def forget(self, pid: int) -> None:
        with self._lock:
            self._history.pop(pid, None)

    def retain(self, active_pids: Iterable[int]) -> int:
        """Keep history only for ``active_pids``. Returns the number of pids dropped."""
        active = set(active_pids)
        with self._lock:
            dead = [pid for pid in self._history if pid not in active]
            for pid in dead:
                del self._history[pid]
        return len(dead)

    # ── introspection ─────────────────────────
    def pids(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._history)

    def history(self, pid: int) -> Tuple[ViolationRecord, ...]:
        with self._lock:
            buckets = self._history.get(pid, {})
            merged = [v for seq in buckets.values() for v in seq]
        merged.sort(key=lambda v: v.ts)
        return tuple(merged)

    def records(self, pid: int, rule_name: str) -> Tuple[ViolationRecord, ...]:
        return tuple(v for v in self.history(pid) if v.rule_name == rule_name)

    def __contains__(self, pid: int) -> bool:
        with self._lock:
            return pid in self._history

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)
