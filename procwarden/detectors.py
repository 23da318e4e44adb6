from __future__ import annotations
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import (
    Alert, ProcessSnapshot, ProcessStatus, Rule, Condition,
    CpuAbove, MemAbove, MemPercentAbove, DiskIoAbove, NetIoAbove,
    ThreadCountAbove, ZombieState, DiskWriteAbove,
)
from .rules import RuleSet, load_rules
from .tracker import ViolationTracker, HistoryMode
from .rates import RateEstimator, RateMode
from .config import AppConfig

log = logging.getLogger(__name__)

_GIB = 1024.0 * 1024.0 * 1024.0
_MIB = 1024.0 * 1024.0


class MisbehaviorDetector:
    """
    Evaluates the rule set against process snapshots.

    Duration-bearing conditions go through the ViolationTracker; thread-count
    and zombie checks look at the current snapshot only. Alerts are not
    debounced: every tick a rule still holds produces a fresh alert.

    ``now`` for a tick is the snapshot timestamp unless a ``clock`` is given.
    """

    def __init__(
        self,
        rules: Optional[Iterable[Rule]] = None,
        history_mode: HistoryMode = HistoryMode.SHARED,
        rate_mode: RateMode = RateMode.LIFETIME,
        min_samples: int = 1,
        disambiguate_pid_reuse: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._rules  = RuleSet(rules)
        self.tracker = ViolationTracker(history_mode, min_samples)
        self.rates   = RateEstimator(rate_mode)
        self.disambiguate_pid_reuse = disambiguate_pid_reuse
        self._clock  = clock

        # pid -> start_time, only used with disambiguate_pid_reuse
        self._start_times: Dict[int, float] = {}

        # one process evaluation or one cleanup at a time
        self._lock = threading.Lock()

    # ══════════════════════════════════════════
    # PUBLIC entry-points
    # ══════════════════════════════════════════

    def add_rule(self, rule: Rule) -> None:
        self._rules.add(rule)
        log.info("Rule added: %s", rule.name)

    def rules(self) -> Tuple[Rule, ...]:
        return self._rules.rules()

    def check_process(self, snapshot: ProcessSnapshot) -> List[Alert]:
        now = self._clock() if self._clock else snapshot.ts
        alerts: List[Alert] = []

        with self._lock:
            if self.disambiguate_pid_reuse:
                self._check_generation(snapshot)

            for rule in self._rules.rules():
                if not self._check_rule(snapshot, rule, now):
                    continue
                log.debug("%s fired for %s (PID %d)", rule.name, snapshot.name, snapshot.pid)
                alerts.append(Alert(
                    pid=snapshot.pid,
                    process_name=snapshot.name,
                    rule_name=rule.name,
                    description=rule.description,
                    severity=rule.severity,
                    ts=now,
                    details=self.describe(snapshot, rule.condition),
                ))

            self.rates.observe(snapshot)

        return alerts

    def cleanup_dead_processes(self, active_pids: Iterable[int]) -> None:
        active = set(active_pids)
        with self._lock:
            dropped = self.tracker.retain(active)
            self.rates.retain(active)
            self._start_times = {
                pid: st for pid, st in self._start_times.items() if pid in active
            }
        if dropped:
            log.debug("Dropped violation history for %d dead process(es)", dropped)

    # ══════════════════════════════════════════
    # PRIVATE rule evaluation
    # ══════════════════════════════════════════

    def _check_rule(self, snap: ProcessSnapshot, rule: Rule, now: float) -> bool:
        cond = rule.condition
        s    = snap.stats

        # ── instantaneous ─────────────────────
        if isinstance(cond, ZombieState):
            return snap.info.status == ProcessStatus.ZOMBIE
        if isinstance(cond, ThreadCountAbove):
            return s.num_threads > cond.threshold

        # ── duration-bearing ──────────────────
        if isinstance(cond, CpuAbove):
            held = s.cpu_pct > cond.threshold_pct
        elif isinstance(cond, MemAbove):
            held = s.rss_bytes > cond.threshold_bytes
        elif isinstance(cond, MemPercentAbove):
            held = s.mem_pct > cond.threshold_pct
        elif isinstance(cond, DiskIoAbove):
            held = self.rates.disk_io(snap) > cond.threshold_bps
        elif isinstance(cond, NetIoAbove):
            held = self.rates.net_io(snap) > cond.threshold_bps
        elif isinstance(cond, DiskWriteAbove):
            held = self.rates.disk_write(snap) > cond.threshold_bps
        else:
            raise TypeError(f"unsupported condition: {cond!r}")

        if held:
            return self.tracker.record(snap.pid, rule.name, cond.duration_secs, now)
        self.tracker.reset(snap.pid, rule.name)
        return False

    def _check_generation(self, snap: ProcessSnapshot) -> None:
        start = snap.stats.start_time
        prev  = self._start_times.get(snap.pid)
        if prev is not None and prev != start:
            log.debug("PID %d reused (start %s -> %s), dropping history", snap.pid, prev, start)
            self.tracker.forget(snap.pid)
            self.rates.forget(snap.pid)
        self._start_times[snap.pid] = start

    # ── detail strings ────────────────────────
    def describe(self, snap: ProcessSnapshot, cond: Condition) -> str:
        s = snap.stats
        if isinstance(cond, CpuAbove):
            return f"CPU usage: {s.cpu_pct:.1f}% (threshold: {cond.threshold_pct:.1f}%)"
        if isinstance(cond, MemAbove):
            return (
                f"Memory usage: {s.rss_bytes / _GIB:.2f} GB "
                f"(threshold: {cond.threshold_bytes / _GIB:.2f} GB)"
            )
        if isinstance(cond, MemPercentAbove):
            return f"Memory usage: {s.mem_pct:.1f}% (threshold: {cond.threshold_pct:.1f}%)"
        if isinstance(cond, DiskIoAbove):
            return _mib_line("Disk I/O", self.rates.disk_io(snap), cond.threshold_bps)
        if isinstance(cond, NetIoAbove):
            return _mib_line("Network I/O", self.rates.net_io(snap), cond.threshold_bps)
        if isinstance(cond, DiskWriteAbove):
            return _mib_line("Disk writes", self.rates.disk_write(snap), cond.threshold_bps)
        if isinstance(cond, ThreadCountAbove):
            return f"Threads: {s.num_threads} (threshold: {cond.threshold})"
        if isinstance(cond, ZombieState):
            return "Process is in zombie state"
        raise TypeError(f"unsupported condition: {cond!r}")


def _mib_line(label: str, rate_bps: int, threshold_bps: int) -> str:
    return f"{label}: {rate_bps / _MIB:.2f} MB/s (threshold: {threshold_bps / _MIB:.2f} MB/s)"


def detector_from_config(cfg: AppConfig) -> MisbehaviorDetector:
    rules = load_rules(cfg.rules_path) if cfg.rules_path else None
    return MisbehaviorDetector(
        rules=rules,
        history_mode=HistoryMode(cfg.history_mode),
        rate_mode=RateMode(cfg.rate_mode),
        min_samples=cfg.min_samples,
        disambiguate_pid_reuse=cfg.disambiguate_pid_reuse,
    )
