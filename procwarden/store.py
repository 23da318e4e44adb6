from __future__ import annotations
import threading
import time
from collections import deque
from typing import Deque, Iterable, List, Optional

from .models import Alert, Severity


def format_alert(a: Alert) -> str:
    """One-line rendering: ``[Warning] 12:00:05 firefox (PID 42) High CPU Usage: CPU usage: ...``"""
    clock = time.strftime("%H:%M:%S", time.localtime(a.ts))
    return f"[{a.severity.label}] {clock} {a.process_name} (PID {a.pid}) {a.rule_name}: {a.details}"


class AlertStore:
    """
    In-memory alert sink with bounded retention.
    Oldest alerts are dropped once ``max_alerts`` is exceeded; nothing is persisted.
    """

    def __init__(self, max_alerts: int = 100):
        self.max_alerts = max(1, int(max_alerts))
        self._alerts: Deque[Alert] = deque(maxlen=self.max_alerts)
        self._total = 0
        self._lock = threading.Lock()

    # ── write ─────────────────────────────────
    def add_alerts_batch(self, alerts: Iterable[Alert]) -> int:
        n = 0
        with self._lock:
            for a in alerts:
                self._alerts.append(a)
                n += 1
            self._total += n
        return n

    def clear(self) -> None:
        with self._lock:
            self._alerts.clear()

    # ── read ──────────────────────────────────
    def list_alerts(self, limit: Optional[int] = None,
                    min_severity: Severity = Severity.INFO) -> List[Alert]:
        """Newest first."""
        with self._lock:
            rows = [a for a in reversed(self._alerts) if a.severity >= min_severity]
        return rows if limit is None else rows[:limit]

    def render(self, limit: Optional[int] = None) -> List[str]:
        return [format_alert(a) for a in self.list_alerts(limit)]

    @property
    def total_seen(self) -> int:
        return self._total

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
