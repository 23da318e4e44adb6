from __future__ import annotations
from enum import Enum
from typing import Dict, Iterable, Tuple

from .models import ProcessSnapshot


class RateMode(str, Enum):
    # bytes since start / seconds since start
    LIFETIME = "lifetime"
    # bytes since the previous snapshot of the same pid / seconds between them
    RECENT   = "recent"


def _lifetime(total: int, run_time: float) -> int:
    return int(total) // max(int(run_time), 1)


class RateEstimator:
    """Turns cumulative byte counters into bytes/sec for the I/O conditions."""

    def __init__(self, mode: RateMode = RateMode.LIFETIME):
        self.mode = RateMode(mode)
        # pid -> (ts, disk_read, disk_write, net_rx, net_tx)
        self._prev: Dict[int, Tuple[float, int, int, int, int]] = {}

    def _rate(self, snap: ProcessSnapshot, idx: Tuple[int, ...], total: int) -> int:
        if self.mode is RateMode.RECENT:
            prev = self._prev.get(snap.pid)
            if prev is not None:
                before = sum(prev[i] for i in idx)
                dt = snap.ts - prev[0]
                # counters going backwards means a different process took the pid
                if total >= before and dt > 0:
                    return int((total - before) // max(dt, 1))
        return _lifetime(total, snap.stats.run_time)

    def disk_io(self, snap: ProcessSnapshot) -> int:
        s = snap.stats
        return self._rate(snap, (1, 2), s.disk_read_bytes + s.disk_write_bytes)

    def disk_write(self, snap: ProcessSnapshot) -> int:
        return self._rate(snap, (2,), snap.stats.disk_write_bytes)

    def net_io(self, snap: ProcessSnapshot) -> int:
        s = snap.stats
        return self._rate(snap, (3, 4), s.net_rx_bytes + s.net_tx_bytes)

    def observe(self, snap: ProcessSnapshot) -> None:
        """Remember ``snap`` as the baseline for the next RECENT computation."""
        if self.mode is not RateMode.RECENT:
            return
        s = snap.stats
        self._prev[snap.pid] = (
            snap.ts, s.disk_read_bytes, s.disk_write_bytes, s.net_rx_bytes, s.net_tx_bytes,
        )

    def forget(self, pid: int) -> None:
        self._prev.pop(pid, None)

    def retain(self, active_pids: Iterable[int]) -> None:
        active = set(active_pids)
        self._prev = {pid: v for pid, v in self._prev.items() if pid in active}
