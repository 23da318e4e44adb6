from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Tuple, Union


class ProcessStatus(str, Enum):
    RUNNING  = "running"
    SLEEPING = "sleeping"
    STOPPED  = "stopped"
    ZOMBIE   = "zombie"
    DEAD     = "dead"
    UNKNOWN  = "unknown"


class Severity(IntEnum):
    INFO     = 0
    WARNING  = 1
    CRITICAL = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: str) -> "Severity":
        return cls[str(value).strip().upper()]


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str
    user: str = ""
    uid: int = 0
    exe: str = ""
    cmdline: Tuple[str, ...] = ()
    status: ProcessStatus = ProcessStatus.UNKNOWN
    ppid: int = 0


@dataclass(frozen=True)
class ProcessStats:
    cpu_pct: float = 0.0
    rss_bytes: int = 0
    mem_pct: float = 0.0
    vms_bytes: int = 0
    # cumulative counters since process start
    disk_read_bytes: int = 0
    disk_write_bytes: int = 0
    net_rx_bytes: int = 0
    net_tx_bytes: int = 0
    num_threads: int = 0
    start_time: float = 0.0     # epoch seconds
    run_time: float = 0.0       # seconds since start


@dataclass(frozen=True)
class ProcessSnapshot:
    info: ProcessInfo
    stats: ProcessStats
    ts: float

    @property
    def pid(self) -> int:
        return self.info.pid

    @property
    def name(self) -> str:
        return self.info.name


# ──────────────────────────────────────────────
# Rule conditions
# ──────────────────────────────────────────────
@dataclass(frozen=True)
class CpuAbove:
    threshold_pct: float
    duration_secs: int
    kind = "cpu_above"


@dataclass(frozen=True)
class MemAbove:
    threshold_bytes: int
    duration_secs: int
    kind = "mem_above"


@dataclass(frozen=True)
class MemPercentAbove:
    threshold_pct: float
    duration_secs: int
    kind = "mem_percent_above"


@dataclass(frozen=True)
class DiskIoAbove:
    threshold_bps: int
    duration_secs: int
    kind = "disk_io_above"


@dataclass(frozen=True)
class NetIoAbove:
    threshold_bps: int
    duration_secs: int
    kind = "net_io_above"


@dataclass(frozen=True)
class ThreadCountAbove:
    threshold: int
    kind = "thread_count_above"


@dataclass(frozen=True)
class ZombieState:
    kind = "zombie_state"


@dataclass(frozen=True)
class DiskWriteAbove:
    threshold_bps: int
    duration_secs: int
    kind = "disk_write_above"


Condition = Union[
    CpuAbove, MemAbove, MemPercentAbove, DiskIoAbove,
    NetIoAbove, ThreadCountAbove, ZombieState, DiskWriteAbove,
]

CONDITION_TYPES = (
    CpuAbove, MemAbove, MemPercentAbove, DiskIoAbove,
    NetIoAbove, ThreadCountAbove, ZombieState, DiskWriteAbove,
)


@dataclass(frozen=True)
class Rule:
    name: str
    description: str
    condition: Condition
    severity: Severity = Severity.WARNING


@dataclass(frozen=True)
class ViolationRecord:
    rule_name: str
    ts: float


@dataclass(frozen=True)
class Alert:
    pid: int
    process_name: str
    rule_name: str
    description: str
    severity: Severity
    ts: float
    details: str = ""
