from __future__ import annotations

import pytest
from PySide6 import QtCore

from procwarden.models import ProcessInfo, ProcessSnapshot, ProcessStats, ProcessStatus


def make_snapshot(
    ts: float,
    pid: int = 42,
    name: str = "worker",
    status: ProcessStatus = ProcessStatus.RUNNING,
    **stats,
) -> ProcessSnapshot:
    return ProcessSnapshot(
        info=ProcessInfo(pid=pid, name=name, status=status),
        stats=ProcessStats(**stats),
        ts=ts,
    )


@pytest.fixture(scope="session")
def qapp():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app
