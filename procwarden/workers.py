from __future__ import annotations
import logging
from typing import Iterable, List

from PySide6 import QtCore

from .detectors import MisbehaviorDetector
from .models import Alert, ProcessSnapshot

log = logging.getLogger(__name__)


class DetectionWorker(QtCore.QObject):
    """
    Owns the detector. Receives one tick worth of snapshots through a slot and
    publishes the resulting alerts on a signal, so it can live on its own
    thread with no state shared with the consumers.
    """
    alerts_ready = QtCore.Signal(list)   # List[Alert]
    tick_done    = QtCore.Signal(int)    # number of snapshots evaluated

    def __init__(self, detector: MisbehaviorDetector):
        super().__init__()
        self.detector = detector

    @QtCore.Slot(list, object)
    def process_tick(self, snapshots: List[ProcessSnapshot], active_pids: Iterable[int]) -> None:
        alerts: List[Alert] = []
        # every rule for one process runs against the same snapshot before the next process
        for snap in snapshots:
            alerts.extend(self.detector.check_process(snap))

        self.detector.cleanup_dead_processes(active_pids)

        if alerts:
            log.debug("Tick produced %d alert(s) over %d process(es)", len(alerts), len(snapshots))
            self.alerts_ready.emit(alerts)
        self.tick_done.emit(len(snapshots))
