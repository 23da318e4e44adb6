from __future__ import annotations
import argparse
import logging
import sys
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from PySide6 import QtCore

from .config import AppConfig, load_config
from .detectors import MisbehaviorDetector, detector_from_config
from .models import Alert, ProcessSnapshot
from .rules import RuleConfigError, default_rules, load_rules, save_rules
from .store import AlertStore, format_alert
from .workers import DetectionWorker

log = logging.getLogger(__name__)

# Supplied by the embedding application: one snapshot per live process + all live pids.
SnapshotSource = Callable[[], Tuple[Sequence[ProcessSnapshot], Iterable[int]]]


class Controller(QtCore.QObject):
    """
    Tick driver:
    - QTimer pulls from the snapshot source every ``sample_interval_ms``
    - snapshots go to the DetectionWorker over a signal (optionally on its own QThread)
    - alerts come back over a signal into the AlertStore and ``alerts_ready``
    """
    snapshots_ready = QtCore.Signal(list, object)
    alerts_ready    = QtCore.Signal(list)

    def __init__(self, cfg: AppConfig, source: SnapshotSource,
                 detector: Optional[MisbehaviorDetector] = None,
                 store: Optional[AlertStore] = None,
                 threaded: bool = False):
        super().__init__()
        self.cfg    = cfg
        self.source = source
        self.store  = store if store is not None else AlertStore(cfg.alert_retention)
        self.worker = DetectionWorker(detector or detector_from_config(cfg))

        self._thread: Optional[QtCore.QThread] = None
        if threaded:
            self._thread = QtCore.QThread()
            self.worker.moveToThread(self._thread)
            self._thread.start()

        self.snapshots_ready.connect(self.worker.process_tick)
        self.worker.alerts_ready.connect(self.on_alerts)

        self.timer = QtCore.QTimer(self)
        self.timer.setInterval(cfg.sample_interval_ms)
        self.timer.timeout.connect(self.tick)

    def start(self) -> None:
        self.timer.start()
        log.info("Detection started, sampling every %d ms", self.cfg.sample_interval_ms)

    def stop(self) -> None:
        self.timer.stop()
        if self._thread is not None:
            self._thread.quit()
            self._thread.wait()
            self._thread = None
        log.info("Detection stopped")

    @QtCore.Slot()
    def tick(self) -> None:
        try:
            snapshots, active = self.source()
        except Exception as e:
            log.warning("Snapshot source failed, skipping tick: %s", e)
            return
        self.snapshots_ready.emit(list(snapshots), set(active))

    @QtCore.Slot(list)
    def on_alerts(self, alerts: List[Alert]) -> None:
        self.store.add_alerts_batch(alerts)
        self.alerts_ready.emit(alerts)


def run(source: SnapshotSource, cfg: Optional[AppConfig] = None) -> int:
    """Run the detection loop headless until the Qt event loop quits."""
    cfg = cfg or load_config()
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    controller = Controller(cfg, source, threaded=True)

    def _log_alerts(alerts: List[Alert]) -> None:
        for a in alerts:
            log.warning("%s", format_alert(a))

    controller.alerts_ready.connect(_log_alerts)
    controller.start()
    try:
        return app.exec()
    finally:
        controller.stop()


# ──────────────────────────────────────────────
# CLI: rule introspection / export / validation
# ──────────────────────────────────────────────
def _effective_rules(cfg: AppConfig):
    return load_rules(cfg.rules_path) if cfg.rules_path else default_rules()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="procwarden", description="Process misbehavior rules")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--config", help="config.json path (default ~/.procwarden/config.json)")
    sub = parser.add_subparsers(dest="cmd", required=True)
    sub.add_parser("rules", help="list the effective rule set")
    p_exp = sub.add_parser("export", help="write the effective rule set as JSON")
    p_exp.add_argument("path")
    p_chk = sub.add_parser("check", help="validate a rules JSON file")
    p_chk.add_argument("path")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.cmd == "check":
            rules = load_rules(args.path)
            print(f"{args.path}: {len(rules)} rule(s) OK")
            return 0

        cfg = load_config(args.config)
        rules = _effective_rules(cfg)
        if args.cmd == "export":
            save_rules(args.path, rules)
            print(f"Wrote {len(rules)} rule(s) to {args.path}")
        else:
            for r in rules:
                print(f"[{r.severity.label:<8}] {r.name:<24} {r.condition.kind:<20} {r.description}")
        return 0
    except (RuleConfigError, OSError) as e:
        log.error("%s", e)
        return 1
