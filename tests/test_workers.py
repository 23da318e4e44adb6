from __future__ import annotations

import json

from conftest import make_snapshot

from procwarden.app import Controller, main
from procwarden.config import AppConfig
from procwarden.detectors import MisbehaviorDetector
from procwarden.models import CpuAbove, ProcessStatus, Rule, Severity, ZombieState
from procwarden.rules import default_rules, load_rules
from procwarden.workers import DetectionWorker

RULES = [
    Rule("Busy", "", CpuAbove(50.0, 2), Severity.WARNING),
    Rule("Zombie Process", "", ZombieState(), Severity.WARNING),
]


def test_worker_emits_alerts_and_cleans_up(qapp) -> None:
    worker = DetectionWorker(MisbehaviorDetector(RULES))
    batches, done = [], []
    worker.alerts_ready.connect(batches.append)
    worker.tick_done.connect(done.append)

    for t in range(3):
        snaps = [
            make_snapshot(float(t), pid=1, cpu_pct=90.0),
            make_snapshot(float(t), pid=2, status=ProcessStatus.ZOMBIE),
        ]
        worker.process_tick(snaps, {1, 2})

    assert done == [2, 2, 2]
    names = [[(a.pid, a.rule_name) for a in b] for b in batches]
    assert names == [
        [(2, "Zombie Process")],
        [(2, "Zombie Process")],
        [(1, "Busy"), (2, "Zombie Process")],
    ]

    worker.process_tick([], set())
    assert len(worker.detector.tracker) == 0


def test_controller_tick_feeds_store(qapp) -> None:
    ticks = iter(range(10))

    def source():
        t = float(next(ticks))
        return [make_snapshot(t, pid=7, cpu_pct=99.0)], [7]

    controller = Controller(AppConfig(), source, detector=MisbehaviorDetector(RULES))
    seen = []
    controller.alerts_ready.connect(seen.extend)

    for _ in range(4):
        controller.tick()

    assert [a.ts for a in seen] == [2.0, 3.0]
    assert len(controller.store) == 2
    assert controller.timer.interval() == 1000
    controller.stop()


def test_controller_survives_source_failure(qapp, caplog) -> None:
    def source():
        raise OSError("proc table unavailable")

    controller = Controller(AppConfig(), source, detector=MisbehaviorDetector(RULES))
    controller.tick()

    assert len(controller.store) == 0
    assert "Snapshot source failed" in caplog.text


def test_cli_export_and_check(tmp_path, capsys) -> None:
    cfg_path = tmp_path / "config.json"
    out = tmp_path / "rules.json"

    assert main(["--config", str(cfg_path), "export", str(out)]) == 0
    assert load_rules(str(out)) == default_rules()

    assert main(["check", str(out)]) == 0
    assert "6 rule(s) OK" in capsys.readouterr().out


def test_cli_lists_rules(tmp_path, capsys) -> None:
    assert main(["--config", str(tmp_path / "config.json"), "rules"]) == 0
    out = capsys.readouterr().out
    assert "High CPU Usage" in out
    assert "zombie_state" in out


def test_cli_check_rejects_bad_file(tmp_path) -> None:
    bad = tmp_path / "rules.json"
    bad.write_text(json.dumps([{"name": "x", "condition": {"kind": "nope"}}]), encoding="utf-8")

    assert main(["check", str(bad)]) == 1


def test_cli_check_rejects_unhashable_kind(tmp_path) -> None:
    bad = tmp_path / "rules.json"
    bad.write_text(json.dumps([{"name": "x", "condition": {"kind": {}}}]), encoding="utf-8")

    assert main(["check", str(bad)]) == 1


def test_cli_check_rejects_non_utf8_file(tmp_path) -> None:
    bad = tmp_path / "rules.json"
    bad.write_bytes(b"\xff\xfe[")

    assert main(["check", str(bad)]) == 1
