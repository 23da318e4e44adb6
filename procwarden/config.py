from __future__ import annotations
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional
import json
import logging

from .tracker import HistoryMode
from .rates import RateMode

log = logging.getLogger(__name__)

APP_DIR = Path.home() / ".procwarden"
CFG_PATH = APP_DIR / "config.json"

@dataclass
class AppConfig:
    sample_interval_ms: int = 1000
    alert_retention: int = 100            # alerts kept by the in-memory sink

    # Detection
    history_mode: str = "shared"          # shared | per_rule
    rate_mode: str = "lifetime"           # lifetime | recent
    min_samples: int = 1                  # >1 requires that many samples in the window
    disambiguate_pid_reuse: bool = False  # reset history when a pid's start_time changes
    rules_path: str = ""                  # "" → compiled-in default rules

    def __post_init__(self) -> None:
        # raises ValueError so load_config falls back to defaults
        HistoryMode(self.history_mode)
        RateMode(self.rate_mode)
        for name, minimum in (("sample_interval_ms", 1), ("alert_retention", 1), ("min_samples", 1)):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, int) or v < minimum:
                raise ValueError(f"{name} must be an integer >= {minimum}, got {v!r}")
        if not isinstance(self.disambiguate_pid_reuse, bool):
            raise ValueError(f"disambiguate_pid_reuse must be true/false, got {self.disambiguate_pid_reuse!r}")
        if not isinstance(self.rules_path, str):
            raise ValueError(f"rules_path must be a string, got {self.rules_path!r}")

def ensure_dirs(path: Path = CFG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

def load_config(path: Optional[Path] = None) -> AppConfig:
    path = Path(path) if path else CFG_PATH
    if not path.exists():
        cfg = AppConfig()
        save_config(cfg, path)
        return cfg
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        known = {k: data[k] for k in data if k in AppConfig.__dataclass_fields__}
        return AppConfig(**known)
    except (OSError, ValueError, TypeError) as e:
        log.warning("Config %s unreadable or invalid (%s), falling back to defaults", path, e)
        cfg = AppConfig()
        save_config(cfg, path)
        return cfg

def save_config(cfg: AppConfig, path: Optional[Path] = None) -> None:
    path = Path(path) if path else CFG_PATH
    ensure_dirs(path)
    path.write_text(json.dumps(asdict(cfg), indent=2), encoding="utf-8")
