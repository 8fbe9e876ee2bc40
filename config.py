"""Configuration constants for worktrack."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# Directories and files
WORKTRACK_DIR = Path(os.environ.get("WORKTRACK_DIR", Path.home() / ".worktrack"))
CONFIG_FILE = WORKTRACK_DIR / "config.yaml"

# Persistence keys (one JSON blob per key)
SESSION_KEY = "worktrack_timer_session"
TASKS_KEY = "worktrack_tasks"
TIME_ENTRIES_KEY = "worktrack_time_entries"
LAST_TIMER_ENTRIES_KEY = "worktrack_last_timer_entries"  # task id -> amendable entry id

# Timer constants
TICK_INTERVAL_MS = 1000  # elapsed-time display refresh
SECONDS_PER_HOUR = 3600

# Board columns, in display order
STATUS_ORDER = ("todo", "in-progress", "review", "done")
COLUMN_TITLES = {
    "todo": "To Do",
    "in-progress": "In Progress",
    "review": "In Review",
    "done": "Done",
}
DEFAULT_WIP_LIMITS: Dict[str, Optional[int]] = {
    "todo": 10,
    "in-progress": 5,
    "review": 3,
    "done": None,  # unlimited
}

# Time entries
AUTO_ENTRY_DESCRIPTION = "Time recorded automatically"
DEFAULT_USER_ID = "current-user"

# Dashboard
DASHBOARD_PORT = 5174
DASHBOARD_PID_FILE = WORKTRACK_DIR / "dashboard.pid"

# Logging
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class BoardConfig:
    """Runtime configuration, optionally overridden by config.yaml."""

    data_dir: str = str(WORKTRACK_DIR)
    user_id: str = DEFAULT_USER_ID
    tick_interval_ms: int = TICK_INTERVAL_MS
    dashboard_port: int = DASHBOARD_PORT
    wip_limits: Dict[str, Optional[int]] = field(
        default_factory=lambda: dict(DEFAULT_WIP_LIMITS)
    )

    def resolve(self) -> None:
        """Expand ~ and fill in columns missing from wip_limits."""
        self.data_dir = str(Path(self.data_dir).expanduser())
        limits = dict(DEFAULT_WIP_LIMITS)
        for status, limit in (self.wip_limits or {}).items():
            key = "in-progress" if status in ("in_progress", "doing") else status
            if key not in limits:
                logger.warning("Ignoring WIP limit for unknown column %r", status)
                continue
            limits[key] = int(limit) if limit is not None else None
        self.wip_limits = limits

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BoardConfig":
        """Load config from a YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_FILE
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning("Failed to read %s, using defaults: %s", cfg_path, e)
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve()
        return cfg
