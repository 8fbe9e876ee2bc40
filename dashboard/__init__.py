"""Start and stop the dashboard server as a detached process."""

import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional, Tuple

from config import DASHBOARD_PID_FILE, DASHBOARD_PORT

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


def running_pid(pid_file: Path = DASHBOARD_PID_FILE) -> Optional[int]:
    """PID of the live dashboard process, or None.

    A PID file that is unreadable or points at a dead process is removed.
    """
    try:
        pid = int(pid_file.read_text().strip())
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        logger.warning("Removing unreadable PID file %s", pid_file)
        pid_file.unlink(missing_ok=True)
        return None

    if _alive(pid):
        return pid
    logger.info("Removing stale PID file for process %d", pid)
    pid_file.unlink(missing_ok=True)
    return None


def launch(
    port: int = DASHBOARD_PORT,
    config_path: Optional[str] = None,
    pid_file: Path = DASHBOARD_PID_FILE,
) -> Tuple[int, bool]:
    """Run ``dashboard.server`` in the background.

    Returns ``(pid, started)``; started is False when a server was
    already running and nothing new was spawned.
    """
    pid = running_pid(pid_file)
    if pid is not None:
        return pid, False

    args = [sys.executable, "-m", "dashboard.server", "--port", str(port)]
    if config_path:
        args += ["--config", str(config_path)]
    proc = subprocess.Popen(
        args,
        cwd=str(PROJECT_ROOT),
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )

    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(proc.pid))
    logger.info("Dashboard started on port %d (pid %d)", port, proc.pid)
    return proc.pid, True


def stop(pid_file: Path = DASHBOARD_PID_FILE) -> Optional[int]:
    """Send SIGTERM to the dashboard. Returns its PID, or None if not running."""
    pid = running_pid(pid_file)
    if pid is None:
        return None
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.info("Dashboard process %d already exited", pid)
    finally:
        pid_file.unlink(missing_ok=True)
    logger.info("Dashboard stopped (pid %d)", pid)
    return pid
