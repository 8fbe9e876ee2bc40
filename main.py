#!/usr/bin/env python3
"""worktrack - time tracking and Kanban workflow for one local user."""

import argparse
import logging
import signal
import sys
from datetime import datetime
from typing import Optional

from PyQt6.QtCore import QCoreApplication

import aggregation
import dashboard
from aggregation import BoardStats
from clock import SystemClock
from config import BoardConfig, LOG_FORMAT
from errors import NotFoundError, ValidationError, WorkTrackError
from models import Task, TimeEntry, TimerSession
from storage import JsonFileStore
from task_workflow import TaskWorkflowEngine
from time_entries import TimeEntryRecorder
from timer_engine import TimerSessionManager

logger = logging.getLogger(__name__)


class WorkTracker:
    """Wires the recorder, timer manager and workflow engine together."""

    def __init__(self, store, clock=None, config: Optional[BoardConfig] = None, tick: bool = True):
        self.config = config or BoardConfig()
        self.clock = clock or SystemClock()
        self.store = store

        self.recorder = TimeEntryRecorder(store, self.clock)
        self.timer = TimerSessionManager(
            store,
            self.recorder,
            self.clock,
            tick_interval_ms=self.config.tick_interval_ms if tick else None,
        )
        self.engine = TaskWorkflowEngine(
            store,
            self.recorder,
            self.timer,
            self.clock,
            wip_limits=self.config.wip_limits,
        )

    @classmethod
    def from_config(cls, config: BoardConfig, tick: bool = True) -> "WorkTracker":
        tracker = cls(JsonFileStore(config.data_dir), config=config, tick=tick)
        tracker.load()
        return tracker

    def load(self) -> None:
        """(Re)read entries, tasks and the timer session from the store."""
        self.recorder.load()
        self.engine.load()
        self.timer.restore()

    # -------------------- timer --------------------
    def start_timer(self, task_id: str, user_id: Optional[str] = None,
                    description: Optional[str] = None) -> TimerSession:
        task = self.engine.get_task(task_id)
        return self.timer.start(
            task.id,
            user_id or self.config.user_id,
            project_id=task.project,
            description=description,
        )

    def pause_timer(self) -> bool:
        return self.timer.pause()

    def resume_timer(self) -> bool:
        return self.timer.resume()

    def stop_timer(self) -> Optional[TimeEntry]:
        return self.timer.stop()

    def amend_last_entry(self, task_id: str, description: Optional[str] = None,
                         hours=None) -> TimeEntry:
        return self.recorder.amend_last(task_id, description=description, hours=hours)

    # -------------------- board --------------------
    def stats(self) -> BoardStats:
        return aggregation.board_stats(
            self.engine.tasks, self.recorder.entries, self.clock.now()
        )

    def find_task(self, ref: str) -> Task:
        """Look a task up by full id or unique id prefix."""
        matches = [t for t in self.engine.tasks if t.id == ref or t.id.startswith(ref)]
        exact = [t for t in matches if t.id == ref]
        if exact:
            return exact[0]
        if not matches:
            raise NotFoundError(f"No task matches {ref!r}")
        if len(matches) > 1:
            raise ValidationError(f"Task reference {ref!r} is ambiguous")
        return matches[0]


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


# -------------------- CLI --------------------

def _print_board(tracker: WorkTracker) -> None:
    now = tracker.clock.now()
    for column in tracker.engine.columns():
        limit = f"/{column.wip_limit}" if column.wip_limit is not None else ""
        print(f"== {column.title} ({len(column.tasks)}{limit})")
        if not column.tasks:
            print("   (empty)")
        for task in column.tasks:
            flags = " OVERDUE" if aggregation.is_overdue(task, now) else ""
            print(
                f"   {task.id[:8]}  {task.title}  [{task.priority.value}]  "
                f"{task.logged_hours:.2f}/{task.estimated_hours:.2f}h{flags}"
            )


def _print_status(tracker: WorkTracker) -> None:
    session = tracker.timer.session
    if session is None:
        print("No timer running")
        return
    state = "running" if session.is_active else "paused"
    elapsed = aggregation.format_duration(tracker.timer.current_elapsed())
    print(f"Timer {state} for task {session.task_id[:8]}: {elapsed}")


def _watch(tracker: WorkTracker, app: QCoreApplication) -> int:
    """Run the event loop, printing the elapsed time on every tick."""
    if not tracker.timer.is_running:
        _print_status(tracker)
        return 0

    def on_tick(seconds: float) -> None:
        print(f"\r{aggregation.format_duration(seconds)}", end="", flush=True)

    def on_session(session) -> None:
        if session is None or not session.is_active:
            app.quit()

    tracker.timer.tick.connect(on_tick)
    tracker.timer.session_changed.connect(on_session)
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    exit_code = app.exec()
    print()
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="worktrack", description=__doc__)
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Create a task")
    add.add_argument("title")
    add.add_argument("--project", default="")
    add.add_argument("--assignee", default="")
    add.add_argument("--priority", default="medium")
    add.add_argument("--estimate", type=float, default=0.0)
    add.add_argument("--due", help="Due date (YYYY-MM-DD)")
    add.add_argument("--description", default="")
    add.add_argument("--status", default="todo")

    board = sub.add_parser("board", help="Show the Kanban board")
    board.add_argument("--project")
    board.add_argument("--assignee")
    board.add_argument("--priority")
    board.add_argument("--search")

    move = sub.add_parser("move", help="Move a task to a column")
    move.add_argument("task")
    move.add_argument("status")
    move.add_argument("index", nargs="?", type=int)

    edit = sub.add_parser("edit", help="Edit a task")
    edit.add_argument("task")
    edit.add_argument("--title")
    edit.add_argument("--project")
    edit.add_argument("--assignee")
    edit.add_argument("--priority")
    edit.add_argument("--estimate", type=float)
    edit.add_argument("--description")

    delete = sub.add_parser("delete", help="Delete a task")
    delete.add_argument("task")

    start = sub.add_parser("start", help="Start the timer on a task")
    start.add_argument("task")
    start.add_argument("--description")

    sub.add_parser("pause", help="Pause the timer")
    sub.add_parser("resume", help="Resume the timer")
    sub.add_parser("stop", help="Stop the timer and record the time")
    sub.add_parser("status", help="Show the timer")
    sub.add_parser("watch", help="Follow the running timer")

    log = sub.add_parser("log", help="Log time manually")
    log.add_argument("task")
    log.add_argument("hours", type=float)
    log.add_argument("--description", default="")

    amend = sub.add_parser("amend", help="Correct the entry recorded by the last stop")
    amend.add_argument("task")
    amend.add_argument("--hours", type=float)
    amend.add_argument("--description")

    sub.add_parser("stats", help="Show board statistics")

    dash = sub.add_parser("dashboard", help="Start or stop the dashboard server")
    dash.add_argument("action", choices=["start", "stop"])
    return parser


def run(args, tracker: WorkTracker, app: QCoreApplication) -> int:
    """Execute one CLI command against a loaded tracker."""
    cmd = args.command

    if cmd == "add":
        due = datetime.fromisoformat(args.due).astimezone() if args.due else None
        task = tracker.engine.create_task(
            args.title, project=args.project, assignee=args.assignee,
            priority=args.priority, estimated_hours=args.estimate,
            due_date=due, description=args.description, status=args.status,
        )
        print(f"Created task {task.id[:8]}: {task.title}")
    elif cmd == "board":
        if any([args.project, args.assignee, args.priority, args.search]):
            for task in aggregation.filter_tasks(
                tracker.engine.tasks, project=args.project, assignee=args.assignee,
                priority=args.priority, search=args.search,
            ):
                print(f"{task.id[:8]}  {task.status.value:<12} {task.title}")
        else:
            _print_board(tracker)
    elif cmd == "move":
        task = tracker.engine.move_task(tracker.find_task(args.task).id, args.status, args.index)
        print(f"Task {task.id[:8]} moved to {task.status.value}")
    elif cmd == "edit":
        changes = {
            "title": args.title, "project": args.project, "assignee": args.assignee,
            "priority": args.priority, "estimated_hours": args.estimate,
            "description": args.description,
        }
        changes = {k: v for k, v in changes.items() if v is not None}
        task = tracker.engine.update_task(tracker.find_task(args.task).id, **changes)
        print(f"Updated task {task.id[:8]}")
    elif cmd == "delete":
        task = tracker.engine.delete_task(tracker.find_task(args.task).id)
        print(f"Deleted task {task.id[:8]}: {task.title}")
    elif cmd == "start":
        session = tracker.start_timer(tracker.find_task(args.task).id, description=args.description)
        print(f"Timer started for task {session.task_id[:8]}")
    elif cmd == "pause":
        print("Timer paused" if tracker.pause_timer() else "No running timer")
    elif cmd == "resume":
        print("Timer resumed" if tracker.resume_timer() else "No paused timer")
    elif cmd == "stop":
        entry = tracker.stop_timer()
        if entry is None:
            print("No timer running")
        else:
            print(f"Recorded {entry.hours:.2f}h on task {entry.task_id[:8]}")
    elif cmd == "status":
        _print_status(tracker)
    elif cmd == "watch":
        return _watch(tracker, app)
    elif cmd == "log":
        entry = tracker.engine.log_time(
            tracker.find_task(args.task).id, args.hours,
            user_id=tracker.config.user_id, description=args.description,
        )
        print(f"Logged {entry.hours:.2f}h on task {entry.task_id[:8]}")
    elif cmd == "amend":
        entry = tracker.amend_last_entry(
            tracker.find_task(args.task).id, description=args.description, hours=args.hours,
        )
        print(f"Entry {entry.id[:8]} now {entry.hours:.2f}h: {entry.description}")
    elif cmd == "stats":
        stats = tracker.stats()
        print(f"Tasks:       {stats.total_tasks} ({stats.completed_tasks} done, "
              f"{stats.in_progress_tasks} in progress)")
        print(f"Logged:      {stats.total_logged_hours:.2f}h ({stats.today_hours:.2f}h today)")
        print(f"Efficiency:  {stats.efficiency * 100:.1f}%")
    elif cmd == "dashboard":
        port = tracker.config.dashboard_port
        if args.action == "start":
            pid, started = dashboard.launch(port=port, config_path=args.config)
            state = "launched" if started else "already running"
            print(f"Dashboard {state} (PID {pid}) on http://localhost:{port}")
        else:
            pid = dashboard.stop()
            print("Dashboard not running" if pid is None else f"Dashboard stopped (PID {pid})")
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("worktrack")

    try:
        config = BoardConfig.load(args.config)
        tracker = WorkTracker.from_config(config, tick=args.command == "watch")
        return run(args, tracker, app)
    except WorkTrackError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
