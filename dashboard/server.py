"""Flask dashboard server for worktrack.

Serves a JSON API over the board and the timer. The server process owns
its own WorkTracker and re-reads persisted state before every request, so
changes made from the CLI show up immediately.
"""

import argparse
import logging
import os

from flask import Flask, jsonify, request
from PyQt6.QtCore import QCoreApplication

import aggregation
from config import BoardConfig, DASHBOARD_PID_FILE
from errors import (
    CapacityError, NotFoundError, PersistenceError, ValidationError, WorkTrackError,
)
from models import TaskStatus

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    CapacityError: 409,
    PersistenceError: 500,
}


def _timer_payload(tracker) -> dict:
    session = tracker.timer.session
    elapsed = tracker.timer.current_elapsed()
    return {
        "session": session.to_dict() if session else None,
        "running": tracker.timer.is_running,
        "elapsed_seconds": round(elapsed, 1),
        "elapsed": aggregation.format_duration(elapsed),
    }


def _format_task_for_api(task, now) -> dict:
    """Format a task for the API response."""
    data = task.to_dict()
    data["progress"] = round(aggregation.task_progress(task), 1)
    data["overdue"] = aggregation.is_overdue(task, now)
    return data


def create_app(tracker, reload_each_request: bool = True) -> Flask:
    """Build the Flask app around a WorkTracker."""
    app = Flask(__name__)

    @app.before_request
    def _reload():
        if reload_each_request:
            tracker.load()

    @app.errorhandler(WorkTrackError)
    def _handle_error(error):
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(error, cls)), 500
        )
        body = {"error": str(error), "kind": type(error).__name__}
        if isinstance(error, CapacityError):
            body.update(status=error.status, limit=error.limit)
        return jsonify(body), status

    @app.route("/api/board")
    def api_board():
        now = tracker.clock.now()
        columns = []
        for column in tracker.engine.columns():
            data = column.to_dict()
            data["tasks"] = [_format_task_for_api(t, now) for t in column.tasks]
            data["full"] = column.is_full
            columns.append(data)
        return jsonify({"columns": columns, "timer": _timer_payload(tracker)})

    @app.route("/api/stats")
    def api_stats():
        stats = tracker.stats().to_dict()
        stats["by_status"] = aggregation.status_counts(tracker.engine.tasks)
        return jsonify(stats)

    @app.route("/api/tasks", methods=["GET"])
    def api_tasks():
        now = tracker.clock.now()
        tasks = aggregation.filter_tasks(
            tracker.engine.tasks,
            project=request.args.get("project"),
            assignee=request.args.get("assignee"),
            priority=request.args.get("priority"),
            search=request.args.get("search"),
        )
        return jsonify({"tasks": [_format_task_for_api(t, now) for t in tasks]})

    @app.route("/api/tasks", methods=["POST"])
    def api_create_task():
        body = request.get_json(silent=True) or {}
        task = tracker.engine.create_task(
            body.get("title", ""),
            project=body.get("project", ""),
            assignee=body.get("assignee", ""),
            priority=body.get("priority", "medium"),
            estimated_hours=body.get("estimated_hours", 0.0),
            description=body.get("description", ""),
            status=body.get("status", TaskStatus.TODO.value),
        )
        return jsonify(task.to_dict()), 201

    @app.route("/api/tasks/<task_id>/move", methods=["POST"])
    def api_move_task(task_id):
        body = request.get_json(silent=True) or {}
        if "status" not in body:
            raise ValidationError("Missing target status")
        index = body.get("index")
        if index is not None:
            try:
                index = int(index)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid column index: {index!r}") from None
        task = tracker.engine.move_task(task_id, body["status"], index)
        return jsonify(task.to_dict())

    @app.route("/api/entries", methods=["POST"])
    def api_log_time():
        body = request.get_json(silent=True) or {}
        entry = tracker.engine.log_time(
            body.get("task_id", ""),
            body.get("hours"),
            user_id=body.get("user_id") or tracker.config.user_id,
            description=body.get("description", ""),
        )
        return jsonify(entry.to_dict()), 201

    @app.route("/api/timer")
    def api_timer():
        return jsonify(_timer_payload(tracker))

    @app.route("/api/timer/start", methods=["POST"])
    def api_timer_start():
        body = request.get_json(silent=True) or {}
        tracker.start_timer(
            body.get("task_id", ""),
            user_id=body.get("user_id"),
            description=body.get("description"),
        )
        return jsonify(_timer_payload(tracker)), 201

    @app.route("/api/timer/pause", methods=["POST"])
    def api_timer_pause():
        changed = tracker.pause_timer()
        return jsonify({"changed": changed, **_timer_payload(tracker)})

    @app.route("/api/timer/resume", methods=["POST"])
    def api_timer_resume():
        changed = tracker.resume_timer()
        return jsonify({"changed": changed, **_timer_payload(tracker)})

    @app.route("/api/timer/stop", methods=["POST"])
    def api_timer_stop():
        entry = tracker.stop_timer()
        return jsonify({"entry": entry.to_dict() if entry else None})

    return app


def main():
    from main import WorkTracker, setup_logging

    parser = argparse.ArgumentParser(description="worktrack dashboard server")
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--config", type=str, default=None)
    args = parser.parse_args()

    setup_logging()
    qt_app = QCoreApplication.instance() or QCoreApplication([])  # noqa: F841
    config = BoardConfig.load(args.config)
    port = args.port or config.dashboard_port
    tracker = WorkTracker.from_config(config, tick=False)

    # Write PID file
    pid_file = DASHBOARD_PID_FILE
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))

    try:
        # Single-threaded: requests are handled one at a time, like CLI commands
        create_app(tracker).run(host="127.0.0.1", port=port, debug=False, threaded=False)
    finally:
        pid_file.unlink(missing_ok=True)


if __name__ == "__main__":
    main()
