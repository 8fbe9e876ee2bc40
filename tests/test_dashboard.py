"""Tests for the dashboard JSON API and its launcher."""

import os

import pytest

import dashboard
from dashboard.server import create_app


@pytest.fixture
def client(tracker):
    app = create_app(tracker)
    app.config["TESTING"] = True
    return app.test_client()


def test_board_lists_columns(client, task):
    data = client.get("/api/board").get_json()
    assert [c["status"] for c in data["columns"]] == ["todo", "in-progress", "review", "done"]
    todo = data["columns"][0]
    assert todo["wip_limit"] == 10
    assert todo["tasks"][0]["id"] == task.id
    assert todo["tasks"][0]["progress"] == 0.0
    assert data["timer"]["session"] is None


def test_create_and_filter_tasks(client):
    resp = client.post("/api/tasks", json={"title": "API task", "project": "web", "priority": "high"})
    assert resp.status_code == 201
    assert resp.get_json()["priority"] == "high"

    client.post("/api/tasks", json={"title": "Other", "project": "ops"})
    tasks = client.get("/api/tasks?project=web").get_json()["tasks"]
    assert [t["title"] for t in tasks] == ["API task"]


def test_create_without_title_is_400(client):
    resp = client.post("/api/tasks", json={})
    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "ValidationError"


def test_move_task(client, task):
    resp = client.post(f"/api/tasks/{task.id}/move", json={"status": "review", "index": 0})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "review"


def test_move_into_full_column_is_409(client, tracker):
    tracker.engine.wip_limits["review"] = 1
    first = tracker.engine.create_task("first")
    second = tracker.engine.create_task("second")
    client.post(f"/api/tasks/{first.id}/move", json={"status": "review"})

    resp = client.post(f"/api/tasks/{second.id}/move", json={"status": "review"})
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["status"] == "review"
    assert body["limit"] == 1


def test_move_errors(client, task):
    assert client.post("/api/tasks/missing/move", json={"status": "done"}).status_code == 404
    assert client.post(f"/api/tasks/{task.id}/move", json={}).status_code == 400
    assert client.post(f"/api/tasks/{task.id}/move", json={"status": "nope"}).status_code == 400
    resp = client.post(f"/api/tasks/{task.id}/move", json={"status": "done", "index": "x"})
    assert resp.status_code == 400


def test_timer_flow(client, task, clock):
    resp = client.post("/api/timer/start", json={"task_id": task.id})
    assert resp.status_code == 201
    assert resp.get_json()["running"] is True

    clock.advance(1800)
    timer = client.get("/api/timer").get_json()
    assert timer["elapsed"] == "00:30:00"

    assert client.post("/api/timer/pause").get_json()["changed"] is True
    assert client.post("/api/timer/pause").get_json()["changed"] is False
    assert client.post("/api/timer/resume").get_json()["running"] is True

    entry = client.post("/api/timer/stop").get_json()["entry"]
    assert entry["task_id"] == task.id
    assert entry["hours"] == pytest.approx(0.5)

    stats = client.get("/api/stats").get_json()
    assert stats["total_logged_hours"] == pytest.approx(0.5)
    assert stats["today_hours"] == pytest.approx(0.5)
    assert stats["by_status"]["todo"] == 1


def test_timer_start_unknown_task_is_404(client):
    assert client.post("/api/timer/start", json={"task_id": "missing"}).status_code == 404


def test_log_time(client, task):
    resp = client.post("/api/entries", json={"task_id": task.id, "hours": 2})
    assert resp.status_code == 201
    assert client.post("/api/entries", json={"task_id": task.id, "hours": 0}).status_code == 400
    assert client.post("/api/entries", json={"task_id": "missing", "hours": 1}).status_code == 404


def test_persistence_failure_is_500(client, task, store):
    store.fail_keys.add("worktrack_tasks")
    resp = client.post(f"/api/tasks/{task.id}/move", json={"status": "review"})
    assert resp.status_code == 500


class TestLauncher:

    def test_no_pid_file(self, tmp_path):
        assert dashboard.running_pid(tmp_path / "dash.pid") is None

    def test_live_process(self, tmp_path):
        pid_file = tmp_path / "dash.pid"
        pid_file.write_text(str(os.getpid()))
        assert dashboard.running_pid(pid_file) == os.getpid()

    def test_garbage_pid_file_is_removed(self, tmp_path):
        pid_file = tmp_path / "dash.pid"
        pid_file.write_text("not a pid")
        assert dashboard.running_pid(pid_file) is None
        assert not pid_file.exists()

    def test_launch_reuses_running_server(self, tmp_path):
        pid_file = tmp_path / "dash.pid"
        pid_file.write_text(str(os.getpid()))
        assert dashboard.launch(pid_file=pid_file) == (os.getpid(), False)

    def test_stop_when_not_running(self, tmp_path):
        assert dashboard.stop(tmp_path / "dash.pid") is None
