"""Tests for the command-line front end."""

import pytest

import main as cli
from errors import NotFoundError, ValidationError


def run(tracker, qapp, *argv):
    args = cli.build_parser().parse_args(list(argv))
    return cli.run(args, tracker, qapp)


def test_add_and_board(tracker, qapp, capsys):
    assert run(tracker, qapp, "add", "Write tests", "--estimate", "2", "--project", "qa") == 0
    task = tracker.engine.tasks[0]
    assert task.estimated_hours == 2.0
    assert task.project == "qa"

    run(tracker, qapp, "board")
    out = capsys.readouterr().out
    assert "== To Do (1/10)" in out
    assert "Write tests" in out
    assert "== Done (0)" in out


def test_board_filters(tracker, qapp, capsys):
    tracker.engine.create_task("Fix login", project="web")
    tracker.engine.create_task("Write docs", project="docs")
    capsys.readouterr()
    run(tracker, qapp, "board", "--project", "web")
    out = capsys.readouterr().out
    assert "Fix login" in out
    assert "Write docs" not in out


def test_timer_commands(tracker, qapp, task, clock, capsys):
    run(tracker, qapp, "start", task.id[:8])
    clock.advance(5400)
    run(tracker, qapp, "status")
    assert "Timer running" in capsys.readouterr().out
    run(tracker, qapp, "pause")
    run(tracker, qapp, "status")
    assert "01:30:00" in capsys.readouterr().out
    run(tracker, qapp, "resume")
    run(tracker, qapp, "stop")
    assert "Recorded 1.50h" in capsys.readouterr().out
    run(tracker, qapp, "amend", task.id, "--hours", "1")
    assert tracker.recorder.entries[0].hours == 1.0


def test_move_and_stats(tracker, qapp, task, capsys):
    run(tracker, qapp, "log", task.id, "2")
    run(tracker, qapp, "move", task.id, "done")
    capsys.readouterr()
    run(tracker, qapp, "stats")
    out = capsys.readouterr().out
    assert "1 done" in out
    assert "Efficiency:  50.0%" in out


def test_edit_and_delete(tracker, qapp, task):
    run(tracker, qapp, "edit", task.id, "--title", "Renamed", "--priority", "low")
    assert tracker.engine.get_task(task.id).title == "Renamed"
    run(tracker, qapp, "delete", task.id)
    assert tracker.engine.tasks == []


def test_find_task_by_prefix(tracker):
    first = tracker.engine.create_task("a")
    assert tracker.find_task(first.id[:6]) == first
    with pytest.raises(NotFoundError):
        tracker.find_task("zzzz-not-there")


def test_ambiguous_prefix(tracker):
    tracker.engine.create_task("a")
    tracker.engine.create_task("b")
    with pytest.raises(ValidationError):
        tracker.find_task("")


def test_main_reports_errors(tmp_path, capsys):
    config = tmp_path / "config.yaml"
    config.write_text(f"data_dir: {tmp_path / 'data'}\n")
    assert cli.main(["--config", str(config), "move", "nothing", "done"]) == 1
    assert "Error:" in capsys.readouterr().err


def test_main_persists_between_invocations(tmp_path, capsys):
    config = tmp_path / "config.yaml"
    config.write_text(f"data_dir: {tmp_path / 'data'}\n")
    assert cli.main(["--config", str(config), "add", "Persisted"]) == 0
    assert (tmp_path / "data" / "worktrack_tasks.json").exists()
    capsys.readouterr()
    assert cli.main(["--config", str(config), "board"]) == 0
    assert "Persisted" in capsys.readouterr().out


def test_amend_after_stop_in_separate_runs(tmp_path, capsys):
    config = tmp_path / "config.yaml"
    config.write_text(f"data_dir: {tmp_path / 'data'}\n")

    def worktrack(*argv):
        return cli.main(["--config", str(config), *argv])

    assert worktrack("add", "Report") == 0
    out = capsys.readouterr().out.splitlines()
    created = [line for line in out if line.startswith("Created task")]
    task_id = created[0].split()[2].rstrip(":")
    assert worktrack("start", task_id) == 0
    assert worktrack("stop") == 0
    capsys.readouterr()

    assert worktrack("amend", task_id, "--description", "Drafting") == 0
    assert "Drafting" in capsys.readouterr().out
