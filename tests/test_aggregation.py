"""Tests for board statistics and derived views."""

from datetime import datetime, timedelta

import pytest

import aggregation
from models import Task, TaskPriority, TaskStatus, TimeEntry

from conftest import T0


def make_task(title, status=TaskStatus.TODO, estimated=0.0, logged=0.0, **kwargs):
    return Task(
        id=title, title=title, created_at=T0, updated_at=T0, status=status,
        estimated_hours=estimated, logged_hours=logged, **kwargs,
    )


def make_entry(task_id, hours, when, start=None):
    return TimeEntry(
        id=f"{task_id}-{hours}", task_id=task_id, user_id="u", hours=hours,
        entry_date=when, created_at=when, start_time=start,
    )


class TestBoardStats:

    def test_counts_and_totals(self):
        tasks = [
            make_task("a", TaskStatus.DONE, estimated=4, logged=3),
            make_task("b", TaskStatus.IN_PROGRESS, estimated=4, logged=1),
            make_task("c", TaskStatus.TODO),
        ]
        stats = aggregation.board_stats(tasks, [], T0)
        assert stats.total_tasks == 3
        assert stats.completed_tasks == 1
        assert stats.in_progress_tasks == 1
        assert stats.total_logged_hours == 4
        assert stats.efficiency == pytest.approx(0.5)

    def test_efficiency_without_estimates_is_zero(self):
        tasks = [make_task("a", logged=2)]
        assert aggregation.board_stats(tasks, [], T0).efficiency == 0.0

    def test_empty_board(self):
        stats = aggregation.board_stats([], [], T0)
        assert stats.to_dict() == {
            "total_tasks": 0, "completed_tasks": 0, "in_progress_tasks": 0,
            "total_logged_hours": 0, "today_hours": 0, "efficiency": 0.0,
        }

    def test_today_hours_uses_start_day(self):
        yesterday_late = T0 - timedelta(hours=10)  # 23:00 the day before
        entries = [
            make_entry("a", 1.0, T0),
            # timer entry that began yesterday and ended today
            make_entry("a", 2.0, T0 + timedelta(hours=1), start=yesterday_late),
            make_entry("b", 0.5, T0 - timedelta(days=1)),
        ]
        assert aggregation.board_stats([], entries, T0).today_hours == pytest.approx(1.0)

    def test_today_hours_compares_local_day(self):
        # 23:30 UTC on March 1st is already March 2nd at +01:00
        utc_late = datetime.fromisoformat("2026-03-01T23:30:00+00:00")
        entries = [make_entry("a", 1.5, utc_late)]
        assert aggregation.board_stats([], entries, T0).today_hours == pytest.approx(1.5)


def test_logged_hours_sums_matching_entries():
    entries = [make_entry("a", 1.0, T0), make_entry("b", 2.0, T0), make_entry("a", 0.5, T0)]
    assert aggregation.logged_hours("a", entries) == pytest.approx(1.5)
    assert aggregation.logged_hours("z", entries) == 0


def test_columns_view_keeps_order_and_limits():
    tasks = [
        make_task("a", TaskStatus.REVIEW),
        make_task("b"),
        make_task("c", TaskStatus.REVIEW),
    ]
    columns = aggregation.columns_view(tasks, {"review": 2})
    assert [c.status for c in columns] == list(TaskStatus)
    review = columns[2]
    assert [t.title for t in review.tasks] == ["a", "c"]
    assert review.title == "In Review"
    assert review.is_full
    assert columns[0].wip_limit is None
    assert not columns[0].is_full


def test_status_counts():
    tasks = [make_task("a"), make_task("b", TaskStatus.DONE), make_task("c")]
    assert aggregation.status_counts(tasks) == {
        "todo": 2, "in-progress": 0, "review": 0, "done": 1,
    }


def test_filter_tasks():
    tasks = [
        make_task("Fix login", project="web", assignee="ana", priority=TaskPriority.HIGH),
        make_task("Write docs", project="docs", description="login guide"),
        make_task("Deploy", project="web"),
    ]
    assert [t.title for t in aggregation.filter_tasks(tasks, project="web")] == ["Fix login", "Deploy"]
    assert [t.title for t in aggregation.filter_tasks(tasks, search="LOGIN")] == ["Fix login", "Write docs"]
    assert [t.title for t in aggregation.filter_tasks(tasks, priority="high")] == ["Fix login"]
    assert [t.title for t in aggregation.filter_tasks(tasks, assignee="ana", project="docs")] == []
    assert len(aggregation.filter_tasks(tasks)) == 3


def test_task_progress():
    assert aggregation.task_progress(make_task("a", estimated=4, logged=1)) == 25.0
    assert aggregation.task_progress(make_task("b", logged=1)) == 0.0


class TestOverdue:

    def test_past_due(self):
        task = make_task("a", due_date=T0 - timedelta(days=1))
        assert aggregation.is_overdue(task, T0)

    def test_not_yet_due(self):
        task = make_task("a", due_date=T0 + timedelta(hours=1))
        assert not aggregation.is_overdue(task, T0)

    def test_done_is_never_overdue(self):
        task = make_task("a", TaskStatus.DONE, due_date=T0 - timedelta(days=1))
        assert not aggregation.is_overdue(task, T0)

    def test_naive_due_date(self):
        task = make_task("a", due_date=datetime(2026, 3, 1))
        assert aggregation.is_overdue(task, T0)


def test_hours_by_month():
    entries = [
        make_entry("a", 1.0, T0),
        make_entry("b", 2.0, T0 - timedelta(days=5)),  # February
        make_entry("c", 4.0, T0 + timedelta(days=3)),
    ]
    assert aggregation.hours_by_month(entries, 2026, 3) == pytest.approx(5.0)
    assert aggregation.hours_by_month(entries, 2026, 2) == pytest.approx(2.0)


@pytest.mark.parametrize("seconds,expected", [
    (0, "00:00:00"),
    (59.9, "00:00:59"),
    (3661, "01:01:01"),
    (360000, "100:00:00"),
    (-5, "00:00:00"),
])
def test_format_duration(seconds, expected):
    assert aggregation.format_duration(seconds) == expected
