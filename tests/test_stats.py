"""Tests for dashboard counters and list filters."""

import pytest

from src.taskline.normalize import normalize_tasks
from src.taskline.stats import (
    calculate_metrics,
    count_by_status,
    count_by_type,
    filter_tasks,
    is_overdue,
    tasks_for_assignee,
)

NOW = 1_700_000_000_000


@pytest.fixture
def tasks():
    return normalize_tasks(
        [
            {"id": 1, "title": "Login page", "type": "FEATURE", "status": "DONE", "progress": 100, "assignee_id": 7},
            {"id": 2, "title": "Crash on save", "description": "Login form crashes", "type": "BUG", "status": "IN_PROGRESS", "progress": 40, "assignee_id": 7, "parent_id": 1},
            {"id": 3, "title": "Refactor", "type": "IMPROVEMENT", "status": "BLOCKED", "due_date": NOW - 1000},
            {"id": 4, "title": "Write docs", "type": "FEATURE", "parent_id": 1, "due_date": NOW + 1000},
        ]
    )


class TestMetrics:
    def test_counts(self, tasks):
        metrics = calculate_metrics(tasks, NOW)

        assert metrics.total_tasks == 4
        assert metrics.completed_tasks == 1
        assert metrics.in_progress_tasks == 1
        assert metrics.blocked_tasks == 1
        assert metrics.todo_tasks == 1
        assert metrics.completion_rate == 0.25
        assert metrics.overdue_tasks == 1
        assert metrics.average_progress == 35.0

    def test_empty(self):
        metrics = calculate_metrics([], NOW)

        assert metrics.total_tasks == 0
        assert metrics.completion_rate == 0.0
        assert metrics.average_progress == 0.0

    def test_is_overdue(self, tasks):
        assert [is_overdue(t, NOW) for t in tasks] == [False, False, True, False]


class TestGrouping:
    def test_count_by_status_first_seen_order(self, tasks):
        assert count_by_status(tasks) == [
            {"status": "DONE", "count": 1},
            {"status": "IN_PROGRESS", "count": 1},
            {"status": "BLOCKED", "count": 1},
            {"status": "TODO", "count": 1},
        ]

    def test_count_by_type(self, tasks):
        assert count_by_type(tasks) == [
            {"type": "FEATURE", "count": 2},
            {"type": "BUG", "count": 1},
            {"type": "IMPROVEMENT", "count": 1},
        ]

    def test_tasks_for_assignee(self, tasks):
        assert [t.id for t in tasks_for_assignee(tasks, 7)] == ["1", "2"]
        assert tasks_for_assignee(tasks, None) == []


class TestFilter:
    def test_search_matches_title_or_description(self, tasks):
        assert [t.id for t in filter_tasks(tasks, search="LOGIN")] == ["1", "2"]

    def test_criteria_are_combined(self, tasks):
        assert [t.id for t in filter_tasks(tasks, search="login", parent_id=1)] == ["2"]
        assert [t.id for t in filter_tasks(tasks, assignee_id="7", parent_id=1)] == ["2"]

    def test_no_criteria_keeps_everything(self, tasks):
        assert len(filter_tasks(tasks)) == 4
