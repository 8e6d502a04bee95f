"""
Tests for the Gantt Projection.

Covers pre-order output, the default-window policy, progress clamping,
priority colors, malformed nodes and the collapse toggle.
"""

import time

import pytest

from src.taskline.hierarchy import build_hierarchy
from src.taskline.normalize import normalize_hierarchy, normalize_tasks
from src.taskline.projection import (
    NEUTRAL_BAR_COLOR,
    NEUTRAL_PROGRESS_COLOR,
    PRIORITY_PALETTE,
    GanttProjector,
    priority_colors,
    project_forest,
    set_collapsed,
    timeline_bounds,
)
from src.taskline.store import ONE_DAY_MS, Task, TaskHierarchy

NOW = 1_700_000_000_000  # 2023-11-14T22:13:20Z


def project_raw(raw_tasks, **kwargs):
    kwargs.setdefault("now_ms", NOW)
    return project_forest(build_hierarchy(normalize_tasks(raw_tasks)), **kwargs)


@pytest.fixture
def nested_tasks():
    """Two roots; the first has a child that itself has a child."""
    return [
        {"id": 1, "title": "Release", "priority": "HIGH"},
        {"id": 2, "title": "Build", "parent_id": 1},
        {"id": 3, "title": "Package", "parent_id": 2},
        {"id": 4, "title": "Announce", "parent_id": 1},
        {"id": 5, "title": "Retro"},
    ]


class TestOrdering:
    """Parents precede descendants; siblings keep builder order."""

    def test_pre_order_depth_first(self, nested_tasks):
        descriptors = project_raw(nested_tasks)

        assert [d.id for d in descriptors] == ["1", "2", "3", "4", "5"]
        assert [d.depth for d in descriptors] == [0, 1, 2, 1, 0]

    def test_parent_index_precedes_descendants(self, nested_tasks):
        descriptors = project_raw(nested_tasks)
        index = {d.id: i for i, d in enumerate(descriptors)}

        for d in descriptors:
            for parent_id in d.dependency_ids:
                assert index[parent_id] < index[d.id]

    def test_dependency_is_direct_parent(self, nested_tasks):
        descriptors = {d.id: d for d in project_raw(nested_tasks)}

        assert descriptors["1"].dependency_ids == []
        assert descriptors["3"].dependency_ids == ["2"]
        assert descriptors["4"].dependency_ids == ["1"]

    def test_kind_reflects_children(self, nested_tasks):
        kinds = {d.id: d.kind for d in project_raw(nested_tasks)}

        assert kinds == {"1": "group", "2": "group", "3": "leaf", "4": "leaf", "5": "leaf"}

    def test_empty_forest(self):
        assert project_forest([], now_ms=NOW) == []


class TestDefaultWindow:
    """Tasks without schedule data get a one-day bar starting now."""

    def test_no_dates_uses_projection_time(self):
        (descriptor,) = project_raw([{"id": 5, "title": "X", "priority": "HIGH"}])

        assert descriptor.start == NOW
        assert descriptor.end == NOW + 86_400_000

    def test_no_dates_uses_wall_clock_when_now_omitted(self):
        tasks = build_hierarchy(normalize_tasks([{"id": 5, "title": "X"}]))

        before = int(time.time() * 1000)
        (descriptor,) = GanttProjector().project(tasks)
        after = int(time.time() * 1000)

        assert before <= descriptor.start <= after
        assert descriptor.end - descriptor.start == ONE_DAY_MS

    def test_start_without_due_adds_one_day(self):
        start = NOW - 5 * ONE_DAY_MS
        (descriptor,) = project_raw([{"id": 1, "title": "X", "start_time": start}])

        assert descriptor.start == start
        assert descriptor.end == start + ONE_DAY_MS

    def test_explicit_window_is_kept(self):
        (descriptor,) = project_raw(
            [
                {
                    "id": 1,
                    "title": "X",
                    "start_time": "2024-03-01T00:00:00Z",
                    "due_date": "2024-03-04T00:00:00Z",
                }
            ]
        )

        assert descriptor.duration_ms == 3 * ONE_DAY_MS

    def test_due_before_start_is_clamped(self):
        projector = GanttProjector()
        forest = build_hierarchy(
            normalize_tasks([{"id": 1, "title": "X", "start_time": NOW, "due_date": NOW - 1000}])
        )

        (descriptor,) = projector.project(forest, now_ms=NOW)

        assert descriptor.end == descriptor.start == NOW
        assert projector.last_report.clamped_windows == 1

    def test_custom_default_duration(self):
        (descriptor,) = project_raw([{"id": 1, "title": "X"}], default_duration_ms=60_000)

        assert descriptor.end - descriptor.start == 60_000

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError):
            GanttProjector(default_duration_ms=0)

    def test_fallback_never_written_back(self):
        task = Task(id="1", title="X")

        project_forest([TaskHierarchy(task=task)], now_ms=NOW)

        assert task.start_time is None
        assert task.due_date is None


class TestProgressAndColors:
    """Progress clamp and priority palette."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (150, 100),
            (-5, 0),
            (42, 42),
            ("abc", 0),
            (float("inf"), 100),
            (float("-inf"), 0),
            (float("nan"), 0),
        ],
    )
    def test_progress_clamped(self, raw, expected):
        (descriptor,) = project_raw([{"id": 1, "title": "X", "progress": raw}])

        assert descriptor.progress == expected

    def test_progress_clamped_when_task_mutated_after_creation(self):
        task = Task(id="1", title="X")
        task.progress = 500

        (descriptor,) = project_forest([TaskHierarchy(task=task)], now_ms=NOW)

        assert descriptor.progress == 100

    @pytest.mark.parametrize("raw, expected", [(float("inf"), 100), (float("nan"), 0)])
    def test_non_finite_progress_on_direct_task(self, raw, expected):
        task = Task(id="1", title="X", progress=raw)

        (descriptor,) = project_forest([TaskHierarchy(task=task)], now_ms=NOW)

        assert task.progress == expected
        assert descriptor.progress == expected

    def test_high_priority_is_amber(self):
        (descriptor,) = project_raw([{"id": 5, "title": "X", "priority": "HIGH"}])

        assert (descriptor.bar_color, descriptor.progress_color) == PRIORITY_PALETTE["HIGH"]
        assert descriptor.progress_color == "#ffa000"

    def test_palette_covers_every_priority(self):
        assert set(PRIORITY_PALETTE) == {"LOW", "MEDIUM", "HIGH", "CRITICAL"}
        assert len(set(PRIORITY_PALETTE.values())) == 4

    def test_priority_lookup_is_case_insensitive(self):
        assert priority_colors("critical") == PRIORITY_PALETTE["CRITICAL"]

    @pytest.mark.parametrize("priority", [None, "", "URGENT"])
    def test_unknown_priority_is_neutral(self, priority):
        assert priority_colors(priority) == (NEUTRAL_BAR_COLOR, NEUTRAL_PROGRESS_COLOR)

    def test_overdue_flag(self):
        descriptors = project_raw(
            [
                {"id": 1, "title": "Late", "start_time": NOW - 3 * ONE_DAY_MS, "due_date": NOW - ONE_DAY_MS},
                {"id": 2, "title": "Fine", "start_time": NOW, "due_date": NOW + ONE_DAY_MS},
                {"id": 3, "title": "Open"},
            ]
        )

        assert [d.overdue for d in descriptors] == [True, False, False]


class TestMalformedNodes:
    """One bad node never aborts the rest of the forest."""

    def test_missing_title_is_skipped(self):
        projector = GanttProjector()
        forest = build_hierarchy(
            normalize_tasks([{"id": 1, "title": "Fine"}, {"id": 2}, {"id": 3, "title": "Also fine"}])
        )

        descriptors = projector.project(forest, now_ms=NOW)

        assert [d.id for d in descriptors] == ["1", "3"]
        assert projector.last_report.skipped_malformed == 1

    def test_children_of_malformed_node_are_projected(self):
        hierarchy = normalize_hierarchy(
            {
                "task": {"id": 1, "title": ""},
                "sub_tasks": [{"task": {"id": 2, "title": "Child", "parent_id": 1}}],
            }
        )

        descriptors = project_forest([hierarchy], now_ms=NOW)

        assert [d.id for d in descriptors] == ["2"]
        assert descriptors[0].dependency_ids == []

    def test_missing_id_in_prebuilt_hierarchy_is_skipped(self):
        hierarchy = normalize_hierarchy(
            {"task": {"id": 1, "title": "Root"}, "sub_tasks": [{"task": {"title": "No id"}}]}
        )

        descriptors = project_forest([hierarchy], now_ms=NOW)

        assert [d.id for d in descriptors] == ["1"]
        # The root keeps its group kind, the child node exists in the tree
        assert descriptors[0].kind == "group"


class TestCollapse:
    """The expand/collapse flag is stored per descriptor."""

    def test_expand_flag_sets_hint(self, nested_tasks):
        expanded = project_raw(nested_tasks, expand=True)
        collapsed = project_raw(nested_tasks, expand=False)

        assert not any(d.collapse_hint for d in expanded)
        assert all(d.collapse_hint for d in collapsed)

    def test_toggle_keeps_windows(self, nested_tasks):
        expanded = project_raw(nested_tasks)

        collapsed = set_collapsed(expanded, True)

        assert all(d.collapse_hint for d in collapsed)
        assert [(d.start, d.end) for d in collapsed] == [(d.start, d.end) for d in expanded]
        assert not any(d.collapse_hint for d in expanded)


class TestTimelineBounds:
    def test_bounds_span_all_bars(self):
        descriptors = project_raw(
            [
                {"id": 1, "title": "A", "start_time": NOW, "due_date": NOW + 2 * ONE_DAY_MS},
                {"id": 2, "title": "B", "start_time": NOW - ONE_DAY_MS},
            ]
        )

        start, end, minutes = timeline_bounds(descriptors)

        assert start == NOW - ONE_DAY_MS
        assert end == NOW + 2 * ONE_DAY_MS
        assert minutes == 3 * 24 * 60

    def test_no_bars(self):
        assert timeline_bounds([]) == (None, None, 0)
