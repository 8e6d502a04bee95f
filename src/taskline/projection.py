"""
Gantt Projection for Taskline.

Flattens a task forest into render-ready timeline bars:

1. Depth-first, pre-order walk (parents always precede descendants)
2. Default time windows for tasks without schedule data
3. Progress clamping and priority-driven colors
4. Malformed nodes skipped with a warning, never fatal

The default windows are presentation fallbacks only; the Task records are
never modified.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from src.taskline.store import (
    ONE_DAY_MS,
    Diagnostic,
    GanttDescriptor,
    Task,
    TaskHierarchy,
    clamp_progress,
)

logger = logging.getLogger(__name__)

NEUTRAL_BAR_COLOR = "#e0e0e0"
NEUTRAL_PROGRESS_COLOR = "#757575"

# priority -> (bar color, progress color)
PRIORITY_PALETTE: Dict[str, Tuple[str, str]] = {
    "LOW": ("#cfd8dc", "#78909c"),  # neutral
    "MEDIUM": ("#efebe9", "#a1887f"),  # warm neutral
    "HIGH": ("#ffe0b2", "#ffa000"),  # amber
    "CRITICAL": ("#ffcdd2", "#e53935"),  # red
}


def priority_colors(priority: Optional[str]) -> Tuple[str, str]:
    """
    Map a priority to its (bar, progress) colors.

    Parameters
    ----------
    priority : Optional[str]
        Priority label, any case

    Returns
    -------
    tuple
        (bar_color, progress_color); neutral colors for unknown priorities
    """
    if not priority:
        return NEUTRAL_BAR_COLOR, NEUTRAL_PROGRESS_COLOR
    return PRIORITY_PALETTE.get(
        str(priority).strip().upper(), (NEUTRAL_BAR_COLOR, NEUTRAL_PROGRESS_COLOR)
    )


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class ProjectionReport:
    """Counters and findings from one ``GanttProjector.project`` call."""

    projected: int = 0
    skipped_malformed: int = 0
    default_starts: int = 0
    default_ends: int = 0
    clamped_windows: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)


class GanttProjector:
    """
    Project task forests onto a timeline.

    Parameters
    ----------
    default_duration_ms : int
        Bar length used when a task has no due date (default one day)
    """

    def __init__(self, default_duration_ms: int = ONE_DAY_MS):
        if default_duration_ms <= 0:
            raise ValueError("default_duration_ms must be positive")
        self.default_duration_ms = default_duration_ms
        self.last_report: Optional[ProjectionReport] = None

    def project(
        self,
        forest: Iterable[TaskHierarchy],
        expand: bool = True,
        now_ms: Optional[int] = None,
    ) -> List[GanttDescriptor]:
        """
        Flatten a forest into descriptors in pre-order.

        Parameters
        ----------
        forest : Iterable[TaskHierarchy]
            Root nodes, either built locally or received pre-nested
        expand : bool
            False marks every descriptor as collapsed
        now_ms : Optional[int]
            Projection instant in epoch milliseconds; read from the wall
            clock once per call when omitted

        Returns
        -------
        List[GanttDescriptor]
            One descriptor per well-formed node
        """
        report = ProjectionReport()
        self.last_report = report
        if now_ms is None:
            now_ms = now_millis()

        descriptors: List[GanttDescriptor] = []

        # (node, depth, id of the direct parent when it was emitted)
        stack: List[Tuple[TaskHierarchy, int, Optional[str]]] = [
            (root, 0, None) for root in reversed(list(forest))
        ]
        while stack:
            node, depth, emitted_parent_id = stack.pop()
            task = node.task

            if task.is_well_formed():
                descriptors.append(
                    self._describe(node, depth, emitted_parent_id, expand, now_ms, report)
                )
                child_parent_id: Optional[str] = task.id
            else:
                report.skipped_malformed += 1
                logger.warning(
                    f"Skipping malformed task in projection: id={task.id!r}, title={task.title!r}"
                )
                report.diagnostics.append(
                    Diagnostic("malformed", task.id, "task is missing an id or title")
                )
                child_parent_id = None

            for child in reversed(node.sub_tasks):
                stack.append((child, depth + 1, child_parent_id))

        report.projected = len(descriptors)
        logger.info(
            f"Projected {report.projected} bars ({report.skipped_malformed} malformed skipped, "
            f"{report.default_starts} default starts, {report.default_ends} default ends)"
        )
        return descriptors

    def _resolve_window(
        self, task: Task, now_ms: int, report: ProjectionReport
    ) -> Tuple[int, int]:
        """Resolve (start, end) applying the default-window policy."""
        if task.start_time is not None:
            start = task.start_time
        else:
            start = now_ms
            report.default_starts += 1
            logger.debug(f"Task {task.id}: no start_time, using projection time")

        if task.due_date is None:
            end = start + self.default_duration_ms
            report.default_ends += 1
            logger.debug(f"Task {task.id}: no due_date, using default duration")
        elif task.due_date < start:
            end = start
            report.clamped_windows += 1
            logger.debug(f"Task {task.id}: due_date precedes start, clamping end to start")
            report.diagnostics.append(
                Diagnostic("window_clamped", task.id, "due date precedes start")
            )
        else:
            end = task.due_date
        return start, end

    def _describe(
        self,
        node: TaskHierarchy,
        depth: int,
        parent_id: Optional[str],
        expand: bool,
        now_ms: int,
        report: ProjectionReport,
    ) -> GanttDescriptor:
        task = node.task
        start, end = self._resolve_window(task, now_ms, report)
        bar_color, progress_color = priority_colors(task.priority)

        return GanttDescriptor(
            id=task.id,
            label=task.title,
            start=start,
            end=end,
            progress=clamp_progress(task.progress),
            dependency_ids=[parent_id] if parent_id else [],
            kind="group" if node.has_children else "leaf",
            collapse_hint=not expand,
            depth=depth,
            parent_id=parent_id,
            priority=task.priority,
            status=task.status,
            type=task.type,
            bar_color=bar_color,
            progress_color=progress_color,
            overdue=task.due_date is not None and task.due_date < now_ms,
        )


def project_forest(
    forest: Iterable[TaskHierarchy],
    expand: bool = True,
    now_ms: Optional[int] = None,
    default_duration_ms: int = ONE_DAY_MS,
) -> List[GanttDescriptor]:
    """Project a forest with a throwaway projector."""
    return GanttProjector(default_duration_ms).project(forest, expand=expand, now_ms=now_ms)


def set_collapsed(
    descriptors: Iterable[GanttDescriptor], collapsed: bool
) -> List[GanttDescriptor]:
    """Copies of the descriptors with a new collapse hint, windows untouched."""
    return [
        replace(d, collapse_hint=collapsed, dependency_ids=list(d.dependency_ids))
        for d in descriptors
    ]


def timeline_bounds(descriptors: Iterable[GanttDescriptor]) -> Tuple[Optional[int], Optional[int], int]:
    """
    Timeline boundaries over all bars.

    Returns
    -------
    tuple
        (start, end, duration_minutes); (None, None, 0) for no bars
    """
    descriptors = list(descriptors)
    if not descriptors:
        return None, None, 0
    start = min(d.start for d in descriptors)
    end = max(d.end for d in descriptors)
    return start, end, int((end - start) / 60_000)

