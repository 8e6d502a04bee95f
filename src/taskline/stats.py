"""
Dashboard and task-list helpers for Taskline.

Counters and filters computed over normalized tasks. All functions are
pure and accept any iterable of ``Task``.
"""

from typing import Any, Dict, Iterable, List, Optional

from src.taskline.normalize import normalize_id
from src.taskline.store import Task, TaskMetrics


def is_overdue(task: Task, now_ms: int) -> bool:
    """True when the task has a due date earlier than ``now_ms``."""
    return task.due_date is not None and task.due_date < now_ms


def calculate_metrics(tasks: Iterable[Task], now_ms: int) -> TaskMetrics:
    """Calculate task counters."""
    tasks = list(tasks)
    total_tasks = len(tasks)
    completed_tasks = len([t for t in tasks if t.status == "DONE"])
    in_progress_tasks = len([t for t in tasks if t.status == "IN_PROGRESS"])
    blocked_tasks = len([t for t in tasks if t.status == "BLOCKED"])
    todo_tasks = len([t for t in tasks if t.status == "TODO"])
    completion_rate = completed_tasks / total_tasks if total_tasks > 0 else 0.0
    average_progress = (
        sum(t.progress for t in tasks) / total_tasks if total_tasks > 0 else 0.0
    )

    return TaskMetrics(
        total_tasks=total_tasks,
        completed_tasks=completed_tasks,
        in_progress_tasks=in_progress_tasks,
        blocked_tasks=blocked_tasks,
        todo_tasks=todo_tasks,
        completion_rate=completion_rate,
        overdue_tasks=len([t for t in tasks if is_overdue(t, now_ms)]),
        average_progress=average_progress,
    )


def _count_by(tasks: Iterable[Task], attr: str) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for task in tasks:
        key = getattr(task, attr)
        counts[key] = counts.get(key, 0) + 1
    return [{attr: key, "count": count} for key, count in counts.items()]


def count_by_status(tasks: Iterable[Task]) -> List[Dict[str, Any]]:
    """``[{"status": ..., "count": ...}]`` in first-seen order."""
    return _count_by(tasks, "status")


def count_by_type(tasks: Iterable[Task]) -> List[Dict[str, Any]]:
    """``[{"type": ..., "count": ...}]`` in first-seen order."""
    return _count_by(tasks, "type")


def tasks_for_assignee(tasks: Iterable[Task], assignee_id: Any) -> List[Task]:
    target = normalize_id(assignee_id)
    if target is None:
        return []
    return [t for t in tasks if t.assignee_id == target]


def filter_tasks(
    tasks: Iterable[Task],
    search: Optional[str] = None,
    assignee_id: Any = None,
    parent_id: Any = None,
) -> List[Task]:
    """
    Filter the task list the way the list view does.

    Parameters
    ----------
    tasks : Iterable[Task]
        Tasks to filter
    search : Optional[str]
        Case-insensitive substring matched against title or description
    assignee_id : Any
        Keep only tasks assigned to this user
    parent_id : Any
        Keep only direct children of this task

    Returns
    -------
    List[Task]
        Tasks matching every supplied criterion, input order kept
    """
    needle = search.strip().lower() if search else ""
    assignee = normalize_id(assignee_id)
    parent = normalize_id(parent_id)

    result = []
    for task in tasks:
        if needle and needle not in task.title.lower() and needle not in task.description.lower():
            continue
        if assignee and task.assignee_id != assignee:
            continue
        if parent and task.parent_id != parent:
            continue
        result.append(task)
    return result
