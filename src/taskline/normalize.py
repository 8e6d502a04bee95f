"""
Wire-shape adapter for Taskline.

The task API has shipped several record shapes over time: numeric or
string ids, ISO-8601 strings or epoch numbers for dates, lower or upper
case enumerations. Everything in this module converts those shapes into
the canonical ``Task``/``TaskHierarchy`` records so that the hierarchy
builder and the projection never branch on wire variants.

Nothing here raises on bad data. Unusable values are logged, recorded as
diagnostics when a list is supplied, and replaced by their defaults.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from src.taskline.store import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_TYPE,
    Diagnostic,
    Task,
    TaskHierarchy,
    clamp_progress,
)

logger = logging.getLogger(__name__)

# Epoch values above this are already milliseconds (year 1973 in ms, year 5138 in s)
MILLIS_THRESHOLD = 100_000_000_000

# Go trims trailing zeros and serializes up to nanoseconds; fromisoformat
# on older interpreters only takes exactly three or six fraction digits
_FRACTION_PATTERN = re.compile(r"\.(\d+)")

CHILD_KEYS = ("sub_tasks", "subTasks", "children")


def _record(
    diagnostics: Optional[List[Diagnostic]],
    kind: str,
    task_id: Optional[str],
    message: str,
) -> None:
    if diagnostics is not None:
        diagnostics.append(Diagnostic(kind=kind, task_id=task_id, message=message))


def normalize_id(value: Any) -> Optional[str]:
    """Stringify an id; None, blank strings and booleans mean absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _epoch_to_millis(number: float) -> Optional[int]:
    if not math.isfinite(number) or number == 0:
        return None
    if abs(number) > MILLIS_THRESHOLD:
        return int(number)
    return int(number * 1000)


def _microsecond_fraction(match: "re.Match") -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def _datetime_to_millis(dt: datetime) -> Optional[int]:
    if dt.tzinfo is None:
        # Naive timestamps are treated as UTC
        dt = dt.replace(tzinfo=timezone.utc)
    if dt.year <= 1:
        # Go zero time, sent for unset non-null pointers
        return None
    return int(dt.timestamp() * 1000)


def normalize_timestamp(
    value: Any,
    field_name: str = "timestamp",
    task_id: Optional[str] = None,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> Optional[int]:
    """
    Convert any accepted timestamp shape to epoch milliseconds.

    Parameters
    ----------
    value : Any
        Epoch seconds, epoch milliseconds, numeric string, ISO-8601 string
        or datetime. Zero and empty values mean absent.
    field_name : str
        Field being parsed (for log messages)
    task_id : Optional[str]
        Owning task (for log messages)
    diagnostics : Optional[List[Diagnostic]]
        Receives an 'unparseable_value' entry on failure

    Returns
    -------
    Optional[int]
        Epoch milliseconds in UTC, or None
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _datetime_to_millis(value)

    if isinstance(value, (int, float)):
        return _epoch_to_millis(float(value))

    if isinstance(value, str):
        text = value.strip()
        try:
            return _epoch_to_millis(float(text))
        except ValueError:
            pass
        try:
            text = _FRACTION_PATTERN.sub(_microsecond_fraction, text.replace("Z", "+00:00"))
            return _datetime_to_millis(datetime.fromisoformat(text))
        except ValueError as e:
            logger.warning(f"Task {task_id}: failed to parse {field_name}={value!r}: {e}")
            _record(
                diagnostics,
                "unparseable_value",
                task_id,
                f"{field_name} {value!r} is not a timestamp",
            )
            return None

    logger.warning(f"Task {task_id}: unsupported {field_name} type {type(value).__name__}")
    _record(
        diagnostics,
        "unparseable_value",
        task_id,
        f"{field_name} has unsupported type {type(value).__name__}",
    )
    return None


def _normalize_label(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip().upper()
    return text or default


def _normalize_hours(value: Any) -> float:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return 0.0
    return hours if hours > 0 else 0.0


def normalize_task(
    raw: Dict[str, Any],
    diagnostics: Optional[List[Diagnostic]] = None,
) -> Task:
    """
    Convert one wire task object into a canonical Task.

    Missing id or title is kept as-is (None / ""); callers decide whether a
    malformed task is skipped.
    """
    task_id = normalize_id(raw.get("id"))

    title = raw.get("title")
    if title is None:
        # Older payloads used "name"
        title = raw.get("name")

    start_time = normalize_timestamp(raw.get("start_time"), "start_time", task_id, diagnostics)
    due_date = normalize_timestamp(raw.get("due_date"), "due_date", task_id, diagnostics)

    return Task(
        id=task_id,
        title="" if title is None else str(title),
        description=str(raw.get("description") or ""),
        type=_normalize_label(raw.get("type"), DEFAULT_TYPE),
        status=_normalize_label(raw.get("status"), DEFAULT_STATUS),
        priority=_normalize_label(raw.get("priority"), DEFAULT_PRIORITY),
        assignee_id=normalize_id(raw.get("assignee_id")),
        parent_id=normalize_id(raw.get("parent_id")),
        start_time=start_time,
        due_date=due_date,
        progress=clamp_progress(raw.get("progress", 0)),
        estimated_hours=_normalize_hours(raw.get("estimated_hours")),
        user_id=normalize_id(raw.get("user_id")),
        created_at=normalize_timestamp(raw.get("created_at"), "created_at", task_id),
        updated_at=normalize_timestamp(raw.get("updated_at"), "updated_at", task_id),
    )


def normalize_tasks(
    raws: Iterable[Any],
    diagnostics: Optional[List[Diagnostic]] = None,
) -> List[Task]:
    """Normalize a flat task list, skipping entries that are not objects."""
    tasks: List[Task] = []
    skipped = 0
    for index, raw in enumerate(raws):
        if isinstance(raw, Task):
            tasks.append(raw)
            continue
        if not isinstance(raw, dict):
            skipped += 1
            logger.warning(f"Skipping task entry {index}: expected object, got {type(raw).__name__}")
            _record(diagnostics, "malformed", None, f"entry {index} is not an object")
            continue
        tasks.append(normalize_task(raw, diagnostics))

    logger.info(f"Normalized {len(tasks)} tasks ({skipped} non-object entries skipped)")
    return tasks


def _children_of(raw: Dict[str, Any]) -> List[Any]:
    for key in CHILD_KEYS:
        children = raw.get(key)
        if children:
            return children if isinstance(children, list) else []
    return []


def normalize_hierarchy(
    raw: Any,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> Optional[TaskHierarchy]:
    """
    Convert a pre-nested hierarchy object into a TaskHierarchy.

    Accepts the task service shape ``{"task": {...}, "sub_tasks": [...]}``
    and the bare shape where task fields sit next to the children list.
    Children that are not objects are skipped. Returns None when ``raw``
    itself is unusable.
    """
    if not isinstance(raw, dict):
        logger.warning(f"Skipping hierarchy: expected object, got {type(raw).__name__}")
        _record(diagnostics, "malformed", None, "hierarchy root is not an object")
        return None

    def to_node(item: Dict[str, Any]) -> TaskHierarchy:
        task_data = item.get("task") if isinstance(item.get("task"), dict) else item
        return TaskHierarchy(task=normalize_task(task_data, diagnostics))

    root = to_node(raw)
    stack = [(raw, root)]
    while stack:
        item, node = stack.pop()
        for child in _children_of(item):
            if not isinstance(child, dict):
                logger.warning(f"Skipping non-object child under task {node.task.id}")
                _record(diagnostics, "malformed", node.task.id, "child entry is not an object")
                continue
            child_node = to_node(child)
            node.sub_tasks.append(child_node)
            stack.append((child, child_node))
    return root


def normalize_hierarchies(
    raw: Any,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> List[TaskHierarchy]:
    """Normalize one hierarchy object or a list of them into a forest."""
    items = raw if isinstance(raw, list) else [raw]
    forest = []
    for item in items:
        node = normalize_hierarchy(item, diagnostics)
        if node is not None:
            forest.append(node)
    return forest
