"""
Data Models for Taskline.

This module defines the canonical task representation handed to the
hierarchy builder, the transient hierarchy node, and the render-ready
Gantt structures produced by the projection.

Key principles:
- ALL timestamps are epoch milliseconds in UTC (ints)
- ALL ids are strings (numeric wire ids are stringified by the adapter)
- Hierarchy nodes are derived per render pass and never persisted
- Projection fallbacks (default windows) never touch the Task record
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

ONE_DAY_MS = 24 * 60 * 60 * 1000

DEFAULT_STATUS = "TODO"
DEFAULT_TYPE = "TASK"
DEFAULT_PRIORITY = "MEDIUM"


def clamp_progress(value: Any) -> int:
    """Clamp a raw progress value into 0-100, non-numeric values and NaN become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    return int(max(0.0, min(100.0, number)))


@dataclass
class Task:
    """
    Canonical task record.

    Produced by the normalization adapter from any accepted wire shape.

    Parameters
    ----------
    id : Optional[str]
        Unique task identifier (None only for malformed input)
    title : str
        Display label (blank only for malformed input)
    description : str
        Free text, inert to scheduling
    type : str
        Category tag, upper-cased (open enumeration)
    status : str
        Workflow state, upper-cased (open enumeration)
    priority : str
        One of LOW, MEDIUM, HIGH, CRITICAL (others fall back to neutral colors)
    assignee_id : Optional[str]
        Assigned user, None means unassigned
    parent_id : Optional[str]
        Parent task, None means root
    start_time : Optional[int]
        Start instant in epoch milliseconds
    due_date : Optional[int]
        Due instant in epoch milliseconds
    progress : int
        0-100 completion percentage
    estimated_hours : float
        Non-negative effort estimate
    """

    id: Optional[str]
    title: str
    description: str = ""
    type: str = DEFAULT_TYPE
    status: str = DEFAULT_STATUS
    priority: str = DEFAULT_PRIORITY
    assignee_id: Optional[str] = None
    parent_id: Optional[str] = None
    start_time: Optional[int] = None
    due_date: Optional[int] = None
    progress: int = 0
    estimated_hours: float = 0.0
    user_id: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def __post_init__(self) -> None:
        """Keep progress inside 0-100 no matter who built the record."""
        self.progress = clamp_progress(self.progress)

    def is_well_formed(self) -> bool:
        """True when the task has an id and a non-blank title."""
        return bool(self.id) and bool(self.title and self.title.strip())

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


@dataclass
class TaskHierarchy:
    """A task plus its ordered children. Built transiently per render pass."""

    task: Task
    sub_tasks: List["TaskHierarchy"] = field(default_factory=list)

    @property
    def has_children(self) -> bool:
        return bool(self.sub_tasks)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the subtree to the nested wire shape.

        Iterative so that deep chains never hit the recursion limit.
        """
        root = {"task": self.task.to_dict(), "sub_tasks": []}
        stack = [(self, root)]
        while stack:
            node, out = stack.pop()
            for child in node.sub_tasks:
                child_out = {"task": child.task.to_dict(), "sub_tasks": []}
                out["sub_tasks"].append(child_out)
                stack.append((child, child_out))
        return root


@dataclass
class Diagnostic:
    """
    Data-quality finding recorded while building or projecting.

    Parameters
    ----------
    kind : str
        One of: 'malformed', 'duplicate_id', 'orphan_promoted',
        'cycle_broken', 'unparseable_value', 'window_clamped'
    task_id : Optional[str]
        Task the finding is about, if it has an id
    message : str
        Human readable description
    """

    kind: str
    task_id: Optional[str]
    message: str


@dataclass
class GanttDescriptor:
    """
    One bar on the timeline.

    Parameters
    ----------
    id : str
        Task id
    label : str
        Bar label (task title)
    start : int
        Resolved start, epoch milliseconds
    end : int
        Resolved end, epoch milliseconds (never before start)
    progress : int
        0-100 completion percentage
    dependency_ids : List[str]
        Direct parent's id when the parent was projected, else empty
    kind : str
        'group' when the node has children, else 'leaf'
    collapse_hint : bool
        True when descendants should render folded
    """

    id: str
    label: str
    start: int
    end: int
    progress: int
    dependency_ids: List[str] = field(default_factory=list)
    kind: Literal["group", "leaf"] = "leaf"
    collapse_hint: bool = False

    # Placement
    depth: int = 0
    parent_id: Optional[str] = None

    # Visual attributes (derived from the task, no hidden state)
    priority: str = DEFAULT_PRIORITY
    status: str = DEFAULT_STATUS
    type: str = DEFAULT_TYPE
    bar_color: str = ""
    progress_color: str = ""
    overdue: bool = False

    def __post_init__(self) -> None:
        """Validate scheduling invariants."""
        if self.end < self.start:
            raise ValueError(f"Descriptor {self.id}: end precedes start")
        if not 0 <= self.progress <= 100:
            raise ValueError(f"Descriptor {self.id}: progress out of range")
        if self.kind not in ("group", "leaf"):
            raise ValueError(f"Descriptor {self.id}: unknown kind {self.kind!r}")

    @property
    def duration_ms(self) -> int:
        return self.end - self.start

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


@dataclass
class TaskMetrics:
    """
    Pre-calculated task counters for dashboards.

    All rates are 0.0-1.0 floats.
    """

    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    blocked_tasks: int
    todo_tasks: int
    completion_rate: float
    overdue_tasks: int
    average_progress: float


@dataclass
class GanttProjection:
    """
    Immutable result of one render pass.

    Parameters
    ----------
    projection_id : str
        Unique projection identifier
    projection_version : int
        Incrementing version; a caller keeps only the newest one
    timestamp : datetime
        Projection instant (timezone-aware UTC)
    source : str
        'flat' when the forest was built here, 'hierarchy' when pre-nested
    descriptors : List[GanttDescriptor]
        Bars in pre-order
    start : Optional[int]
        Earliest bar start, epoch milliseconds
    end : Optional[int]
        Latest bar end, epoch milliseconds
    duration_minutes : int
        Span between start and end
    metrics : Optional[TaskMetrics]
        Counters over the projected tasks
    diagnostics : List[Diagnostic]
        Everything skipped or repaired during the pass
    """

    projection_id: str
    projection_version: int
    timestamp: datetime
    source: Literal["flat", "hierarchy"] = "flat"
    descriptors: List[GanttDescriptor] = field(default_factory=list)
    start: Optional[int] = None
    end: Optional[int] = None
    duration_minutes: int = 0
    metrics: Optional[TaskMetrics] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValueError("Projection timestamp must be timezone-aware")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert projection to JSON-serializable dictionary.

        Returns
        -------
        dict
            JSON-serializable representation
        """
        return {
            "projection_id": self.projection_id,
            "projection_version": self.projection_version,
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
            "source": self.source,
            "descriptors": [d.to_dict() for d in self.descriptors],
            "start": self.start,
            "end": self.end,
            "duration_minutes": self.duration_minutes,
            "metrics": vars(self.metrics) if self.metrics else None,
            "diagnostics": [vars(d) for d in self.diagnostics],
            "timezone": self.timezone,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
