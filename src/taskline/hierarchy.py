"""
Hierarchy Builder for Taskline.

Turns the flat, parent-linked task list returned by the task API into a
forest of ``TaskHierarchy`` nodes:

1. Index tasks by id (first-seen wins on duplicate ids)
2. Collect direct children per parent in discovery order
3. Promote tasks whose parent is missing to roots (orphan promotion)
4. Attach descendants with an explicit stack, cutting cycle back-edges
5. Promote one member of every remaining pure cycle so no task is lost

Everything is a pure function of the input; nothing here performs I/O.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from src.taskline.normalize import normalize_id
from src.taskline.store import Diagnostic, Task, TaskHierarchy

logger = logging.getLogger(__name__)


@dataclass
class HierarchyReport:
    """Counters and findings from one ``HierarchyBuilder.build`` call."""

    total_tasks: int = 0
    roots: int = 0
    placed: int = 0
    orphans_promoted: int = 0
    cycles_broken: int = 0
    duplicates_ignored: int = 0
    malformed_skipped: int = 0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(vars(self))
        data["diagnostics"] = [vars(d) for d in self.diagnostics]
        return data


class HierarchyBuilder:
    """
    Build task forests from flat task lists.

    Duplicate ids are resolved first-seen-wins: later records with an id
    already indexed are dropped and reported.
    """

    def __init__(self) -> None:
        self.last_report: Optional[HierarchyReport] = None

    def build(self, tasks: Iterable[Task]) -> List[TaskHierarchy]:
        """
        Build the forest of root tasks and their nested descendants.

        Parameters
        ----------
        tasks : Iterable[Task]
            Normalized tasks in discovery order

        Returns
        -------
        List[TaskHierarchy]
            Root nodes in discovery order; siblings keep discovery order
        """
        report = HierarchyReport()
        self.last_report = report

        # Step 1: Index by id
        tasks_by_id: Dict[str, Task] = {}
        order: Dict[str, int] = {}
        for task in tasks:
            report.total_tasks += 1
            if not task.id:
                report.malformed_skipped += 1
                logger.warning(f"Skipping task without id: title={task.title!r}")
                report.diagnostics.append(
                    Diagnostic("malformed", None, f"task {task.title!r} has no id")
                )
                continue
            if task.id in tasks_by_id:
                report.duplicates_ignored += 1
                logger.warning(f"Duplicate task id {task.id}, keeping first occurrence")
                report.diagnostics.append(
                    Diagnostic("duplicate_id", task.id, "duplicate id ignored")
                )
                continue
            tasks_by_id[task.id] = task
            order[task.id] = len(order)

        # Steps 2-3: Children map and natural roots
        children: Dict[str, List[str]] = defaultdict(list)
        root_ids: List[str] = []
        for task_id, task in tasks_by_id.items():
            parent_id = task.parent_id
            if parent_id is None:
                root_ids.append(task_id)
            elif parent_id not in tasks_by_id:
                report.orphans_promoted += 1
                logger.info(f"Task {task_id}: parent {parent_id} not found, promoting to root")
                report.diagnostics.append(
                    Diagnostic(
                        "orphan_promoted",
                        task_id,
                        f"parent {parent_id} not found, treated as root",
                    )
                )
                root_ids.append(task_id)
            else:
                children[parent_id].append(task_id)

        # Step 4: Attach descendants
        placed: Set[str] = set()
        roots: List[TaskHierarchy] = [
            self._attach(root_id, tasks_by_id, children, placed, report)
            for root_id in root_ids
        ]

        # Step 5: Whatever is left hangs off a cycle with no natural root
        for task_id in tasks_by_id:
            if task_id in placed:
                continue
            cycle_root = self._pick_cycle_root(task_id, tasks_by_id, placed, order)
            logger.warning(f"Task {cycle_root} is part of a parent cycle, promoting to root")
            roots.append(self._attach(cycle_root, tasks_by_id, children, placed, report))

        roots.sort(key=lambda node: order[node.task.id])

        report.roots = len(roots)
        report.placed = len(placed)
        logger.info(
            f"Built hierarchy: {report.roots} roots, {report.placed}/{report.total_tasks} tasks placed, "
            f"{report.orphans_promoted} orphans promoted, {report.cycles_broken} cycles broken"
        )
        return roots

    def _attach(
        self,
        root_id: str,
        tasks_by_id: Dict[str, Task],
        children: Dict[str, List[str]],
        placed: Set[str],
        report: HierarchyReport,
    ) -> TaskHierarchy:
        """Attach the subtree under ``root_id`` using an explicit stack."""
        root = TaskHierarchy(task=tasks_by_id[root_id])
        placed.add(root_id)
        stack = [root]
        while stack:
            node = stack.pop()
            for child_id in children.get(node.task.id, []):
                if child_id in placed:
                    # Only reachable through a parent cycle
                    report.cycles_broken += 1
                    logger.warning(
                        f"Cycle detected: task {child_id} is an ancestor of {node.task.id}, "
                        f"stopping descent"
                    )
                    report.diagnostics.append(
                        Diagnostic(
                            "cycle_broken",
                            child_id,
                            f"link {child_id} -> parent {node.task.id} closes a cycle",
                        )
                    )
                    continue
                placed.add(child_id)
                child = TaskHierarchy(task=tasks_by_id[child_id])
                node.sub_tasks.append(child)
                stack.append(child)
        return root

    @staticmethod
    def _pick_cycle_root(
        start_id: str,
        tasks_by_id: Dict[str, Task],
        placed: Set[str],
        order: Dict[str, int],
    ) -> str:
        """
        Walk parent links from an unplaced task until they loop.

        Unplaced tasks only have unplaced ancestors, so the walk always ends
        on a cycle. The cycle member seen first in the input becomes root.
        """
        walk: List[str] = []
        seen: Set[str] = set()
        current = start_id
        while current not in seen:
            seen.add(current)
            walk.append(current)
            parent_id = tasks_by_id[current].parent_id
            if parent_id is None or parent_id not in tasks_by_id or parent_id in placed:
                return current
            current = parent_id
        cycle = walk[walk.index(current):]
        return min(cycle, key=lambda task_id: order[task_id])


def build_hierarchy(tasks: Iterable[Task]) -> List[TaskHierarchy]:
    """Build a forest with a throwaway builder."""
    return HierarchyBuilder().build(tasks)


def flatten(forest: Iterable[TaskHierarchy]) -> List[Task]:
    """Pre-order list of every task in the forest."""
    result: List[Task] = []
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        result.append(node.task)
        stack.extend(reversed(node.sub_tasks))
    return result


def subtasks_of(tasks: Iterable[Task], task_id: Any) -> List[Task]:
    """Direct children of a task, in discovery order."""
    target = normalize_id(task_id)
    return [t for t in tasks if t.parent_id == target and t.id != target]


def parent_of(tasks: Iterable[Task], task_id: Any) -> Optional[Task]:
    """The resolved parent of a task, or None for roots and orphans."""
    target = normalize_id(task_id)
    tasks_by_id: Dict[str, Task] = {}
    for task in tasks:
        if task.id and task.id not in tasks_by_id:
            tasks_by_id[task.id] = task
    task = tasks_by_id.get(target) if target else None
    if task is None or task.parent_id is None:
        return None
    return tasks_by_id.get(task.parent_id)


def hierarchy_for(tasks: Iterable[Task], task_id: Any) -> Optional[TaskHierarchy]:
    """
    The subtree rooted at one task.

    Built from the full forest so cycle handling and orphan promotion match
    what the Gantt view shows.
    """
    target = normalize_id(task_id)
    if target is None:
        return None
    stack = list(build_hierarchy(tasks))
    while stack:
        node = stack.pop()
        if node.task.id == target:
            return node
        stack.extend(node.sub_tasks)
    return None


def descendant_ids(tasks: Iterable[Task], task_id: Any) -> List[str]:
    """Ids of every task below ``task_id``, breadth first."""
    target = normalize_id(task_id)
    children: Dict[str, List[str]] = defaultdict(list)
    for task in tasks:
        if task.id and task.parent_id:
            children[task.parent_id].append(task.id)

    result: List[str] = []
    seen: Set[str] = {target} if target else set()
    queue = list(children.get(target, [])) if target else []
    while queue:
        current = queue.pop(0)
        if current in seen:
            continue
        seen.add(current)
        result.append(current)
        queue.extend(children.get(current, []))
    return result


def eligible_parents(tasks: Iterable[Task], task_id: Any = None) -> List[Task]:
    """
    Tasks that may become the parent of ``task_id``.

    Excludes the task itself and all of its descendants, so a re-parent
    chosen from this list can never introduce a cycle. With no ``task_id``
    (a task being created) every well-formed task is eligible.
    """
    tasks = list(tasks)
    target = normalize_id(task_id)
    excluded = set(descendant_ids(tasks, target)) if target else set()
    if target:
        excluded.add(target)
    return [t for t in tasks if t.is_well_formed() and t.id not in excluded]
