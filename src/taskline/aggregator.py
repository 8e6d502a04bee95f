"""
Render-pass Aggregator for Taskline.

Runs one complete pass from already-fetched task data to a Gantt
projection:

1. Normalizes raw task or hierarchy JSON into canonical records
2. Builds the forest (flat mode) or uses the pre-nested one (hierarchy mode)
3. Projects the forest onto the timeline
4. Calculates timeline bounds and task metrics
5. Returns an immutable, versioned GanttProjection

The aggregator performs no I/O. Callers fetch from the task API, hand the
payload in, and keep only the newest ``projection_version``.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from src.taskline.hierarchy import HierarchyBuilder, flatten
from src.taskline.normalize import normalize_hierarchies, normalize_tasks
from src.taskline.projection import GanttProjector, timeline_bounds
from src.taskline.stats import calculate_metrics
from src.taskline.store import ONE_DAY_MS, Diagnostic, GanttProjection, TaskHierarchy

logger = logging.getLogger(__name__)


class Aggregator:
    """
    Versioned render passes over task data.

    Parameters
    ----------
    default_duration_ms : int
        Bar length for tasks without a due date (default one day)
    """

    def __init__(self, default_duration_ms: int = ONE_DAY_MS):
        self.builder = HierarchyBuilder()
        self.projector = GanttProjector(default_duration_ms=default_duration_ms)
        self.projection_version_counter = 0

        logger.info(f"Initialized Aggregator with default duration {default_duration_ms}ms")

    def build_forest(
        self,
        tasks: Optional[List[Any]] = None,
        hierarchy: Any = None,
        diagnostics: Optional[List[Diagnostic]] = None,
    ) -> List[TaskHierarchy]:
        """
        Produce the forest for either input mode.

        Parameters
        ----------
        tasks : Optional[List[Any]]
            Flat task list as returned by ``GET /tasks``
        hierarchy : Any
            One pre-nested hierarchy object, or a list of them, as returned
            by ``GET /tasks/hierarchy/{id}``
        diagnostics : Optional[List[Diagnostic]]
            Receives findings from normalization and building

        Returns
        -------
        List[TaskHierarchy]
            Forest roots
        """
        if tasks is not None and hierarchy is not None:
            raise ValueError("Pass either a flat task list or a hierarchy, not both")

        if hierarchy is not None:
            forest = normalize_hierarchies(hierarchy, diagnostics)
            logger.info(f"Using {len(forest)} pre-built hierarchies")
            return forest

        normalized = normalize_tasks(tasks or [], diagnostics)
        forest = self.builder.build(normalized)
        if diagnostics is not None and self.builder.last_report:
            diagnostics.extend(self.builder.last_report.diagnostics)
        return forest

    def create_projection(
        self,
        tasks: Optional[List[Any]] = None,
        hierarchy: Any = None,
        expand: bool = True,
        now_ms: Optional[int] = None,
    ) -> GanttProjection:
        """
        Run a complete render pass.

        This is the main entry point for callers holding fresh task data.

        Parameters
        ----------
        tasks : Optional[List[Any]]
            Flat task list (client-side hierarchy building)
        hierarchy : Any
            Pre-nested hierarchy object(s) (server-side hierarchy building)
        expand : bool
            False folds every group on the rendered chart
        now_ms : Optional[int]
            Projection instant in epoch milliseconds (wall clock if omitted)

        Returns
        -------
        GanttProjection
            Versioned projection with bars, bounds, metrics and diagnostics
        """
        if tasks is not None and hierarchy is not None:
            raise ValueError("Pass either a flat task list or a hierarchy, not both")

        started = datetime.now(timezone.utc)
        if now_ms is None:
            now_ms = int(started.timestamp() * 1000)
        self.projection_version_counter += 1
        version = self.projection_version_counter
        source = "hierarchy" if hierarchy is not None else "flat"

        logger.info(f"Creating projection v{version}: source={source}, expand={expand}")

        # Step 1-2: Normalize and build the forest
        diagnostics: List[Diagnostic] = []
        forest = self.build_forest(tasks=tasks, hierarchy=hierarchy, diagnostics=diagnostics)

        # Step 3: Project onto the timeline
        descriptors = self.projector.project(forest, expand=expand, now_ms=now_ms)
        if self.projector.last_report:
            diagnostics.extend(self.projector.last_report.diagnostics)

        # Step 4: Bounds and metrics over the tasks that made it onto the chart
        start, end, duration_minutes = timeline_bounds(descriptors)
        projected_ids = {d.id for d in descriptors}
        projected_tasks = [t for t in flatten(forest) if t.id in projected_ids]
        metrics = calculate_metrics(projected_tasks, now_ms)

        projection = GanttProjection(
            projection_id=str(uuid.uuid4()),
            projection_version=version,
            timestamp=started,
            source=source,
            descriptors=descriptors,
            start=start,
            end=end,
            duration_minutes=duration_minutes,
            metrics=metrics,
            diagnostics=diagnostics,
        )

        elapsed_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
        logger.info(
            f"Projection v{version} created in {elapsed_ms:.1f}ms: "
            f"{len(descriptors)} bars, {len(diagnostics)} diagnostics"
        )
        return projection

    def is_current(self, projection_version: int) -> bool:
        """True when no newer projection has been created since this one."""
        return projection_version == self.projection_version_counter
