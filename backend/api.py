"""
FastAPI backend for the Taskline Gantt view.

Serves hierarchy and Gantt projections over task data the caller already
fetched from the task API. Supports CORS for local development.
"""

import copy
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Ensure we import from the local Taskline src directory, not elsewhere
taskline_root = Path(__file__).parent.parent
if str(taskline_root) not in sys.path:
    sys.path.insert(0, str(taskline_root))

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from src.taskline.aggregator import Aggregator
from src.taskline.hierarchy import (
    descendant_ids,
    eligible_parents,
    hierarchy_for,
    parent_of,
    subtasks_of,
)
from src.taskline.normalize import normalize_tasks
from src.taskline.projection import now_millis
from src.taskline.stats import (
    calculate_metrics,
    count_by_status,
    count_by_type,
    filter_tasks,
    tasks_for_assignee,
)
from src.taskline.store import Task

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "backend": {"port": 4301},
    "default_task_duration_hours": 24,
    "expand_by_default": True,
    "cors_origin_regex": r"http://(localhost|127\.0\.0\.1):\d+",
}


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load config.json, falling back to defaults for anything missing.

    Parameters
    ----------
    config_path : Path
        Location of config.json

    Returns
    -------
    dict
        Merged configuration
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    try:
        with open(config_path, "r") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError("top-level value must be an object")
        backend = loaded.pop("backend", None)
        if isinstance(backend, dict):
            config["backend"].update(backend)
        config.update(loaded)
        logger.info(f"Loaded config from {config_path}")
    except Exception as e:
        logger.warning(f"Could not load {config_path}: {e}, using defaults")
    return config


config = load_config(taskline_root / "config.json")

# Initialize FastAPI app
app = FastAPI(
    title="Taskline API",
    description="Task hierarchy and Gantt projection service",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=config["cors_origin_regex"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

aggregator = Aggregator(
    default_duration_ms=int(float(config["default_task_duration_hours"]) * 60 * 60 * 1000)
)


class TaskListRequest(BaseModel):
    tasks: List[Dict[str, Any]] = Field(default_factory=list)


class GanttRequest(BaseModel):
    tasks: Optional[List[Dict[str, Any]]] = None
    hierarchy: Optional[Any] = None


class TaskFilterRequest(TaskListRequest):
    search: Optional[str] = None
    assignee_id: Optional[Any] = None
    parent_id: Optional[Any] = None


@app.get("/")  # type: ignore[misc]
async def root() -> Dict[str, Any]:
    """
    Root endpoint with API information.

    Returns
    -------
    dict
        API information and status
    """
    return {
        "name": "Taskline API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "/api/gantt": "Project tasks or hierarchies onto the timeline",
            "/api/hierarchy": "Build the task forest from a flat list",
            "/api/metrics": "Task counters for dashboards",
            "/api/tasks/{task_id}/subtasks": "Direct children of a task",
            "/api/tasks/{task_id}/parent": "Resolved parent of a task",
            "/api/tasks/{task_id}/hierarchy": "Subtree rooted at a task",
            "/api/tasks/{task_id}/descendants": "Ids of every task below a task",
            "/api/tasks/{task_id}/eligible-parents": "Cycle-free parent choices",
            "/api/assignees/{assignee_id}/tasks": "Tasks assigned to a user",
            "/api/tasks/search": "Filter tasks by text, assignee and parent",
            "/health": "Health check",
        },
    }


@app.get("/health")  # type: ignore[misc]
async def health() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/api/hierarchy")  # type: ignore[misc]
async def post_hierarchy(request: TaskListRequest) -> Dict[str, Any]:
    """
    Build the task forest from a flat task list.

    Returns
    -------
    dict
        ``hierarchy``: nested ``{"task", "sub_tasks"}`` roots;
        ``report``: builder counters and diagnostics
    """
    try:
        forest = aggregator.build_forest(tasks=request.tasks)
        report = aggregator.builder.last_report
        return {
            "hierarchy": [node.to_dict() for node in forest],
            "report": report.to_dict() if report else None,
        }
    except Exception as e:
        logger.error(f"Error building hierarchy: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error building hierarchy: {str(e)}")


@app.post("/api/gantt")  # type: ignore[misc]
async def post_gantt(
    request: GanttRequest,
    expand: Optional[bool] = Query(None, description="Render groups expanded"),
) -> Dict[str, Any]:
    """
    Project tasks onto the timeline.

    Accepts either ``tasks`` (flat list, hierarchy built here) or
    ``hierarchy`` (one pre-nested object or a list of them).

    Returns
    -------
    dict
        Serialized GanttProjection
    """
    if expand is None:
        expand = bool(config["expand_by_default"])
    try:
        projection = aggregator.create_projection(
            tasks=request.tasks,
            hierarchy=request.hierarchy,
            expand=expand,
        )
        return projection.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating projection: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating projection: {str(e)}")


@app.post("/api/metrics")  # type: ignore[misc]
async def post_metrics(request: TaskListRequest) -> Dict[str, Any]:
    """Dashboard counters over a flat task list."""
    try:
        tasks = normalize_tasks(request.tasks)
        metrics = calculate_metrics(tasks, now_millis())
        return {
            "metrics": vars(metrics),
            "by_status": count_by_status(tasks),
            "by_type": count_by_type(tasks),
        }
    except Exception as e:
        logger.error(f"Error calculating metrics: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error calculating metrics: {str(e)}")


def _task_dicts(tasks: List[Task]) -> List[Dict[str, Any]]:
    return [task.to_dict() for task in tasks]


@app.post("/api/tasks/{task_id}/subtasks")  # type: ignore[misc]
async def post_subtasks(task_id: str, request: TaskListRequest) -> Dict[str, Any]:
    """Direct children of one task."""
    tasks = normalize_tasks(request.tasks)
    return {"task_id": task_id, "tasks": _task_dicts(subtasks_of(tasks, task_id))}


@app.post("/api/tasks/{task_id}/parent")  # type: ignore[misc]
async def post_parent(task_id: str, request: TaskListRequest) -> Dict[str, Any]:
    """Resolved parent of one task; ``parent`` is null for roots and orphans."""
    parent = parent_of(normalize_tasks(request.tasks), task_id)
    return {"task_id": task_id, "parent": parent.to_dict() if parent else None}


@app.post("/api/tasks/{task_id}/hierarchy")  # type: ignore[misc]
async def post_task_hierarchy(task_id: str, request: TaskListRequest) -> Dict[str, Any]:
    """
    Subtree rooted at one task, as the Gantt view would nest it.

    Raises
    ------
    HTTPException
        404 when the task is not in the submitted list
    """
    node = hierarchy_for(normalize_tasks(request.tasks), task_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")
    return node.to_dict()


@app.post("/api/tasks/{task_id}/descendants")  # type: ignore[misc]
async def post_descendants(task_id: str, request: TaskListRequest) -> Dict[str, Any]:
    """Ids of every task below one task."""
    return {
        "task_id": task_id,
        "descendant_ids": descendant_ids(normalize_tasks(request.tasks), task_id),
    }


@app.post("/api/tasks/{task_id}/eligible-parents")  # type: ignore[misc]
async def post_eligible_parents(task_id: str, request: TaskListRequest) -> Dict[str, Any]:
    """Tasks that can become this task's parent without creating a cycle."""
    tasks = normalize_tasks(request.tasks)
    return {"task_id": task_id, "tasks": _task_dicts(eligible_parents(tasks, task_id))}


@app.post("/api/assignees/{assignee_id}/tasks")  # type: ignore[misc]
async def post_assignee_tasks(assignee_id: str, request: TaskListRequest) -> Dict[str, Any]:
    """Tasks assigned to one user."""
    tasks = normalize_tasks(request.tasks)
    assigned = tasks_for_assignee(tasks, assignee_id)
    return {"assignee_id": assignee_id, "tasks": _task_dicts(assigned)}


@app.post("/api/tasks/search")  # type: ignore[misc]
async def post_search(request: TaskFilterRequest) -> Dict[str, Any]:
    """List-view filtering by text, assignee and parent."""
    matches = filter_tasks(
        normalize_tasks(request.tasks),
        search=request.search,
        assignee_id=request.assignee_id,
        parent_id=request.parent_id,
    )
    return {"count": len(matches), "tasks": _task_dicts(matches)}


if __name__ == "__main__":
    import uvicorn

    port = config.get("backend", {}).get("port", 4301)
    logger.info(f"Starting Taskline API on http://0.0.0.0:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")  # nosec B104
