"""JSON job document reading and validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mpbuild.build.errors import JobFormatError
from mpbuild.build.models import Job, Platform, Task


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    try:
        payload = json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise JobFormatError(f"Job file {path} is not valid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise JobFormatError(f"Expected JSON object in {path}")
    return payload


def read_job(path: Path) -> Job:
    """Deserialize a job file. Graph validation is done by ``TaskGraph``."""

    return job_from_dict(load_json(path))


def job_from_dict(raw: dict[str, Any]) -> Job:
    raw_tasks = raw.get("tasks")
    if not isinstance(raw_tasks, list):
        raise JobFormatError("job.tasks must be an array")

    tasks = [_task_from_dict(position, item) for position, item in enumerate(raw_tasks)]

    platform_raw = raw.get("platform")
    platform: Platform | None = None
    if platform_raw is not None:
        try:
            platform = Platform(str(platform_raw).lower())
        except ValueError as error:
            supported = ", ".join(item.value for item in Platform)
            raise JobFormatError(
                f"Unsupported job platform {platform_raw!r}. Expected one of: {supported}",
            ) from error
    return Job(tasks=tasks, platform=platform)


def _task_from_dict(position: int, item: Any) -> Task:
    if not isinstance(item, dict):
        raise JobFormatError(f"job.tasks[{position}] must be an object")

    task_id = item.get("id", position)
    if not isinstance(task_id, int) or task_id != position:
        raise JobFormatError(
            f"job.tasks[{position}].id must equal its position, got {task_id!r}",
        )

    label = item.get("messages", "")
    project = item.get("made_proj", "")
    if not isinstance(label, str):
        raise JobFormatError(f"job.tasks[{position}].messages must be a string")
    if not isinstance(project, str) or not project.strip():
        raise JobFormatError(f"job.tasks[{position}].made_proj must be a non-empty string")

    cost = item.get("cost", 0)
    if not isinstance(cost, int) or isinstance(cost, bool):
        raise JobFormatError(f"job.tasks[{position}].cost must be an integer")

    inputs = item.get("inputs") or []
    if not isinstance(inputs, list) or not all(
        isinstance(dep, int) and not isinstance(dep, bool) for dep in inputs
    ):
        raise JobFormatError(f"job.tasks[{position}].inputs must be an array of task ids")

    return Task(
        task_id=task_id,
        label=label or project,
        project=project,
        cost=cost,
        deps=tuple(inputs),
    )

