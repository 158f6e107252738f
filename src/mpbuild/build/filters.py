"""Pre-run task selection expressed through ``TaskGraph.mark_skipped``."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from mpbuild.build.graph import TaskGraph
from mpbuild.config import ProjectPreference

logger = logging.getLogger(__name__)


def apply_project_flags(graph: TaskGraph, projects: Iterable[ProjectPreference]) -> None:
    """Copy ``alone``/``ignore`` preferences onto tasks whose label names the project."""

    preferences = list(projects)
    for task in graph.tasks:
        for project in preferences:
            if project.name == task.project_name or project.name in task.label:
                task.alone = task.alone or project.alone
                task.ignore = task.ignore or project.ignore


def skip_ignored(graph: TaskGraph) -> list[int]:
    return [task.task_id for task in graph.tasks if task.ignore and graph.mark_skipped(task.task_id)]


def skip_before(graph: TaskGraph, search: str) -> list[int]:
    """Skip every task before the first one whose label contains ``search``."""

    start = graph.search(search)
    if start is None:
        logger.warning("Start project %r not found; building all tasks", search)
        return []
    return [task_id for task_id in range(start) if graph.mark_skipped(task_id)]


def skip_matching(graph: TaskGraph, patterns: Iterable[str]) -> list[int]:
    needles = [pattern for pattern in patterns if pattern]
    return [
        task.task_id
        for task in graph.tasks
        if any(needle in task.label for needle in needles) and graph.mark_skipped(task.task_id)
    ]


def restrict_to_closure(graph: TaskGraph, seed_patterns: Iterable[str]) -> list[int]:
    """Keep only tasks matching a seed pattern and everything depending on them."""

    needles = [pattern for pattern in seed_patterns if pattern]
    seeds = {
        task.task_id for task in graph.tasks if any(needle in task.label for needle in needles)
    }
    if not seeds:
        logger.warning("No task matches %s; nothing to rebuild", needles)
    keep = graph.transitive_closure(seeds)
    return [
        task.task_id
        for task in graph.tasks
        if task.task_id not in keep and graph.mark_skipped(task.task_id)
    ]
