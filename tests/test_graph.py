from __future__ import annotations

import allure
import pytest

from mpbuild.build.errors import DependencyCycleError, JobFormatError
from mpbuild.build.graph import TaskGraph
from mpbuild.build.models import Job, Task, TaskState

pytestmark = [
    allure.epic("Build Orchestration"),
    allure.feature("Task Graph"),
]


def _graph(*deps: tuple[int, ...], labels: list[str] | None = None) -> TaskGraph:
    names = labels or [f"Task{index}" for index in range(len(deps))]
    tasks = [
        Task(task_id=index, label=names[index], project=f"{names[index]}.xcodeproj", deps=dep)
        for index, dep in enumerate(deps)
    ]
    return TaskGraph(Job(tasks=tasks))


def _finish(graph: TaskGraph, task_id: int, error: Exception | None = None) -> None:
    task = graph[task_id]
    assert task.admit()
    task.complete(error)


def test_ready_tasks_follow_dependencies() -> None:
    graph = _graph((), (0,), (0,), (1, 2))

    assert [task.task_id for task in graph.ready_tasks()] == [0]

    _finish(graph, 0)
    assert [task.task_id for task in graph.ready_tasks()] == [1, 2]

    _finish(graph, 1)
    assert [task.task_id for task in graph.ready_tasks()] == [2]

    _finish(graph, 2)
    assert [task.task_id for task in graph.ready_tasks()] == [3]


def test_failed_dependency_blocks_dependents() -> None:
    graph = _graph((), (0,), ())
    _finish(graph, 0, RuntimeError("boom"))

    assert graph.is_complete(0)
    assert [task.task_id for task in graph.ready_tasks()] == [2]


def test_skipped_dependency_unblocks_dependents() -> None:
    graph = _graph((), (0,))
    graph.mark_skipped(0)

    assert [task.task_id for task in graph.ready_tasks()] == [1]


def test_running_task_is_not_ready_twice() -> None:
    graph = _graph((), ())
    assert graph[0].admit()

    assert [task.task_id for task in graph.ready_tasks()] == [1]
    assert graph[0].is_running


def test_validate_accepts_acyclic_graph() -> None:
    _graph((), (0,), (0, 1)).validate()


def test_validate_rejects_cycle_with_stuck_labels() -> None:
    graph = _graph((), (2,), (1,), labels=["Root", "Left", "Right"])

    with pytest.raises(DependencyCycleError) as excinfo:
        graph.validate()

    assert excinfo.value.stuck_labels == ["Left", "Right"]
    assert "cycle" in str(excinfo.value)


def test_validate_rejects_unknown_and_self_dependencies() -> None:
    with pytest.raises(JobFormatError, match="unknown task id 5"):
        _graph((), (5,)).validate()

    with pytest.raises(JobFormatError, match="depends on itself"):
        _graph((), (1,)).validate()


def test_search_returns_first_label_match() -> None:
    graph = _graph((), (), (), labels=["CoreLib", "HandlerProject", "HandlerTimeline"])

    assert graph.search("Handler") == 1
    assert graph.search("Timeline") == 2
    assert graph.search("Missing") is None


def test_transitive_closure_collects_dependents() -> None:
    graph = _graph((), (0,), (1,), (), (3,))

    assert graph.transitive_closure({0}) == {0, 1, 2}
    assert graph.transitive_closure({3}) == {3, 4}
    assert graph.transitive_closure(set()) == set()


def test_mark_skipped_only_touches_pending_tasks() -> None:
    graph = _graph((), (0,))

    assert graph.mark_skipped(1)
    assert graph[1].state == TaskState.SKIPPED
    assert graph[1].is_completed
    assert not graph.mark_skipped(1)

    assert graph[0].admit()
    assert not graph.mark_skipped(0)
    assert graph[0].state == TaskState.RUNNING


def test_dependency_queries_and_counts() -> None:
    graph = _graph((), (0,), (0,))
    graph.mark_skipped(2)

    assert graph.direct_dependents(0) == [1, 2]
    assert graph.depends_on(1, 0)
    assert not graph.depends_on(0, 1)
    counts = graph.counts()
    assert counts[TaskState.PENDING] == 2
    assert counts[TaskState.SKIPPED] == 1
    assert not graph.all_complete()
