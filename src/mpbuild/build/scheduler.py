"""Admission and dispatch control loop for one build run."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from mpbuild.build.errors import SchedulerStallError, TaskExecutionError
from mpbuild.build.graph import TaskGraph
from mpbuild.build.models import (
    CompletionEvent,
    RunStatus,
    RunSummary,
    Task,
    TaskResult,
    TaskState,
)
from mpbuild.build.pool import WorkerPool
from mpbuild.config import SchedulerSettings

logger = logging.getLogger(__name__)


class Scheduler:
    """Admits ready tasks to the worker pool and drains their results.

    Each cycle runs an admission pass followed by a draining pass. Admission
    respects dependencies and the ``alone`` exclusivity rule: an alone task
    runs only when nothing else is running, and nothing else starts while it
    runs. Ready tasks beyond the pool size stay pending until a worker frees
    up. Draining blocks on the result queue (optionally with a deadline), so
    newly-ready tasks are admitted as soon as a dependency finishes.

    The in-flight cost counter is reported in completion events only; it
    never limits concurrency.
    """

    def __init__(
        self,
        *,
        graph: TaskGraph,
        pool: WorkerPool,
        settings: SchedulerSettings,
        on_event: Callable[[CompletionEvent], None] | None = None,
    ) -> None:
        self.graph = graph
        self.pool = pool
        self.settings = settings
        self._on_event = on_event or (lambda _event: None)
        self._status = RunStatus.IDLE
        self._running: dict[int, Task] = {}
        self._alone_running: int | None = None
        self._stopping = False
        self._cost = 0
        self._completed = 0

    @property
    def status(self) -> RunStatus:
        return self._status

    def run(self) -> RunSummary:
        """Run until every task is completed or the failure policy stops admission."""

        if self._status != RunStatus.IDLE:
            raise RuntimeError("Scheduler instances are single-use")

        started = time.monotonic()
        summary = RunSummary(status=RunStatus.ADMITTING, total=len(self.graph))
        self._completed = sum(1 for task in self.graph.tasks if task.is_completed)

        self.pool.runner.prepare()
        self.pool.start()
        try:
            self._loop(summary)
        except BaseException:
            self._status = RunStatus.FAILED
            self.pool.shutdown(timeout=0)
            raise
        self.pool.shutdown()

        counts = self.graph.counts()
        summary.completed = self._completed
        summary.skipped = counts[TaskState.SKIPPED]
        summary.elapsed_seconds = time.monotonic() - started
        self._status = RunStatus.FAILED if summary.failed else RunStatus.DONE
        summary.status = self._status
        return summary

    def _loop(self, summary: RunSummary) -> None:
        while not self.graph.all_complete():
            if not self._stopping:
                self._status = RunStatus.ADMITTING
                self._admit()

            if not self._running:
                if self._stopping or self.graph.all_complete():
                    return
                pending = [task.label for task in self.graph.tasks if not task.is_completed]
                raise SchedulerStallError(
                    f"No task can be admitted and none is running. Pending: {pending}",
                )

            self._status = RunStatus.DRAINING
            self._drain(summary)

    def _admit(self) -> None:
        for task in self.graph.ready_tasks():
            if self._alone_running is not None or len(self._running) >= self.pool.size:
                return
            if task.alone and self._running:
                continue
            if not task.admit():
                continue

            self._running[task.task_id] = task
            self._cost += task.cost
            self.pool.submit(task)
            logger.debug("Admitted %s (cost in flight: %d)", task.label, self._cost)
            if task.alone:
                self._alone_running = task.task_id
                return

    def _drain(self, summary: RunSummary) -> None:
        first = self.pool.next_result(timeout=self.settings.result_wait_seconds)
        if first is None:
            return
        for result in [first, *self.pool.drain_results()]:
            self._handle_result(result, summary)

    def _handle_result(self, result: TaskResult, summary: RunSummary) -> None:
        task = self._running.pop(result.task_id)
        self._cost -= task.cost
        if self._alone_running == task.task_id:
            self._alone_running = None
        self._completed += 1

        if result.success:
            summary.succeeded += 1
            event = self._event(task, result.elapsed_seconds, error=None)
            logger.info("%s", event.render())
            self._emit(event, summary)
            return

        summary.failed += 1
        if summary.first_error is None:
            summary.first_error = result.error
        event = self._event(task, result.elapsed_seconds, error=result.error)
        logger.info("%s", event.render())
        self._emit(event, summary)

        if self.settings.continue_on_error:
            self._abandon_dependents(task, summary)
        else:
            self._stopping = True

    def _abandon_dependents(self, failed: Task, summary: RunSummary) -> None:
        closure = self.graph.transitive_closure({failed.task_id})
        closure.discard(failed.task_id)
        for task_id in sorted(closure):
            task = self.graph[task_id]
            error = TaskExecutionError(f"Dependency {failed.label} failed")
            if not task.abandon(error):
                continue
            self._completed += 1
            summary.failed += 1
            event = self._event(task, 0.0, error=error)
            logger.info("%s", event.render())
            self._emit(event, summary)

    def _event(self, task: Task, elapsed: float, *, error: Exception | None) -> CompletionEvent:
        return CompletionEvent(
            task_id=task.task_id,
            label=task.label,
            success=error is None,
            elapsed_seconds=elapsed,
            completed=self._completed,
            total=len(self.graph),
            cost_in_flight=self._cost,
            error=str(error) if error is not None else None,
        )

    def _emit(self, event: CompletionEvent, summary: RunSummary) -> None:
        summary.events.append(event)
        self._on_event(event)
