"""Fixed-size pool of worker threads executing build tasks."""

from __future__ import annotations

import logging
import queue
import threading

from mpbuild.build.errors import TaskExecutionError
from mpbuild.build.models import OutputChunk, Task, TaskResult
from mpbuild.build.runner import BuildOutcome, BuildRunner

logger = logging.getLogger(__name__)


class WorkerPool:
    """N worker threads pulling tasks from a ready queue.

    Each worker builds one task to completion, marks it completed, forwards the
    captured output to ``output_queue`` and a :class:`TaskResult` to the result
    queue. Queues are sized to the task count so ``submit`` never blocks.
    """

    def __init__(
        self,
        *,
        runner: BuildRunner,
        size: int,
        capacity: int,
        output_queue: queue.Queue[OutputChunk | None] | None = None,
    ) -> None:
        if size < 1:
            raise ValueError("Worker pool size must be >= 1")
        self.runner = runner
        self.size = size
        self._ready: queue.Queue[Task | None] = queue.Queue(maxsize=capacity + size)
        self._results: queue.Queue[TaskResult] = queue.Queue(maxsize=max(1, capacity))
        self._output = output_queue
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for worker_no in range(1, self.size + 1):
            thread = threading.Thread(
                target=self._worker_loop,
                args=(worker_no,),
                daemon=True,
                name=f"mpbuild-worker-{worker_no}",
            )
            thread.start()
            self._threads.append(thread)

    def submit(self, task: Task) -> None:
        self._ready.put_nowait(task)

    def next_result(self, timeout: float | None = None) -> TaskResult | None:
        """Block until a result arrives; None if ``timeout`` elapses first."""

        try:
            return self._results.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain_results(self) -> list[TaskResult]:
        """Results already available, without blocking."""

        drained: list[TaskResult] = []
        while True:
            try:
                drained.append(self._results.get_nowait())
            except queue.Empty:
                return drained

    def shutdown(self, *, timeout: float | None = None) -> None:
        for _ in self._threads:
            self._ready.put(None)
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []

    def _worker_loop(self, worker_no: int) -> None:
        while True:
            task = self._ready.get()
            if task is None:
                return
            self._execute(task, worker_no)

    def _execute(self, task: Task, worker_no: int) -> None:
        logger.info("START %s (worker %d)", task.project_name, worker_no)
        task.mark_execution_started()
        try:
            outcome = self.runner.run(task)
        except Exception as error:  # noqa: BLE001
            logger.exception("Worker %d failed while building %s", worker_no, task.label)
            failure = TaskExecutionError(f"Unexpected error building {task.label}: {error}")
            failure.__cause__ = error
            outcome = BuildOutcome(output="", exit_code=None, error=failure)

        task.output = outcome.output
        task.complete(outcome.error)

        if self._output is not None and outcome.output:
            self._output.put(OutputChunk(task_id=task.task_id, label=task.label, text=outcome.output))
        self._results.put(
            TaskResult(
                task_id=task.task_id,
                success=outcome.ok,
                elapsed_seconds=task.elapsed_seconds,
                error=outcome.error,
            ),
        )
