"""Task dependency graph with readiness and closure queries."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from mpbuild.build.errors import DependencyCycleError, JobFormatError
from mpbuild.build.models import SATISFIED_STATES, Job, Task, TaskState

logger = logging.getLogger(__name__)


class TaskGraph:
    """Holds the tasks of one job and answers dependency queries.

    Tasks are addressed by their positional id. The graph never mutates task
    state on its own except through :meth:`mark_skipped`.
    """

    def __init__(self, job: Job) -> None:
        self.job = job
        self.tasks: list[Task] = job.tasks
        self._dependents: dict[int, list[int]] = {task.task_id: [] for task in self.tasks}
        for task in self.tasks:
            for dep in task.deps:
                if dep in self._dependents:
                    self._dependents[dep].append(task.task_id)

    def __len__(self) -> int:
        return len(self.tasks)

    def __getitem__(self, task_id: int) -> Task:
        return self.tasks[task_id]

    def validate(self) -> None:
        """Reject dangling ids, self-dependencies, and cycles (Kahn's algorithm)."""

        size = len(self.tasks)
        for task in self.tasks:
            for dep in task.deps:
                if dep < 0 or dep >= size:
                    raise JobFormatError(
                        f"Task {task.task_id} ({task.label}) depends on unknown task id {dep}",
                    )
                if dep == task.task_id:
                    raise JobFormatError(
                        f"Task {task.task_id} ({task.label}) depends on itself",
                    )

        indeg = {task.task_id: len(set(task.deps)) for task in self.tasks}
        queue = deque(task_id for task_id, degree in indeg.items() if degree == 0)
        processed = 0
        while queue:
            node = queue.popleft()
            processed += 1
            for child in set(self._dependents[node]):
                indeg[child] -= 1
                if indeg[child] == 0:
                    queue.append(child)

        if processed != size:
            stuck = [self.tasks[task_id].label for task_id, degree in indeg.items() if degree > 0]
            raise DependencyCycleError(stuck)

    def ready_tasks(self) -> list[Task]:
        """Pending tasks whose dependencies all succeeded or were skipped.

        A task behind a FAILED dependency is never ready; the failure policy
        decides its fate once the scheduler has handled that result.
        """

        return [
            task
            for task in self.tasks
            if task.state == TaskState.PENDING
            and all(self.tasks[dep].state in SATISFIED_STATES for dep in task.deps)
        ]

    def is_complete(self, task_id: int) -> bool:
        return self.tasks[task_id].is_completed

    def all_complete(self) -> bool:
        return all(task.is_completed for task in self.tasks)

    def direct_dependents(self, task_id: int) -> list[int]:
        return list(self._dependents[task_id])

    def depends_on(self, task_id: int, target_id: int) -> bool:
        """True if ``task_id`` lists ``target_id`` as a direct dependency."""

        return target_id in self.tasks[task_id].deps

    def search(self, label_substring: str) -> int | None:
        """Id of the first task whose label contains the substring."""

        for task in self.tasks:
            if label_substring in task.label:
                return task.task_id
        return None

    def transitive_closure(self, seed_ids: Iterable[int]) -> set[int]:
        """Expand seeds with every task that (transitively) depends on a member."""

        closure = set(seed_ids)
        changed = True
        while changed:
            changed = False
            for task in self.tasks:
                if task.task_id in closure:
                    continue
                if any(dep in closure for dep in task.deps):
                    closure.add(task.task_id)
                    changed = True
        return closure

    def mark_skipped(self, task_id: int) -> bool:
        """Force a pending task to completed without running its build."""

        task = self.tasks[task_id]
        skipped = task.skip()
        if skipped:
            logger.debug("Skipping %s", task.label)
        return skipped

    def counts(self) -> dict[TaskState, int]:
        totals = dict.fromkeys(TaskState, 0)
        for task in self.tasks:
            totals[task.state] += 1
        return totals
