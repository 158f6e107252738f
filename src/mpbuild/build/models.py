"""Domain models for build jobs, tasks, and run results."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePath


class TaskState(str, Enum):
    """Run state of one task. The last three values are terminal."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


COMPLETED_STATES = frozenset({TaskState.SUCCEEDED, TaskState.FAILED, TaskState.SKIPPED})
# A dependency in one of these states unblocks its dependents. FAILED never does.
SATISFIED_STATES = frozenset({TaskState.SUCCEEDED, TaskState.SKIPPED})


class RunStatus(str, Enum):
    """Scheduler state machine for one run."""

    IDLE = "idle"
    ADMITTING = "admitting"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


class Platform(str, Enum):
    """Target platform tag selecting the build command family."""

    MAC = "mac"
    IOS = "ios"
    WIN = "win"


@dataclass(slots=True, eq=False)
class Task:
    """One buildable project with dependencies and a mutable run state.

    Identity fields never change after load. ``state`` is a single tagged
    value guarded by the task's own lock, so readers on other threads never
    observe a half-applied transition.
    """

    task_id: int
    label: str
    project: str
    cost: int = 0
    deps: tuple[int, ...] = ()
    alone: bool = False
    ignore: bool = False
    output: str = ""
    started_at: datetime | None = None
    error: Exception | None = None
    _state: TaskState = TaskState.PENDING
    _started_monotonic: float | None = None
    _finished_monotonic: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def state(self) -> TaskState:
        with self._lock:
            return self._state

    @property
    def is_completed(self) -> bool:
        return self.state in COMPLETED_STATES

    @property
    def is_running(self) -> bool:
        return self.state == TaskState.RUNNING

    @property
    def project_name(self) -> str:
        """Project file base name up to the first dot (``Foo.xcodeproj`` -> ``Foo``)."""

        return PurePath(self.project.replace("\\", "/")).name.split(".")[0]

    @property
    def elapsed_seconds(self) -> float:
        if self._started_monotonic is None:
            return 0.0
        end = self._finished_monotonic
        if end is None:
            end = time.monotonic()
        return max(0.0, end - self._started_monotonic)

    def admit(self) -> bool:
        """Move PENDING -> RUNNING. Returns False if the task was not pending."""

        with self._lock:
            if self._state != TaskState.PENDING:
                return False
            self._state = TaskState.RUNNING
            return True

    def mark_execution_started(self) -> None:
        self.started_at = datetime.now(tz=UTC)
        self._started_monotonic = time.monotonic()

    def complete(self, error: Exception | None = None) -> bool:
        """Move RUNNING -> SUCCEEDED/FAILED.

        Completion is terminal: calling this on a completed task returns False
        and leaves state, error, and timestamps untouched.
        """

        with self._lock:
            if self._state in COMPLETED_STATES:
                return False
            if self._state != TaskState.RUNNING:
                raise RuntimeError(f"Task {self.task_id} completed without being admitted")
            self._state = TaskState.FAILED if error is not None else TaskState.SUCCEEDED
            self.error = error
            self._finished_monotonic = time.monotonic()
            return True

    def skip(self) -> bool:
        """Move PENDING -> SKIPPED without running the build command."""

        with self._lock:
            if self._state != TaskState.PENDING:
                return False
            self._state = TaskState.SKIPPED
            return True

    def abandon(self, error: Exception) -> bool:
        """Move PENDING -> FAILED without running (a dependency failed)."""

        with self._lock:
            if self._state != TaskState.PENDING:
                return False
            self._state = TaskState.FAILED
            self.error = error
            return True


@dataclass(slots=True)
class Job:
    """Ordered collection of tasks forming one run's dependency graph."""

    tasks: list[Task]
    platform: Platform | None = None


@dataclass(slots=True)
class TaskResult:
    """Completion report sent from a worker to the scheduler."""

    task_id: int
    success: bool
    elapsed_seconds: float
    error: Exception | None = None


@dataclass(slots=True)
class CompletionEvent:
    """User-visible completion record for one task."""

    task_id: int
    label: str
    success: bool
    elapsed_seconds: float
    completed: int
    total: int
    cost_in_flight: int
    error: str | None = None

    def render(self) -> str:
        progress = (
            f"({self.completed}/{self.total}, cost:{self.cost_in_flight}, "
            f"time:{round(self.elapsed_seconds)}s)"
        )
        if self.success:
            return f"->Done {self.label} {progress}"
        return f"Error {self.label} {progress}: {self.error}"


@dataclass(slots=True)
class RunSummary:
    """Aggregate outcome of one scheduler run."""

    status: RunStatus
    total: int
    completed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    first_error: Exception | None = None
    events: list[CompletionEvent] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.DONE


@dataclass(slots=True)
class OutputChunk:
    """Captured build output of one task, streamed to the aggregator."""

    task_id: int
    label: str
    text: str
