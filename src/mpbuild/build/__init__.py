"""Build orchestration core: task graph, scheduler, worker pool, and watchdog."""

from mpbuild.build.aggregator import ResultAggregator
from mpbuild.build.errors import (
    ConfigurationError,
    DependencyCycleError,
    JobFormatError,
    MpbuildError,
    SchedulerStallError,
    StuckTaskError,
    TaskExecutionError,
    ToolchainNotFoundError,
)
from mpbuild.build.graph import TaskGraph
from mpbuild.build.models import CompletionEvent, Job, RunStatus, RunSummary, Task, TaskState
from mpbuild.build.pool import WorkerPool
from mpbuild.build.runner import BuildOutcome, BuildRunner, SubprocessBuildRunner
from mpbuild.build.scheduler import Scheduler
from mpbuild.build.watchdog import InactivityScore, ProcessWatchdog

__all__ = [
    "BuildOutcome",
    "BuildRunner",
    "CompletionEvent",
    "ConfigurationError",
    "DependencyCycleError",
    "InactivityScore",
    "Job",
    "JobFormatError",
    "MpbuildError",
    "ProcessWatchdog",
    "ResultAggregator",
    "RunStatus",
    "RunSummary",
    "Scheduler",
    "SchedulerStallError",
    "StuckTaskError",
    "SubprocessBuildRunner",
    "Task",
    "TaskExecutionError",
    "TaskGraph",
    "TaskState",
    "ToolchainNotFoundError",
    "WorkerPool",
]
