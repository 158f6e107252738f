"""Error taxonomy for job loading, toolchain resolution, and task execution."""

from __future__ import annotations


class MpbuildError(RuntimeError):
    """Base class for all build orchestration errors."""


class ConfigurationError(MpbuildError):
    """Fatal configuration problem detected before any task runs."""


class ToolchainNotFoundError(ConfigurationError):
    """No installation of the required build driver was found."""

    def __init__(self, tool: str, candidates: tuple[str, ...]) -> None:
        searched = ", ".join(candidates) if candidates else "<no candidates configured>"
        super().__init__(f"Could not locate {tool}. Searched: {searched}")
        self.tool = tool
        self.candidates = candidates


class JobFormatError(ValueError):
    """Job document is malformed or references unknown tasks."""


class DependencyCycleError(JobFormatError):
    """Task dependencies contain at least one cycle."""

    def __init__(self, stuck_labels: list[str]) -> None:
        super().__init__(
            f"Job dependency graph has a cycle. Stuck tasks: {stuck_labels}",
        )
        self.stuck_labels = stuck_labels


class TaskExecutionError(MpbuildError):
    """Build command failed to start or exited with a non-zero code."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        output_tail: str = "",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output_tail = output_tail


class StuckTaskError(TaskExecutionError):
    """Build process was killed by the watchdog for sustained inactivity."""


class SchedulerStallError(MpbuildError):
    """No task is running and none can be admitted, yet the job is not done."""
