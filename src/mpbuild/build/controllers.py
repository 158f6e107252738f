"""Controllers for build CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

from mpbuild.build.aggregator import ResultAggregator
from mpbuild.build.contracts import read_job
from mpbuild.build.errors import TaskExecutionError
from mpbuild.build.filters import (
    apply_project_flags,
    restrict_to_closure,
    skip_before,
    skip_ignored,
    skip_matching,
)
from mpbuild.build.graph import TaskGraph
from mpbuild.build.models import RunSummary, TaskState
from mpbuild.build.pool import WorkerPool
from mpbuild.build.runner import SubprocessBuildRunner
from mpbuild.build.scheduler import Scheduler
from mpbuild.build.toolchain import command_factory_for, resolve_platform
from mpbuild.config import Settings

LOG_FORMAT = "%(asctime)s %(message)s"
CONSOLE_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class TaskSelection:
    """Pre-run filters shared by ``run`` and ``plan``."""

    start: str | None = None
    skip: tuple[str, ...] = ()
    only_dependents_of: tuple[str, ...] = ()


@dataclass(slots=True)
class BuildRunCommand:
    """CLI input for a build run."""

    job_path: Path
    selection: TaskSelection
    prefs_path: Path | None = None
    configuration: str | None = None
    workers: int | None = None
    threads: int | None = None
    ios: bool = False
    quiet: bool = False
    continue_on_error: bool = False
    watchdog: bool = True
    log_file: Path | None = None
    verbose: int = 0


@dataclass(slots=True)
class BuildPlanCommand:
    """CLI input for a dry-run plan."""

    job_path: Path
    selection: TaskSelection
    prefs_path: Path | None = None


@dataclass(slots=True)
class BuildSearchCommand:
    """CLI input for task search by label."""

    job_path: Path
    pattern: str


@dataclass(slots=True)
class BuildRunResult:
    """Run report to render in CLI."""

    lines: list[str]
    success: bool
    summary: RunSummary


class BuildCliController:
    """Coordinates job loading, filtering, and scheduler runs for the CLI."""

    def __init__(self, echo: Callable[[str], None] | None = None) -> None:
        self._echo = echo or (lambda _text: None)

    def run(self, command: BuildRunCommand) -> BuildRunResult:
        settings = _settings_for_run(command)
        settings.validate()

        with _logging(verbose=command.verbose, log_file=settings.log_file):
            graph = _load_graph(command.job_path, settings)
            _apply_selection(graph, command.selection)

            platform = resolve_platform(graph.job.platform, settings.build)
            runner = SubprocessBuildRunner(
                command_factory=command_factory_for(
                    platform,
                    build=settings.build,
                    toolchain=settings.toolchain,
                ),
                watchdog=settings.watchdog if settings.watchdog.enabled else None,
            )
            with ResultAggregator(echo=self._echo, quiet=settings.build.quiet) as aggregator:
                pool = WorkerPool(
                    runner=runner,
                    size=settings.scheduler.workers,
                    capacity=len(graph),
                    output_queue=aggregator.queue,
                )
                scheduler = Scheduler(
                    graph=graph,
                    pool=pool,
                    settings=settings.scheduler,
                    on_event=aggregator.report_event,
                )
                summary = scheduler.run()

        return BuildRunResult(
            lines=_summary_lines(summary),
            success=summary.ok,
            summary=summary,
        )

    def plan(self, command: BuildPlanCommand) -> list[str]:
        settings = Settings.from_env(prefs_path=command.prefs_path)
        settings.validate()
        graph = _load_graph(command.job_path, settings)
        _apply_selection(graph, command.selection)

        lines: list[str] = []
        to_build = 0
        for task in graph.tasks:
            if task.state == TaskState.SKIPPED:
                lines.append(f"  skip   {task.task_id:>4} {task.label}")
                continue
            to_build += 1
            flags = " [alone]" if task.alone else ""
            lines.append(f"  build  {task.task_id:>4} {task.label}{flags}")
        lines.append(f"{to_build} to build, {len(graph) - to_build} skipped")
        return lines

    def search(self, command: BuildSearchCommand) -> list[str]:
        graph = TaskGraph(read_job(command.job_path))
        task_id = graph.search(command.pattern)
        if task_id is None:
            raise ValueError(f"No task label contains {command.pattern!r}")
        task = graph[task_id]
        return [f"Task {task.task_id}: {task.label} ({task.project})"]


def _settings_for_run(command: BuildRunCommand) -> Settings:
    settings = Settings.from_env(prefs_path=command.prefs_path)
    build = replace(
        settings.build,
        configuration=command.configuration or settings.build.configuration,
        threads=settings.build.threads if command.threads is None else command.threads,
        ios=command.ios or settings.build.ios,
        quiet=command.quiet,
    )
    scheduler = replace(
        settings.scheduler,
        workers=command.workers or settings.scheduler.workers,
        continue_on_error=command.continue_on_error or settings.scheduler.continue_on_error,
    )
    watchdog = replace(settings.watchdog, enabled=command.watchdog and settings.watchdog.enabled)
    return replace(
        settings,
        build=build,
        scheduler=scheduler,
        watchdog=watchdog,
        log_file=command.log_file,
    )


def _load_graph(job_path: Path, settings: Settings) -> TaskGraph:
    graph = TaskGraph(read_job(job_path))
    graph.validate()
    apply_project_flags(graph, settings.projects)
    return graph


def _apply_selection(graph: TaskGraph, selection: TaskSelection) -> None:
    skip_ignored(graph)
    if selection.start:
        skip_before(graph, selection.start)
    if selection.skip:
        skip_matching(graph, selection.skip)
    if selection.only_dependents_of:
        restrict_to_closure(graph, selection.only_dependents_of)


def _summary_lines(summary: RunSummary) -> list[str]:
    lines = [
        "Build summary: "
        f"status={summary.status.value} completed={summary.completed}/{summary.total} "
        f"succeeded={summary.succeeded} failed={summary.failed} skipped={summary.skipped} "
        f"time={round(summary.elapsed_seconds)}s",
    ]
    error = summary.first_error
    if error is not None:
        lines.append(f"First error: {error}")
        if isinstance(error, TaskExecutionError) and error.output_tail:
            lines.append("Last output:")
            lines.extend(error.output_tail.rstrip("\n").splitlines()[-20:])
    return lines


@contextmanager
def _logging(*, verbose: int, log_file: Path | None) -> Iterator[None]:
    """Attach console and optional file handlers to the root logger for one run."""

    root = logging.getLogger()
    original_level = root.level
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_LOG_FORMAT))
    console.setLevel(_console_level(verbose))
    console.addFilter(lambda record: record.name != "mpbuild.output")
    handlers: list[logging.Handler] = [console]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG if verbose > 1 else logging.INFO)
        handlers.append(file_handler)

    root.setLevel(logging.DEBUG)
    for handler in handlers:
        root.addHandler(handler)
    try:
        yield
    finally:
        for handler in handlers:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(original_level)


def _console_level(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING
