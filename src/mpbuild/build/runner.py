"""Subprocess execution of one build command."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import psutil

from mpbuild.build.errors import StuckTaskError, TaskExecutionError
from mpbuild.build.models import Task
from mpbuild.build.toolchain import CommandFactory
from mpbuild.build.watchdog import ProcessProbe, ProcessWatchdog, PsutilProcessProbe
from mpbuild.config import WatchdogSettings

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 4000


@dataclass(slots=True)
class BuildOutcome:
    """Captured output and failure (if any) of one build invocation."""

    output: str
    exit_code: int | None
    error: TaskExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BuildRunner(Protocol):
    """Protocol implemented by build executors."""

    def prepare(self) -> None:
        """Fail fast on configuration problems before any task runs."""

    def run(self, task: Task) -> BuildOutcome:
        """Build one task and return captured output."""


class SubprocessBuildRunner:
    """Spawn the platform build command and capture combined stdout/stderr."""

    def __init__(
        self,
        *,
        command_factory: CommandFactory,
        watchdog: WatchdogSettings | None = None,
        probe_factory: Callable[[int], ProcessProbe] = PsutilProcessProbe,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.command_factory = command_factory
        self.watchdog_settings = watchdog
        self.probe_factory = probe_factory
        self.cwd = cwd
        self.env = env

    def prepare(self) -> None:
        self.command_factory.prepare()

    def run(self, task: Task) -> BuildOutcome:
        argv = self.command_factory.build_command(task)
        logger.debug("%s", shlex.join(argv))

        env = os.environ.copy()
        env.update(self.env or {})
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=self.cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError:
            return BuildOutcome(
                output="",
                exit_code=None,
                error=TaskExecutionError(f"Build command not found: {argv[0]}"),
            )
        except OSError as error:
            return BuildOutcome(
                output="",
                exit_code=None,
                error=TaskExecutionError(f"Build command failed to start: {error}"),
            )

        watchdog = self._start_watchdog(process, task)
        chunks: list[str] = []
        try:
            if process.stdout is not None:
                for line in process.stdout:
                    chunks.append(line)
            returncode = process.wait()
        finally:
            if watchdog is not None:
                watchdog.stop()
            if process.poll() is None:
                _terminate_process(process)

        output = "".join(chunks)
        tail = output[-OUTPUT_TAIL_CHARS:]
        if watchdog is not None and watchdog.tripped:
            return BuildOutcome(
                output=output,
                exit_code=returncode,
                error=StuckTaskError(
                    f"Build of {task.label} stalled and was killed by the watchdog",
                    exit_code=returncode,
                    output_tail=tail,
                ),
            )
        if returncode != 0:
            return BuildOutcome(
                output=output,
                exit_code=returncode,
                error=TaskExecutionError(
                    f"{Path(argv[0]).name} exited with status {returncode}",
                    exit_code=returncode,
                    output_tail=tail,
                ),
            )
        return BuildOutcome(output=output, exit_code=returncode)

    def _start_watchdog(
        self,
        process: subprocess.Popen[str],
        task: Task,
    ) -> ProcessWatchdog | None:
        if self.watchdog_settings is None or not self.watchdog_settings.enabled:
            return None
        try:
            probe = self.probe_factory(process.pid)
        except psutil.NoSuchProcess:
            return None
        return ProcessWatchdog(probe, self.watchdog_settings, label=task.project_name).start()


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
