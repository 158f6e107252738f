"""CPU-inactivity watchdog for spawned build processes."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol

import psutil

from mpbuild.config import WatchdogSettings

logger = logging.getLogger(__name__)


class ProcessProbe(Protocol):
    """Minimal view of a process the watchdog needs."""

    def cpu_percent(self) -> float:
        """CPU utilization since the previous call, in percent of one core."""

    def is_running(self) -> bool:
        """False once the process has exited."""

    def kill(self) -> None:
        """Forcibly terminate the process and its children."""


class PsutilProcessProbe:
    """``ProcessProbe`` backed by psutil, measuring CPU time over the whole process tree.

    Build drivers spend most of their time waiting on compiler children, many of
    which live for well under one sampling interval. Each sample therefore adds
    up the CPU time of the root, of every live descendant and of every
    descendant already reaped (the ``children_*`` counters), and reports the
    growth since the previous sample divided by the wall time in between.
    """

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self._root = psutil.Process(pid)
        self._last_cpu = self._tree_cpu_seconds()
        self._last_sample = time.monotonic()

    def cpu_percent(self) -> float:
        cpu = self._tree_cpu_seconds()
        now = time.monotonic()
        used = cpu - self._last_cpu
        elapsed = now - self._last_sample
        self._last_cpu, self._last_sample = cpu, now
        if elapsed <= 0:
            return 0.0
        # The total shrinks when a descendant is reparented out of the tree.
        return max(0.0, used) / elapsed * 100.0

    def _tree_cpu_seconds(self) -> float:
        try:
            procs = [self._root, *self._root.children(recursive=True)]
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            procs = [self._root]

        total = 0.0
        for proc in procs:
            try:
                times = proc.cpu_times()
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
            total += times.user + times.system
            total += getattr(times, "children_user", 0.0) + getattr(times, "children_system", 0.0)
        return total

    def is_running(self) -> bool:
        try:
            return self._root.is_running() and self._root.status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False

    def kill(self) -> None:
        try:
            procs = [*self._root.children(recursive=True), self._root]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            procs = [self._root]
        for proc in procs:
            try:
                proc.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        psutil.wait_procs(procs, timeout=2)


@dataclass(slots=True)
class InactivityScore:
    """Decayed idle counter: idle samples add, active samples shrink the score."""

    increment: float
    decay: float
    threshold: float
    idle_cpu_percent: float
    score: float = 0.0

    @classmethod
    def from_settings(cls, settings: WatchdogSettings) -> InactivityScore:
        return cls(
            increment=settings.increment,
            decay=settings.decay,
            threshold=settings.threshold,
            idle_cpu_percent=settings.idle_cpu_percent,
        )

    def observe(self, cpu_percent: float) -> bool:
        """Record one sample; True once the score exceeds the threshold."""

        if cpu_percent <= self.idle_cpu_percent:
            self.score += self.increment
        else:
            self.score *= self.decay
        return self.score > self.threshold


class ProcessWatchdog:
    """Samples one process on a background thread and kills it if it stalls."""

    def __init__(
        self,
        probe: ProcessProbe,
        settings: WatchdogSettings,
        *,
        label: str = "",
    ) -> None:
        self.probe = probe
        self.settings = settings
        self.label = label
        self.score = InactivityScore.from_settings(settings)
        self._stop = threading.Event()
        self._tripped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def tripped(self) -> bool:
        return self._tripped.is_set()

    def start(self) -> ProcessWatchdog:
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name=f"mpbuild-watchdog-{self.label or 'process'}",
        )
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(1.0, self.settings.interval_seconds * 2))
        self._thread = None

    def __enter__(self) -> ProcessWatchdog:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def _loop(self) -> None:
        while not self._stop.wait(timeout=self.settings.interval_seconds):
            if not self.probe.is_running():
                return
            cpu = self.probe.cpu_percent()
            if self.score.observe(cpu):
                logger.warning(
                    "Killing stuck build %s (inactivity score %.1f > %.1f)",
                    self.label,
                    self.score.score,
                    self.score.threshold,
                )
                self._tripped.set()
                self.probe.kill()
                return
