"""Runtime configuration: preferences file, environment overrides, and settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES_FILENAME = ".mpbuild"

DEFAULT_ALONE_PROJECTS: tuple[str, ...] = (
    "HandlerProject",
    "HandlerTimeline",
    "HandlerGraphics",
    "HandlerSourceMonitor",
    "HandlerEffectControls",
    "TeamProjectsLocalHub",
    "TeamProjectsLocalLib",
)

DEFAULT_MSBUILD_PATHS: tuple[str, ...] = (
    r"C:\Program Files\Microsoft Visual Studio\2022\Enterprise\MSBuild\Current\Bin\MSBuild.exe",
    r"C:\Program Files\Microsoft Visual Studio\2022\Professional\MSBuild\Current\Bin\MSBuild.exe",
    r"C:\Program Files\Microsoft Visual Studio\2022\Community\MSBuild\Current\Bin\MSBuild.exe",
    r"C:\Program Files (x86)\Microsoft Visual Studio\2019\Enterprise\MSBuild\Current\Bin\MSBuild.exe",
    r"C:\Program Files (x86)\Microsoft Visual Studio\2019\Professional\MSBuild\Current\Bin\MSBuild.exe",
    r"C:\Program Files (x86)\Microsoft Visual Studio\2019\BuildTools\MSBuild\Current\Bin\MSBuild.exe",
)


@dataclass(slots=True)
class ProjectPreference:
    """Per-project scheduling flags matched against task labels."""

    name: str
    alone: bool = False
    ignore: bool = False


@dataclass(slots=True)
class Preferences:
    """User preferences persisted as YAML in the home directory."""

    workers: int = 3
    threads: int = 10
    projects: list[ProjectPreference] = field(default_factory=list)
    msbuild_paths: list[str] = field(default_factory=list)

    @classmethod
    def defaults(cls) -> Preferences:
        return cls(
            projects=[ProjectPreference(name=name, alone=True) for name in DEFAULT_ALONE_PROJECTS],
        )

    @classmethod
    def load(cls, path: Path) -> Preferences:
        """Read preferences, creating the file with defaults when it is missing."""

        if not path.exists():
            prefs = cls.defaults()
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(yaml.safe_dump(prefs.to_dict(), sort_keys=False), "utf-8")
            logger.info("%s created", path)
            return prefs

        raw = yaml.safe_load(path.read_text("utf-8")) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Preferences file {path} must contain a YAML mapping")
        prefs = cls.from_dict(raw)
        logger.info("%s loaded", path)
        return prefs

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Preferences:
        projects: list[ProjectPreference] = []
        for item in raw.get("projects") or []:
            if not isinstance(item, dict) or not item.get("name"):
                raise ValueError(f"Invalid project preference entry: {item!r}")
            projects.append(
                ProjectPreference(
                    name=str(item["name"]),
                    alone=bool(item.get("alone", False)),
                    ignore=bool(item.get("ignore", False)),
                ),
            )
        return cls(
            workers=int(raw.get("workers", 3)),
            threads=int(raw.get("threads", 0)),
            projects=projects,
            msbuild_paths=[str(value) for value in raw.get("msbuild_paths") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "workers": self.workers,
            "threads": self.threads,
            "projects": [],
        }
        for project in self.projects:
            entry: dict[str, Any] = {"name": project.name}
            if project.alone:
                entry["alone"] = True
            if project.ignore:
                entry["ignore"] = True
            payload["projects"].append(entry)
        if self.msbuild_paths:
            payload["msbuild_paths"] = list(self.msbuild_paths)
        return payload


@dataclass(slots=True)
class BuildSettings:
    """Build command construction settings."""

    configuration: str = "Debug"
    threads: int = 0
    ios: bool = False
    platform: str | None = None
    quiet: bool = False


@dataclass(slots=True)
class SchedulerSettings:
    """Worker pool size and failure policy."""

    workers: int = 3
    continue_on_error: bool = False
    result_wait_seconds: float | None = None


@dataclass(slots=True)
class WatchdogSettings:
    """Stalled-process detection tunables."""

    enabled: bool = True
    interval_seconds: float = 5.0
    idle_cpu_percent: float = 1.0
    increment: float = 1.0
    decay: float = 0.5
    threshold: float = 24.0


@dataclass(slots=True)
class ToolchainSettings:
    """Ordered toolchain install locations."""

    xcodebuild_command: str = "xcodebuild"
    msbuild_paths: tuple[str, ...] = DEFAULT_MSBUILD_PATHS
    msbuild_platform: str = "x64"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    build: BuildSettings = field(default_factory=BuildSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    watchdog: WatchdogSettings = field(default_factory=WatchdogSettings)
    toolchain: ToolchainSettings = field(default_factory=ToolchainSettings)
    projects: tuple[ProjectPreference, ...] = ()
    preferences_path: Path | None = None
    log_file: Path | None = None

    @classmethod
    def from_env(cls, prefs_path: Path | None = None) -> Settings:
        """Load preferences file, then apply ``MPBUILD_*`` environment overrides."""

        resolved_prefs_path = prefs_path or Path(
            os.getenv("MPBUILD_PREFS", str(Path.home() / DEFAULT_PREFERENCES_FILENAME)),
        )
        prefs = Preferences.load(resolved_prefs_path)

        msbuild_paths = _env_paths("MPBUILD_MSBUILD_PATHS") or tuple(prefs.msbuild_paths)
        return cls(
            build=BuildSettings(
                configuration=os.getenv("MPBUILD_CONFIGURATION", "Debug"),
                threads=int(os.getenv("MPBUILD_THREADS", str(prefs.threads))),
                ios=_env_bool("MPBUILD_IOS", default=False),
                platform=os.getenv("MPBUILD_PLATFORM") or None,
            ),
            scheduler=SchedulerSettings(
                workers=int(os.getenv("MPBUILD_WORKERS", str(prefs.workers))),
                continue_on_error=_env_bool("MPBUILD_CONTINUE_ON_ERROR", default=False),
                result_wait_seconds=_env_optional_float("MPBUILD_RESULT_WAIT_SECONDS"),
            ),
            watchdog=WatchdogSettings(
                enabled=_env_bool("MPBUILD_WATCHDOG", default=True),
                interval_seconds=float(os.getenv("MPBUILD_WATCHDOG_INTERVAL_SECONDS", "5.0")),
                idle_cpu_percent=float(os.getenv("MPBUILD_WATCHDOG_IDLE_CPU_PERCENT", "1.0")),
                threshold=float(os.getenv("MPBUILD_WATCHDOG_THRESHOLD", "24.0")),
            ),
            toolchain=ToolchainSettings(
                xcodebuild_command=os.getenv("MPBUILD_XCODEBUILD_COMMAND", "xcodebuild"),
                msbuild_paths=msbuild_paths or DEFAULT_MSBUILD_PATHS,
                msbuild_platform=os.getenv("MPBUILD_MSBUILD_PLATFORM", "x64"),
            ),
            projects=tuple(prefs.projects),
            preferences_path=resolved_prefs_path,
        )

    def validate(self) -> None:
        """Raise configuration error if values are out of range."""

        if self.scheduler.workers < 1:
            raise ValueError("Number of workers must be >= 1.")
        if self.build.threads < 0:
            raise ValueError("Number of build threads must be >= 0.")
        if not self.build.configuration.strip():
            raise ValueError("Build configuration must not be empty.")
        if self.scheduler.result_wait_seconds is not None and self.scheduler.result_wait_seconds <= 0:
            raise ValueError("MPBUILD_RESULT_WAIT_SECONDS must be > 0.")
        if self.watchdog.interval_seconds <= 0:
            raise ValueError("Watchdog interval must be > 0.")
        if self.watchdog.threshold <= 0 or self.watchdog.increment <= 0:
            raise ValueError("Watchdog threshold and increment must be > 0.")
        if not 0 < self.watchdog.decay < 1:
            raise ValueError("Watchdog decay must be between 0 and 1 (exclusive).")


def _env_paths(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(os.pathsep) if part.strip())


def _env_optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
