"""Build command families and toolchain location."""

from __future__ import annotations

import logging
import shlex
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from mpbuild.build.errors import ToolchainNotFoundError
from mpbuild.build.models import Platform, Task
from mpbuild.config import BuildSettings, ToolchainSettings

logger = logging.getLogger(__name__)

XCODEBUILD = "xcodebuild"
MSBUILD = "MSBuild.exe"


class ToolchainLocator:
    """Probe a priority-ordered list of install paths; the first existing one wins."""

    def __init__(
        self,
        tool: str,
        candidates: Sequence[str | Path],
        *,
        exists: Callable[[Path], bool] | None = None,
    ) -> None:
        self.tool = tool
        self.candidates = tuple(Path(candidate) for candidate in candidates)
        self._exists = exists or Path.exists

    def locate(self) -> Path:
        for candidate in self.candidates:
            if self._exists(candidate):
                logger.info("Using %s at %s", self.tool, candidate)
                return candidate
        raise ToolchainNotFoundError(
            self.tool,
            tuple(str(candidate) for candidate in self.candidates),
        )


class CommandFactory(Protocol):
    """Builds the argv for one task."""

    def prepare(self) -> None:
        """Resolve the toolchain; raise ``ConfigurationError`` if it is unusable."""

    def build_command(self, task: Task) -> list[str]:
        """Return the command line that builds ``task``."""


@dataclass(slots=True)
class XcodeCommandFactory:
    """``xcodebuild`` invocations for mac and ios targets."""

    settings: BuildSettings
    ios: bool = False
    command: str = XCODEBUILD

    def prepare(self) -> None:
        return None

    def build_command(self, task: Task) -> list[str]:
        target = f"{task.project_name}.{self.settings.configuration}"
        args = [
            *shlex.split(self.command),
            "-project",
            task.project,
            "-target",
            target,
            "-configuration",
            "Default",
        ]
        if self.settings.threads:
            args.extend(["-jobs", str(self.settings.threads)])
        if self.ios:
            args.extend(["-arch", "arm64", "-sdk", "iphoneos"])
        args.append("build")
        return args


@dataclass(slots=True)
class MsbuildCommandFactory:
    """``MSBuild.exe`` invocations for windows targets."""

    settings: BuildSettings
    locator: ToolchainLocator
    platform: str = "x64"
    _msbuild: Path | None = None

    def prepare(self) -> None:
        if self._msbuild is None:
            self._msbuild = self.locator.locate()

    def build_command(self, task: Task) -> list[str]:
        self.prepare()
        args = [
            str(self._msbuild),
            task.project,
            "/t:Build",
            f"/p:Configuration={self.settings.configuration}",
            f"/p:Platform={self.platform}",
        ]
        if self.settings.threads:
            args.append(f"/m:{self.settings.threads}")
        return args


def resolve_platform(job_platform: Platform | None, settings: BuildSettings) -> Platform:
    """Pick the platform: explicit setting, then job tag, then the host OS."""

    if settings.platform:
        return Platform(settings.platform.lower())
    if settings.ios:
        return Platform.IOS
    if job_platform is not None:
        return job_platform
    return Platform.WIN if sys.platform.startswith("win") else Platform.MAC


def command_factory_for(
    platform: Platform,
    *,
    build: BuildSettings,
    toolchain: ToolchainSettings,
) -> CommandFactory:
    if platform == Platform.WIN:
        return MsbuildCommandFactory(
            settings=build,
            locator=ToolchainLocator(MSBUILD, toolchain.msbuild_paths),
            platform=toolchain.msbuild_platform,
        )
    return XcodeCommandFactory(
        settings=build,
        ios=platform == Platform.IOS,
        command=toolchain.xcodebuild_command,
    )
