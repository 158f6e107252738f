from __future__ import annotations

from pathlib import Path

import allure
import pytest

from mpbuild.build.errors import ConfigurationError, ToolchainNotFoundError
from mpbuild.build.models import Platform, Task
from mpbuild.build.toolchain import (
    MsbuildCommandFactory,
    ToolchainLocator,
    XcodeCommandFactory,
    command_factory_for,
    resolve_platform,
)
from mpbuild.config import BuildSettings, ToolchainSettings

pytestmark = [
    allure.epic("Build Orchestration"),
    allure.feature("Toolchains"),
]


def _task(project: str = "src/Handlers/HandlerProject.xcodeproj") -> Task:
    return Task(task_id=0, label="HandlerProject", project=project)


def test_xcodebuild_command_for_mac() -> None:
    factory = XcodeCommandFactory(settings=BuildSettings(configuration="Release"))

    assert factory.build_command(_task()) == [
        "xcodebuild",
        "-project",
        "src/Handlers/HandlerProject.xcodeproj",
        "-target",
        "HandlerProject.Release",
        "-configuration",
        "Default",
        "build",
    ]


def test_xcodebuild_command_for_ios_with_threads() -> None:
    factory = XcodeCommandFactory(
        settings=BuildSettings(configuration="Debug", threads=8),
        ios=True,
        command="/opt/xcode/bin/xcodebuild -quiet",
    )

    argv = factory.build_command(_task())

    assert argv[:2] == ["/opt/xcode/bin/xcodebuild", "-quiet"]
    assert argv[argv.index("-jobs") + 1] == "8"
    assert argv[-5:] == ["-arch", "arm64", "-sdk", "iphoneos", "build"]


def test_msbuild_command_uses_located_driver(tmp_path: Path) -> None:
    msbuild = tmp_path / "2019" / "MSBuild.exe"
    msbuild.parent.mkdir()
    msbuild.write_text("", "utf-8")
    factory = MsbuildCommandFactory(
        settings=BuildSettings(configuration="Release", threads=4),
        locator=ToolchainLocator("MSBuild.exe", [tmp_path / "2022" / "MSBuild.exe", msbuild]),
        platform="Win32",
    )

    factory.prepare()
    argv = factory.build_command(_task(r"src\Core\Core.vcxproj"))

    assert argv == [
        str(msbuild),
        r"src\Core\Core.vcxproj",
        "/t:Build",
        "/p:Configuration=Release",
        "/p:Platform=Win32",
        "/m:4",
    ]


def test_locator_prefers_first_existing_candidate() -> None:
    seen: list[Path] = []

    def _exists(path: Path) -> bool:
        seen.append(path)
        return path.name != "missing"

    locator = ToolchainLocator("tool", ["missing", "first", "second"], exists=_exists)

    assert locator.locate() == Path("first")
    assert seen == [Path("missing"), Path("first")]


def test_missing_toolchain_is_a_configuration_error(tmp_path: Path) -> None:
    factory = MsbuildCommandFactory(
        settings=BuildSettings(),
        locator=ToolchainLocator("MSBuild.exe", [tmp_path / "nowhere" / "MSBuild.exe"]),
    )

    with pytest.raises(ToolchainNotFoundError) as excinfo:
        factory.prepare()

    assert isinstance(excinfo.value, ConfigurationError)
    assert "Could not locate MSBuild.exe" in str(excinfo.value)
    assert excinfo.value.candidates == (str(tmp_path / "nowhere" / "MSBuild.exe"),)


@pytest.mark.parametrize(
    ("job_platform", "settings", "expected"),
    [
        (Platform.WIN, BuildSettings(platform="MAC"), Platform.MAC),
        (Platform.MAC, BuildSettings(ios=True), Platform.IOS),
        (Platform.WIN, BuildSettings(), Platform.WIN),
    ],
)
def test_platform_resolution_order(
    job_platform: Platform,
    settings: BuildSettings,
    expected: Platform,
) -> None:
    assert resolve_platform(job_platform, settings) == expected


def test_platform_falls_back_to_host(monkeypatch) -> None:
    monkeypatch.setattr("mpbuild.build.toolchain.sys.platform", "win32")
    assert resolve_platform(None, BuildSettings()) == Platform.WIN

    monkeypatch.setattr("mpbuild.build.toolchain.sys.platform", "darwin")
    assert resolve_platform(None, BuildSettings()) == Platform.MAC


def test_command_factory_selection() -> None:
    toolchain = ToolchainSettings(xcodebuild_command="xcrun xcodebuild", msbuild_platform="ARM64")

    ios = command_factory_for(Platform.IOS, build=BuildSettings(), toolchain=toolchain)
    win = command_factory_for(Platform.WIN, build=BuildSettings(), toolchain=toolchain)

    assert isinstance(ios, XcodeCommandFactory)
    assert ios.ios
    assert ios.command == "xcrun xcodebuild"
    assert isinstance(win, MsbuildCommandFactory)
    assert win.platform == "ARM64"
