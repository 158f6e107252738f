from __future__ import annotations

import json
import sys
from pathlib import Path

import allure

from mpbuild.build.errors import StuckTaskError, TaskExecutionError
from mpbuild.build.models import Task
from mpbuild.build.runner import OUTPUT_TAIL_CHARS, SubprocessBuildRunner
from mpbuild.build.toolchain import XcodeCommandFactory
from mpbuild.config import BuildSettings

pytestmark = [
    allure.epic("Build Orchestration"),
    allure.feature("Build Execution"),
]


def _runner(command: str) -> SubprocessBuildRunner:
    return SubprocessBuildRunner(
        command_factory=XcodeCommandFactory(settings=BuildSettings(), command=command),
    )


def _project(tmp_path: Path, name: str, **script) -> str:
    path = tmp_path / f"{name}.json"
    path.write_text(json.dumps(script), "utf-8")
    return str(path)


def test_successful_build_captures_output(tmp_path: Path, demo_toolchain: str) -> None:
    project = _project(tmp_path, "Core", lines=["compiling a.cpp", "linking"])

    outcome = _runner(demo_toolchain).run(Task(task_id=0, label="Core", project=project))

    assert outcome.ok
    assert outcome.exit_code == 0
    assert outcome.output.splitlines() == ["compiling a.cpp", "linking"]


def test_failed_build_merges_stderr_and_keeps_tail(tmp_path: Path, demo_toolchain: str) -> None:
    project = _project(tmp_path, "Broken", lines=["x" * 100] * 60, exit_code=65)

    outcome = _runner(demo_toolchain).run(Task(task_id=0, label="Broken", project=project))

    assert not outcome.ok
    assert outcome.exit_code == 65
    assert isinstance(outcome.error, TaskExecutionError)
    assert not isinstance(outcome.error, StuckTaskError)
    assert "exited with status 65" in str(outcome.error)
    assert "** BUILD FAILED ** Broken.Debug" in outcome.output
    assert len(outcome.error.output_tail) == OUTPUT_TAIL_CHARS
    assert outcome.error.output_tail.endswith("** BUILD FAILED ** Broken.Debug\n")


def test_missing_build_command_is_a_task_failure(tmp_path: Path) -> None:
    runner = _runner(str(tmp_path / "no-such-xcodebuild"))

    outcome = runner.run(Task(task_id=0, label="Core", project="Core.xcodeproj"))

    assert not outcome.ok
    assert outcome.exit_code is None
    assert "Build command not found" in str(outcome.error)


def test_extra_environment_reaches_the_build(tmp_path: Path) -> None:
    script = tmp_path / "env_tool.py"
    script.write_text("import os\nprint(os.environ['MPBUILD_TEST_VALUE'])\n", "utf-8")

    class _EnvCommand:
        def prepare(self) -> None:
            return None

        def build_command(self, task: Task) -> list[str]:
            return [sys.executable, str(script)]

    runner = SubprocessBuildRunner(
        command_factory=_EnvCommand(),
        env={"MPBUILD_TEST_VALUE": "from-runner"},
        cwd=tmp_path,
    )

    outcome = runner.run(Task(task_id=0, label="Env", project="Env.xcodeproj"))

    assert outcome.ok
    assert outcome.output.strip() == "from-runner"
