"""Shared test fixtures."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

DEMO_TOOL_COMMAND = f'"{sys.executable}" -m mpbuild.build.demo_tool'


@pytest.fixture(autouse=True)
def isolated_prefs(tmp_path: Path, monkeypatch) -> Path:
    """Point preferences at a temp file and clear ``MPBUILD_*`` overrides."""

    for name in (
        "MPBUILD_CONFIGURATION",
        "MPBUILD_THREADS",
        "MPBUILD_IOS",
        "MPBUILD_PLATFORM",
        "MPBUILD_WORKERS",
        "MPBUILD_CONTINUE_ON_ERROR",
        "MPBUILD_RESULT_WAIT_SECONDS",
        "MPBUILD_WATCHDOG",
        "MPBUILD_WATCHDOG_INTERVAL_SECONDS",
        "MPBUILD_WATCHDOG_IDLE_CPU_PERCENT",
        "MPBUILD_WATCHDOG_THRESHOLD",
        "MPBUILD_XCODEBUILD_COMMAND",
        "MPBUILD_MSBUILD_PATHS",
        "MPBUILD_MSBUILD_PLATFORM",
    ):
        monkeypatch.delenv(name, raising=False)
    prefs_path = tmp_path / "prefs" / ".mpbuild"
    monkeypatch.setenv("MPBUILD_PREFS", str(prefs_path))
    return prefs_path


@pytest.fixture()
def demo_toolchain(monkeypatch) -> str:
    """Route mac builds to the package-local demo build tool."""

    monkeypatch.setenv("MPBUILD_PLATFORM", "mac")
    monkeypatch.setenv("MPBUILD_XCODEBUILD_COMMAND", DEMO_TOOL_COMMAND)
    return DEMO_TOOL_COMMAND


def write_demo_job(tmp_path: Path, tasks: list[dict], *, platform: str = "mac") -> Path:
    """Write a job whose projects are demo-tool scripts.

    Each entry needs ``name`` and may carry ``inputs``, ``cost``, and any
    demo-tool script keys (``lines``, ``sleep``, ``exit_code``).
    """

    marker = tmp_path / "built.txt"
    projects_dir = tmp_path / "projects"
    projects_dir.mkdir(parents=True, exist_ok=True)
    job_tasks = []
    for position, entry in enumerate(tasks):
        script = {
            key: entry[key] for key in ("lines", "sleep", "exit_code") if key in entry
        }
        script["marker"] = str(marker)
        project_path = projects_dir / f"{entry['name']}.json"
        project_path.write_text(json.dumps(script), "utf-8")
        job_tasks.append(
            {
                "id": position,
                "inputs": entry.get("inputs", []),
                "cost": entry.get("cost", 1),
                "messages": entry["name"],
                "made_proj": str(project_path),
            },
        )
    job_path = tmp_path / "job.json"
    job_path.write_text(json.dumps({"platform": platform, "tasks": job_tasks}), "utf-8")
    return job_path


def built_targets(tmp_path: Path) -> list[str]:
    marker = tmp_path / "built.txt"
    if not marker.exists():
        return []
    return marker.read_text("utf-8").split()


@pytest.fixture()
def demo_job(tmp_path: Path):
    def _write(tasks: list[dict], *, platform: str = "mac") -> Path:
        return write_demo_job(tmp_path, tasks, platform=platform)

    return _write


@pytest.fixture()
def built(tmp_path: Path):
    return lambda: built_targets(tmp_path)
