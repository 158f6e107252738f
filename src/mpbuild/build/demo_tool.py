"""Local stand-in for ``xcodebuild`` used by integration tests and demos.

Accepts the same ``-project``/``-target`` arguments. If the project path is an
existing JSON file, its keys script the fake build:

- ``lines``: output lines to print (default: one "Building <target>" line)
- ``sleep``: seconds to wait before exiting
- ``exit_code``: process exit status
- ``marker``: file to append ``<target>`` to, so tests can see what ran
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("-project", required=True)
    parser.add_argument("-target", required=True)
    parser.add_argument("-configuration", default="Default")
    parser.add_argument("-jobs", type=int, default=0)
    parser.add_argument("-arch", default=None)
    parser.add_argument("-sdk", default=None)
    parser.add_argument("action", nargs="?", default="build")
    args = parser.parse_args(argv)

    script: dict[str, object] = {}
    project_path = Path(args.project)
    if project_path.is_file():
        script = json.loads(project_path.read_text("utf-8"))

    marker = script.get("marker")
    if isinstance(marker, str):
        with Path(marker).open("a", encoding="utf-8") as handle:
            handle.write(f"{args.target}\n")

    for line in script.get("lines", [f"Building {args.target}"]):  # type: ignore[union-attr]
        print(line, flush=True)

    time.sleep(float(script.get("sleep", 0)))  # type: ignore[arg-type]
    exit_code = int(script.get("exit_code", 0))  # type: ignore[call-overload]
    if exit_code:
        print(f"** BUILD FAILED ** {args.target}", file=sys.stderr, flush=True)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
