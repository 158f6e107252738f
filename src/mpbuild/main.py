"""CLI entrypoint for mpbuild."""

from pathlib import Path

import rich_click as click

from mpbuild import __version__
from mpbuild.build.controllers import (
    BuildCliController,
    BuildPlanCommand,
    BuildRunCommand,
    BuildSearchCommand,
    TaskSelection,
)
from mpbuild.build.errors import MpbuildError

click.rich_click.USE_MARKDOWN = True
BUILD_CONTROLLER = BuildCliController(echo=click.echo)

_JOB_OPTION = click.option(
    "--job",
    "job_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="Job JSON file with the task list.",
)
_PREFS_OPTION = click.option(
    "--prefs",
    "prefs_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Preferences YAML file. Defaults to `~/.mpbuild` or `MPBUILD_PREFS`.",
)


def _selection_options(func):
    func = click.option(
        "--only-dependents-of",
        "only_dependents_of",
        multiple=True,
        help="Build only tasks whose label contains this text, plus everything depending on them.",
    )(func)
    func = click.option(
        "--skip",
        "skip",
        multiple=True,
        help="Skip tasks whose label contains this text. Can be repeated.",
    )(func)
    return click.option(
        "--start",
        default=None,
        help="Skip every task listed before the first label containing this text.",
    )(func)


@click.group()
@click.version_option(version=__version__, prog_name="mpbuild")
def mpbuild() -> None:
    """Parallel build orchestrator for multi-project jobs."""


@mpbuild.command("run")
@_JOB_OPTION
@_PREFS_OPTION
@_selection_options
@click.option("--config", "configuration", default=None, help="Build configuration name.")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of concurrent builds. Defaults to preferences.",
)
@click.option(
    "--threads",
    type=click.IntRange(min=0),
    default=None,
    help="Per-build thread hint passed to the build tool. 0 leaves it to the tool.",
)
@click.option("--ios", is_flag=True, default=False, help="Build for iOS devices.")
@click.option("--quiet", is_flag=True, default=False, help="Do not echo build output.")
@click.option(
    "--continue-on-error",
    is_flag=True,
    default=False,
    help="Keep building independent tasks after a failure.",
)
@click.option(
    "--watchdog/--no-watchdog",
    default=True,
    show_default=True,
    help="Kill builds that stay idle for too long.",
)
@click.option(
    "--log",
    "log_file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Append timestamped log lines to this file.",
)
@click.option("-v", "--verbose", count=True, help="Increase console log verbosity.")
def run(  # noqa: PLR0913
    job_path: Path,
    prefs_path: Path | None,
    start: str | None,
    skip: tuple[str, ...],
    only_dependents_of: tuple[str, ...],
    configuration: str | None,
    workers: int | None,
    threads: int | None,
    ios: bool,
    quiet: bool,
    continue_on_error: bool,
    watchdog: bool,
    log_file: Path | None,
    verbose: int,
) -> None:
    """Build every task of a job in dependency order."""

    try:
        result = BUILD_CONTROLLER.run(
            BuildRunCommand(
                job_path=job_path,
                selection=TaskSelection(
                    start=start,
                    skip=skip,
                    only_dependents_of=only_dependents_of,
                ),
                prefs_path=prefs_path,
                configuration=configuration,
                workers=workers,
                threads=threads,
                ios=ios,
                quiet=quiet,
                continue_on_error=continue_on_error,
                watchdog=watchdog,
                log_file=log_file,
                verbose=verbose,
            ),
        )
    except (MpbuildError, ValueError) as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Build failed.")


@mpbuild.command("plan")
@_JOB_OPTION
@_PREFS_OPTION
@_selection_options
def plan(
    job_path: Path,
    prefs_path: Path | None,
    start: str | None,
    skip: tuple[str, ...],
    only_dependents_of: tuple[str, ...],
) -> None:
    """Show which tasks a run would build or skip."""

    try:
        lines = BUILD_CONTROLLER.plan(
            BuildPlanCommand(
                job_path=job_path,
                selection=TaskSelection(
                    start=start,
                    skip=skip,
                    only_dependents_of=only_dependents_of,
                ),
                prefs_path=prefs_path,
            ),
        )
    except (MpbuildError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@mpbuild.command("search")
@_JOB_OPTION
@click.argument("pattern")
def search(job_path: Path, pattern: str) -> None:
    """Print the first task whose label contains PATTERN."""

    try:
        lines = BUILD_CONTROLLER.search(BuildSearchCommand(job_path=job_path, pattern=pattern))
    except (MpbuildError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    mpbuild()
