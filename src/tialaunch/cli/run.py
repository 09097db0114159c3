"""tia run / tia args commands - launch the impacted tests executor."""

from __future__ import annotations

import functools
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from tialaunch.config.loader import load_config
from tialaunch.config.models import TiaLaunchConfig
from tialaunch.core.errors import TiaLaunchError
from tialaunch.core.logging import configure_logging, get_logger
from tialaunch.launch.models import (
    BuildUnit,
    LaunchRequest,
    RevisionPoint,
    RevisionWindow,
    RunContext,
    TestSelectionFilter,
)
from tialaunch.launch.orchestrator import LaunchOrchestrator
from tialaunch.launch.request import mask_secrets


def _launch_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by run and args."""
    options = [
        click.option("--baseline", required=True, help="Baseline revision (changes after it are considered)"),
        click.option("--end", required=True, help="End revision (inclusive)"),
        click.option("--task", default="test", show_default=True, help="Name of the test task"),
        click.option(
            "--build-dir",
            type=click.Path(file_okay=False, path_type=Path),
            default=Path("build"),
            show_default=True,
        ),
        click.option(
            "--working-dir",
            type=click.Path(file_okay=False, path_type=Path),
            default=None,
            help="Working directory of the test task (default: current directory)",
        ),
        click.option("--classes-dir", "classes_dirs", multiple=True, type=click.Path(path_type=Path)),
        click.option("--resources-dir", "resources_dirs", multiple=True, type=click.Path(path_type=Path)),
        click.option("--include-tag", "include_tags", multiple=True),
        click.option("--exclude-tag", "exclude_tags", multiple=True),
        click.option("--include-engine", "include_engines", multiple=True),
        click.option("--exclude-engine", "exclude_engines", multiple=True),
        click.option("--include", "include_classes", multiple=True, help="Class glob, e.g. com/foo/**/*Test.class"),
        click.option("--exclude", "exclude_classes", multiple=True, help="Class glob to exclude"),
        click.option("--run-all-tests", is_flag=True, help="Run all tests, still collecting testwise coverage"),
        click.option(
            "--config",
            "config_file",
            type=click.Path(dir_okay=False, path_type=Path),
            default=None,
            help="Config file (default: .tialaunch/config.yaml)",
        ),
    ]
    return functools.reduce(lambda f, option: option(f), reversed(options), func)


def _build_request(params: dict[str, Any], timeout: float | None = None) -> LaunchRequest:
    working_dir = (params["working_dir"] or Path.cwd()).resolve()
    units = [
        BuildUnit(name="main", classes_dirs=tuple(params["classes_dirs"])),
        *(BuildUnit(name=f"resources-{i}", resources_dir=d) for i, d in enumerate(params["resources_dirs"])),
    ]
    return LaunchRequest(
        window=RevisionWindow(
            baseline=RevisionPoint.parse(params["baseline"]),
            end=RevisionPoint.parse(params["end"]),
        ),
        context=RunContext(
            task_name=params["task"],
            build_dir=params["build_dir"].resolve(),
            working_dir=working_dir,
            units=tuple(units),
        ),
        selection_filter=TestSelectionFilter(
            include_tags=params["include_tags"],
            exclude_tags=params["exclude_tags"],
            include_engines=params["include_engines"],
            exclude_engines=params["exclude_engines"],
            include_classes=params["include_classes"],
            exclude_classes=params["exclude_classes"],
        ),
        run_all_tests=params["run_all_tests"],
        timeout_sec=timeout,
    )


def _load_config(ctx: click.Context, config_file: Path | None) -> TiaLaunchConfig:
    """Load config and apply its logging section; -v forces DEBUG."""
    config = load_config(config_file=config_file)
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    configure_logging(config=logging_config)
    get_logger("tialaunch.cli").debug("cli.config_loaded", config_file=str(config_file or ""), verbose=verbose)
    return config


@click.command()
@_launch_options
@click.option("--timeout", type=float, default=None, help="Kill the executor after this many seconds")
@click.pass_context
def run_command(ctx: click.Context, timeout: float | None, **params: Any) -> None:
    """Run the impacted tests and record testwise coverage.

    Exits with the executor's exit code.
    """
    try:
        config = _load_config(ctx, params["config_file"])
        result = LaunchOrchestrator(config).launch(_build_request(params, timeout))
    except TiaLaunchError as e:
        raise click.ClickException(str(e)) from e

    if not result.artifact_present:
        click.echo(f"Warning: no coverage written to {result.artifact}", err=True)
    raise SystemExit(result.exit_code)


@click.command()
@_launch_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def args_command(ctx: click.Context, as_json: bool, **params: Any) -> None:
    """Print the executor command without running it. Secrets are masked."""
    try:
        config = _load_config(ctx, params["config_file"])
        plan = LaunchOrchestrator(config).plan(_build_request(params))
    except TiaLaunchError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(
            json.dumps(
                {
                    "directive": plan.directive,
                    "arguments": mask_secrets(plan.arguments),
                    "working_dir": str(plan.working_dir),
                    "artifact": str(plan.artifact),
                },
                indent=2,
            )
        )
        return

    if plan.directive:
        click.echo(plan.directive)
    for arg in mask_secrets(plan.arguments):
        click.echo(arg)
