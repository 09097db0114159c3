"""tialaunch CLI - tia command."""

import click

from tialaunch import __version__
from tialaunch.cli.run import args_command, run_command
from tialaunch.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="tia")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """tialaunch - run impacted tests with testwise coverage."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(run_command, name="run")
cli.add_command(args_command, name="args")


if __name__ == "__main__":
    cli()
