"""CLI entry point - Click group with global options."""

from __future__ import annotations

import logging

import click

from leakwatch import __version__


@click.group()
@click.version_option(version=__version__, prog_name="leakwatch")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """LeakWatch - find secrets committed to git repositories."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from leakwatch.cli.run import run  # noqa: F811
    from leakwatch.cli.scan import scan  # noqa: F811
    from leakwatch.cli.state import state  # noqa: F811

    main.add_command(scan)
    main.add_command(run)
    main.add_command(state)


_register_commands()
