# Copyright (c) Syntropy Systems
"""Main CLI entry point for slsweep."""

import logging

import typer

from slsweep.cli.init_cmd import init
from slsweep.cli.plan import plan
from slsweep.cli.run_cmd import run
from slsweep.cli.status import status
from slsweep.cli.stitch_cmd import stitch

app = typer.Typer(
    name="slsweep",
    help=(
        "Monte Carlo sweeps over super-learner combinations. Checkpoint every "
        "combination, resume after interruption, stitch the results."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show debug logging",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# Register commands
_ = app.command()(init)
_ = app.command()(plan)
_ = app.command()(run)
_ = app.command()(status)
_ = app.command()(stitch)


if __name__ == "__main__":
    app()
