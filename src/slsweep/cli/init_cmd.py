# Copyright (c) Syntropy Systems
"""slsweep init command."""

from pathlib import Path

import typer
from rich.console import Console

from slsweep.config import CONFIG_FILENAME, SweepSettings, write_settings

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to write slsweep.yaml into (default: current directory)",
    ),
) -> None:
    """Write a default slsweep.yaml settings file."""
    target = path.resolve()
    config_path = target / CONFIG_FILENAME

    if config_path.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {config_path}")
        return

    target.mkdir(parents=True, exist_ok=True)
    write_settings(SweepSettings(), config_path)

    console.print(f"[green]Wrote default settings:[/green] {config_path}")
