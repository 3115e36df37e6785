# Copyright (c) Syntropy Systems
"""slsweep run command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from slsweep.checkpoint import CheckpointWriteError
from slsweep.cli.plan import parse_components
from slsweep.config import load_settings
from slsweep.driver import RunMismatchError, run_compute
from slsweep.stitch import CONSOLIDATED_FILENAME, StitchIncompleteError

console = Console()


def run(
    sample_size: int = typer.Option(
        ...,
        "--sample-size", "-n",
        help="Working sample size N",
    ),
    seeds: int = typer.Option(
        10000,
        "--seeds", "-s",
        help="Seed plan length K",
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Run directory (default: ./output_<N>)",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        help="Worker pool size (default: cores minus one)",
    ),
    backend: Optional[str] = typer.Option(
        None,
        "--backend", "-b",
        help="Pool backend: process or thread",
    ),
    master_seed: Optional[int] = typer.Option(
        None,
        "--master-seed",
        help="Master seed for population, sample and seed plan",
    ),
    components: Optional[str] = typer.Option(
        None,
        "--components", "-c",
        help="Comma-separated base components (overrides settings)",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        envvar="SLSWEEP_CONFIG",
        help="Path to slsweep.yaml",
    ),
) -> None:
    """
    Run every component combination for one sample size.

    Re-running with the same parameters resumes: combinations that already
    have a checkpoint are skipped.

    Examples:
        slsweep run -n 50 -s 1000
        slsweep run -n 500 -o results/n500 --workers 8
    """
    try:
        settings = load_settings(config_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if workers is not None:
        settings.workers = workers
    if backend is not None:
        settings.backend = backend
    if master_seed is not None:
        settings.master_seed = master_seed
    parsed = parse_components(components)
    if parsed:
        settings.components = parsed

    run_dir = output_dir or Path(f"output_{sample_size}")

    console.print(
        f"[bold]Running[/bold] N={sample_size} K={seeds} into {run_dir} "
        f"({len(settings.components)} components)"
    )

    try:
        outcome = run_compute(sample_size, run_dir, seeds, settings=settings)
    except StitchIncompleteError as e:
        console.print(f"[red]Incomplete:[/red] {e}")
        raise typer.Exit(1) from e
    except (OSError, ValueError, CheckpointWriteError) as e:
        # RunMismatchError is a ValueError
        label = "Run mismatch" if isinstance(e, RunMismatchError) else "Error"
        console.print(f"[red]{label}:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Run directory", str(outcome.run_dir))
    table.add_row("Evaluated", str(len(outcome.evaluated)))
    table.add_row("Skipped (checkpointed)", str(len(outcome.skipped)))
    if outcome.table is not None:
        failed = int((outcome.table["status"] == "error").sum())
        table.add_row("Rows", str(len(outcome.table)))
        table.add_row("Failed trials", f"[red]{failed}[/red]" if failed else "0")
    table.add_row("Table", str(outcome.run_dir / CONSOLIDATED_FILENAME))

    console.print(table)
    console.print("[green]Run complete[/green]")
