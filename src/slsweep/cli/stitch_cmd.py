# Copyright (c) Syntropy Systems
"""slsweep stitch command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from slsweep.cli.plan import parse_components
from slsweep.stitch import CONSOLIDATED_FILENAME, StitchIncompleteError, write_consolidated
from slsweep.stitch import stitch as stitch_run

console = Console()


def stitch(
    run_dir: Path = typer.Argument(
        ...,
        help="Run directory holding the checkpoints",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output CSV path (default: <run_dir>/consolidated.csv)",
    ),
    components: Optional[str] = typer.Option(
        None,
        "--components", "-c",
        help="Comma-separated base components (default: from run.json)",
    ),
) -> None:
    """Consolidate every checkpoint of a run into one table."""
    if not run_dir.is_dir():
        console.print(f"[red]Error:[/red] Run directory not found: {run_dir}")
        raise typer.Exit(1)

    try:
        table = stitch_run(run_dir, parse_components(components))
    except StitchIncompleteError as e:
        console.print(f"[red]Incomplete:[/red] {e}")
        raise typer.Exit(1) from e
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    path = write_consolidated(table, output or run_dir / CONSOLIDATED_FILENAME)
    configurations = table["ordinal"].nunique()
    console.print(
        f"[green]Stitched[/green] {configurations} combinations, "
        f"{len(table)} rows to {path}"
    )
