# Copyright (c) Syntropy Systems
"""slsweep plan command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from slsweep.combinator import enumerate_configurations
from slsweep.config import load_settings
from slsweep.seeds import generate_seed_plan

console = Console()


def parse_components(value: str | None) -> list[str] | None:
    """Split a comma-separated component list."""
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def plan(
    components: Optional[str] = typer.Option(
        None,
        "--components", "-c",
        help="Comma-separated base components (overrides settings)",
    ),
    seeds: int = typer.Option(
        0,
        "--seeds", "-s",
        help="Also show the first seeds of a plan of this length",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        envvar="SLSWEEP_CONFIG",
        help="Path to slsweep.yaml",
    ),
    limit: int = typer.Option(
        50,
        "--limit", "-l",
        help="Maximum combinations to list",
    ),
) -> None:
    """Preview the combinations (and seeds) a run would evaluate."""
    try:
        settings = load_settings(config_file)
        base = parse_components(components) or settings.components
        configurations = list(enumerate_configurations(base))
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(title=f"Combinations of {len(base)} components")
    table.add_column("#", style="dim")
    table.add_column("Size")
    table.add_column("Configuration")
    table.add_column("Checkpoint file", style="dim")

    for configuration in configurations[:limit]:
        table.add_row(
            str(configuration.ordinal),
            str(configuration.size),
            configuration.identity,
            configuration.filename,
        )

    console.print(table)
    if len(configurations) > limit:
        console.print(f"[dim]... {len(configurations) - limit} more not shown[/dim]")
    console.print(f"\n[bold]{len(configurations)} combinations[/bold] in total")

    if seeds > 0:
        try:
            plan_seeds = generate_seed_plan(settings.master_seed, seeds, settings.seed_upper_bound)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e
        preview = ", ".join(str(s) for s in plan_seeds[:10])
        suffix = ", ..." if len(plan_seeds) > 10 else ""
        console.print(
            f"[bold]{len(plan_seeds)} seeds[/bold] "
            f"(master seed {settings.master_seed}): {preview}{suffix}"
        )
