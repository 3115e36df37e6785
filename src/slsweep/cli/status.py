"""slsweep status command."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.table import Table

from slsweep.checkpoint import CheckpointStore
from slsweep.stitch import expected_identities, read_manifest

if TYPE_CHECKING:
    from slsweep.models.run import RunManifest

console = Console()


def format_duration(started_at: Optional[str], finished_at: Optional[str] = None) -> str:
    """Format duration from started_at to now or finished_at."""
    if not started_at:
        return "-"

    try:
        start = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        end = datetime.now(timezone.utc)
        if finished_at:
            end = datetime.fromisoformat(finished_at.replace("Z", "+00:00"))
    except ValueError:
        return "-"

    total_seconds = int((end - start).total_seconds())
    if total_seconds < 60:
        return f"{total_seconds}s"
    elif total_seconds < 3600:
        return f"{total_seconds // 60}m {total_seconds % 60}s"
    else:
        return f"{total_seconds // 3600}h {(total_seconds % 3600) // 60}m"


def status(
    run_dir: Path = typer.Argument(
        ...,
        help="Run directory to inspect",
    ),
    show_failures: bool = typer.Option(
        False,
        "--failures", "-f",
        help="List failed trials per combination",
    ),
) -> None:
    """
    Show progress of a run.

    Reads run.json and the checkpoint directory; nothing is evaluated.
    """
    try:
        manifest = read_manifest(run_dir)
    except ValueError as e:
        console.print(f"[red]Error:[/red] Unreadable run.json: {e}")
        raise typer.Exit(1) from e

    if manifest is None:
        console.print(f"[red]Error:[/red] No run found in {run_dir}")
        raise typer.Exit(1)

    _show_manifest(manifest)

    store = CheckpointStore.for_run(run_dir)
    expected = expected_identities(manifest.components)
    found = {ref.ordinal: ref for ref in store.discover() if ref.ordinal in expected}
    pending = sorted(o for o in expected if o not in found)

    console.print(
        f"\n[bold]Combinations:[/bold] {len(found)}/{len(expected)} checkpointed, "
        f"{len(pending)} pending"
    )

    failures: list[tuple[str, int, int]] = []
    for ordinal in sorted(found):
        checkpoint = store.read(found[ordinal].path)
        failed = len(checkpoint.failures)
        if failed:
            failures.append((checkpoint.configuration, ordinal, failed))
            if show_failures:
                for failure in checkpoint.failures:
                    console.print(
                        f"  [red]{ordinal}_{checkpoint.configuration}[/red] "
                        f"seed={failure.seed}: {failure.describe()}"
                    )

    total_failed = sum(count for _, _, count in failures)
    if total_failed:
        console.print(
            f"[yellow]Failed trials:[/yellow] {total_failed} "
            f"across {len(failures)} combination(s)"
        )
    else:
        console.print("[dim]No failed trials[/dim]")

    if pending:
        shown = ", ".join(str(o) for o in pending[:20])
        more = f" ... ({len(pending)} total)" if len(pending) > 20 else ""
        console.print(f"[dim]Pending ordinals: {shown}{more}[/dim]")


def _show_manifest(manifest: RunManifest) -> None:
    """Display the run parameters."""
    status_style = {
        "running": "yellow",
        "completed": "green",
        "failed": "red",
    }.get(manifest.status, "white")

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", f"[{status_style}]{manifest.status}[/{status_style}]")
    table.add_row("Sample size (N)", str(manifest.sample_size))
    table.add_row("Seeds (K)", str(manifest.total_seeds))
    table.add_row("Master seed", str(manifest.master_seed))
    table.add_row("Components", ", ".join(manifest.components))
    table.add_row("Estimator", manifest.estimator)
    table.add_row("Workers", f"{manifest.workers} ({manifest.backend})")
    table.add_row("True ATE", f"{manifest.truth.true_ate:.6f}")
    table.add_row("ATE_hat", f"{manifest.baseline.ate_hat:.6f}")
    table.add_row("Started", manifest.started_at)
    table.add_row("Duration", format_duration(manifest.started_at, manifest.finished_at))

    console.print(table)
