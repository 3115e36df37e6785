# Copyright (c) Syntropy Systems
"""Consolidate every checkpoint of a run into one table."""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import pandas as pd

from slsweep.checkpoint import CheckpointStore
from slsweep.combinator import enumerate_configurations
from slsweep.models.run import RunManifest
from slsweep.models.trial import TrialFailure

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from slsweep.models.checkpoint import Checkpoint

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "run.json"
CONSOLIDATED_FILENAME = "consolidated.csv"

TABLE_COLUMNS = [
    "ordinal",
    "configuration",
    "random_seed",
    "sample_size",
    "ate_hat",
    "ate_tmle",
    "ate_tmle_var",
    "ate_tmle_low",
    "ate_tmle_upp",
    "ate_tmle_pval",
    "elapsed_time",
    "status",
    "error",
]


class StitchIncompleteError(RuntimeError):
    """The checkpoints found do not match the expected configurations."""

    def __init__(
        self,
        missing: list[int],
        unexpected: list[int] | None = None,
        duplicated: list[int] | None = None,
        mismatched: list[int] | None = None,
        miscounted: list[int] | None = None,
    ) -> None:
        self.missing = missing
        self.unexpected = unexpected or []
        self.duplicated = duplicated or []
        self.mismatched = mismatched or []
        self.miscounted = miscounted or []

        parts: list[str] = []
        if self.missing:
            parts.append(f"missing ordinals {_format_ordinals(self.missing)}")
        if self.unexpected:
            parts.append(f"unexpected ordinals {_format_ordinals(self.unexpected)}")
        if self.duplicated:
            parts.append(f"duplicated ordinals {_format_ordinals(self.duplicated)}")
        if self.mismatched:
            parts.append(f"mismatched identities at {_format_ordinals(self.mismatched)}")
        if self.miscounted:
            parts.append(f"wrong trial counts at {_format_ordinals(self.miscounted)}")
        super().__init__("Run is incomplete: " + "; ".join(parts))


def _format_ordinals(ordinals: list[int], limit: int = 20) -> str:
    shown = ", ".join(str(o) for o in ordinals[:limit])
    if len(ordinals) > limit:
        shown += f", ... ({len(ordinals)} total)"
    return shown


def read_manifest(run_dir: Path) -> RunManifest | None:
    """Read run.json from a run directory, if present."""
    path = run_dir / MANIFEST_FILENAME
    if not path.exists():
        return None
    return RunManifest.model_validate_json(path.read_text(encoding="utf-8"))


def expected_identities(components: Sequence[str]) -> dict[int, str]:
    """Map every expected ordinal to its configuration identity."""
    return {c.ordinal: c.identity for c in enumerate_configurations(components)}


def _checkpoint_rows(checkpoint: Checkpoint, sample_size: int | None) -> list[dict[str, object]]:
    nan = math.nan
    rows: list[dict[str, object]] = []
    for result in checkpoint.results:
        row: dict[str, object] = {
            "ordinal": checkpoint.ordinal,
            "configuration": checkpoint.configuration,
            "random_seed": result.seed,
            "sample_size": sample_size,
            "ate_hat": checkpoint.summary.ate_hat,
            "elapsed_time": result.elapsed_time,
            "status": result.status,
        }
        if isinstance(result, TrialFailure):
            row.update(
                ate_tmle=nan,
                ate_tmle_var=nan,
                ate_tmle_low=nan,
                ate_tmle_upp=nan,
                ate_tmle_pval=nan,
                error=result.describe(),
            )
        else:
            row.update(
                ate_tmle=result.estimate,
                ate_tmle_var=result.variance,
                ate_tmle_low=result.ci_lower,
                ate_tmle_upp=result.ci_upper,
                ate_tmle_pval=result.p_value,
                error=None,
            )
        rows.append(row)
    return rows


def stitch(run_dir: Path, components: Sequence[str] | None = None) -> pd.DataFrame:
    """Read every checkpoint of a run and build the consolidated table.

    The expected configurations come from components when given, otherwise
    from the run's manifest.

    Raises:
        StitchIncompleteError: If any expected ordinal is missing or
            duplicated, an unexpected checkpoint is present, a checkpoint's
            body disagrees with its file name, or its trial count differs
            from the manifest's seed count
        FileNotFoundError: If neither components nor a manifest is available

    """
    manifest = read_manifest(run_dir)
    if components is None:
        if manifest is None:
            msg = f"No {MANIFEST_FILENAME} in {run_dir}; pass the component list explicitly"
            raise FileNotFoundError(msg)
        components = manifest.components
    sample_size = manifest.sample_size if manifest is not None else None

    expected = expected_identities(components)
    store = CheckpointStore.for_run(run_dir)
    refs = store.discover()

    by_ordinal: dict[int, list[Path]] = {}
    mismatched: list[int] = []
    for ref in refs:
        by_ordinal.setdefault(ref.ordinal, []).append(ref.path)
        if ref.ordinal in expected and expected[ref.ordinal] != ref.identity:
            mismatched.append(ref.ordinal)

    missing = sorted(o for o in expected if o not in by_ordinal)
    unexpected = sorted(o for o in by_ordinal if o not in expected)
    duplicated = sorted(o for o, paths in by_ordinal.items() if len(paths) > 1)
    if missing or unexpected or duplicated or mismatched:
        raise StitchIncompleteError(
            missing=missing,
            unexpected=unexpected,
            duplicated=duplicated,
            mismatched=sorted(set(mismatched)),
        )

    rows: list[dict[str, object]] = []
    miscounted: list[int] = []
    for ordinal in sorted(by_ordinal):
        checkpoint = store.read(by_ordinal[ordinal][0])
        # The body must agree with the file name it was found under
        if checkpoint.ordinal != ordinal or checkpoint.configuration != expected[ordinal]:
            mismatched.append(ordinal)
            continue
        if manifest is not None and len(checkpoint.results) != manifest.total_seeds:
            miscounted.append(ordinal)
            continue
        rows.extend(_checkpoint_rows(checkpoint, sample_size))
        logger.debug("Stitched checkpoint %d (%d rows)", ordinal, len(checkpoint.results))

    if mismatched or miscounted:
        raise StitchIncompleteError(
            missing=[],
            mismatched=mismatched,
            miscounted=miscounted,
        )

    table = pd.DataFrame(rows, columns=TABLE_COLUMNS)
    return table.sort_values("ordinal", kind="stable").reset_index(drop=True)


def write_consolidated(table: pd.DataFrame, path: Path) -> Path:
    """Write the consolidated table as CSV with a header row."""
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False)
    return path
