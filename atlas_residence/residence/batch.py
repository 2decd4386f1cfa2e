"""
Per-individual batch runner for residence patches.

The input table is split into one owned copy per group (individual, or
individual and night), each group runs residence → segmentation on its own,
and the results are stitched back together in key order. A group whose
track fails a precondition (too few fixes, bad radius, ...) is reported in
the `errors` table; the remaining groups still run.

Usage:

    from atlas_residence.residence.batch import ResidenceParams, run_residence_batch

    params = ResidenceParams.from_config(load_config("pipeline")["residence"])
    result = run_residence_batch(track, params, group_cols=("id",), n_jobs=4)
    result.patches.to_csv("data/patches.csv", index=False)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping, Sequence

import geopandas as gpd
import pandas as pd
from joblib import Parallel, delayed

from atlas_residence.data.tracks import split_by_individual
from atlas_residence.errors import ResidenceError
from atlas_residence.residence.aggregate import compute_residence
from atlas_residence.residence.patches import Patch, segment_patches
from atlas_residence.residence.summary import (
    patch_spatials,
    summarize_patches,
    summary_columns,
)

logger = logging.getLogger(__name__)

ERROR_COLUMNS = ["key", "error", "message"]


@dataclass(frozen=True)
class ResidenceParams:
    """
    Parameters for one residence → patch run.

    Residence needs at least two fixes per group: a group with a single fix
    raises InsufficientFixes in compute_revisits before segmentation, so it
    is reported in BatchResult.errors even when min_fixes is 1. min_fixes
    only decides which patches of a longer track are kept.
    """

    radius: float
    absence_threshold: float
    spatial_indep_limit: float
    temporal_indep_limit: float
    buffer_radius: float
    min_fixes: int
    min_res_time: float | None = None
    time_unit: str = "mins"
    inclusive: bool = False
    summary_variables: tuple[str, ...] = ()
    summary_functions: tuple[str, ...] = ("mean",)

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> "ResidenceParams":
        """
        Build params from the `residence` section of the pipeline config.

        Unknown keys are rejected so typos in the YAML surface immediately.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(section) - known
        if unknown:
            raise ValueError(f"Unknown residence config keys: {sorted(unknown)}")

        values = dict(section)
        for key in ("summary_variables", "summary_functions"):
            if key in values:
                values[key] = tuple(values[key] or ())
        return cls(**values)


@dataclass
class BatchResult:
    """Recombined output of a batch run."""

    patches: pd.DataFrame
    spatials: gpd.GeoDataFrame
    errors: pd.DataFrame


def process_individual(
    track: pd.DataFrame,
    params: ResidenceParams,
    group_cols: Sequence[str] = ("id",),
) -> list[Patch]:
    """Residence time then patch segmentation for one group's fixes."""
    with_residence = compute_residence(
        track,
        radius=params.radius,
        absence_threshold=params.absence_threshold,
        time_unit=params.time_unit,
        inclusive=params.inclusive,
    )
    return segment_patches(
        with_residence,
        spatial_indep_limit=params.spatial_indep_limit,
        temporal_indep_limit=params.temporal_indep_limit,
        buffer_radius=params.buffer_radius,
        min_fixes=params.min_fixes,
        min_res_time=params.min_res_time,
        summary_variables=params.summary_variables,
        summary_functions=params.summary_functions,
        group_cols=group_cols,
        time_unit=params.time_unit,
    )


def _run_group(
    key: tuple,
    track: pd.DataFrame,
    params: ResidenceParams,
    group_cols: Sequence[str],
) -> tuple[tuple, list[Patch] | None, ResidenceError | None]:
    try:
        return key, process_individual(track, params, group_cols), None
    except ResidenceError as exc:
        return key, None, exc


def run_residence_batch(
    track: pd.DataFrame,
    params: ResidenceParams,
    group_cols: Sequence[str] = ("id",),
    n_jobs: int = 1,
    crs: str | None = None,
) -> BatchResult:
    """
    Run residence patches for every group in `track`.

    Args:
        track: Fix-contract DataFrame holding any number of individuals.
        params: Residence and segmentation parameters.
        group_cols: Columns that define an independent unit of work.
        n_jobs: joblib worker count; 1 runs in-process.
        crs: CRS for the polygon layer.

    Returns:
        BatchResult whose `patches` and `spatials` are sorted by group key
        then patch number, and whose `errors` lists failed groups.
    """
    parts = split_by_individual(track, group_cols)
    logger.info("Running residence patches for %d groups (n_jobs=%d)", len(parts), n_jobs)

    outcomes = Parallel(n_jobs=n_jobs)(
        delayed(_run_group)(key, part, params, tuple(group_cols)) for key, part in parts
    )

    all_patches: list[Patch] = []
    errors: list[dict] = []
    for key, patches, exc in sorted(outcomes, key=lambda o: o[0]):
        if exc is not None:
            logger.warning("Skipping group %s: %s", key, exc)
            errors.append({"key": key, "error": type(exc).__name__, "message": str(exc)})
            continue
        logger.debug("Group %s: %d patches", key, len(patches))
        all_patches.extend(patches)

    logger.info(
        "Batch complete: %d patches from %d groups, %d failed",
        len(all_patches),
        len(parts) - len(errors),
        len(errors),
    )
    return BatchResult(
        patches=summarize_patches(
            all_patches,
            group_cols=group_cols,
            summaries=summary_columns(params.summary_variables, params.summary_functions),
        ),
        spatials=patch_spatials(all_patches, crs=crs, group_cols=group_cols),
        errors=pd.DataFrame(errors, columns=ERROR_COLUMNS),
    )
