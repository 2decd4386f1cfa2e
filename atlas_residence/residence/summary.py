"""
Tabular and spatial views of segmented patches.

These are read-only projections of Patch objects into the shapes the
pipeline writes out: a flat table (CSV) and a polygon layer (GeoPackage),
both keyed by the group columns plus `patch`.

Usage:

    from atlas_residence.residence.summary import patch_spatials, summarize_patches

    table = summarize_patches(patches)
    layer = patch_spatials(patches, crs="EPSG:2039")
"""

from __future__ import annotations

from typing import Sequence

import geopandas as gpd
import pandas as pd

from atlas_residence.residence.patches import Patch

_BASE_COLUMNS = [
    "patch",
    "time_start",
    "time_end",
    "duration",
    "n_fixes",
    "x_mean",
    "y_mean",
]


def _key_columns(patches: Sequence[Patch]) -> list[str]:
    cols: list[str] = []
    for p in patches:
        for col in p.keys:
            if col not in cols:
                cols.append(col)
    return cols


def summary_columns(variables: Sequence[str], functions: Sequence[str]) -> list[str]:
    """Names segment_patches gives its summaries, e.g. SD_mean, SD_sd."""
    return [f"{var}_{fn}" for var in variables for fn in functions]


def summarize_patches(
    patches: Sequence[Patch],
    group_cols: Sequence[str] = (),
    summaries: Sequence[str] = (),
) -> pd.DataFrame:
    """
    Flatten patches into one row each.

    Columns: group keys (e.g. id, night), patch, time_start, time_end,
    duration, n_fixes, x_mean, y_mean, then one column per requested
    summary (e.g. SD_mean, SD_sd).

    Args:
        patches: Segmented patches.
        group_cols: Key columns to expect. Keys found on the patches come
            first; these fill in the header when there are no patches.
        summaries: Summary column names to expect (see summary_columns).

    An empty input gives an empty frame with the same header a non-empty
    run would have, so every output file of a pipeline run lines up.
    """
    if not patches:
        return pd.DataFrame(columns=[*group_cols, *_BASE_COLUMNS, *summaries])

    records = []
    for p in patches:
        row = dict(p.keys)
        row.update(
            patch=p.patch_id,
            time_start=p.time_start,
            time_end=p.time_end,
            duration=p.duration,
            n_fixes=p.n_fixes,
            x_mean=p.x_mean,
            y_mean=p.y_mean,
        )
        row.update(p.summary)
        records.append(row)

    table = pd.DataFrame(records)
    key_cols = _key_columns(patches)
    key_cols += [c for c in group_cols if c not in key_cols]
    extra = [c for c in table.columns if c not in key_cols and c not in _BASE_COLUMNS]
    extra += [c for c in summaries if c not in extra]
    return table.reindex(columns=[*key_cols, *_BASE_COLUMNS, *extra])


def patch_spatials(
    patches: Sequence[Patch],
    crs: str | None = None,
    group_cols: Sequence[str] = (),
) -> gpd.GeoDataFrame:
    """
    Patch polygons as a GeoDataFrame keyed like summarize_patches.

    Args:
        patches: Segmented patches.
        crs: Coordinate reference system of the track's x/y projection, if
            known (needed for writing a GeoPackage that other tools can place).
        group_cols: Key columns to keep in the layer even when no patch
            carries them, as in summarize_patches.
    """
    key_cols = _key_columns(patches)
    key_cols += [c for c in group_cols if c not in key_cols]
    records = [{**dict(p.keys), "patch": p.patch_id} for p in patches]
    frame = pd.DataFrame(records, columns=[*key_cols, "patch"])
    return gpd.GeoDataFrame(
        frame,
        geometry=[p.polygon for p in patches],
        crs=crs,
    )


def patch_points(patches: Sequence[Patch], track: pd.DataFrame) -> pd.DataFrame:
    """
    The member fixes of every patch, labelled with their patch number.

    Args:
        patches: Patches segmented from `track`.
        track: The frame passed to segment_patches (member labels refer to
            its index).

    Returns:
        A copy of the member rows with a `patch` column, ordered by patch
        then time.
    """
    parts = []
    for p in patches:
        rows = track.loc[list(p.members)].copy()
        rows["patch"] = p.patch_id
        parts.append(rows)

    if not parts:
        return track.iloc[0:0].assign(patch=pd.Series(dtype=int))
    return pd.concat(parts).sort_values(["patch", "time"]).reset_index(drop=True)
