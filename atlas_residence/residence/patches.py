"""
Residence patch segmentation.

A residence patch is a group of fixes that are close together in space and
in time: the place an animal settled into for a while. Segmentation works
on one individual's fixes (usually already filtered to those with a high
residence time) in two passes:

  1. Spatial: fixes closer than spatial_indep_limit + 2 * buffer_radius are
     linked, and each connected component of that graph is a spatial
     cluster. Linking is transitive, so the result does not depend on the
     order of the fixes.

  2. Temporal: each spatial cluster, in time order, is cut wherever two
     consecutive members are more than temporal_indep_limit apart.

A temporal cut can leave a piece whose members were only linked through
fixes that now sit in another piece, so both passes repeat on every piece
until nothing changes. Each final piece is spatially connected through its
own members and has no internal time gap above the limit; pieces with fewer
than min_fixes fixes are discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd
from scipy.sparse.csgraph import connected_components
from shapely.geometry import MultiPoint
from shapely.geometry.base import BaseGeometry
from sklearn.neighbors import NearestNeighbors

from atlas_residence.errors import InvalidRadius
from atlas_residence.residence.revisits import check_single_track, time_scale

logger = logging.getLogger(__name__)

SUMMARY_FUNCTIONS = {
    "mean": lambda v: float(np.mean(v)),
    # sample standard deviation; undefined for a single value
    "sd": lambda v: float(np.std(v, ddof=1)) if len(v) > 1 else float("nan"),
}


@dataclass(frozen=True)
class Patch:
    """One accepted residence patch."""

    patch_id: int
    keys: Mapping[str, Any]
    time_start: float
    time_end: float
    duration: float
    n_fixes: int
    x_mean: float
    y_mean: float
    members: tuple
    polygon: BaseGeometry = field(repr=False)
    summary: Mapping[str, float] = field(default_factory=dict)


def _spatial_components(xy: np.ndarray, distance: float) -> np.ndarray:
    """Connected-component label of each point, linking pairs <= distance apart."""
    if len(xy) == 1:
        return np.zeros(1, dtype=int)
    nn = NearestNeighbors(radius=distance, algorithm="ball_tree").fit(xy)
    graph = nn.radius_neighbors_graph(xy, mode="connectivity")
    _, labels = connected_components(graph, directed=False)
    return labels


def _temporal_pieces(times: np.ndarray, limit: float) -> list[np.ndarray]:
    """Split positions (sorted by time) wherever a gap exceeds `limit`."""
    order = np.argsort(times, kind="mergesort")
    gaps = np.diff(times[order])
    piece_ids = np.concatenate(([0], np.cumsum(gaps > limit)))
    return [order[piece_ids == p] for p in range(piece_ids[-1] + 1)]


def _refine(
    xy: np.ndarray,
    times: np.ndarray,
    distance: float,
    time_limit: float,
) -> list[np.ndarray]:
    """
    Partition fix positions into groups that are stable under both passes.
    """
    pending = [np.arange(len(xy))]
    final: list[np.ndarray] = []

    while pending:
        group = pending.pop()
        labels = _spatial_components(xy[group], distance)
        pieces: list[np.ndarray] = []
        for label in np.unique(labels):
            component = group[labels == label]
            for piece in _temporal_pieces(times[component], time_limit):
                pieces.append(component[piece])

        if len(pieces) == 1:
            final.append(np.sort(pieces[0]))
        else:
            pending.extend(pieces)

    return final


def _validate_params(
    spatial_indep_limit: float,
    temporal_indep_limit: float,
    buffer_radius: float,
    min_fixes: int,
    summary_functions: Sequence[str],
) -> None:
    if buffer_radius <= 0:
        raise InvalidRadius(f"buffer_radius must be positive, got {buffer_radius}")
    if spatial_indep_limit < 0:
        raise ValueError(f"spatial_indep_limit must be >= 0, got {spatial_indep_limit}")
    if temporal_indep_limit < 0:
        raise ValueError(f"temporal_indep_limit must be >= 0, got {temporal_indep_limit}")
    if min_fixes < 1:
        raise ValueError(f"min_fixes must be >= 1, got {min_fixes}")
    unknown = [f for f in summary_functions if f not in SUMMARY_FUNCTIONS]
    if unknown:
        raise ValueError(
            f"Unsupported summary functions {unknown}. Use a subset of {sorted(SUMMARY_FUNCTIONS)}"
        )


def segment_patches(
    track: pd.DataFrame,
    spatial_indep_limit: float,
    temporal_indep_limit: float,
    buffer_radius: float,
    min_fixes: int,
    min_res_time: float | None = None,
    summary_variables: Iterable[str] = (),
    summary_functions: Sequence[str] = ("mean",),
    group_cols: Sequence[str] = ("id",),
    time_unit: str = "secs",
) -> list[Patch]:
    """
    Segment one individual's fixes into residence patches.

    Args:
        track: One individual's fixes sorted by time (x, y, time in seconds).
            Must carry a `res_time` column when min_res_time is given.
        spatial_indep_limit: Gap between buffered fixes, in track units,
            above which two places are independent.
        temporal_indep_limit: Time gap, in `time_unit`, above which two
            visits to the same place are independent.
        buffer_radius: Disk radius drawn around each fix for the patch
            polygon. Also widens the spatial linking distance by 2x.
        min_fixes: Smallest accepted patch size.
        min_res_time: If set, only fixes with res_time >= this value are
            segmented.
        summary_variables: Track columns to summarise per patch.
        summary_functions: Any of "mean" and "sd".
        group_cols: Key columns copied onto every patch (e.g. id, night).
        time_unit: Unit of temporal_indep_limit and of Patch.duration.

    Returns:
        Accepted patches ordered by start time, numbered from 1.
        `Patch.members` holds the index labels of the member rows of `track`.

    Raises:
        InvalidRadius: If buffer_radius <= 0.
        EmptyTrack: If the track has no fixes.
        KeyError: If res_time or a summary variable is missing.
        ValueError: On negative limits, min_fixes < 1 or unknown functions.
    """
    _validate_params(
        spatial_indep_limit, temporal_indep_limit, buffer_radius, min_fixes, summary_functions
    )
    check_single_track(track)
    scale = time_scale(time_unit)

    summary_variables = list(summary_variables)
    missing = [v for v in summary_variables if v not in track.columns]
    if missing:
        raise KeyError(f"Summary variables not in track: {missing}")

    fixes = track
    if min_res_time is not None:
        if "res_time" not in track.columns:
            raise KeyError("min_res_time needs a res_time column; run compute_residence first")
        fixes = track[track["res_time"] >= min_res_time]
        logger.debug("%d of %d fixes pass res_time >= %g", len(fixes), len(track), min_res_time)

    if fixes.empty:
        return []

    keys = {
        col: fixes[col].iloc[0]
        for col in group_cols
        if col in fixes.columns
    }
    xy = fixes[["x", "y"]].to_numpy(dtype=float)
    times = fixes["time"].to_numpy(dtype=float)
    labels = fixes.index.to_numpy()

    groups = _refine(
        xy,
        times,
        distance=spatial_indep_limit + 2 * buffer_radius,
        time_limit=temporal_indep_limit * scale,
    )

    accepted = [g for g in groups if len(g) >= min_fixes]
    accepted.sort(key=lambda g: (times[g].min(), g[0]))
    logger.debug(
        "%d candidate patches, %d accepted (min_fixes=%d)",
        len(groups),
        len(accepted),
        min_fixes,
    )

    patches: list[Patch] = []
    for patch_id, members in enumerate(accepted, start=1):
        member_xy = xy[members]
        member_times = times[members]
        summary = {
            f"{var}_{fn}": SUMMARY_FUNCTIONS[fn](fixes[var].to_numpy(dtype=float)[members])
            for var in summary_variables
            for fn in summary_functions
        }
        patches.append(
            Patch(
                patch_id=patch_id,
                keys=dict(keys),
                time_start=float(member_times.min()),
                time_end=float(member_times.max()),
                duration=float(member_times.max() - member_times.min()) / scale,
                n_fixes=len(members),
                x_mean=float(member_xy[:, 0].mean()),
                y_mean=float(member_xy[:, 1].mean()),
                members=tuple(labels[members].tolist()),
                polygon=MultiPoint([tuple(p) for p in member_xy]).buffer(buffer_radius),
                summary=summary,
            )
        )

    return patches
