"""
Track cleaning steps applied before residence analysis.

All functions here are pure: they take a Fix-contract DataFrame (see
atlas_residence.data.tracks), return a new DataFrame and never modify the
input. Functions that look at neighbouring fixes work per individual, so a
multi-individual table can be passed straight in.

The usual order, as run by pipeline/01_clean_tracks.py:

  1. filter_covariates(track, filters)
     Drop fixes with poor localisation quality (e.g. SD > 20, NBS < 3).

  2. filter_speed(track, max_speed)
     Drop isolated reflections: fixes reached and left at implausible speed.

  3. median_smooth(track, moving_window)
     Centred running median of x and y to damp small-scale error.

  4. thin_data(track, interval, method)
     Reduce to one position per time bin by aggregating or subsampling.
"""

from __future__ import annotations

import logging
import operator
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from atlas_residence.errors import EmptyTrack, InsufficientFixes, InvalidWindow

logger = logging.getLogger(__name__)

_OPS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}


def _group_keys(track: pd.DataFrame) -> list[str]:
    return ["id"] if "id" in track.columns else []


def _check_not_empty(track: pd.DataFrame) -> None:
    if track.empty:
        raise EmptyTrack("No fixes supplied")


def filter_covariates(
    track: pd.DataFrame,
    filters: Iterable[Sequence],
) -> pd.DataFrame:
    """
    Keep only fixes that satisfy every (column, op, value) condition.

    Args:
        track: Fix-contract DataFrame.
        filters: Conditions such as [("SD", "<=", 20), ("NBS", ">=", 3)].
            YAML lists of three items work as well.

    Returns:
        The filtered copy with a fresh index.

    Raises:
        KeyError: If a condition names a column the track does not have.
        ValueError: If a condition uses an unsupported operator.
    """
    mask = pd.Series(True, index=track.index)
    for column, op, value in filters:
        if column not in track.columns:
            raise KeyError(f"Filter column '{column}' not in track columns {list(track.columns)}")
        if op not in _OPS:
            raise ValueError(f"Unsupported filter operator '{op}'. Use one of {sorted(_OPS)}")
        mask &= _OPS[op](track[column], value)

    kept = track[mask].reset_index(drop=True)
    logger.info("Covariate filter kept %d of %d fixes", len(kept), len(track))
    return kept


def get_speed(track: pd.DataFrame, kind: str = "in") -> pd.Series:
    """
    Straight-line speed between consecutive fixes of the same individual.

    Args:
        track: Fix-contract DataFrame sorted by (id, time).
        kind: "in" for the speed arriving at each fix from the previous one,
            "out" for the speed leaving each fix towards the next one.

    Returns:
        Series aligned with track.index. NaN at the open end of each
        individual's track and where two fixes share a timestamp.
    """
    if kind not in {"in", "out"}:
        raise ValueError(f"Unsupported speed kind: {kind}")

    periods = 1 if kind == "in" else -1
    keys = _group_keys(track)
    if keys:
        grouped = track.groupby(keys, sort=False)
        dx = grouped["x"].diff(periods)
        dy = grouped["y"].diff(periods)
        dt = grouped["time"].diff(periods)
    else:
        dx = track["x"].diff(periods)
        dy = track["y"].diff(periods)
        dt = track["time"].diff(periods)

    dist = np.sqrt(dx**2 + dy**2)
    safe_dt = dt.abs().replace(0, np.nan)
    return (dist / safe_dt).rename(f"speed_{kind}")


def get_turning_angle(track: pd.DataFrame) -> pd.Series:
    """
    Absolute change in heading at each interior fix, in radians [0, pi].

    The first and last fix of each individual have no turning angle (NaN),
    nor does a fix next to a zero-length step.
    """
    keys = _group_keys(track)
    if keys:
        grouped = track.groupby(keys, sort=False)
        dx_in, dy_in = grouped["x"].diff(), grouped["y"].diff()
        dx_out, dy_out = -grouped["x"].diff(-1), -grouped["y"].diff(-1)
    else:
        dx_in, dy_in = track["x"].diff(), track["y"].diff()
        dx_out, dy_out = -track["x"].diff(-1), -track["y"].diff(-1)

    still_in = (dx_in == 0) & (dy_in == 0)
    still_out = (dx_out == 0) & (dy_out == 0)
    heading_in = np.arctan2(dy_in, dx_in).where(~still_in)
    heading_out = np.arctan2(dy_out, dx_out).where(~still_out)

    turn = heading_out - heading_in
    # wrap to [-pi, pi]
    turn = (turn + np.pi) % (2 * np.pi) - np.pi
    return turn.abs().rename("angle")


def filter_speed(track: pd.DataFrame, max_speed: float) -> pd.DataFrame:
    """
    Drop fixes that are both reached and left faster than max_speed.

    A reflection shows up as a single fix far from its neighbours, so its
    incoming and outgoing speeds are both high; a genuine fast movement
    usually has only one. End fixes have one defined speed, which is used
    for both sides.
    """
    if max_speed <= 0:
        raise ValueError(f"max_speed must be positive, got {max_speed}")

    speed_in = get_speed(track, "in")
    speed_out = get_speed(track, "out")
    s_in = speed_in.fillna(speed_out)
    s_out = speed_out.fillna(speed_in)

    too_fast = (s_in > max_speed) & (s_out > max_speed)
    kept = track[~too_fast].reset_index(drop=True)
    logger.info(
        "Speed filter (max %.2f) removed %d of %d fixes",
        max_speed,
        int(too_fast.sum()),
        len(track),
    )
    return kept


def median_smooth(track: pd.DataFrame, moving_window: int = 5) -> pd.DataFrame:
    """
    Replace x and y with their centred running median.

    Args:
        track: Fix-contract DataFrame sorted by (id, time).
        moving_window: Number of fixes in the window. Must be odd and >= 1.
            A window of 1 returns an unchanged copy.

    Returns:
        A smoothed copy. Window ends shrink at the start and end of each
        individual's track, so no fixes are lost.

    Raises:
        InvalidWindow: If moving_window is even or < 1.
        EmptyTrack: If the track has no fixes.
        InsufficientFixes: If an individual has fewer fixes than moving_window.
    """
    if moving_window < 1 or moving_window % 2 == 0:
        raise InvalidWindow(f"moving_window must be an odd integer >= 1, got {moving_window}")
    _check_not_empty(track)

    keys = _group_keys(track)
    sizes = track.groupby(keys).size() if keys else pd.Series([len(track)])
    if (sizes < moving_window).any():
        short = sizes[sizes < moving_window]
        raise InsufficientFixes(
            f"moving_window={moving_window} needs at least that many fixes; "
            f"short tracks: {short.to_dict()}"
        )

    smoothed = track.copy()

    def _running_median(s: pd.Series) -> pd.Series:
        return s.rolling(moving_window, center=True, min_periods=1).median()

    for col in ("x", "y"):
        if keys:
            smoothed[col] = track.groupby(keys, sort=False)[col].transform(_running_median)
        else:
            smoothed[col] = _running_median(track[col])

    return smoothed


def thin_data(
    track: pd.DataFrame,
    interval: float,
    method: str = "aggregate",
) -> pd.DataFrame:
    """
    Reduce a track to at most one position per `interval` seconds.

    Args:
        track: Fix-contract DataFrame.
        interval: Bin width in seconds.
        method: "aggregate" averages position and numeric covariates within
            each bin and stamps the bin with its start time; a `count`
            column holds the number of fixes averaged. "subsample" keeps the
            first fix of each bin unchanged.

    Returns:
        The thinned DataFrame, sorted by (id, time).
    """
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    if method not in {"aggregate", "subsample"}:
        raise ValueError(f"Unsupported thinning method: {method}")
    _check_not_empty(track)

    keys = _group_keys(track)
    binned = track.copy()
    binned["time_bin"] = np.floor(binned["time"] / interval) * interval

    if method == "subsample":
        thinned = (
            binned.groupby([*keys, "time_bin"], sort=True)
            .head(1)
            .drop(columns="time_bin")
        )
    else:
        numeric = [
            c for c in binned.select_dtypes("number").columns
            if c not in {*keys, "time", "time_bin"}
        ]
        grouped = binned.groupby([*keys, "time_bin"], sort=True)
        thinned = grouped[numeric].mean()
        thinned["count"] = grouped.size()
        thinned = thinned.reset_index().rename(columns={"time_bin": "time"})

    thinned = thinned.sort_values([*keys, "time"]).reset_index(drop=True)
    logger.info(
        "Thinned %d fixes to %d (%s, %gs)", len(track), len(thinned), method, interval
    )
    return thinned
