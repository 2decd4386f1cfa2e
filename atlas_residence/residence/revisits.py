"""
Revisitation analysis: how often, and for how long, a track returns to each
of its own fixes.

For a reference fix i, every fix of the track is either inside (Euclidean
distance <= radius) or outside the circle around i. A revisit is a maximal
run of consecutive fixes that are all inside. The run containing i itself is
always the one in which i was recorded; every other run is a return.

Usage:

    from atlas_residence.residence.revisits import compute_revisits

    revisits = compute_revisits(track, radius=50.0, time_unit="mins")
    # columns: fix_index, visit, entrance_time, exit_time, duration,
    #          time_since_last, n_fixes
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from atlas_residence.errors import EmptyTrack, InsufficientFixes, InvalidRadius

logger = logging.getLogger(__name__)

TIME_UNITS: dict[str, float] = {
    "secs": 1.0,
    "mins": 60.0,
    "hours": 3600.0,
}

REVISIT_COLUMNS = [
    "fix_index",
    "visit",
    "entrance_time",
    "exit_time",
    "duration",
    "time_since_last",
    "n_fixes",
]


def time_scale(time_unit: str) -> float:
    """Seconds per `time_unit`."""
    try:
        return TIME_UNITS[time_unit]
    except KeyError:
        raise ValueError(
            f"Unsupported time unit '{time_unit}'. Use one of {sorted(TIME_UNITS)}"
        ) from None


def check_single_track(track: pd.DataFrame) -> None:
    """
    Validate that `track` is one individual's fixes in time order.

    Raises:
        EmptyTrack: If there are no fixes.
        KeyError: If x, y or time is missing.
        ValueError: If the fixes belong to more than one individual or are
            not sorted by time.
    """
    if track.empty:
        raise EmptyTrack("No fixes supplied")
    missing = [c for c in ("x", "y", "time") if c not in track.columns]
    if missing:
        raise KeyError(f"Track is missing columns {missing}")
    if "id" in track.columns and track["id"].nunique() > 1:
        raise ValueError(
            f"Expected one individual, got {track['id'].nunique()}; "
            "split the table with split_by_individual first"
        )
    if not track["time"].is_monotonic_increasing:
        raise ValueError("Track must be sorted by time")


def _inside_runs(inside: np.ndarray, breaks: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Start and end positions (inclusive) of the runs of True in `inside`.

    `breaks[k]` is True when a data gap separates fix k-1 from fix k; an
    inside run never spans such a gap.
    """
    padded = np.concatenate(([False], inside, [False])).astype(np.int8)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1

    if not breaks.any():
        return starts, ends

    # Cut runs at data gaps: a break inside a run ends it at k-1 and
    # starts a new one at k.
    cut = np.flatnonzero(breaks & inside & np.roll(inside, 1))
    if cut.size:
        starts = np.sort(np.concatenate((starts, cut)))
        ends = np.sort(np.concatenate((ends, cut - 1)))
    return starts, ends


def compute_revisits(
    track: pd.DataFrame,
    radius: float,
    time_unit: str = "secs",
    max_gap: float | None = None,
    inclusive: bool = False,
) -> pd.DataFrame:
    """
    Find every revisit to every fix of one individual's track.

    Args:
        track: One individual's fixes sorted by time, with columns x, y and
            time (seconds).
        radius: Circle radius around each reference fix, in track units.
            A fix exactly `radius` away counts as inside.
        time_unit: Unit of the duration and time_since_last columns
            ("secs", "mins" or "hours").
        max_gap: Optional data-gap limit in `time_unit`. Two consecutive
            fixes further apart in time than this never belong to the same
            revisit, so a long stretch without fixes counts as an absence.
        inclusive: If True, a data gap exactly equal to `max_gap` also
            splits the run, matching aggregate_residence(inclusive=True).

    Returns:
        One row per revisit, ordered by (fix_index, visit). `fix_index` is
        the position of the reference fix in `track`. `time_since_last` is
        NaN for the first revisit of each fix. Fixes with no other fix
        inside their radius have no rows.

    Raises:
        InvalidRadius: If radius <= 0.
        EmptyTrack: If the track has no fixes.
        InsufficientFixes: If the track has a single fix (nothing can be revisited).
    """
    if radius <= 0:
        raise InvalidRadius(f"radius must be positive, got {radius}")
    check_single_track(track)
    if len(track) < 2:
        raise InsufficientFixes("Revisits need at least 2 fixes, got 1")
    scale = time_scale(time_unit)

    xy = track[["x", "y"]].to_numpy(dtype=float)
    times = track["time"].to_numpy(dtype=float)
    n = len(xy)

    breaks = np.zeros(n, dtype=bool)
    if max_gap is not None:
        steps = np.diff(times)
        limit = max_gap * scale
        breaks[1:] = steps >= limit if inclusive else steps > limit

    rows: list[tuple] = []
    for i in range(n):
        dist = np.hypot(xy[:, 0] - xy[i, 0], xy[:, 1] - xy[i, 1])
        inside = dist <= radius
        if inside.sum() <= 1:
            continue

        starts, ends = _inside_runs(inside, breaks)
        entrance = times[starts]
        exit_ = times[ends]
        since_last = np.concatenate(([np.nan], entrance[1:] - exit_[:-1]))
        for visit, (s, e, t_in, t_out, gap) in enumerate(
            zip(starts, ends, entrance, exit_, since_last), start=1
        ):
            rows.append(
                (i, visit, t_in, t_out, (t_out - t_in) / scale, gap / scale, int(e - s + 1))
            )

    revisits = pd.DataFrame(rows, columns=REVISIT_COLUMNS)
    logger.debug(
        "%d revisits over %d fixes (radius=%g, max_gap=%s)",
        len(revisits),
        n,
        radius,
        max_gap,
    )
    return revisits
