"""
Residence time: how long an animal stayed around each fix before it left
for longer than an absence threshold.

Only the initial unbroken bout of attendance counts. A return to the same
place after a long absence (the next night's foraging visit, say) is a new
bout, not more residence, so revisits are summed only up to the first one
preceded by an absence longer than `absence_threshold`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from atlas_residence.residence.revisits import check_single_track, compute_revisits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResidenceRecord:
    """Residence statistics for one reference fix."""

    residence_time: float
    first_passage_time: float
    n_revisits: int


EMPTY_RECORD = ResidenceRecord(residence_time=0.0, first_passage_time=0.0, n_revisits=0)


def aggregate_residence(
    revisits: pd.DataFrame,
    absence_threshold: float,
    inclusive: bool = False,
) -> ResidenceRecord:
    """
    Collapse one fix's revisits into a ResidenceRecord.

    Args:
        revisits: The revisit rows of a single reference fix, in time order,
            with `duration` and `time_since_last` columns (as produced by
            compute_revisits).
        absence_threshold: Longest gap, in the revisits' time unit, that still
            counts as the same bout.
        inclusive: If True, a gap exactly equal to the threshold also ends
            the bout. The default counts only gaps strictly above it.

    Returns:
        ResidenceRecord with the summed duration of the retained revisits,
        the duration of the first revisit and the number retained.
    """
    if revisits.empty:
        return EMPTY_RECORD

    durations = revisits["duration"].to_numpy(dtype=float)
    gaps = revisits["time_since_last"].to_numpy(dtype=float)

    # NaN (no previous revisit) compares False, so the first gap never counts.
    with np.errstate(invalid="ignore"):
        long_absence = gaps >= absence_threshold if inclusive else gaps > absence_threshold
    retained = np.cumsum(long_absence) == 0

    return ResidenceRecord(
        residence_time=float(durations[retained].sum()),
        first_passage_time=float(durations[0]),
        n_revisits=int(retained.sum()),
    )


def compute_residence(
    track: pd.DataFrame,
    radius: float,
    absence_threshold: float,
    time_unit: str = "secs",
    inclusive: bool = False,
    split_on_data_gaps: bool = True,
) -> pd.DataFrame:
    """
    Add residence columns to one individual's track.

    Args:
        track: One individual's fixes sorted by time.
        radius: Revisit radius in track units.
        absence_threshold: Bout-ending absence, in `time_unit`.
        time_unit: Unit of absence_threshold and of the output columns.
        inclusive: Passed through to aggregate_residence, and to
            compute_revisits for the data-gap cut, so a tie at the threshold
            is treated the same whether the animal left or the tag was silent.
        split_on_data_gaps: Treat a stretch with no fixes longer than
            absence_threshold as an absence as well, even when the fixes on
            both sides are inside the radius.

    Returns:
        A copy of `track` with three new columns:
            res_time   : residence time
            fpt        : first passage time
            revisits   : number of revisits counted towards res_time
    """
    check_single_track(track)
    revisits = compute_revisits(
        track,
        radius=radius,
        time_unit=time_unit,
        max_gap=absence_threshold if split_on_data_gaps else None,
        inclusive=inclusive,
    )

    records = [EMPTY_RECORD] * len(track)
    for fix_index, fix_revisits in revisits.groupby("fix_index", sort=True):
        records[int(fix_index)] = aggregate_residence(
            fix_revisits, absence_threshold, inclusive=inclusive
        )

    result = track.copy()
    result["res_time"] = [r.residence_time for r in records]
    result["fpt"] = [r.first_passage_time for r in records]
    result["revisits"] = [r.n_revisits for r in records]

    logger.debug(
        "Residence computed for %d fixes: median res_time %.2f %s",
        len(result),
        float(result["res_time"].median()),
        time_unit,
    )
    return result
