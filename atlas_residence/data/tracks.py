"""
Track preparation for ATLAS localisation tables.

ATLAS exports (CSV or the SQLite `LOCALIZATIONS` table) name their columns
`TAG`, `TIME`, `X`, `Y`, `SD`, `NBS`, ... and store time in milliseconds. Every
other module in this package expects the lower-case Fix contract:

    id, time (s), x (m), y (m), [covariates...]

sorted by (id, time). This module is the one place that mapping happens.

Usage:

    from atlas_residence.data.tracks import prepare_track

    raw = pd.read_csv("data/atlas_raw.csv")
    track = prepare_track(raw, time_in_ms=True)
"""

from __future__ import annotations

import logging
from typing import Mapping

import pandas as pd

from atlas_residence.errors import EmptyTrack

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["id", "time", "x", "y"]

# ATLAS export column names → Fix contract
ATLAS_COLUMNS: dict[str, str] = {
    "TAG": "id",
    "TIME": "time",
    "X": "x",
    "Y": "y",
    "SD": "SD",
    "NBS": "NBS",
    "VARX": "VARX",
    "VARY": "VARY",
    "COVXY": "COVXY",
}


def prepare_track(
    df: pd.DataFrame,
    columns: Mapping[str, str] | None = None,
    time_in_ms: bool = False,
) -> pd.DataFrame:
    """
    Map a raw fix table onto the Fix column contract.

    Args:
        df: Raw fixes, one row per localisation.
        columns: Source → target column renames. Defaults to ATLAS_COLUMNS;
            columns already named id/time/x/y pass through untouched.
        time_in_ms: Divide `time` by 1000 (ATLAS stores epoch milliseconds).

    Returns:
        A new DataFrame sorted by (id, time) with a fresh RangeIndex.
        Rows with missing coordinates or a duplicated (id, time) are dropped.

    Raises:
        KeyError: If a required column is missing after renaming.
        EmptyTrack: If no fixes remain.
    """
    mapping = dict(ATLAS_COLUMNS if columns is None else columns)
    track = df.rename(columns={k: v for k, v in mapping.items() if k in df.columns})

    missing = [c for c in REQUIRED_COLUMNS if c not in track.columns]
    if missing:
        raise KeyError(f"Missing required columns {missing}; got {list(track.columns)}")

    if track.empty:
        raise EmptyTrack("No fixes supplied")

    track = track.copy()
    track["time"] = pd.to_numeric(track["time"], errors="coerce").astype(float)
    if time_in_ms:
        track["time"] = track["time"] / 1000.0

    n_before = len(track)
    track = track.dropna(subset=["time", "x", "y"])
    n_missing = n_before - len(track)

    track = track.sort_values(["id", "time"], kind="mergesort")
    dupes = track.duplicated(subset=["id", "time"], keep="first")
    track = track[~dupes].reset_index(drop=True)

    if n_missing or dupes.any():
        logger.info(
            "Dropped %d fixes with missing values and %d duplicated timestamps",
            n_missing,
            int(dupes.sum()),
        )

    if track.empty:
        raise EmptyTrack("No fixes left after dropping missing coordinates")

    return track


def split_by_individual(
    track: pd.DataFrame, group_cols: tuple[str, ...] | list[str] = ("id",)
) -> list[tuple[tuple, pd.DataFrame]]:
    """
    Partition a multi-individual table into independent per-group copies.

    Each returned frame is owned by its caller: it is a copy with a fresh
    RangeIndex, so per-group work never aliases the input or another group.
    Groups are returned sorted by key.
    """
    cols = list(group_cols)
    missing = [c for c in cols if c not in track.columns]
    if missing:
        raise KeyError(f"Missing grouping columns {missing}")

    parts: list[tuple[tuple, pd.DataFrame]] = []
    for key, group in track.groupby(cols, sort=True):
        key = key if isinstance(key, tuple) else (key,)
        part = group.sort_values("time", kind="mergesort").reset_index(drop=True).copy()
        parts.append((key, part))
    return parts
