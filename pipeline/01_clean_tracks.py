"""
01_clean_tracks.py — Clean raw ATLAS localisations into analysis-ready tracks.

Reads the raw localisation export, maps it onto the id/time/x/y contract,
drops poor-quality fixes by covariate and by speed, applies a median smooth
and optionally thins the result. Each individual is cleaned separately; an
individual whose track is too short for the smoothing window is skipped with
a warning rather than stopping the run.

Usage:
    python -m pipeline.01_clean_tracks

Output:
    data/data_clean.csv
"""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd

# Make the project root importable so atlas_residence.* works from any directory.
_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from atlas_residence.config import load_config  # noqa: E402
from atlas_residence.data.tracks import prepare_track, split_by_individual  # noqa: E402
from atlas_residence.errors import ResidenceError  # noqa: E402
from atlas_residence.features.cleaning import (  # noqa: E402
    filter_covariates,
    filter_speed,
    get_speed,
    median_smooth,
    thin_data,
)
from atlas_residence.logging_utils import get_logger  # noqa: E402

logger = get_logger(__name__)

_cfg = load_config("pipeline")
_data = _cfg["data"]
_clean = _cfg["cleaning"]

MAX_SPEED: float = _clean["max_speed"]
MEDIAN_WINDOW: int = _clean["median_window"]
THIN_INTERVAL: float | None = _clean.get("thin_interval")
THIN_METHOD: str = _clean.get("thin_method", "aggregate")


def _clean_individual(track: pd.DataFrame) -> pd.DataFrame:
    """Run every cleaning step on one individual's fixes."""
    track = filter_covariates(track, _clean.get("covariate_filters", []))
    track = filter_speed(track, MAX_SPEED)
    track = median_smooth(track, MEDIAN_WINDOW)
    if THIN_INTERVAL:
        track = thin_data(track, THIN_INTERVAL, method=THIN_METHOD)
    track["speed_in"] = get_speed(track, "in")
    return track


def main() -> None:
    raw_csv = Path(_data["raw_tracks_csv"])
    output_csv = Path(_data["clean_tracks_csv"])

    logger.info("Reading raw localisations from %s", raw_csv)
    raw_df = pd.read_csv(raw_csv)
    tracks = prepare_track(raw_df, time_in_ms=_data.get("time_in_ms", False))

    parts = split_by_individual(tracks)
    logger.info("Cleaning %d individuals", len(parts))

    cleaned: list[pd.DataFrame] = []
    for i, (key, track) in enumerate(parts, start=1):
        logger.info("[%d/%d] id=%s (%d fixes)", i, len(parts), key[0], len(track))
        try:
            cleaned.append(_clean_individual(track))
        except ResidenceError as e:
            logger.warning("Skipping id=%s: %s", key[0], e)

    if not cleaned:
        logger.error("No individual survived cleaning. Check filters and window size.")
        return

    clean_df = pd.concat(cleaned, ignore_index=True)
    output_csv.parent.mkdir(parents=True, exist_ok=True)
    clean_df.to_csv(output_csv, index=False)
    logger.info(
        "Clean tracks: %d individuals, %d fixes → %s",
        len(cleaned),
        len(clean_df),
        output_csv,
    )


if __name__ == "__main__":
    main()
