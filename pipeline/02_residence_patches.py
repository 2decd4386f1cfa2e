"""
02_residence_patches.py — Residence time and residence patches per individual.

Reads the clean tracks, computes residence time for every fix and segments
each individual's high-residence fixes into patches. Writes the patch table
as CSV and the patch polygons as a GeoPackage layer, keyed by the same
id/patch columns. Individuals that fail a precondition are listed in a
separate errors CSV.

Usage:
    python -m pipeline.02_residence_patches

Output:
    data/patches/patch_summary.csv
    data/patches/patches.gpkg
    data/patches/patch_errors.csv   (only if some individuals failed)
"""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd

_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from atlas_residence.config import load_config  # noqa: E402
from atlas_residence.logging_utils import get_logger  # noqa: E402
from atlas_residence.residence.batch import ResidenceParams, run_residence_batch  # noqa: E402

logger = get_logger(__name__)

_cfg = load_config("pipeline")
_data = _cfg["data"]
_batch = _cfg.get("batch", {})

PARAMS = ResidenceParams.from_config(_cfg["residence"])
GROUP_COLS: tuple[str, ...] = tuple(_batch.get("group_cols", ["id"]))
N_JOBS: int = _batch.get("n_jobs", 1)


def main() -> None:
    clean_csv = Path(_data["clean_tracks_csv"])
    results_dir = Path(_data["results_dir"])
    get_logger(__name__, log_file=results_dir / "residence_patches.log")

    logger.info("Reading clean tracks from %s", clean_csv)
    tracks = pd.read_csv(clean_csv)
    logger.info("Residence parameters: %s", PARAMS)

    result = run_residence_batch(
        tracks,
        PARAMS,
        group_cols=GROUP_COLS,
        n_jobs=N_JOBS,
        crs=_data.get("crs"),
    )

    if result.patches.empty:
        logger.error("No patches found. Check min_res_time and min_fixes.")

    results_dir.mkdir(parents=True, exist_ok=True)
    summary_csv = results_dir / "patch_summary.csv"
    result.patches.to_csv(summary_csv, index=False)
    logger.info("%d patches → %s", len(result.patches), summary_csv)

    if not result.spatials.empty:
        gpkg = results_dir / "patches.gpkg"
        result.spatials.to_file(gpkg, layer="patches", driver="GPKG")
        logger.info("Patch polygons → %s", gpkg)

    if not result.errors.empty:
        errors_csv = results_dir / "patch_errors.csv"
        result.errors.to_csv(errors_csv, index=False)
        logger.warning("%d groups failed, see %s", len(result.errors), errors_csv)


if __name__ == "__main__":
    main()
