"""
Tests for atlas_residence.residence.batch — per-individual batch runs.
"""

from __future__ import annotations

from dataclasses import replace

import pandas as pd
import pytest

from atlas_residence.config import load_config
from atlas_residence.residence.batch import (
    ResidenceParams,
    process_individual,
    run_residence_batch,
)

PARAMS = ResidenceParams(
    radius=20.0,
    absence_threshold=60,
    spatial_indep_limit=100.0,
    temporal_indep_limit=30,
    buffer_radius=25.0,
    min_fixes=3,
    time_unit="mins",
    summary_variables=("SD",),
    summary_functions=("mean",),
)


class TestResidenceParams:
    def test_from_pipeline_config(self) -> None:
        params = ResidenceParams.from_config(load_config("pipeline")["residence"])
        assert params.radius > 0
        assert params.summary_functions == ("mean", "sd")
        assert isinstance(params.summary_variables, tuple)

    def test_unknown_key_rejected(self) -> None:
        section = {
            "radius": 1.0, "absence_threshold": 1, "spatial_indep_limit": 1.0,
            "temporal_indep_limit": 1, "buffer_radius": 1.0, "min_fixes": 1,
            "radious": 2.0,
        }
        with pytest.raises(ValueError, match="radious"):
            ResidenceParams.from_config(section)


class TestProcessIndividual:
    def test_two_cluster_track(self, two_cluster_track: pd.DataFrame) -> None:
        patches = process_individual(two_cluster_track, PARAMS)
        assert [p.n_fixes for p in patches] == [5, 5]


class TestRunBatch:
    def test_patches_for_every_good_individual(self, multi_individual_df: pd.DataFrame) -> None:
        result = run_residence_batch(multi_individual_df, PARAMS)
        assert result.patches["id"].tolist() == ["A", "A", "B"]
        assert result.patches["patch"].tolist() == [1, 2, 1]

    def test_failed_individual_is_isolated(self, multi_individual_df: pd.DataFrame) -> None:
        result = run_residence_batch(multi_individual_df, PARAMS)
        assert len(result.errors) == 1
        assert result.errors.loc[0, "key"] == ("C",)
        assert result.errors.loc[0, "error"] == "InsufficientFixes"

    def test_spatials_match_patches(self, multi_individual_df: pd.DataFrame) -> None:
        result = run_residence_batch(multi_individual_df, PARAMS, crs="EPSG:2039")
        assert len(result.spatials) == len(result.patches)
        assert result.spatials["id"].tolist() == result.patches["id"].tolist()

    def test_input_not_modified(self, multi_individual_df: pd.DataFrame) -> None:
        before = multi_individual_df.copy()
        run_residence_batch(multi_individual_df, PARAMS)
        pd.testing.assert_frame_equal(multi_individual_df, before)

    def test_parallel_matches_serial(self, multi_individual_df: pd.DataFrame) -> None:
        serial = run_residence_batch(multi_individual_df, PARAMS, n_jobs=1)
        parallel = run_residence_batch(multi_individual_df, PARAMS, n_jobs=2)
        pd.testing.assert_frame_equal(serial.patches, parallel.patches)
        assert serial.errors["key"].tolist() == parallel.errors["key"].tolist()

    def test_no_errors_gives_empty_error_table(self, two_cluster_track: pd.DataFrame) -> None:
        result = run_residence_batch(two_cluster_track, PARAMS)
        assert result.errors.empty
        assert list(result.errors.columns) == ["key", "error", "message"]

    def test_all_failed_keeps_patch_table_header(
        self, make_track, multi_individual_df: pd.DataFrame
    ) -> None:
        normal = run_residence_batch(multi_individual_df, PARAMS)
        lonely = pd.concat(
            [
                make_track([0], [0], [0], track_id="D", SD=[1.0]),
                make_track([5], [5], [0], track_id="E", SD=[2.0]),
            ],
            ignore_index=True,
        )
        result = run_residence_batch(lonely, PARAMS)
        assert result.patches.empty
        assert list(result.patches.columns) == list(normal.patches.columns)
        assert "id" in result.spatials.columns
        assert len(result.errors) == 2

    def test_single_fix_is_an_error_even_with_min_fixes_one(
        self, multi_individual_df: pd.DataFrame
    ) -> None:
        params = replace(PARAMS, min_fixes=1)
        result = run_residence_batch(multi_individual_df, params)
        assert result.errors["key"].tolist() == [("C",)]
        assert "C" not in result.patches["id"].tolist()
