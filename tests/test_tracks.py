"""
Tests for atlas_residence.data.tracks — mapping raw ATLAS tables onto the
Fix column contract.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from atlas_residence.data.tracks import prepare_track, split_by_individual
from atlas_residence.errors import EmptyTrack


@pytest.fixture()
def atlas_raw() -> pd.DataFrame:
    """Raw ATLAS-style export: upper-case columns, millisecond times, out of order."""
    return pd.DataFrame({
        "TAG": [2, 1, 1, 1, 2],
        "TIME": [2000, 3000, 1000, 1000, 1000],
        "X": [10.0, 3.0, 1.0, 1.5, 20.0],
        "Y": [0.0, 0.0, 0.0, 0.0, np.nan],
        "SD": [5.0, 6.0, 7.0, 8.0, 9.0],
        "NBS": [3, 4, 5, 6, 7],
    })


class TestPrepareTrack:
    def test_renames_atlas_columns(self, atlas_raw: pd.DataFrame) -> None:
        track = prepare_track(atlas_raw, time_in_ms=True)
        for col in ("id", "time", "x", "y", "SD", "NBS"):
            assert col in track.columns

    def test_converts_milliseconds(self, atlas_raw: pd.DataFrame) -> None:
        track = prepare_track(atlas_raw, time_in_ms=True)
        assert track["time"].max() == pytest.approx(3.0)

    def test_sorted_by_id_then_time(self, atlas_raw: pd.DataFrame) -> None:
        track = prepare_track(atlas_raw, time_in_ms=True)
        assert track["id"].tolist() == [1, 1, 2]
        for _, group in track.groupby("id"):
            assert group["time"].is_monotonic_increasing

    def test_duplicate_timestamp_keeps_first_row(self, atlas_raw: pd.DataFrame) -> None:
        track = prepare_track(atlas_raw, time_in_ms=True)
        first = track[(track["id"] == 1) & (track["time"] == 1.0)]
        assert len(first) == 1
        assert first["x"].iloc[0] == 1.0

    def test_missing_coordinates_dropped(self, atlas_raw: pd.DataFrame) -> None:
        track = prepare_track(atlas_raw, time_in_ms=True)
        assert not track[["x", "y"]].isna().any().any()
        assert 20.0 not in track["x"].tolist()

    def test_input_is_not_modified(self, atlas_raw: pd.DataFrame) -> None:
        before = atlas_raw.copy()
        prepare_track(atlas_raw, time_in_ms=True)
        pd.testing.assert_frame_equal(atlas_raw, before)

    def test_custom_column_mapping(self) -> None:
        raw = pd.DataFrame({"tag": ["a"], "t": [0.0], "east": [1.0], "north": [2.0]})
        track = prepare_track(raw, columns={"tag": "id", "t": "time", "east": "x", "north": "y"})
        assert track.loc[0, "x"] == 1.0

    def test_missing_required_column(self) -> None:
        with pytest.raises(KeyError, match="time"):
            prepare_track(pd.DataFrame({"TAG": [1], "X": [0.0], "Y": [0.0]}))

    def test_empty_input(self) -> None:
        with pytest.raises(EmptyTrack):
            prepare_track(pd.DataFrame(columns=["TAG", "TIME", "X", "Y"]))

    def test_all_rows_missing_coordinates(self) -> None:
        raw = pd.DataFrame({"TAG": [1], "TIME": [0], "X": [np.nan], "Y": [0.0]})
        with pytest.raises(EmptyTrack):
            prepare_track(raw)


class TestSplitByIndividual:
    def test_groups_sorted_by_key(self, multi_individual_df: pd.DataFrame) -> None:
        keys = [key for key, _ in split_by_individual(multi_individual_df)]
        assert keys == [("A",), ("B",), ("C",)]

    def test_parts_are_independent_copies(self, multi_individual_df: pd.DataFrame) -> None:
        (_, part_a), *_ = split_by_individual(multi_individual_df)
        part_a.loc[0, "x"] = -999.0
        assert -999.0 not in multi_individual_df["x"].tolist()

    def test_parts_have_fresh_index(self, multi_individual_df: pd.DataFrame) -> None:
        for _, part in split_by_individual(multi_individual_df):
            assert part.index.tolist() == list(range(len(part)))

    def test_missing_group_column(self, multi_individual_df: pd.DataFrame) -> None:
        with pytest.raises(KeyError, match="night"):
            split_by_individual(multi_individual_df, ("id", "night"))
