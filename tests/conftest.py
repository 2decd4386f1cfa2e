"""
Shared pytest fixtures for the residence patch test suite.

All fixtures are synthetic tracks in a planar projection (metres, seconds).
Positions and times are chosen so that revisit runs, residence times and
patch memberships can be worked out by hand.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest


def _make_track(xs, ys, times, track_id: str = "A", **covariates) -> pd.DataFrame:
    """Build a Fix-contract DataFrame from parallel sequences."""
    data = {
        "id": track_id,
        "time": np.asarray(times, dtype=float),
        "x": np.asarray(xs, dtype=float),
        "y": np.asarray(ys, dtype=float),
    }
    data.update({k: np.asarray(v, dtype=float) for k, v in covariates.items()})
    return pd.DataFrame(data)


@pytest.fixture()
def make_track():
    """Factory for small hand-built tracks: make_track(xs, ys, times, track_id, **covariates)."""
    return _make_track


# ---------------------------------------------------------------------------
# Residence scenarios
# ---------------------------------------------------------------------------

@pytest.fixture()
def two_bout_track() -> pd.DataFrame:
    """
    20 fixes at the origin one minute apart, two hours with no fixes, then
    20 more fixes at the origin one minute apart.

    First bout: t = 0 .. 1140 s (19 minutes long).
    Second bout: t = 8340 .. 9480 s.
    """
    first = np.arange(20) * 60.0
    second = first[-1] + 2 * 3600.0 + np.arange(20) * 60.0
    times = np.concatenate((first, second))
    return _make_track(np.zeros(40), np.zeros(40), times)


@pytest.fixture()
def there_and_back_track() -> pd.DataFrame:
    """
    Four fixes one minute apart: origin, origin, 100 m east, origin.

    Fixes 0, 1 and 3 each see two revisits to the origin; fix 2 sees none.
    """
    return _make_track([0, 0, 100, 0], [0, 0, 0, 0], [0, 60, 120, 180])


# ---------------------------------------------------------------------------
# Patch scenarios
# ---------------------------------------------------------------------------

_SQUARE = [(0, 0), (5, 0), (0, 5), (5, 5), (2, 2)]


@pytest.fixture()
def two_cluster_track() -> pd.DataFrame:
    """
    Five fixes in a 5 m square at the origin (t = 0 .. 240 s), then five in
    the same square shifted 200 m east (t = 300 .. 540 s). The nearest pair
    across clusters is 195 m apart.
    """
    xs = [p[0] for p in _SQUARE] + [p[0] + 200 for p in _SQUARE]
    ys = [p[1] for p in _SQUARE] * 2
    times = np.arange(10) * 60.0
    return _make_track(xs, ys, times, SD=np.arange(1, 11))


@pytest.fixture()
def wandering_track() -> pd.DataFrame:
    """
    300 fixes moving between three sites with noise and occasional long
    gaps. Used for properties that must hold on any track.
    """
    rng = np.random.default_rng(7)
    sites = np.array([[0.0, 0.0], [400.0, 0.0], [150.0, 300.0]])
    site_idx = np.repeat(rng.integers(0, 3, size=15), 20)
    xy = sites[site_idx] + rng.normal(0.0, 15.0, size=(300, 2))
    steps = np.where(rng.random(300) < 0.05, 3600.0, 60.0)
    times = np.cumsum(steps) - steps[0]
    return _make_track(xy[:, 0], xy[:, 1], times, SD=rng.uniform(2, 30, size=300))


# ---------------------------------------------------------------------------
# Multi-individual table
# ---------------------------------------------------------------------------

@pytest.fixture()
def multi_individual_df(two_cluster_track: pd.DataFrame) -> pd.DataFrame:
    """
    Three individuals:
      - "A": the two-cluster track (two patches)
      - "B": six fixes at one place, one minute apart (one patch)
      - "C": a single fix (too short for revisits)
    """
    b = _make_track([50] * 6, [50] * 6, np.arange(6) * 60.0, track_id="B", SD=[3.0] * 6)
    c = _make_track([0], [0], [0], track_id="C", SD=[5.0])
    # deliberately out of order: the batch runner must sort by key
    return pd.concat([c, b, two_cluster_track], ignore_index=True)
