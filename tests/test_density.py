"""Tests for per-runner density estimation."""

from __future__ import annotations

import numpy as np
import pytest

from course_congestion.analytics.density import ProximityDensityEngine, path_density_bins


class TestProximityDensity:
    def test_pair_within_radius(self):
        """Two runners 4 m apart with a 5 m radius each count two heads."""
        engine = ProximityDensityEngine()
        dens = engine.compute(np.array([0.0, 4.0]), np.array([0.0, 0.0]), 5.0)
        assert list(dens) == pytest.approx([0.4, 0.4])

    def test_raw_counts(self):
        engine = ProximityDensityEngine()
        dens = engine.compute(
            np.array([0.0, 4.0, 50.0]), np.zeros(3), 5.0, normalize=False,
        )
        assert list(dens) == [2.0, 2.0, 1.0]

    def test_boundary_is_inclusive(self):
        engine = ProximityDensityEngine()
        counts = engine.neighbor_counts(np.array([0.0, 3.0]), np.array([0.0, 4.0]), 5.0)
        assert list(counts) == [2.0, 2.0]

    def test_matches_brute_force(self):
        rng = np.random.default_rng(7)
        xs = rng.uniform(0, 40, 120)
        ys = rng.uniform(0, 40, 120)
        engine = ProximityDensityEngine()
        counts = engine.neighbor_counts(xs, ys, 5.0).copy()

        d2 = (xs[:, None] - xs[None, :]) ** 2 + (ys[:, None] - ys[None, :]) ** 2
        adjacency = d2 <= 25.0
        assert np.array_equal(adjacency, adjacency.T)
        assert np.array_equal(counts, adjacency.sum(axis=1).astype(float))

    def test_zero_radius_stays_finite(self):
        engine = ProximityDensityEngine()
        dens = engine.compute(np.array([1.0, 1.0]), np.array([2.0, 2.0]), 0.0)
        assert np.all(np.isfinite(dens))

    def test_writes_into_out(self):
        engine = ProximityDensityEngine()
        out = np.zeros(2)
        dens = engine.compute(np.array([0.0, 4.0]), np.zeros(2), 5.0, out=out)
        assert dens is out
        assert list(out) == pytest.approx([0.4, 0.4])

    def test_empty_input(self):
        engine = ProximityDensityEngine()
        assert len(engine.compute(np.zeros(0), np.zeros(0), 5.0)) == 0

    def test_buffers_grow_and_are_reused(self):
        engine = ProximityDensityEngine()
        engine.compute(np.zeros(10), np.zeros(10), 5.0)
        cap = engine.capacity
        assert cap >= 10
        dens = engine.compute(np.zeros(3), np.zeros(3), 5.0, normalize=False)
        assert engine.capacity == cap
        assert list(dens) == [3.0, 3.0, 3.0]


class TestPathDensityBins:
    def test_unsmoothed(self):
        dens = path_density_bins(np.array([0.0, 5.0, 12.0, 25.0]), 10.0, smooth=False)
        assert list(dens) == [2.0, 2.0, 1.0, 1.0]

    def test_smoothed_repeats_edge_bins(self):
        dens = path_density_bins(np.array([0.0, 5.0, 12.0, 25.0]), 10.0)
        assert list(dens) == pytest.approx([5 / 3, 5 / 3, 4 / 3, 1.0])

    def test_empty(self):
        assert len(path_density_bins(np.zeros(0))) == 0
