"""Tests for the streaming statistic accumulators."""

from __future__ import annotations

import numpy as np
import pytest

from course_congestion.analytics.accumulators import (
    ActiveAverage,
    DensityHistogram,
    MaxTracker,
    RollingWindow,
)


class TestActiveAverage:
    def test_ignores_zero_frames(self):
        avg = ActiveAverage(1)
        for v in (1.0, 0.0, 3.0, 2.0, 0.0):
            avg.push(np.array([v]))
        assert avg.values()[0] == pytest.approx(2.0)

    def test_untouched_group_reads_zero(self):
        avg = ActiveAverage(2)
        avg.push(np.array([4.0, 0.0]))
        assert list(avg.values()) == [4.0, 0.0]

    def test_reset(self):
        avg = ActiveAverage(1)
        avg.push(np.array([5.0]))
        avg.reset()
        assert avg.values()[0] == 0.0


class TestMaxTracker:
    def test_tracks_maximum(self):
        tracker = MaxTracker(2)
        tracker.push(np.array([1.0, 2.0]))
        tracker.push(np.array([3.0, 0.5]))
        assert list(tracker.values()) == [3.0, 2.0]

    def test_mask_limits_updates(self):
        tracker = MaxTracker(2)
        tracker.push(np.array([1.0, 2.0]), mask=np.array([True, False]))
        assert list(tracker.values()) == [1.0, 0.0]


class TestRollingWindow:
    def test_samples_on_a_fixed_grid(self):
        window = RollingWindow(1, window_s=60.0, sample_s=1.0)
        assert window.push(0.0, np.array([1.0]))
        assert not window.push(0.5, np.array([1.0]))
        assert window.push(1.7, np.array([1.0]))
        assert not window.push(1.9, np.array([1.0]))
        assert window.push(2.0, np.array([1.0]))
        assert len(window.queue) == 3

    def test_old_samples_expire(self):
        window = RollingWindow(1, window_s=10.0, sample_s=1.0)
        for t in range(31):
            window.push(float(t), np.array([t + 1.0]))
        assert window.oldest_time() >= 20.0
        # Samples at t = 20..30 hold values 21..31.
        assert window.values()[0] == pytest.approx(26.0)

    def test_sums_match_queue(self):
        rng = np.random.default_rng(3)
        window = RollingWindow(4, window_s=5.0, sample_s=0.5)
        for t in np.arange(0.0, 40.0, 0.3):
            values = np.where(rng.random(4) < 0.5, 0.0, rng.random(4))
            window.push(float(t), values)
            snapshots = np.array([s for _t, s in window.queue])
            assert np.allclose(window.sums, snapshots.sum(axis=0))
            assert np.array_equal(window.counts, (snapshots > 0).sum(axis=0))

    def test_zero_samples_do_not_count(self):
        window = RollingWindow(1, window_s=60.0, sample_s=1.0)
        window.push(0.0, np.array([4.0]))
        window.push(1.0, np.array([0.0]))
        window.push(2.0, np.array([2.0]))
        assert window.values()[0] == pytest.approx(3.0)

    def test_expired_group_reads_exact_zero(self):
        """Float residue from expiry never survives once a group has no samples left."""
        window = RollingWindow(1, window_s=2.0, sample_s=1.0)
        for t, v in enumerate((0.1, 0.2, 0.0, 0.0, 0.0)):
            window.push(float(t), np.array([v]))
        assert len(window.queue) == 3
        assert window.counts[0] == 0
        assert window.sums[0] == 0.0
        assert window.values()[0] == 0.0

    def test_empty_window_reads_zero(self):
        window = RollingWindow(1, window_s=5.0, sample_s=1.0)
        window.push(0.0, np.array([4.0]))
        window.expire(100.0)
        assert window.oldest_time() is None
        assert window.values()[0] == 0.0

    def test_reset_restarts_the_grid(self):
        window = RollingWindow(1, window_s=60.0, sample_s=1.0)
        window.push(0.0, np.array([1.0]))
        window.reset()
        assert window.push(0.2, np.array([1.0]))


class TestDensityHistogram:
    def test_percentile_reports_bin_midpoint(self):
        hist = DensityHistogram(1, bin_width=0.25, max_value=20.0)
        for v in (1.0, 3.0, 2.0):
            hist.push(np.array([v]))
        assert hist.percentile(0, 0.9) == pytest.approx(3.125)
        assert hist.percentile(0, 0.5) == pytest.approx(2.125)
        assert hist.percentile(0, 0.0) == pytest.approx(1.125)

    def test_top_fraction_mean(self):
        hist = DensityHistogram(1, bin_width=0.25, max_value=20.0)
        for v in (1.0, 3.0, 2.0):
            hist.push(np.array([v]))
        assert hist.top_fraction_mean(0, 0.3) == pytest.approx(3.125)
        assert hist.top_fraction_mean(0, 1.0) == pytest.approx(2.125)

    def test_percentile_is_monotonic_in_rank(self):
        rng = np.random.default_rng(11)
        hist = DensityHistogram(1)
        for v in rng.uniform(0.01, 6.0, 500):
            hist.push(np.array([v]))
        ranks = np.linspace(0.0, 1.0, 21)
        values = [hist.percentile(0, r) for r in ranks]
        assert all(a <= b for a, b in zip(values, values[1:]))

    def test_values_above_range_use_last_bin(self):
        hist = DensityHistogram(1, bin_width=0.25, max_value=20.0)
        hist.push(np.array([100.0]))
        assert hist.percentile(0, 1.0) == pytest.approx(19.875)
        assert hist.percentile(0, 1.0) <= 20.0

    def test_zero_values_are_not_recorded(self):
        hist = DensityHistogram(2)
        hist.push(np.array([0.0, 1.0]))
        assert list(hist.totals) == [0, 1]
        assert hist.percentile(0, 0.9) == 0.0
        assert hist.top_fraction_mean(0, 0.3) == 0.0

    def test_vector_queries(self):
        hist = DensityHistogram(2, bin_width=1.0, max_value=10.0)
        hist.push(np.array([2.2, 5.5]))
        assert list(hist.percentiles(0.5)) == pytest.approx([2.5, 5.5])
        assert list(hist.top_fraction_means(0.5)) == pytest.approx([2.5, 5.5])
