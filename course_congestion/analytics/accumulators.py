"""Streaming statistic accumulators for segment-group crowding.

Each accumulator holds the state of one statistic for every segment group
as flat numpy arrays indexed by group id.  All of them are fed the
per-group frame values and only ever look at the non-zero ones; callers
mask ``seen`` groups themselves.
"""

from __future__ import annotations

import math
from collections import deque

import numpy as np

from ..core.config import EPSILON


class ActiveAverage:
    """Mean over the frames where a group's value was non-zero."""

    def __init__(self, groups: int) -> None:
        self.sums = np.zeros(groups)
        self.counts = np.zeros(groups, dtype=np.int64)

    def push(self, values: np.ndarray) -> None:
        nonzero = values > 0
        self.sums[nonzero] += values[nonzero]
        self.counts[nonzero] += 1

    def values(self) -> np.ndarray:
        return self.sums / np.maximum(self.counts, 1)

    def reset(self) -> None:
        self.sums.fill(0.0)
        self.counts.fill(0)


class MaxTracker:
    """Largest value observed per group."""

    def __init__(self, groups: int) -> None:
        self.maxima = np.zeros(groups)

    def push(self, values: np.ndarray, mask: np.ndarray | None = None) -> None:
        if mask is None:
            np.maximum(self.maxima, values, out=self.maxima)
        else:
            self.maxima[mask] = np.maximum(self.maxima[mask], values[mask])

    def values(self) -> np.ndarray:
        return self.maxima

    def reset(self) -> None:
        self.maxima.fill(0.0)


class RollingWindow:
    """Mean of non-zero samples taken every *sample_s* within the last *window_s*.

    Snapshots of all group values are queued in time order.  Sums and
    non-zero counts are updated on push and on expiry, so a read costs
    nothing beyond the expiry of stale snapshots.
    """

    def __init__(self, groups: int, window_s: float = 180.0, sample_s: float = 1.0) -> None:
        self.window_s = window_s
        self.sample_s = max(sample_s, EPSILON)
        self.sums = np.zeros(groups)
        self.counts = np.zeros(groups, dtype=np.int64)
        self.queue: deque[tuple[float, np.ndarray]] = deque()
        self._next_sample: float | None = None

    def due(self, sim_time: float) -> bool:
        return self._next_sample is None or sim_time >= self._next_sample

    def push(self, sim_time: float, values: np.ndarray) -> bool:
        """Record a snapshot if one is due at *sim_time*; return whether it was."""
        if not self.due(sim_time):
            self.expire(sim_time)
            return False
        snapshot = np.where(values > 0, values, 0.0)
        self.queue.append((sim_time, snapshot))
        self.sums += snapshot
        self.counts += snapshot > 0
        if self._next_sample is None:
            self._next_sample = sim_time + self.sample_s
        else:
            # Stay on the sampling grid even when frames skip past it.
            steps = math.floor((sim_time - self._next_sample) / self.sample_s) + 1
            self._next_sample += steps * self.sample_s
        self.expire(sim_time)
        return True

    def expire(self, sim_time: float) -> None:
        """Drop snapshots older than ``window_s`` relative to *sim_time*."""
        cutoff = sim_time - self.window_s
        while self.queue and self.queue[0][0] < cutoff:
            _t, snapshot = self.queue.popleft()
            self.sums -= snapshot
            self.counts -= snapshot > 0
        # A group with no non-zero sample left holds exactly zero.
        self.sums[self.counts == 0] = 0.0

    def oldest_time(self) -> float | None:
        return self.queue[0][0] if self.queue else None

    def values(self) -> np.ndarray:
        return self.sums / np.maximum(self.counts, 1)

    def reset(self) -> None:
        self.sums.fill(0.0)
        self.counts.fill(0)
        self.queue.clear()
        self._next_sample = None


class DensityHistogram:
    """Fixed-width histogram of non-zero values per group.

    Values at or above ``max_value`` land in the last bin, so every
    reported value is bounded by the largest bin midpoint.
    """

    def __init__(self, groups: int, bin_width: float = 0.25, max_value: float = 20.0) -> None:
        self.bin_width = max(bin_width, EPSILON)
        self.bin_count = max(1, int(math.ceil(max_value / self.bin_width)))
        self.bins = np.zeros((groups, self.bin_count), dtype=np.int64)
        self.totals = np.zeros(groups, dtype=np.int64)
        self.midpoints = (np.arange(self.bin_count) + 0.5) * self.bin_width

    def bin_index(self, values: np.ndarray) -> np.ndarray:
        idx = np.floor(np.asarray(values, dtype=float) / self.bin_width).astype(np.int64)
        return np.clip(idx, 0, self.bin_count - 1)

    def push(self, values: np.ndarray) -> None:
        groups = np.flatnonzero(values > 0)
        if len(groups) == 0:
            return
        self.bins[groups, self.bin_index(values[groups])] += 1
        self.totals[groups] += 1

    def percentile(self, group: int, rank: float) -> float:
        """Midpoint of the bin holding the ``ceil(rank * total)``-th smallest sample."""
        total = int(self.totals[group])
        if total == 0:
            return 0.0
        target = min(total, max(1, math.ceil(rank * total)))
        cumulative = np.cumsum(self.bins[group])
        b = int(np.searchsorted(cumulative, target, side="left"))
        return float(self.midpoints[b])

    def top_fraction_mean(self, group: int, fraction: float) -> float:
        """Mean of the highest ``ceil(fraction * total)`` samples, by bin midpoint."""
        total = int(self.totals[group])
        if total == 0:
            return 0.0
        quota = min(total, max(1, math.ceil(fraction * total)))
        remaining = quota
        acc = 0.0
        row = self.bins[group]
        for b in range(self.bin_count - 1, -1, -1):
            if remaining <= 0:
                break
            take = min(int(row[b]), remaining)
            if take:
                acc += take * self.midpoints[b]
                remaining -= take
        return acc / quota

    def percentiles(self, rank: float) -> np.ndarray:
        return np.array([self.percentile(g, rank) for g in range(len(self.totals))])

    def top_fraction_means(self, fraction: float) -> np.ndarray:
        return np.array([self.top_fraction_mean(g, fraction) for g in range(len(self.totals))])

    def reset(self) -> None:
        self.bins.fill(0)
        self.totals.fill(0)
