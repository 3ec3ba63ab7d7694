"""Per-runner local crowd density.

:class:`ProximityDensityEngine` is the per-frame hot loop: a radius-based
head count over every unordered pair of active runners, the same pairwise
neighbor discovery a spatial network performs, kept free of any drawing code.
"""

from __future__ import annotations

import numpy as np

from ..core.config import EPSILON


class ProximityDensityEngine:
    """Radius-based neighbor counting with a reusable count buffer.

    The count buffer grows to the largest runner count seen and is never
    shrunk, so steady-state frames do not allocate.  :meth:`compute` writes
    into the caller's *out* array when one is given, otherwise into an
    internal buffer that the next call overwrites.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._counts = np.zeros(capacity)
        self._density = np.zeros(capacity)

    @property
    def capacity(self) -> int:
        return len(self._counts)

    def _ensure_capacity(self, n: int) -> None:
        if n <= self.capacity:
            return
        size = max(n, 2 * self.capacity)
        self._counts = np.zeros(size)
        self._density = np.zeros(size)

    def neighbor_counts(self, xs: np.ndarray, ys: np.ndarray, radius: float) -> np.ndarray:
        """Raw head count within *radius* for each runner, including itself."""
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        n = len(xs)
        self._ensure_capacity(n)
        counts = self._counts[:n]
        counts.fill(1.0)

        r2 = max(radius, EPSILON) ** 2
        for i in range(n - 1):
            dx = xs[i + 1 :] - xs[i]
            dy = ys[i + 1 :] - ys[i]
            within = dx * dx + dy * dy <= r2
            hits = int(np.count_nonzero(within))
            if hits:
                counts[i] += hits
                counts[i + 1 :] += within
        return counts

    def compute(
        self,
        xs: np.ndarray,
        ys: np.ndarray,
        radius: float,
        normalize: bool = True,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """Return the density value of every runner.

        Parameters
        ----------
        xs, ys:
            Planar coordinates of the active runners, in meters.
        radius:
            Neighborhood radius.  Non-positive values are treated as
            :data:`EPSILON` rather than rejected.
        normalize:
            Divide the head count by *radius*, giving runners per meter so
            values compare across radius settings.
        out:
            Array of length ``len(xs)`` to write the densities into.
        """
        n = len(xs)
        counts = self.neighbor_counts(xs, ys, radius)
        if out is None:
            out = self._density[:n]
        if normalize:
            np.divide(counts, max(radius, EPSILON), out=out)
        else:
            out[:] = counts
        return out


def path_density_bins(
    distances: np.ndarray,
    bin_size: float = 10.0,
    smooth: bool = True,
) -> np.ndarray:
    """One-dimensional crowding estimate along the path.

    Runners are binned by distance into *bin_size* buckets; each runner gets
    the head count of its bin, or with *smooth* the mean of its bin and the
    two neighboring bins (edge bins repeat themselves as the missing
    neighbor).
    """
    distances = np.asarray(distances, dtype=float)
    if len(distances) == 0:
        return np.zeros(0)

    size = max(bin_size, EPSILON)
    bin_count = max(1, int(np.floor(distances.max() / size)) + 1)
    idxs = np.clip(np.floor(distances / size).astype(int), 0, bin_count - 1)
    bins = np.bincount(idxs, minlength=bin_count).astype(float)
    if not smooth:
        return bins[idxs]

    padded = np.concatenate(([bins[0]], bins, [bins[-1]]))
    smoothed = (padded[:-2] + padded[1:-1] + padded[2:]) / 3.0
    return smoothed[idxs]
