"""Position sampling: distance along the route and planar coordinates."""

from __future__ import annotations

import numpy as np

from .config import EPSILON
from .route import Route
from .runner import Runner

_FALLBACK_XY = (0.0, 0.0)


class PositionSampler:
    """Locates runners on a route at a given simulated time.

    Every method is a pure function of its arguments; the class only groups
    the scalar and vectorised forms together.
    """

    # ── Distance along the route ─────────────────────────────────────

    @staticmethod
    def distance_along(runner: Runner, sim_time: float, path_length: float) -> float:
        """Meters covered by *runner* at *sim_time*, clamped to ``[0, path_length]``."""
        elapsed = max(0.0, sim_time - runner.start_time)
        d = elapsed * runner.speed_mps
        if d <= 0:
            return 0.0
        if d >= path_length:
            return max(path_length, 0.0)
        return d

    @staticmethod
    def distances_along(
        start_times: np.ndarray,
        paces: np.ndarray,
        sim_time: float,
        path_length: float,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """Vectorised :meth:`distance_along` over arrays of start times and paces."""
        elapsed = np.maximum(sim_time - start_times, 0.0)
        speeds = 1000.0 / np.maximum(paces, EPSILON)
        return np.clip(elapsed * speeds, 0.0, max(path_length, 0.0), out=out)

    # ── Planar coordinates ───────────────────────────────────────────

    @staticmethod
    def planar_position(route: Route, distance: float) -> tuple[float, float]:
        """Planar ``(x, y)`` of the point *distance* meters along *route*."""
        xy = PositionSampler.planar_positions(route, np.array([distance], dtype=float))
        return (float(xy[0, 0]), float(xy[0, 1]))

    @staticmethod
    def planar_positions(
        route: Route,
        distances: np.ndarray,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """Planar positions for an array of distances, shape ``(len(distances), 2)``.

        The bracketing vertices are found by binary search over the
        cumulative distances; the point is interpolated linearly in
        latitude/longitude and then projected, into *out* when given.
        """
        distances = np.asarray(distances, dtype=float)
        n = len(route)
        if n < 2:
            if out is None:
                out = np.empty((len(distances), 2))
            out[:] = route.projector.project(*route.points[0]) if n else _FALLBACK_XY
            return out

        cumdist = route.cumdist
        clamped = np.clip(distances, 0.0, cumdist[-1])
        idx = np.searchsorted(cumdist, clamped, side="left")
        idx = np.clip(idx, 1, n - 1)

        d0 = cumdist[idx - 1]
        d1 = cumdist[idx]
        span = d1 - d0
        t = np.where(span > 0, (clamped - d0) / np.where(span > 0, span, 1.0), 1.0)

        a = route.points[idx - 1]
        b = route.points[idx]
        latlngs = a + (b - a) * t[:, None]
        return route.projector.project_many(latlngs, out=out)
