"""Local tangent-plane projection.

Converts latitude/longitude pairs into a planar ``(x, y)`` frame in meters
anchored at an origin point, so that proximity math can use plain Euclidean
distances.  The projection is equirectangular, which is accurate to well
under a meter over the extent of a running course.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    rlat1, rlng1, rlat2, rlng2 = map(math.radians, (lat1, lng1, lat2, lng2))
    dlat = rlat2 - rlat1
    dlng = rlng2 - rlng1
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


@dataclass(frozen=True)
class PlanarProjector:
    """Equirectangular projection around ``(origin_lat, origin_lng)``.

    ``x`` grows eastward and ``y`` northward.  Instances hold only the
    origin, so projecting is a pure function of the input coordinates.
    """

    origin_lat: float = 0.0
    origin_lng: float = 0.0

    @property
    def _x_scale(self) -> float:
        return EARTH_RADIUS_M * math.cos(math.radians(self.origin_lat))

    def project(self, lat: float, lng: float) -> tuple[float, float]:
        x = math.radians(lng - self.origin_lng) * self._x_scale
        y = math.radians(lat - self.origin_lat) * EARTH_RADIUS_M
        return (x, y)

    def project_many(self, latlngs: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        """Project an ``(n, 2)`` array of ``(lat, lng)`` rows to ``(n, 2)`` meters."""
        latlngs = np.asarray(latlngs, dtype=float).reshape(-1, 2)
        if out is None:
            out = np.empty_like(latlngs)
        out[:, 0] = np.radians(latlngs[:, 1] - self.origin_lng) * self._x_scale
        out[:, 1] = np.radians(latlngs[:, 0] - self.origin_lat) * EARTH_RADIUS_M
        return out

    def unproject(self, x: float, y: float) -> tuple[float, float]:
        """Inverse of :meth:`project`, returning ``(lat, lng)``."""
        lat = self.origin_lat + math.degrees(y / EARTH_RADIUS_M)
        lng = self.origin_lng + math.degrees(x / max(self._x_scale, 1e-9))
        return (lat, lng)
