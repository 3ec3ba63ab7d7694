"""Route ingestion: GPX parsing and cumulative distance indexing."""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .projection import PlanarProjector, haversine_m

logger = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_gpx(text: str) -> list[tuple[float, float]]:
    """Extract ``(lat, lng)`` pairs from GPX text.

    Track points (``trkpt``) are preferred; route points (``rtept``) are used
    when the file has no track.  Points with non-finite coordinates are
    dropped.

    Raises
    ------
    ValueError
        If the XML cannot be parsed or it holds fewer than two points.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ValueError("Invalid GPX XML file.") from exc

    trkpts = [el for el in root.iter() if _local_name(el.tag) == "trkpt"]
    rtepts = [el for el in root.iter() if _local_name(el.tag) == "rtept"]
    src = trkpts if trkpts else rtepts
    if len(src) < 2:
        raise ValueError("GPX must contain at least two trkpt or rtept nodes.")

    points: list[tuple[float, float]] = []
    for node in src:
        try:
            lat = float(node.get("lat", "nan"))
            lng = float(node.get("lon", "nan"))
        except ValueError:
            continue
        if math.isfinite(lat) and math.isfinite(lng):
            points.append((lat, lng))
    return points


def build_cumulative_distances(
    points: np.ndarray | list[tuple[float, float]],
) -> tuple[np.ndarray, float]:
    """Return ``(cumdist, total)`` in meters for an ordered ``(lat, lng)`` list."""
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(pts) < 2:
        return np.zeros(1), 0.0
    cumdist = np.zeros(len(pts))
    total = 0.0
    for i in range(1, len(pts)):
        total += haversine_m(pts[i - 1, 0], pts[i - 1, 1], pts[i, 0], pts[i, 1])
        cumdist[i] = total
    return cumdist, total


@dataclass(eq=False)
class Route:
    """An ordered polyline indexed by cumulative distance.

    Routes are immutable once built; the analytics core only reads them.
    """

    points: np.ndarray  # shape (n, 2), (lat, lng)
    cumdist: np.ndarray  # shape (n,) or (1,) for degenerate routes
    total: float
    projector: PlanarProjector = field(default_factory=PlanarProjector)
    name: str = ""

    def __post_init__(self) -> None:
        self.points = np.array(self.points, dtype=float).reshape(-1, 2)
        self.cumdist = np.array(self.cumdist, dtype=float)
        self.points.setflags(write=False)
        self.cumdist.setflags(write=False)
        self._planar = self.projector.project_many(self.points)
        self._planar.setflags(write=False)

    @property
    def planar(self) -> np.ndarray:
        """Route vertices in the route's planar frame, shape ``(n, 2)``."""
        return self._planar

    def __len__(self) -> int:
        return len(self.points)

    @property
    def is_degenerate(self) -> bool:
        return len(self.points) < 2 or self.total <= 0

    # ── Factory helpers ──────────────────────────────────────────────

    @classmethod
    def from_latlngs(
        cls,
        points: np.ndarray | list[tuple[float, float]],
        name: str = "",
    ) -> Route:
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        cumdist, total = build_cumulative_distances(pts)
        projector = (
            PlanarProjector(float(pts[0, 0]), float(pts[0, 1]))
            if len(pts) else PlanarProjector()
        )
        logger.info("Loaded route %r: %d points, %.0f m", name, len(pts), total)
        return cls(points=pts, cumdist=cumdist, total=total,
                   projector=projector, name=name)

    @classmethod
    def from_gpx_text(cls, text: str, name: str = "") -> Route:
        return cls.from_latlngs(parse_gpx(text), name=name)

    @classmethod
    def from_gpx_file(cls, path: str | Path) -> Route:
        path = Path(path)
        return cls.from_gpx_text(path.read_text(encoding="utf-8"), name=path.stem)

    @classmethod
    def from_planar(
        cls,
        xy: np.ndarray | list[tuple[float, float]],
        origin: tuple[float, float] = (0.0, 0.0),
        name: str = "",
    ) -> Route:
        """Build a route from planar meters around a geographic *origin*."""
        projector = PlanarProjector(*origin)
        xy = np.asarray(xy, dtype=float).reshape(-1, 2)
        latlngs = [projector.unproject(x, y) for x, y in xy]
        return cls.from_latlngs(latlngs, name=name)

    @classmethod
    def out_and_back(
        cls,
        leg_m: float = 2500.0,
        lane_offset_m: float = 4.0,
        spacing_m: float = 10.0,
        origin: tuple[float, float] = (37.7749, -122.4194),
    ) -> Route:
        """Synthetic out-and-back course.

        Runs east for *leg_m*, steps *lane_offset_m* north at the turnaround
        and returns west on a parallel lane back to the start line.
        """
        n = max(1, int(math.ceil(leg_m / spacing_m)))
        out = [(leg_m * k / n, 0.0) for k in range(n + 1)]
        back = [(leg_m * (n - k) / n, lane_offset_m) for k in range(n + 1)]
        return cls.from_planar(out + back, origin=origin, name="out-and-back")

