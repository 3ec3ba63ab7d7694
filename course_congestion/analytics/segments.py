"""Route segmentation and grouping of physically coincident segments.

A course is cut into fixed-length segments by distance along the path.
Segments that cover the same ground on different visits (the outbound and
return lanes of an out-and-back, the shared start/finish of a loop) are
merged into one *segment group* so their crowding is scored together.

Grouping is a greedy, single-pass clustering over segments in path order:
a uniform spatial hash keyed by segment midpoint narrows the candidates to
the 3x3 neighborhood of cells, and an array-backed union-find records the
merges.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from ..core.config import EPSILON, GroupingConfig
from ..core.route import Route
from ..core.sampler import PositionSampler

logger = logging.getLogger(__name__)

CellKey = tuple[int, int]


class UnionFind:
    """Disjoint sets over ``0..n-1`` with union by rank and path halving."""

    def __init__(self, n: int) -> None:
        self.parent = np.arange(n, dtype=np.int64)
        self.rank = np.zeros(n, dtype=np.int64)

    def find(self, i: int) -> int:
        parent = self.parent
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = int(parent[i])
        return i

    def union(self, a: int, b: int) -> int:
        """Merge the sets holding *a* and *b*; return the new root."""
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        if self.rank[ra] < self.rank[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        if self.rank[ra] == self.rank[rb]:
            self.rank[ra] += 1
        return ra

    def connected(self, a: int, b: int) -> bool:
        return self.find(a) == self.find(b)


def point_to_segment_distance(
    p: np.ndarray, a: np.ndarray, b: np.ndarray
) -> float:
    """Distance from point *p* to the closed segment ``a``–``b``."""
    ab = b - a
    denom = float(ab @ ab)
    if denom <= EPSILON:
        return float(np.hypot(*(p - a)))
    t = min(1.0, max(0.0, float((p - a) @ ab) / denom))
    closest = a + t * ab
    return float(np.hypot(*(p - closest)))


def segment_distance(
    a0: np.ndarray, a1: np.ndarray, b0: np.ndarray, b1: np.ndarray
) -> float:
    """Symmetric distance between chords ``a0``–``a1`` and ``b0``–``b1``.

    The mean of the four endpoint-to-span distances.  Spans have no
    direction, so a chord matched forward or reversed scores the same.
    """
    return 0.25 * (
        point_to_segment_distance(a0, b0, b1)
        + point_to_segment_distance(a1, b0, b1)
        + point_to_segment_distance(b0, a0, a1)
        + point_to_segment_distance(b1, a0, a1)
    )


def segment_count(total: float, segment_length: float) -> int:
    # Rounding noise in the summed haversine lengths must not add a sliver segment.
    return max(1, int(math.ceil(total / max(segment_length, EPSILON) - 1e-9)))


@dataclass(frozen=True)
class SegmentGrouping:
    """Static segmentation of one route at one segment length."""

    segment_length: float
    seg_to_group: np.ndarray  # shape (segment_count,), dense ids
    group_count: int
    endpoints: np.ndarray  # shape (segment_count, 2, 2), planar
    midpoints: np.ndarray  # shape (segment_count, 2), planar

    @property
    def segment_count(self) -> int:
        return len(self.seg_to_group)

    def members(self, group: int) -> np.ndarray:
        return np.flatnonzero(self.seg_to_group == group)

    def segment_index(self, distances: np.ndarray) -> np.ndarray:
        """Segment index of each distance along the path."""
        idx = np.floor(np.asarray(distances, dtype=float) / max(self.segment_length, EPSILON))
        return np.clip(idx.astype(np.int64), 0, self.segment_count - 1)


class SegmentGeometryIndexer:
    """Builds :class:`SegmentGrouping` objects, caching the latest one.

    The result depends only on the route, the segment length and the
    grouping heuristics, so repeated calls with the same inputs return the
    cached grouping.
    """

    def __init__(self, config: GroupingConfig | None = None) -> None:
        self.config = config or GroupingConfig()
        self._cache_key: tuple | None = None
        self._cached: SegmentGrouping | None = None

    def build_groups(self, route: Route, segment_length: float) -> SegmentGrouping:
        key = (route, segment_length, self.config)
        if self._cache_key == key and self._cached is not None:
            return self._cached
        grouping = self._build(route, segment_length)
        self._cache_key = key
        self._cached = grouping
        return grouping

    def invalidate(self) -> None:
        self._cache_key = None
        self._cached = None

    # ------------------------------------------------------------------

    def _segment_geometry(
        self, route: Route, segment_length: float, count: int
    ) -> np.ndarray:
        starts = np.arange(count, dtype=float) * segment_length
        ends = np.minimum(starts + segment_length, route.total)
        xy0 = PositionSampler.planar_positions(route, starts)
        xy1 = PositionSampler.planar_positions(route, ends)
        return np.stack([xy0, xy1], axis=1)

    def _build(self, route: Route, segment_length: float) -> SegmentGrouping:
        length = max(segment_length, EPSILON)
        count = segment_count(route.total, length)
        endpoints = self._segment_geometry(route, length, count)
        midpoints = endpoints.mean(axis=1)

        cfg = self.config
        tolerance = cfg.tolerance(length)
        cell = cfg.cell_size(length)
        min_gap = cfg.min_separation_segments

        uf = UnionFind(count)
        members: dict[int, list[int]] = {}
        grid: dict[CellKey, list[int]] = {}

        for seg in range(count):
            a0, a1 = endpoints[seg]
            cx = int(math.floor(midpoints[seg, 0] / cell))
            cy = int(math.floor(midpoints[seg, 1] / cell))

            best_rep = -1
            best_dist = math.inf
            for gx in (cx - 1, cx, cx + 1):
                for gy in (cy - 1, cy, cy + 1):
                    for rep in grid.get((gx, gy), ()):
                        root = uf.find(rep)
                        # Contiguous stretches of the path are not revisits.
                        if any(abs(seg - m) < min_gap for m in members[root]):
                            continue
                        b0, b1 = endpoints[rep]
                        d = segment_distance(a0, a1, b0, b1)
                        if d < best_dist or (d == best_dist and rep < best_rep):
                            best_dist = d
                            best_rep = rep

            if best_rep >= 0 and best_dist <= tolerance:
                old_root = uf.find(best_rep)
                root = uf.union(best_rep, seg)
                group_members = members.pop(old_root)
                group_members.append(seg)
                members[root] = group_members
            else:
                members[seg] = [seg]
                grid.setdefault((cx, cy), []).append(seg)

        seg_to_group = np.empty(count, dtype=np.int64)
        dense: dict[int, int] = {}
        for seg in range(count):
            root = uf.find(seg)
            if root not in dense:
                dense[root] = len(dense)
            seg_to_group[seg] = dense[root]

        logger.debug(
            "Segmented %.0f m route at %.1f m: %d segments, %d groups",
            route.total, length, count, len(dense),
        )
        return SegmentGrouping(
            segment_length=length,
            seg_to_group=seg_to_group,
            group_count=len(dense),
            endpoints=endpoints,
            midpoints=midpoints,
        )
