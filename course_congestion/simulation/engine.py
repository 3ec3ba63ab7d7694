"""Congestion engine: orchestrates one frame of the analytics pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import numpy as np
import pandas as pd

from ..analytics.aggregator import TemporalAggregator
from ..analytics.density import ProximityDensityEngine, path_density_bins
from ..analytics.segments import SegmentGeometryIndexer, SegmentGrouping
from ..core.config import EPSILON, AverageMode, CongestionConfig, DensityMethod
from ..core.route import Route
from ..core.runner import Runner, runner_arrays
from ..core.sampler import PositionSampler

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """Everything a renderer needs for one frame.

    Runner arrays cover only the runners on the course at ``sim_time``;
    ``runner_indices`` maps them back into the engine's runner list.
    ``positions`` and ``densities`` are views into the engine's per-runner
    buffers and are overwritten by the next :meth:`CongestionEngine.advance`;
    use :meth:`copy` to keep a frame.  Segment arrays cover every segment of
    the route.
    """

    sim_time: float
    runner_indices: np.ndarray  # (k,)
    positions: np.ndarray  # (k, 2) planar meters
    distances: np.ndarray  # (k,) meters along the route
    densities: np.ndarray  # (k,)
    occupancy: np.ndarray  # (segments,)
    segment_endpoints: np.ndarray  # (segments, 2, 2)
    segment_groups: np.ndarray  # (segments,)
    segment_seen: np.ndarray  # (segments,)
    segment_values: np.ndarray  # (segments,)

    @property
    def runner_count(self) -> int:
        return len(self.runner_indices)

    def copy(self) -> FrameResult:
        return replace(self, positions=self.positions.copy(),
                       densities=self.densities.copy())

    @classmethod
    def empty(cls, sim_time: float) -> FrameResult:
        return cls(
            sim_time=sim_time,
            runner_indices=np.zeros(0, dtype=np.int64),
            positions=np.zeros((0, 2)),
            distances=np.zeros(0),
            densities=np.zeros(0),
            occupancy=np.zeros(0, dtype=np.int64),
            segment_endpoints=np.zeros((0, 2, 2)),
            segment_groups=np.zeros(0, dtype=np.int64),
            segment_seen=np.zeros(0, dtype=bool),
            segment_values=np.zeros(0),
        )


class CongestionEngine:
    """Frame-driven congestion analytics for one route and one runner pool.

    Each :meth:`advance` samples every runner's position, computes
    per-runner density and per-segment occupancy, and, while playing, feeds
    the occupancy to the :class:`TemporalAggregator`.  Route, runner and
    segmentation changes all go through :meth:`reset`.
    """

    def __init__(
        self,
        route: Route | None = None,
        runners: list[Runner] | None = None,
        config: CongestionConfig | None = None,
    ) -> None:
        self.config = config or CongestionConfig()
        self.sampler = PositionSampler()
        self.density_engine = ProximityDensityEngine()
        self.indexer = SegmentGeometryIndexer(self.config.grouping)
        self.route: Route | None = None
        self.grouping: SegmentGrouping | None = None
        self.aggregator: TemporalAggregator | None = None
        self.runners: list[Runner] = []
        self._starts = np.zeros(0)
        self._paces = np.zeros(0)
        self._distances = np.zeros(0)
        self._positions = np.zeros((0, 2))
        self._density = np.zeros(0)
        self.last_frame: FrameResult | None = None
        if route is not None:
            self.set_route(route)
        if runners is not None:
            self.set_runners(runners)

    # ── State changes ────────────────────────────────────────────────

    def _rebuild_segments(self) -> None:
        if self.route is None:
            self.grouping = None
            self.aggregator = None
            return
        self.grouping = self.indexer.build_groups(self.route, self.config.segment_length_m)
        self.aggregator = TemporalAggregator(self.grouping, self.config)

    def set_route(self, route: Route) -> None:
        self.route = route
        self.indexer.invalidate()
        self._rebuild_segments()
        self.reset(reason="route changed")

    def set_runners(self, runners: list[Runner]) -> None:
        self.runners = list(runners)
        self._starts, self._paces = runner_arrays(self.runners)
        self._distances = np.zeros(len(self.runners))
        self._positions = np.zeros((len(self.runners), 2))
        self._density = np.zeros(len(self.runners))
        logger.debug("Engine holds %d runners", len(self.runners))
        self.reset(reason="runners regenerated")

    def set_config(self, config: CongestionConfig) -> None:
        """Swap configuration, rebuilding only what the change invalidates."""
        old = self.config
        self.config = config
        if config.segmentation_key != old.segmentation_key:
            self.indexer.config = config.grouping
            self._rebuild_segments()
            self.reset(reason="segmentation changed")
        elif (
            config.window_s != old.window_s
            or config.window_sample_s != old.window_sample_s
            or config.histogram_bin_width != old.histogram_bin_width
            or config.histogram_max != old.histogram_max
        ):
            self._rebuild_segments()
            self.reset(reason="statistic layout changed")
        elif self.aggregator is not None:
            self.aggregator.config = config

    def reset(self, reason: str = "explicit") -> None:
        """Discard accumulated statistics."""
        if self.aggregator is not None:
            self.aggregator.reset(reason=reason)
        self.last_frame = None

    # ── Frame processing ─────────────────────────────────────────────

    def runner_distances(self, sim_time: float) -> np.ndarray:
        """Distance along the route of every runner at *sim_time*."""
        total = self.route.total if self.route is not None else 0.0
        return self.sampler.distances_along(
            self._starts, self._paces, sim_time, total, out=self._distances,
        )

    def active_mask(self, sim_time: float, distances: np.ndarray) -> np.ndarray:
        """Runners that have started and not yet finished."""
        total = self.route.total if self.route is not None else 0.0
        return (self._starts <= sim_time) & (distances < total)

    def _densities(
        self, positions: np.ndarray, distances: np.ndarray, out: np.ndarray,
    ) -> np.ndarray:
        cfg = self.config
        if cfg.density_method is DensityMethod.PATH_BINS:
            counts = path_density_bins(distances, cfg.density_radius_m)
            scale = max(cfg.density_radius_m, EPSILON) if cfg.normalize_density else 1.0
            return np.divide(counts, scale, out=out)
        return self.density_engine.compute(
            positions[:, 0], positions[:, 1], cfg.density_radius_m,
            normalize=cfg.normalize_density, out=out,
        )

    def advance(self, sim_time: float, playing: bool = True) -> FrameResult:
        """Compute the frame at *sim_time*.

        Per-runner density is always computed so scrubbing shows the
        instantaneous crowding; statistics accumulate only while *playing*.
        """
        route = self.route
        if route is None or route.is_degenerate or self.grouping is None:
            frame = FrameResult.empty(sim_time)
            self.last_frame = frame
            return frame

        grouping = self.grouping
        all_distances = self.runner_distances(sim_time)
        active = self.active_mask(sim_time, all_distances)
        indices = np.flatnonzero(active)
        distances = all_distances[indices]
        k = len(indices)
        positions = self.sampler.planar_positions(route, distances, out=self._positions[:k])
        densities = self._density[:k]
        if k:
            self._densities(positions, distances, out=densities)

        occupancy = np.bincount(
            grouping.segment_index(distances), minlength=grouping.segment_count,
        )

        aggregator = self.aggregator
        if playing and aggregator is not None:
            aggregator.update(sim_time, occupancy)

        frame = FrameResult(
            sim_time=sim_time,
            runner_indices=indices,
            positions=positions,
            distances=distances,
            densities=densities,
            occupancy=occupancy,
            segment_endpoints=grouping.endpoints,
            segment_groups=grouping.seg_to_group,
            segment_seen=aggregator.segment_seen() if aggregator else np.zeros(grouping.segment_count, dtype=bool),
            segment_values=aggregator.segment_values() if aggregator else np.zeros(grouping.segment_count),
        )
        self.last_frame = frame
        return frame

    def run(self, times: np.ndarray | list[float], playing: bool = True) -> list[FrameResult]:
        """Advance through *times* in order. Returns a copy of every frame."""
        return [self.advance(float(t), playing=playing).copy() for t in times]

    # ── Reporting ────────────────────────────────────────────────────

    def group_table(self) -> pd.DataFrame:
        """One row per segment group with every statistic side by side."""
        columns = [
            "group", "segments", "first_segment", "start_m", "seen", "current",
            "max", "active_avg", "window_avg", "percentile", "top_fraction",
        ]
        agg = self.aggregator
        grouping = self.grouping
        if agg is None or grouping is None:
            return pd.DataFrame(columns=columns)

        seg_to_group = grouping.seg_to_group
        first = np.full(grouping.group_count, grouping.segment_count, dtype=np.int64)
        np.minimum.at(first, seg_to_group, np.arange(grouping.segment_count))
        sizes = np.bincount(seg_to_group, minlength=grouping.group_count)
        seen = agg.seen

        def masked(values: np.ndarray) -> np.ndarray:
            return np.where(seen, values, 0.0)

        return pd.DataFrame({
            "group": np.arange(grouping.group_count),
            "segments": sizes,
            "first_segment": first,
            "start_m": first * grouping.segment_length,
            "seen": seen.copy(),
            "current": agg.frame_values.copy(),
            "max": masked(agg.maximum.values()),
            "active_avg": masked(agg.average_values(AverageMode.ACTIVE)),
            "window_avg": masked(agg.average_values(AverageMode.WINDOW)),
            "percentile": masked(agg.average_values(AverageMode.PERCENTILE)),
            "top_fraction": masked(agg.average_values(AverageMode.TOP_FRACTION)),
        }, columns=columns)
