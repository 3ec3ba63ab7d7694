"""Time-accumulated crowding statistics per segment group."""

from __future__ import annotations

import logging

import numpy as np

from ..core.config import EPSILON, AverageMode, CongestionConfig, StatMode
from .accumulators import ActiveAverage, DensityHistogram, MaxTracker, RollingWindow
from .segments import SegmentGrouping

logger = logging.getLogger(__name__)


class TemporalAggregator:
    """Consumes per-segment occupancy once per frame and keeps group statistics.

    Every group starts *unseen*.  The first frame in which any member
    segment has a non-zero density marks it *seen*; from then on every frame
    updates its running maximum, and non-zero frames feed the active
    average, the rolling window and the histogram.

    Simulated time moving backward wipes every statistic before the frame
    is processed; :meth:`reset` is the single entry point for that and for
    any other invalidation (new route, new segmentation, new runners).
    """

    def __init__(self, grouping: SegmentGrouping, config: CongestionConfig | None = None) -> None:
        self.config = config or CongestionConfig()
        self.grouping = grouping
        groups = grouping.group_count
        self.seen = np.zeros(groups, dtype=bool)
        self.active = ActiveAverage(groups)
        self.maximum = MaxTracker(groups)
        self.window = RollingWindow(groups, self.config.window_s, self.config.window_sample_s)
        self.histogram = DensityHistogram(
            groups, self.config.histogram_bin_width, self.config.histogram_max,
        )
        self.last_time: float | None = None
        self.frame_count = 0
        self._frame_values = np.zeros(groups)

    @property
    def group_count(self) -> int:
        return self.grouping.group_count

    @property
    def frame_values(self) -> np.ndarray:
        """Per-group instantaneous density of the last processed frame."""
        return self._frame_values

    def reset(self, reason: str = "explicit") -> None:
        self.seen.fill(False)
        self.active.reset()
        self.maximum.reset()
        self.window.reset()
        self.histogram.reset()
        self._frame_values.fill(0.0)
        self.last_time = None
        self.frame_count = 0
        logger.debug("Congestion statistics reset (%s)", reason)

    def group_frame_values(self, occupancy: np.ndarray) -> np.ndarray:
        """Max over member segments of ``count / segment_length``, per group."""
        density = np.asarray(occupancy, dtype=float) / max(self.grouping.segment_length, EPSILON)
        values = np.zeros(self.group_count)
        np.maximum.at(values, self.grouping.seg_to_group, density)
        return values

    def update(self, sim_time: float, occupancy: np.ndarray) -> None:
        """Process one frame.

        Parameters
        ----------
        sim_time:
            Simulated time of the frame in seconds.
        occupancy:
            Runner count of every segment, shape ``(segment_count,)``.
        """
        if self.last_time is not None and sim_time < self.last_time:
            self.reset(reason=f"rewind {self.last_time:.1f}s -> {sim_time:.1f}s")

        values = self.group_frame_values(occupancy)
        self._frame_values[:] = values

        self.seen |= values > 0
        self.maximum.push(values, self.seen)
        self.active.push(values)
        self.histogram.push(values)
        self.window.push(sim_time, values)

        self.last_time = sim_time
        self.frame_count += 1

    # ── Queries ──────────────────────────────────────────────────────

    def average_values(self, mode: AverageMode | str | None = None) -> np.ndarray:
        cfg = self.config
        mode = AverageMode(mode) if mode is not None else cfg.average_mode
        if mode is AverageMode.ACTIVE:
            return self.active.values()
        if mode is AverageMode.WINDOW:
            if self.last_time is not None:
                self.window.expire(self.last_time)
            return self.window.values()
        if mode is AverageMode.PERCENTILE:
            return self.histogram.percentiles(cfg.percentile)
        return self.histogram.top_fraction_means(cfg.top_fraction)

    def group_values(
        self,
        stat_mode: StatMode | str | None = None,
        average_mode: AverageMode | str | None = None,
    ) -> np.ndarray:
        """Selected statistic per group, zero for groups never seen."""
        stat_mode = StatMode(stat_mode) if stat_mode is not None else self.config.stat_mode
        if stat_mode is StatMode.MAX:
            values = self.maximum.values().copy()
        else:
            values = np.array(self.average_values(average_mode), dtype=float)
        values[~self.seen] = 0.0
        return values

    def segment_values(
        self,
        stat_mode: StatMode | str | None = None,
        average_mode: AverageMode | str | None = None,
    ) -> np.ndarray:
        return self.group_values(stat_mode, average_mode)[self.grouping.seg_to_group]

    def segment_seen(self) -> np.ndarray:
        return self.seen[self.grouping.seg_to_group]
