"""Configuration surface for the congestion analytics core.

The core never validates ranges on its own; callers build a
:class:`CongestionConfig` and may call :meth:`CongestionConfig.clamped` to
pull every value back into the ranges the interactive front end allows.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

# Substituted for any zero denominator.
EPSILON = 1e-9


class StatMode(str, Enum):
    """Which per-group statistic colours the route."""

    AVERAGE = "average"
    MAX = "max"


class AverageMode(str, Enum):
    """Which average is reported in :attr:`StatMode.AVERAGE`."""

    ACTIVE = "active"
    PERCENTILE = "percentile"
    TOP_FRACTION = "top-fraction"
    WINDOW = "window"


class DensityMethod(str, Enum):
    """How per-runner density is estimated."""

    RADIUS = "radius"
    PATH_BINS = "path-bins"


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


@dataclass(frozen=True)
class GroupingConfig:
    """Heuristics for merging physically coincident route segments.

    Parameters
    ----------
    tolerance_ratio:
        Matching tolerance as a fraction of the segment length.
    tolerance_floor_m:
        Lower bound on the matching tolerance in meters.
    min_separation_segments:
        Segments closer than this many segment lengths along the path are
        never grouped together.
    cell_size_m:
        Spatial hash cell size.  ``None`` picks ``max(tolerance, L)``.
    """

    tolerance_ratio: float = 0.4
    tolerance_floor_m: float = 5.0
    min_separation_segments: int = 3
    cell_size_m: float | None = None

    def tolerance(self, segment_length: float) -> float:
        return max(self.tolerance_floor_m, self.tolerance_ratio * segment_length)

    def cell_size(self, segment_length: float) -> float:
        if self.cell_size_m is not None:
            return max(self.cell_size_m, EPSILON)
        return max(self.tolerance(segment_length), segment_length, EPSILON)


@dataclass(frozen=True)
class CongestionConfig:
    """Parameters consumed by :class:`~course_congestion.simulation.engine.CongestionEngine`."""

    density_radius_m: float = 5.0
    segment_length_m: float = 50.0
    stat_mode: StatMode = StatMode.AVERAGE
    average_mode: AverageMode = AverageMode.ACTIVE
    window_s: float = 180.0
    window_sample_s: float = 1.0
    percentile: float = 0.9
    top_fraction: float = 0.3
    normalize_density: bool = True
    density_method: DensityMethod = DensityMethod.RADIUS
    histogram_bin_width: float = 0.25
    histogram_max: float = 20.0
    grouping: GroupingConfig = field(default_factory=GroupingConfig)

    def __post_init__(self) -> None:
        # Accept plain strings from UI widgets.
        object.__setattr__(self, "stat_mode", StatMode(self.stat_mode))
        object.__setattr__(self, "average_mode", AverageMode(self.average_mode))
        object.__setattr__(self, "density_method", DensityMethod(self.density_method))

    def clamped(self) -> CongestionConfig:
        """Return a copy with every value inside the front end's ranges."""
        return replace(
            self,
            density_radius_m=_clamp(round(self.density_radius_m), 2, 20),
            segment_length_m=_clamp(round(self.segment_length_m), 1, 100),
            window_s=max(self.window_s, 1.0),
            window_sample_s=max(self.window_sample_s, 0.01),
            percentile=_clamp(self.percentile, 0.0, 1.0),
            top_fraction=_clamp(self.top_fraction, 0.0, 1.0),
            histogram_bin_width=max(self.histogram_bin_width, 0.01),
            histogram_max=max(self.histogram_max, self.histogram_bin_width),
        )

    @property
    def segmentation_key(self) -> tuple[float, GroupingConfig]:
        """Inputs that force segment groups to be rebuilt when they change."""
        return (self.segment_length_m, self.grouping)
