"""Runner model."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .config import EPSILON


@dataclass(frozen=True)
class Runner:
    """A simulated participant moving along the route at constant pace.

    ``pace`` is in seconds per kilometre; a runner covers ``1000 / pace``
    meters every simulated second once ``start_time`` has passed.
    """

    id: str
    wave_id: str
    start_time: float
    pace: float

    @property
    def speed_mps(self) -> float:
        return 1000.0 / max(self.pace, EPSILON)

    def finish_time(self, route_length: float) -> float:
        return self.start_time + route_length / self.speed_mps


def runner_arrays(runners: list[Runner]) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(start_times, paces)`` as float arrays for vectorised sampling."""
    starts = np.fromiter((r.start_time for r in runners), dtype=float,
                         count=len(runners))
    paces = np.fromiter((r.pace for r in runners), dtype=float,
                        count=len(runners))
    return starts, paces
