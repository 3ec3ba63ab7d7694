"""Simulated clock driving the engine from wall-clock frame ticks."""

from __future__ import annotations

import math

from ..core.runner import Runner

DEFAULT_MAX_TIME = 3600.0


def max_finish_time(runners: list[Runner], route_length: float) -> float:
    """Latest finish time of the pool, rounded up to whole seconds.

    Falls back to one hour when there is nothing to run.
    """
    if route_length <= 0 or not runners:
        return DEFAULT_MAX_TIME
    latest = max(r.finish_time(route_length) for r in runners)
    return float(max(1, math.ceil(latest)))


class SimClock:
    """Play/pause/seek state for simulated time.

    :meth:`tick` is called once per rendered frame with the wall-clock time
    elapsed since the previous frame.  Reaching ``max_time`` pauses the
    clock.  :meth:`seek` always pauses, like dragging a scrubber.
    """

    def __init__(self, max_time: float = DEFAULT_MAX_TIME, speed: float = 1.0) -> None:
        self.max_time = max_time
        self.speed = speed
        self.time = 0.0
        self.playing = False

    def play(self) -> None:
        if self.time >= self.max_time:
            return
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def toggle(self) -> bool:
        if self.playing:
            self.pause()
        else:
            self.play()
        return self.playing

    def tick(self, wall_dt: float) -> float:
        """Advance by ``wall_dt * speed`` while playing; return the new time."""
        if not self.playing:
            return self.time
        nxt = self.time + max(wall_dt, 0.0) * self.speed
        if nxt >= self.max_time:
            self.time = self.max_time
            self.playing = False
        else:
            self.time = nxt
        return self.time

    def seek(self, t: float) -> float:
        self.playing = False
        self.time = max(0.0, min(self.max_time, t))
        return self.time

    def reset(self) -> None:
        self.playing = False
        self.time = 0.0
