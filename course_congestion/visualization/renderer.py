"""Matplotlib-based 2D visualization of route congestion."""

from __future__ import annotations

from typing import Any

import numpy as np
import matplotlib
import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation
from matplotlib.collections import LineCollection

from ..simulation.engine import CongestionEngine, FrameResult


class CourseRenderer:
    """Renders a snapshot or animation of runners and route crowding.

    The route is drawn segment by segment, coloured by the engine's selected
    group statistic; groups never seen stay grey.  Runner dots are coloured
    by their local density.
    """

    UNSEEN_COLOR = "lightgray"

    def __init__(self, engine: CongestionEngine) -> None:
        self.engine = engine

    def _route_xy(self) -> np.ndarray:
        route = self.engine.route
        if route is None:
            return np.zeros((0, 2))
        return route.planar

    def _segment_collection(
        self,
        frame: FrameResult,
        *,
        cmap: str,
        vmax: float | None,
        linewidth: float,
    ) -> LineCollection:
        cm = matplotlib.colormaps[cmap].copy()
        cm.set_bad(self.UNSEEN_COLOR)
        lines = LineCollection(
            frame.segment_endpoints, cmap=cm, linewidths=linewidth, zorder=1,
        )
        values = np.where(frame.segment_seen, frame.segment_values, np.nan)
        lines.set_array(values)
        if vmax is None:
            vmax = max(float(np.nan_to_num(values).max(initial=0.0)), 1e-6)
        lines.set_clim(0.0, vmax)
        return lines

    def render_frame(
        self,
        frame: FrameResult | None = None,
        *,
        title: str | None = None,
        segment_cmap: str = "YlOrRd",
        runner_cmap: str = "turbo",
        segment_vmax: float | None = None,
        runner_vmax: float | None = None,
        show_route: bool = True,
        show_groups: bool = False,
        ax: Any = None,
    ) -> Any:
        """Draw one frame; defaults to the engine's most recent frame."""
        if ax is None:
            _fig, ax = plt.subplots(1, 1, figsize=(10, 8))
        frame = frame or self.engine.last_frame or FrameResult.empty(0.0)

        if show_route:
            xy = self._route_xy()
            ax.plot(xy[:, 0], xy[:, 1], color="lightgray", linewidth=6,
                    alpha=0.5, zorder=0)

        if len(frame.segment_endpoints):
            lines = self._segment_collection(
                frame, cmap=segment_cmap, vmax=segment_vmax, linewidth=3.0,
            )
            ax.add_collection(lines)
            plt.colorbar(lines, ax=ax, shrink=0.6, label="Segment density (runners/m)")

        if show_groups and len(frame.segment_endpoints):
            mids = frame.segment_endpoints.mean(axis=1)
            for (x, y), gid in zip(mids, frame.segment_groups):
                ax.annotate(str(gid), (x, y), textcoords="offset points",
                            xytext=(4, 4), fontsize=6, color="gray")

        if frame.runner_count:
            sc = ax.scatter(
                frame.positions[:, 0], frame.positions[:, 1],
                c=frame.densities, cmap=runner_cmap, s=10, vmin=0.0,
                vmax=runner_vmax, edgecolors="none", zorder=2,
            )
            plt.colorbar(sc, ax=ax, shrink=0.6, label="Runner density")

        ax.set_title(title or f"Route congestion — t = {frame.sim_time:.0f} s")
        ax.set_aspect("equal")
        ax.autoscale_view()
        return ax

    def animate(
        self,
        times: np.ndarray | list[float],
        *,
        title: str = "Route congestion",
        segment_cmap: str = "YlOrRd",
        runner_cmap: str = "turbo",
        segment_vmax: float = 1.0,
        runner_vmax: float = 2.0,
        interval_ms: int = 50,
    ) -> FuncAnimation:
        """Animate the engine over *times*, advancing it one frame per step.

        Parameters
        ----------
        times:
            Simulated times to visit, in order.  Moving backward resets the
            accumulated statistics exactly as a scrubbed clock would.
        """
        times = list(times)
        fig, ax = plt.subplots(1, 1, figsize=(10, 8))
        xy = self._route_xy()
        ax.plot(xy[:, 0], xy[:, 1], color="lightgray", linewidth=6, alpha=0.5, zorder=0)

        # Seeds the artists without feeding the statistics; update(0) does.
        first = self.engine.advance(times[0], playing=False) if times else FrameResult.empty(0.0)
        lines = self._segment_collection(
            first, cmap=segment_cmap, vmax=segment_vmax, linewidth=3.0,
        )
        ax.add_collection(lines)
        plt.colorbar(lines, ax=ax, shrink=0.6)

        sc = ax.scatter(
            first.positions[:, 0], first.positions[:, 1], c=first.densities,
            cmap=runner_cmap, s=10, vmin=0.0, vmax=runner_vmax,
            edgecolors="none", zorder=2,
        )
        ax.set_aspect("equal")
        ax.autoscale_view()
        title_obj = ax.set_title(f"{title} — t = {first.sim_time:.0f} s")

        def update(i: int) -> Any:
            frame = self.engine.advance(times[i])
            lines.set_array(np.where(frame.segment_seen, frame.segment_values, np.nan))
            sc.set_offsets(frame.positions)
            sc.set_array(frame.densities)
            title_obj.set_text(f"{title} — t = {frame.sim_time:.0f} s")
            return (lines, sc, title_obj)

        return FuncAnimation(fig, update, frames=len(times),
                             interval=interval_ms, blit=False)
