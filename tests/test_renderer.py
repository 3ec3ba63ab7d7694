"""Smoke tests for the matplotlib renderer."""

from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation

from course_congestion.core.config import CongestionConfig
from course_congestion.core.route import Route
from course_congestion.core.runner import Runner
from course_congestion.simulation.engine import CongestionEngine
from course_congestion.visualization.renderer import CourseRenderer


def make_engine() -> CongestionEngine:
    runners = [Runner(f"r{i}", "w", start_time=0.0, pace=200.0 + i) for i in range(5)]
    return CongestionEngine(Route.from_planar([(0, 0), (500, 0), (500, 300)]),
                            runners, CongestionConfig(segment_length_m=50.0))


class TestCourseRenderer:
    def test_render_frame(self):
        engine = make_engine()
        engine.run([10.0, 20.0])
        ax = CourseRenderer(engine).render_frame(show_groups=True)
        assert ax.get_title().endswith("t = 20 s")
        plt.close("all")

    def test_render_without_frames(self):
        ax = CourseRenderer(CongestionEngine()).render_frame()
        assert ax is not None
        plt.close("all")

    def test_animation_seeds_first_frame(self):
        engine = make_engine()
        anim = CourseRenderer(engine).animate([0.0, 10.0, 20.0])
        assert isinstance(anim, FuncAnimation)
        assert engine.last_frame.sim_time == 0.0
        assert engine.aggregator.frame_count == 0
        plt.close("all")
