"""Tests for start waves, pace conversion and configuration."""

from __future__ import annotations

import numpy as np
import pytest

from course_congestion.core.config import (
    AverageMode,
    CongestionConfig,
    GroupingConfig,
    StatMode,
)
from course_congestion.simulation.waves import (
    DEFAULT_WAVES,
    Wave,
    default_course_presets,
    default_waves,
    generate_runners,
    new_wave,
    pace_from_min_mile,
    pace_to_min_mile,
    parse_min_mile,
    wave_from_row,
    wave_to_row,
    waves_from_rows,
)


class TestPaceConversion:
    def test_min_mile_to_sec_km(self):
        assert pace_from_min_mile(8, 0) == pytest.approx(480.0 / 1.609344)

    def test_sec_km_to_min_mile(self):
        assert pace_to_min_mile(pace_from_min_mile(8, 30)) == (8, 30)

    def test_min_mile_is_clamped(self):
        """Seconds stay in 0..59 and a mile never takes under a minute."""
        assert pace_from_min_mile(8, 75) == pace_from_min_mile(8, 59)
        assert pace_from_min_mile(0, 30) == pytest.approx(60.0 / 1.609344)

    def test_parse_min_mile(self):
        assert parse_min_mile("8:30") == pace_from_min_mile(8, 30)
        assert parse_min_mile(" 9 ") == pace_from_min_mile(9, 0)
        assert parse_min_mile(10) == pace_from_min_mile(10, 0)

    def test_parse_min_mile_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_min_mile("fast")
        with pytest.raises(ValueError):
            parse_min_mile("8:")


class TestGenerateRunners:
    def test_counts_and_ids(self):
        runners = generate_runners(default_waves(), np.random.default_rng(0))
        assert len(runners) == sum(w.runner_count for w in DEFAULT_WAVES)
        assert runners[0].id == "wave-1-runner-1"
        assert len({r.id for r in runners}) == len(runners)

    def test_paces_within_wave_bounds(self):
        runners = generate_runners(default_waves(), np.random.default_rng(0))
        bounds = {w.id: (w.min_pace, w.max_pace) for w in DEFAULT_WAVES}
        for r in runners:
            lo, hi = bounds[r.wave_id]
            assert lo <= r.pace <= hi

    def test_reversed_bounds_and_negative_counts(self):
        waves = [Wave("a", 0.0, 5, 400.0, 300.0), Wave("b", 0.0, -2, 300.0, 400.0)]
        runners = generate_runners(waves, np.random.default_rng(0))
        assert len(runners) == 5
        assert all(300.0 <= r.pace <= 400.0 for r in runners)

    def test_start_offset(self):
        waves = default_waves(start_offset=-600.0)
        assert [w.start_time for w in waves] == [0.0, 300.0, 600.0]
        assert DEFAULT_WAVES[0].start_time == 600.0


class TestConfig:
    def test_strings_become_enums(self):
        config = CongestionConfig(stat_mode="max", average_mode="top-fraction")
        assert config.stat_mode is StatMode.MAX
        assert config.average_mode is AverageMode.TOP_FRACTION

    def test_clamped(self):
        config = CongestionConfig(
            density_radius_m=0.4, segment_length_m=250.0, percentile=1.5,
            top_fraction=-0.2, window_s=0.0,
        ).clamped()
        assert config.density_radius_m == 2
        assert config.segment_length_m == 100
        assert config.percentile == 1.0
        assert config.top_fraction == 0.0
        assert config.window_s == 1.0

    def test_grouping_tolerance(self):
        grouping = GroupingConfig()
        assert grouping.tolerance(100.0) == pytest.approx(40.0)
        assert grouping.tolerance(5.0) == 5.0
        assert grouping.cell_size(100.0) == 100.0


class TestWaveRows:
    def test_row_shows_min_mile_paces(self):
        row = wave_to_row(DEFAULT_WAVES[0])
        assert row == {
            "id": "wave-1",
            "start_s": 600.0,
            "runners": 89,
            "min_pace": "5:51",
            "max_pace": "8:30",
        }

    def test_row_round_trip_keeps_wave(self):
        wave = waves_from_rows([wave_to_row(DEFAULT_WAVES[1])])[0]
        assert wave.id == "wave-2"
        assert wave.start_time == 900.0
        assert wave.runner_count == 158
        assert wave.min_pace == pytest.approx(DEFAULT_WAVES[1].min_pace)
        assert wave.max_pace == pytest.approx(DEFAULT_WAVES[1].max_pace)

    def test_edited_rows_drive_runner_generation(self):
        rows = [
            {"id": "elite", "start_s": 0, "runners": 3, "min_pace": "5:00", "max_pace": "6:00"},
            {"id": "", "start_s": -30, "runners": "4", "min_pace": "10:00", "max_pace": "9:00"},
        ]
        waves = waves_from_rows(rows)
        assert [w.id for w in waves] == ["elite", "wave-2"]
        assert waves[1].start_time == 0.0

        runners = generate_runners(waves, np.random.default_rng(2))
        assert len(runners) == 7
        assert {r.wave_id for r in runners} == {"elite", "wave-2"}
        for r in runners[3:]:
            assert pace_from_min_mile(9, 0) <= r.pace <= pace_from_min_mile(10, 0)

    def test_bad_numbers_raise(self):
        row = {"id": "w", "start_s": 0, "runners": "many", "min_pace": "8:00", "max_pace": "9:00"}
        with pytest.raises(ValueError):
            wave_from_row(row)

    def test_empty_table(self):
        assert waves_from_rows(None) == []
        assert generate_runners(waves_from_rows([]), np.random.default_rng(0)) == []

    def test_new_wave_defaults(self):
        wave = new_wave(2)
        assert wave.id == "wave-3"
        assert wave.start_time == 240.0
        assert wave.runner_count == 100
        assert (wave.min_pace, wave.max_pace) == (280.0, 420.0)


class TestCoursePresets:
    def test_presets(self):
        five_k, ten_k = default_course_presets()
        assert five_k.waves == DEFAULT_WAVES
        assert len(ten_k.waves) == 1
        mass = ten_k.waves[0]
        assert (mass.start_time, mass.runner_count) == (0.0, 450)
        assert (mass.min_pace, mass.max_pace) == (DEFAULT_WAVES[0].min_pace, DEFAULT_WAVES[0].max_pace)

    def test_preset_routes_exist_in_the_app(self):
        from course_congestion.visualization.dash_app import PRESETS, ROUTES

        assert set(PRESETS) == {"course-1", "course-2"}
        for preset in PRESETS.values():
            assert preset.route in ROUTES
