"""Tests for the planar projection and great-circle distance."""

from __future__ import annotations

import math

import numpy as np
import pytest

from course_congestion.core.projection import EARTH_RADIUS_M, PlanarProjector, haversine_m

METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0


class TestHaversine:
    def test_one_degree_along_equator(self):
        assert haversine_m(0.0, 0.0, 0.0, 1.0) == pytest.approx(METERS_PER_DEGREE)

    def test_zero_for_same_point(self):
        assert haversine_m(37.77, -122.42, 37.77, -122.42) == 0.0


class TestPlanarProjector:
    def test_origin_maps_to_zero(self):
        proj = PlanarProjector(45.0, 7.0)
        assert proj.project(45.0, 7.0) == (0.0, 0.0)

    def test_axes_point_east_and_north(self):
        """x grows eastward, y northward, with longitude scaled by cos(lat)."""
        proj = PlanarProjector(60.0, 0.0)
        x, y = proj.project(60.0, 1.0)
        assert x == pytest.approx(METERS_PER_DEGREE * 0.5)
        assert y == pytest.approx(0.0)
        x, y = proj.project(61.0, 0.0)
        assert x == pytest.approx(0.0)
        assert y == pytest.approx(METERS_PER_DEGREE)

    def test_project_many_matches_scalar(self):
        proj = PlanarProjector(37.77, -122.42)
        pts = np.array([[37.77, -122.42], [37.78, -122.41], [37.76, -122.43]])
        many = proj.project_many(pts)
        for row, (lat, lng) in zip(many, pts):
            assert tuple(row) == pytest.approx(proj.project(lat, lng))

    def test_unproject_inverts_project(self):
        proj = PlanarProjector(37.77, -122.42)
        lat, lng = proj.unproject(*proj.project(37.781, -122.405))
        assert lat == pytest.approx(37.781)
        assert lng == pytest.approx(-122.405)
