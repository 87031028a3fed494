"""
Unit tests for inertial/sensors/gravity.py.
"""

import unittest

import numpy as np
from numpy.testing import assert_allclose

from inertial.sensors.gravity import (
    FREE_AIR_GRADIENT,
    gravity_magnitude,
    gravity_ned,
    normal_gravity,
)
from inertial.sensors.units import STANDARD_GRAVITY


class TestNormalGravity(unittest.TestCase):
    """Test the latitude model."""

    def test_equator_and_poles(self) -> None:
        """Gravity grows from about 9.780 at the equator to 9.832 m/s² at the poles."""
        assert_allclose(normal_gravity(0.0), 9.7803, atol=1e-4)
        assert_allclose(normal_gravity(np.pi / 2), 9.832, atol=1e-3)
        assert_allclose(normal_gravity(-np.pi / 2), normal_gravity(np.pi / 2))

    def test_monotonic_with_latitude(self) -> None:
        lats = np.deg2rad(np.arange(0.0, 91.0, 15.0))
        g = [normal_gravity(lat) for lat in lats]
        self.assertTrue(np.all(np.diff(g) > 0))


class TestGravityMagnitude(unittest.TestCase):
    """Test fallback and height correction."""

    def test_fallback(self) -> None:
        self.assertEqual(gravity_magnitude(), STANDARD_GRAVITY)
        self.assertEqual(gravity_magnitude(None, default_g=9.81), 9.81)

    def test_free_air_correction(self) -> None:
        lat = np.deg2rad(22.3)
        assert_allclose(
            gravity_magnitude(lat) - gravity_magnitude(lat, height=1000.0),
            1000.0 * FREE_AIR_GRADIENT,
        )

    def test_gravity_ned_points_down(self) -> None:
        g = gravity_ned(np.deg2rad(45.0), 100.0)
        assert_allclose(g[:2], 0.0)
        assert_allclose(g[2], gravity_magnitude(np.deg2rad(45.0), 100.0))
