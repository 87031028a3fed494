"""
Unit tests for inertial/sensors/units.py.

Tests cover:
    - Explicit conversion helpers
    - Conversion between units of the same quantity
    - Rejection of conversions across quantities
"""

import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose

from inertial.sensors.units import (
    STANDARD_GRAVITY,
    AccelerationUnit,
    AngularSpeedUnit,
    MagneticFluxDensityUnit,
    convert,
    deg_per_hour_to_rad_per_sec,
    from_si,
    gauss_to_tesla,
    mg_to_mps2,
    mps2_to_mg,
    rad_per_sec_to_deg_per_hour,
    si_unit,
    tesla_to_nanotesla,
    to_si,
)


class TestConversionHelpers(unittest.TestCase):
    """Test the named conversion functions."""

    def test_deg_per_hour(self) -> None:
        """10 deg/hr is about 4.85e-5 rad/s."""
        assert_allclose(deg_per_hour_to_rad_per_sec(10.0), np.deg2rad(10.0) / 3600.0)
        assert_allclose(rad_per_sec_to_deg_per_hour(deg_per_hour_to_rad_per_sec(10.0)), 10.0)

    def test_milli_g(self) -> None:
        """1000 mg is one standard gravity."""
        assert_allclose(mg_to_mps2(1000.0), STANDARD_GRAVITY)
        assert_allclose(mps2_to_mg(STANDARD_GRAVITY), 1000.0)

    def test_magnetic(self) -> None:
        """0.5 Gauss is 50 µT, i.e. 50000 nT."""
        assert_allclose(gauss_to_tesla(0.5), 50e-6)
        assert_allclose(tesla_to_nanotesla(50e-6), 50000.0)

    def test_array_input(self) -> None:
        """Helpers work element-wise on arrays."""
        assert_allclose(mg_to_mps2(np.array([0.0, 1000.0])), [0.0, STANDARD_GRAVITY])


class TestConvert(unittest.TestCase):
    """Test generic unit conversion."""

    def test_si_units(self) -> None:
        self.assertIs(si_unit(AccelerationUnit.G), AccelerationUnit.METERS_PER_SQUARED_SECOND)
        self.assertIs(si_unit(AngularSpeedUnit.DEGREES_PER_SECOND), AngularSpeedUnit.RADIANS_PER_SECOND)
        self.assertIs(si_unit(MagneticFluxDensityUnit.NANOTESLA), MagneticFluxDensityUnit.TESLA)

    def test_acceleration(self) -> None:
        assert_allclose(
            convert(1.0, AccelerationUnit.G, AccelerationUnit.METERS_PER_SQUARED_SECOND),
            STANDARD_GRAVITY,
        )
        assert_allclose(
            convert(1.0, AccelerationUnit.FEET_PER_SQUARED_SECOND, AccelerationUnit.METERS_PER_SQUARED_SECOND),
            0.3048,
        )
        assert_allclose(convert(1.0, AccelerationUnit.G, AccelerationUnit.MILLI_G), 1000.0)

    def test_angular_speed(self) -> None:
        assert_allclose(
            convert(180.0, AngularSpeedUnit.DEGREES_PER_SECOND, AngularSpeedUnit.RADIANS_PER_SECOND),
            np.pi,
        )
        assert_allclose(
            convert(3600.0, AngularSpeedUnit.RADIANS_PER_HOUR, AngularSpeedUnit.RADIANS_PER_SECOND),
            1.0,
        )

    def test_magnetic_flux_density(self) -> None:
        assert_allclose(
            convert(1.0, MagneticFluxDensityUnit.GAUSS, MagneticFluxDensityUnit.MICROTESLA),
            100.0,
        )
        assert_allclose(
            convert(1.0, MagneticFluxDensityUnit.MILLIGAUSS, MagneticFluxDensityUnit.NANOTESLA),
            100.0,
        )

    def test_same_unit_returns_value(self) -> None:
        values = np.array([1.0, 2.0, 3.0])
        assert_allclose(convert(values, AccelerationUnit.G, AccelerationUnit.G), values)

    def test_to_and_from_si(self) -> None:
        assert_allclose(to_si(2.0, MagneticFluxDensityUnit.MILLITESLA), 2e-3)
        assert_allclose(from_si(2e-3, MagneticFluxDensityUnit.MILLITESLA), 2.0)

    def test_cross_quantity_raises(self) -> None:
        with pytest.raises(ValueError, match="different physical quantities"):
            convert(1.0, AccelerationUnit.G, AngularSpeedUnit.RADIANS_PER_SECOND)

    def test_unsupported_unit_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported unit"):
            si_unit("m/s²")
