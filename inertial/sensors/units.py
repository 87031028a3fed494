"""
Physical units for inertial sensor triads.

This module defines the unit enumerations carried by every sensor triad and
explicit conversion functions between them. All calibration math runs in SI
units; the enumerations let callers feed readings in datasheet units
(deg/s, mg, µT, Gauss) and have them converted on entry.

Quantities:
    - Acceleration: m/s² (SI), g, mg, ft/s²
    - Angular speed: rad/s (SI), deg/s, deg/hr, rad/hr
    - Magnetic flux density: T (SI), mT, µT, nT, Gauss, mGauss

Key insight: Always be explicit about units in variable names and conversions!
"""

from enum import Enum
from typing import Union

import numpy as np

# Type alias for numeric types
Numeric = Union[float, np.ndarray]

STANDARD_GRAVITY = 9.80665  # m/s² (ISO 80000-3:2006)


class AccelerationUnit(Enum):
    """Acceleration units accepted by accelerometer triads."""

    METERS_PER_SQUARED_SECOND = "m/s²"
    G = "g"
    MILLI_G = "mg"
    FEET_PER_SQUARED_SECOND = "ft/s²"


class AngularSpeedUnit(Enum):
    """Angular speed units accepted by gyroscope triads."""

    RADIANS_PER_SECOND = "rad/s"
    DEGREES_PER_SECOND = "deg/s"
    DEGREES_PER_HOUR = "deg/hr"
    RADIANS_PER_HOUR = "rad/hr"


class MagneticFluxDensityUnit(Enum):
    """Magnetic flux density units accepted by magnetometer triads."""

    TESLA = "T"
    MILLITESLA = "mT"
    MICROTESLA = "µT"
    NANOTESLA = "nT"
    GAUSS = "G"
    MILLIGAUSS = "mG"


Unit = Union[AccelerationUnit, AngularSpeedUnit, MagneticFluxDensityUnit]


# ============================================================================
# Angular Speed Conversions
# ============================================================================

def deg_per_hour_to_rad_per_sec(deg_per_hr: Numeric) -> Numeric:
    """
    Convert angular speed from deg/hr to rad/s.

    This is the usual unit of gyro bias instability in datasheets.

    Args:
        deg_per_hr: Angular speed in degrees per hour.

    Returns:
        Angular speed in radians per second.

    Example:
        >>> bias_rad_s = deg_per_hour_to_rad_per_sec(10.0)
        >>> print(f"{bias_rad_s:.6f} rad/s")
        0.000048 rad/s
    """
    return np.deg2rad(deg_per_hr) / 3600.0


def rad_per_hour_to_rad_per_sec(rad_per_hr: Numeric) -> Numeric:
    """Convert angular speed from rad/hr to rad/s."""
    return rad_per_hr / 3600.0


def rad_per_sec_to_deg_per_hour(rad_per_s: Numeric) -> Numeric:
    """Convert angular speed from rad/s to deg/hr."""
    return np.rad2deg(rad_per_s) * 3600.0


# ============================================================================
# Acceleration Conversions
# ============================================================================

def mg_to_mps2(mg: Numeric) -> Numeric:
    """
    Convert acceleration from milligravity (mg) to m/s².

    1 mg = 0.001 * 9.80665 m/s² (standard gravity).

    Args:
        mg: Acceleration in milligravity.

    Returns:
        Acceleration in m/s².

    Example:
        >>> print(f"{mg_to_mps2(10.0):.6f} m/s²")
        0.098067 m/s²
    """
    return mg * 0.001 * STANDARD_GRAVITY


def mps2_to_mg(mps2: Numeric) -> Numeric:
    """Convert acceleration from m/s² to milligravity (mg)."""
    return mps2 / (0.001 * STANDARD_GRAVITY)


# ============================================================================
# Magnetic Flux Density Conversions
# ============================================================================

def gauss_to_tesla(gauss: Numeric) -> Numeric:
    """Convert magnetic flux density from Gauss to Tesla (1 G = 1e-4 T)."""
    return gauss * 1e-4


def tesla_to_nanotesla(tesla: Numeric) -> Numeric:
    """Convert magnetic flux density from Tesla to nanotesla.

    Geomagnetic field models are usually tabulated in nT (the Earth's field
    is roughly 25 000 - 65 000 nT at the surface).
    """
    return tesla * 1e9


# Multiplicative factor taking a value expressed in the unit to SI.
_TO_SI = {
    AccelerationUnit.METERS_PER_SQUARED_SECOND: 1.0,
    AccelerationUnit.G: STANDARD_GRAVITY,
    AccelerationUnit.MILLI_G: mg_to_mps2(1.0),
    AccelerationUnit.FEET_PER_SQUARED_SECOND: 0.3048,
    AngularSpeedUnit.RADIANS_PER_SECOND: 1.0,
    AngularSpeedUnit.DEGREES_PER_SECOND: np.pi / 180.0,
    AngularSpeedUnit.DEGREES_PER_HOUR: deg_per_hour_to_rad_per_sec(1.0),
    AngularSpeedUnit.RADIANS_PER_HOUR: rad_per_hour_to_rad_per_sec(1.0),
    MagneticFluxDensityUnit.TESLA: 1.0,
    MagneticFluxDensityUnit.MILLITESLA: 1e-3,
    MagneticFluxDensityUnit.MICROTESLA: 1e-6,
    MagneticFluxDensityUnit.NANOTESLA: 1e-9,
    MagneticFluxDensityUnit.GAUSS: gauss_to_tesla(1.0),
    MagneticFluxDensityUnit.MILLIGAUSS: gauss_to_tesla(1e-3),
}


def si_unit(unit: Unit) -> Unit:
    """
    Return the SI unit of the quantity measured in ``unit``.

    Args:
        unit: Any supported unit.

    Returns:
        m/s², rad/s or T, depending on the quantity.

    Raises:
        ValueError: If ``unit`` is not a supported unit.
    """
    if isinstance(unit, AccelerationUnit):
        return AccelerationUnit.METERS_PER_SQUARED_SECOND
    if isinstance(unit, AngularSpeedUnit):
        return AngularSpeedUnit.RADIANS_PER_SECOND
    if isinstance(unit, MagneticFluxDensityUnit):
        return MagneticFluxDensityUnit.TESLA
    raise ValueError(f"Unsupported unit: {unit!r}")


def to_si(value: Numeric, unit: Unit) -> Numeric:
    """Convert ``value`` expressed in ``unit`` to the SI unit of its quantity."""
    si_unit(unit)
    return value * _TO_SI[unit]


def from_si(value: Numeric, unit: Unit) -> Numeric:
    """Convert an SI ``value`` to ``unit``."""
    si_unit(unit)
    return value / _TO_SI[unit]


def convert(value: Numeric, from_unit: Unit, to_unit: Unit) -> Numeric:
    """
    Convert a value between two units of the same quantity.

    Args:
        value: Scalar or array expressed in ``from_unit``.
        from_unit: Source unit.
        to_unit: Target unit.

    Returns:
        ``value`` expressed in ``to_unit``.

    Raises:
        ValueError: If the units measure different quantities.

    Example:
        >>> convert(1.0, AccelerationUnit.G, AccelerationUnit.METERS_PER_SQUARED_SECOND)
        9.80665
    """
    if si_unit(from_unit) is not si_unit(to_unit):
        raise ValueError(
            f"Cannot convert between {from_unit.value} and {to_unit.value}: "
            f"different physical quantities"
        )
    if from_unit is to_unit:
        return value
    return from_si(to_si(value, from_unit), to_unit)
