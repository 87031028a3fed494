"""
Normal gravity for accelerometer calibration references.

A static accelerometer senses the reaction to gravity, so the expected
reading at a known pose is the local gravity vector rotated into body axes.
This module computes that vector from the frame's latitude and height.

The latitude model (WGS-84 style closed form) accounts for:
    - Earth's oblate spheroid shape (equatorial bulge)
    - Centrifugal force from Earth's rotation
    - Latitude-dependent variation (±0.05 m/s² from equator to poles)

Height is handled with the linear free-air correction, which is adequate for
the few hundred meters a calibration bench can be above the ellipsoid.
"""

from typing import Optional

import numpy as np

from inertial.sensors.units import STANDARD_GRAVITY

# Free-air gradient of normal gravity (m/s² per meter of height)
FREE_AIR_GRADIENT = 3.086e-6


def normal_gravity(lat_rad: float) -> float:
    """
    Compute sea-level gravity magnitude at a geodetic latitude.

        g(φ) = 9.7803 * (1 + 0.0053024·sin²(φ) - 0.000005·sin²(2φ))

    Physical Interpretation:
        - Equator (φ=0°):   g ≈ 9.780 m/s² (minimum, strongest centrifugal effect)
        - 45° latitude:     g ≈ 9.806 m/s²
        - Poles (φ=±90°):   g ≈ 9.832 m/s² (maximum, no centrifugal effect)

    Args:
        lat_rad: Geodetic latitude in radians, range [-π/2, +π/2].

    Returns:
        Gravity magnitude g in m/s².

    Example:
        >>> g_45n = normal_gravity(np.deg2rad(45.0))
        >>> print(f"45°N: {g_45n:.4f} m/s²")  # ~9.8062
    """
    sin_lat = np.sin(lat_rad)
    sin_2lat = np.sin(2.0 * lat_rad)
    return float(9.7803 * (1.0 + 0.0053024 * sin_lat * sin_lat - 0.000005 * sin_2lat * sin_2lat))


def gravity_magnitude(
    lat_rad: Optional[float] = None,
    height: float = 0.0,
    default_g: float = STANDARD_GRAVITY,
) -> float:
    """
    Compute gravity magnitude with automatic fallback.

    Behavior:
        - If lat_rad is provided: latitude model plus free-air height correction
        - If lat_rad is None: return default_g

    Args:
        lat_rad: Geodetic latitude in radians (optional).
        height: Height above the ellipsoid in meters. Ignored when
            lat_rad is None.
        default_g: Fallback gravity magnitude when lat_rad is None.
            Default: 9.80665 m/s² (standard gravity).

    Returns:
        Gravity magnitude in m/s².
    """
    if lat_rad is None:
        return default_g
    return normal_gravity(lat_rad) - FREE_AIR_GRADIENT * height


def gravity_ned(lat_rad: float, height: float = 0.0) -> np.ndarray:
    """
    Gravity vector in the local NED frame.

    Plumb-line deflection is neglected, so gravity points straight down
    (+z in NED).

    Args:
        lat_rad: Geodetic latitude in radians.
        height: Height above the ellipsoid in meters.

    Returns:
        Gravity vector [0, 0, g] in m/s².
    """
    return np.array([0.0, 0.0, gravity_magnitude(lat_rad, height)], dtype=np.float64)
