"""
Sensor values and the physical references they are calibrated against.

Available components:
    - Units of acceleration, angular speed and magnetic flux density
    - Triads: (x, y, z) samples carrying their unit
    - FrameBodyMeasurement: a reading taken at a known frame
    - Normal gravity model
    - Reference models predicting the true reading at a frame
"""

from inertial.sensors.units import (
    STANDARD_GRAVITY,
    AccelerationUnit,
    AngularSpeedUnit,
    MagneticFluxDensityUnit,
    convert,
    from_si,
    si_unit,
    to_si,
)
from inertial.sensors.triad import (
    AccelerationTriad,
    AngularSpeedTriad,
    MagneticFluxDensityTriad,
    Triad,
)
from inertial.sensors.measurements import FrameBodyMeasurement
from inertial.sensors.gravity import gravity_magnitude, gravity_ned, normal_gravity
from inertial.sensors.reference import (
    EARTH_ROTATION_RATE,
    AngularRateReferenceModel,
    GravityReferenceModel,
    MagneticFieldReferenceModel,
    ReferenceModel,
)

__all__ = [
    # Units
    "STANDARD_GRAVITY",
    "AccelerationUnit",
    "AngularSpeedUnit",
    "MagneticFluxDensityUnit",
    "convert",
    "from_si",
    "si_unit",
    "to_si",
    # Triads
    "Triad",
    "AccelerationTriad",
    "AngularSpeedTriad",
    "MagneticFluxDensityTriad",
    # Measurements
    "FrameBodyMeasurement",
    # Gravity
    "gravity_magnitude",
    "gravity_ned",
    "normal_gravity",
    # Reference models
    "EARTH_ROTATION_RATE",
    "ReferenceModel",
    "GravityReferenceModel",
    "MagneticFieldReferenceModel",
    "AngularRateReferenceModel",
]
