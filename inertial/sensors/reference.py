"""
Reference models: the reading an ideal sensor would produce at a known frame.

Calibration compares each raw reading to the value predicted by a reference
model for the frame the reading was taken at. The models here are the
simple, closed-form collaborators needed to calibrate from a bench or a
survey; anything more elaborate (full geomagnetic models, transport rate)
can be plugged in by implementing ``ReferenceModel``.

Models:
    - GravityReferenceModel: specific force from normal gravity and the
      finite-difference kinematic acceleration
    - MagneticFieldReferenceModel: constant NED field with linear secular
      variation from an epoch
    - AngularRateReferenceModel: body rate from the attitude change between
      consecutive frames, plus Earth rotation

All models return body-frame vectors in SI units (m/s², T, rad/s).
"""

import warnings
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from inertial.coords.rotations import rotation_matrix_to_rotation_vector
from inertial.sensors.gravity import gravity_magnitude
from inertial.sensors.measurements import FrameBodyMeasurement
from inertial.sensors.units import (
    AccelerationUnit,
    AngularSpeedUnit,
    MagneticFluxDensityUnit,
    Unit,
)

# WGS-84 Earth rotation rate (rad/s)
EARTH_ROTATION_RATE = 7.292115e-5


class ReferenceModel(ABC):
    """Predicts the true body-frame quantity sensed at a measurement's frame."""

    #: SI unit of the predicted quantity.
    unit: Unit

    @abstractmethod
    def expected(self, measurement: FrameBodyMeasurement) -> np.ndarray:
        """Return the expected (error-free) body-frame reading, shape (3,)."""

    def expected_batch(self, measurements) -> np.ndarray:
        """Stack ``expected`` for a sequence of measurements into (N, 3)."""
        return np.array([self.expected(m) for m in measurements], dtype=np.float64).reshape(-1, 3)


class GravityReferenceModel(ReferenceModel):
    """
    Expected accelerometer reading (specific force) at a known frame.

        f_b = C_bn (a_n - g_n)

    where g_n = [0, 0, g] in NED and a_n is the NED acceleration estimated by
    finite differences of consecutive frame velocities. Measurements without
    a previous frame are treated as static (a_n = 0), so a level sensor at
    rest senses f_b = [0, 0, -g].

    Args:
        gravity: Fixed gravity magnitude in m/s². If None, gravity is
            computed from each frame's latitude and height.
    """

    unit = AccelerationUnit.METERS_PER_SQUARED_SECOND

    def __init__(self, gravity: Optional[float] = None):
        if gravity is not None and not gravity > 0.0:
            raise ValueError(f"gravity must be positive, got {gravity}")
        self.gravity = gravity

    def expected(self, measurement: FrameBodyMeasurement) -> np.ndarray:
        frame = measurement.frame
        if self.gravity is None:
            g = gravity_magnitude(frame.latitude, frame.height)
        else:
            g = self.gravity
        g_n = np.array([0.0, 0.0, g])

        a_n = np.zeros(3)
        if measurement.has_kinematics:
            a_n = (frame.velocity - measurement.previous_frame.velocity) / measurement.time_interval

        return frame.nav_to_body(a_n - g_n)


class MagneticFieldReferenceModel(ReferenceModel):
    """
    Expected magnetometer reading from a locally constant geomagnetic field.

        B_b = C_bn (B_n + Ḃ_n · (year - epoch))

    Args:
        field_ned: Earth magnetic field in NED at the survey site, in Tesla.
        secular_variation: Yearly rate of change of ``field_ned`` (T/year).
        epoch: Decimal year at which ``field_ned`` is valid.

    Example:
        >>> # Roughly Hong Kong, 2025: 38 µT north, -0.3 µT east, 23 µT down
        >>> model = MagneticFieldReferenceModel(np.array([38e-6, -0.3e-6, 23e-6]))
    """

    unit = MagneticFluxDensityUnit.TESLA

    def __init__(
        self,
        field_ned: np.ndarray,
        secular_variation: Optional[np.ndarray] = None,
        epoch: float = 2020.0,
    ):
        field_ned = np.asarray(field_ned, dtype=np.float64).reshape(-1)
        if field_ned.shape != (3,):
            raise ValueError(f"field_ned must have 3 elements, got shape {field_ned.shape}")
        if secular_variation is None:
            secular_variation = np.zeros(3)
        secular_variation = np.asarray(secular_variation, dtype=np.float64).reshape(-1)
        if secular_variation.shape != (3,):
            raise ValueError(
                f"secular_variation must have 3 elements, got shape {secular_variation.shape}"
            )
        self.field_ned = field_ned
        self.secular_variation = secular_variation
        self.epoch = float(epoch)

    def field_at(self, year: Optional[float]) -> np.ndarray:
        """NED field (T) at a decimal year, or at the epoch when year is None."""
        if year is None:
            if np.any(self.secular_variation != 0.0):
                warnings.warn(
                    f"Measurement has no year; using field at epoch {self.epoch}",
                    UserWarning,
                )
            return self.field_ned.copy()
        return self.field_ned + self.secular_variation * (year - self.epoch)

    def expected(self, measurement: FrameBodyMeasurement) -> np.ndarray:
        return measurement.frame.nav_to_body(self.field_at(measurement.year))


class AngularRateReferenceModel(ReferenceModel):
    """
    Expected gyroscope reading from the attitude change between two frames.

    The body rotation over the interval is ΔC = C_bn(k-1) · C_nb(k); its
    rotation vector divided by the interval is the mean body rate relative
    to the navigation frame. Earth rotation, expressed in body axes at the
    current frame, is optionally added. Transport rate is neglected.

    Args:
        include_earth_rotation: Add Ω_ie = Ω [cos φ, 0, -sin φ] (NED) to
            the kinematic rate.
    """

    unit = AngularSpeedUnit.RADIANS_PER_SECOND

    def __init__(self, include_earth_rotation: bool = True):
        self.include_earth_rotation = include_earth_rotation

    def expected(self, measurement: FrameBodyMeasurement) -> np.ndarray:
        if not measurement.has_kinematics:
            raise ValueError(
                "Angular rate reference requires a previous frame and a time interval"
            )
        frame = measurement.frame
        delta_c = measurement.previous_frame.c_nav_to_body @ frame.c_body_to_nav
        omega_b = rotation_matrix_to_rotation_vector(delta_c) / measurement.time_interval

        if self.include_earth_rotation:
            lat = frame.latitude
            omega_ie_n = EARTH_ROTATION_RATE * np.array([np.cos(lat), 0.0, -np.sin(lat)])
            omega_b = omega_b + frame.nav_to_body(omega_ie_n)

        return omega_b
