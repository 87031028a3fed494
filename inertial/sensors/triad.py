"""
Three-axis sensor values with an attached unit.

A triad is the common currency between the interval detector, the
measurement generator and the calibrators: one (x, y, z) sample of an
accelerometer, gyroscope or magnetometer together with the unit it is
expressed in.

Classes:
    - Triad: generic 3-component value with a unit
    - AccelerationTriad: accelerometer sample (default m/s²)
    - AngularSpeedTriad: gyroscope sample (default rad/s)
    - MagneticFluxDensityTriad: magnetometer sample (default T)
"""

from typing import Iterable, Optional

import numpy as np

from inertial.sensors.units import (
    AccelerationUnit,
    AngularSpeedUnit,
    MagneticFluxDensityUnit,
    Unit,
    convert,
    si_unit,
)


class Triad:
    """Mutable 3-component value (x, y, z) expressed in a unit.

    The unit can never be unset: constructing a triad or assigning its unit
    with ``None`` raises ``ValueError``.

    Attributes:
        x: Component along the sensor x axis.
        y: Component along the sensor y axis.
        z: Component along the sensor z axis.
        unit: Unit the components are expressed in.

    Example:
        >>> t = Triad(3.0, 4.0, 0.0, AccelerationUnit.METERS_PER_SQUARED_SECOND)
        >>> t.norm
        5.0
    """

    #: Unit enumeration accepted by the triad, None means any supported unit.
    unit_type: Optional[type] = None
    #: Unit used when none is given at construction.
    default_unit: Optional[Unit] = None

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        z: float = 0.0,
        unit: Optional[Unit] = None,
    ):
        self._unit = self._check_unit(unit if unit is not None else self.default_unit)
        self._values = np.array([x, y, z], dtype=np.float64)

    def _check_unit(self, unit: Optional[Unit]) -> Unit:
        if unit is None:
            raise ValueError("Triad unit must be provided")
        if self.unit_type is not None and not isinstance(unit, self.unit_type):
            raise ValueError(
                f"{type(self).__name__} requires a {self.unit_type.__name__}, got {unit!r}"
            )
        # Raises for objects that are not one of the supported unit enums
        si_unit(unit)
        return unit

    @classmethod
    def from_array(cls, values: Iterable[float], unit: Optional[Unit] = None) -> "Triad":
        """Build a triad from any 3-element sequence."""
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        if arr.shape != (3,):
            raise ValueError(f"Triad values must have 3 elements, got shape {arr.shape}")
        return cls(arr[0], arr[1], arr[2], unit)

    @property
    def x(self) -> float:
        return float(self._values[0])

    @x.setter
    def x(self, value: float) -> None:
        self._values[0] = value

    @property
    def y(self) -> float:
        return float(self._values[1])

    @y.setter
    def y(self, value: float) -> None:
        self._values[1] = value

    @property
    def z(self) -> float:
        return float(self._values[2])

    @z.setter
    def z(self, value: float) -> None:
        self._values[2] = value

    @property
    def unit(self) -> Unit:
        return self._unit

    @unit.setter
    def unit(self, unit: Unit) -> None:
        self._unit = self._check_unit(unit)

    def set_values(self, x: float, y: float, z: float) -> None:
        """Set the three components at once, keeping the unit."""
        self._values[:] = (x, y, z)

    def set_values_and_unit(self, x: float, y: float, z: float, unit: Unit) -> None:
        """Set components and unit at once."""
        self._unit = self._check_unit(unit)
        self._values[:] = (x, y, z)

    def set_from_array(self, values: Iterable[float]) -> None:
        """Set the components from a 3-element sequence."""
        arr = np.asarray(values, dtype=np.float64).reshape(-1)
        if arr.shape != (3,):
            raise ValueError(f"Triad values must have 3 elements, got shape {arr.shape}")
        self._values[:] = arr

    def as_array(self) -> np.ndarray:
        """Return a copy of the components as a (3,) array."""
        return self._values.copy()

    @property
    def sqr_norm(self) -> float:
        """Squared Euclidean norm x² + y² + z²."""
        return float(self._values @ self._values)

    @property
    def norm(self) -> float:
        """Euclidean norm of the triad."""
        return float(np.sqrt(self.sqr_norm))

    def values_in(self, unit: Unit) -> np.ndarray:
        """Return the components converted to ``unit`` as a (3,) array."""
        return np.asarray(convert(self._values, self._unit, unit), dtype=np.float64)

    def to_si(self) -> np.ndarray:
        """Return the components in the SI unit of the measured quantity."""
        return self.values_in(si_unit(self._unit))

    def to_unit(self, unit: Unit) -> "Triad":
        """Return a new triad of the same type converted to ``unit``."""
        return type(self).from_array(self.values_in(unit), unit)

    def copy(self) -> "Triad":
        return type(self).from_array(self._values, self._unit)

    def copy_from(self, other: "Triad") -> None:
        """Overwrite this triad's components and unit with those of ``other``."""
        self._unit = self._check_unit(other.unit)
        self._values[:] = other._values

    def equals(self, other: "Triad", threshold: float = 0.0) -> bool:
        """Component-wise comparison with an absolute tolerance.

        Triads in different units are never equal, even if they describe the
        same physical value.
        """
        if other is None or not isinstance(other, Triad):
            return False
        if threshold < 0.0:
            raise ValueError(f"threshold must be non-negative, got {threshold}")
        if other.unit is not self._unit:
            return False
        return bool(np.all(np.abs(self._values - other._values) <= threshold))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Triad):
            return NotImplemented
        return self.equals(other)

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(x={self.x!r}, y={self.y!r}, z={self.z!r}, "
            f"unit={self._unit.value!r})"
        )


class AccelerationTriad(Triad):
    """Accelerometer sample, specific force expressed by default in m/s²."""

    unit_type = AccelerationUnit
    default_unit = AccelerationUnit.METERS_PER_SQUARED_SECOND


class AngularSpeedTriad(Triad):
    """Gyroscope sample, angular rate expressed by default in rad/s."""

    unit_type = AngularSpeedUnit
    default_unit = AngularSpeedUnit.RADIANS_PER_SECOND


class MagneticFluxDensityTriad(Triad):
    """Magnetometer sample, flux density expressed by default in Tesla."""

    unit_type = MagneticFluxDensityUnit
    default_unit = MagneticFluxDensityUnit.TESLA
