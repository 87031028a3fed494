"""
Calibration measurements: sensor readings taken at known frames.

Each measurement associates a raw triad reading (with its per-axis standard
deviation) to the frame at which it was acquired. Magnetometer measurements
may add the decimal year for time-varying field models; gyroscope
measurements add the previous frame and the time elapsed since it, so the
true body rate can be recovered from the attitude change.

Measurements are created once per acquisition and never mutated afterwards;
calibrators only read them.
"""

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from inertial.coords.frames import Frame
from inertial.sensors.triad import Triad
from inertial.sensors.units import convert, si_unit


@dataclass(frozen=True, eq=False)
class FrameBodyMeasurement:
    """
    A body-frame sensor reading taken at a known navigation frame.

    Attributes:
        reading: Raw sensor triad.
        frame: Frame (pose, velocity) at which the reading was taken.
        std: Standard deviation of the reading, scalar or per-axis (3,),
            expressed in the reading's unit. Must be non-negative.
        year: Decimal year of the acquisition (e.g. 2024.5), optional.
        previous_frame: Frame at the previous sample, optional.
        time_interval: Seconds elapsed since ``previous_frame``. Required
            whenever ``previous_frame`` is given, and must be positive.

    Example:
        >>> from inertial.sensors.triad import AccelerationTriad
        >>> m = FrameBodyMeasurement(AccelerationTriad(0.0, 0.0, -9.8), Frame(), std=0.01)
        >>> m.std_values  # per-axis std in m/s²
    """

    reading: Triad
    frame: Frame
    std: Union[float, np.ndarray] = 1.0
    year: Optional[float] = None
    previous_frame: Optional[Frame] = None
    time_interval: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate measurement consistency."""
        if not isinstance(self.reading, Triad):
            raise ValueError(f"reading must be a Triad, got {type(self.reading).__name__}")
        if not isinstance(self.frame, Frame):
            raise ValueError(f"frame must be a Frame, got {type(self.frame).__name__}")

        std = np.broadcast_to(np.asarray(self.std, dtype=np.float64), (3,)).copy()
        if np.any(~np.isfinite(std)) or np.any(std < 0.0):
            raise ValueError(f"std must be finite and non-negative, got {self.std}")
        std.setflags(write=False)
        object.__setattr__(self, "std", std)

        # Own a private copy of the reading so later edits of the caller's
        # triad cannot alter the measurement.
        object.__setattr__(self, "reading", self.reading.copy())

        if (self.previous_frame is None) != (self.time_interval is None):
            raise ValueError("previous_frame and time_interval must be given together")
        if self.time_interval is not None and not self.time_interval > 0.0:
            raise ValueError(f"time_interval must be positive, got {self.time_interval}")

    @property
    def values(self) -> np.ndarray:
        """Reading components in the SI unit of the measured quantity."""
        return self.reading.to_si()

    @property
    def std_values(self) -> np.ndarray:
        """Per-axis standard deviation in SI units."""
        unit = self.reading.unit
        return np.abs(np.asarray(convert(self.std, unit, si_unit(unit)), dtype=np.float64))

    @property
    def has_kinematics(self) -> bool:
        """Whether the measurement carries a previous frame and time interval."""
        return self.previous_frame is not None
