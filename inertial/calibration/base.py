"""
Base class and listener interfaces for known-frame calibrators.

A known-frame calibrator estimates the sensor error model (bias and
scale/cross-coupling matrix) from measurements whose true value can be
predicted from the frame they were taken at. Every calibrator is stateful:
it is configured through validated properties, runs ``calibrate()`` as a
blocking call and keeps the estimate until the next run.

While ``calibrate()`` runs, the ``running`` flag is set and every mutator
raises ``LockedError``; the flag is cleared on every exit path.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

import numpy as np

from inertial.calibration.errors import LockedError, NotReadyError
from inertial.calibration.parameters import CalibrationResult, ParameterLayout, as_bias
from inertial.sensors.measurements import FrameBodyMeasurement
from inertial.sensors.reference import ReferenceModel


class CalibratorListener:
    """Receives calibration start/end events. Methods are no-ops by default."""

    def on_calibrate_start(self, calibrator) -> None:
        pass

    def on_calibrate_end(self, calibrator) -> None:
        pass


class RobustCalibratorListener(CalibratorListener):
    """Adds consensus-loop progress events to ``CalibratorListener``."""

    def on_calibrate_next_iteration(self, calibrator, iteration: int) -> None:
        pass

    def on_calibrate_progress_change(self, calibrator, progress: float) -> None:
        pass


class KnownFrameCalibrator(ABC):
    """Shared configuration, locking and result storage of calibrators.

    Args:
        reference_model: Predicts the true body-frame value of each
            measurement (gravity, magnetic field, angular rate).
        measurements: Sequence of FrameBodyMeasurement.
        common_axis_used: Hold myx, mzx and mzy at zero.
        known_bias: Bias to assume instead of estimating it (SI units), or
            None to estimate it.
        listener: Optional CalibratorListener.
    """

    def __init__(
        self,
        reference_model: ReferenceModel,
        measurements: Optional[Sequence[FrameBodyMeasurement]] = None,
        common_axis_used: bool = False,
        known_bias=None,
        listener: Optional[CalibratorListener] = None,
    ):
        self._running = False
        self._result: Optional[CalibrationResult] = None
        self.reference_model = reference_model
        self.measurements = measurements
        self.common_axis_used = common_axis_used
        self.known_bias = known_bias
        self.listener = listener

    def _check_locked(self) -> None:
        if self._running:
            raise LockedError(f"{type(self).__name__} is running")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def reference_model(self) -> ReferenceModel:
        return self._reference_model

    @reference_model.setter
    def reference_model(self, value: ReferenceModel) -> None:
        self._check_locked()
        if not isinstance(value, ReferenceModel):
            raise ValueError(f"reference_model must be a ReferenceModel, got {type(value).__name__}")
        self._reference_model = value

    @property
    def measurements(self) -> Optional[Tuple[FrameBodyMeasurement, ...]]:
        return self._measurements

    @measurements.setter
    def measurements(self, value: Optional[Sequence[FrameBodyMeasurement]]) -> None:
        self._check_locked()
        if value is None:
            self._measurements = None
            return
        value = tuple(value)
        for m in value:
            if not isinstance(m, FrameBodyMeasurement):
                raise ValueError(f"measurements must be FrameBodyMeasurement, got {type(m).__name__}")
        self._measurements = value

    @property
    def common_axis_used(self) -> bool:
        return self._common_axis_used

    @common_axis_used.setter
    def common_axis_used(self, value: bool) -> None:
        self._check_locked()
        self._common_axis_used = bool(value)

    @property
    def known_bias(self) -> Optional[np.ndarray]:
        """Assumed bias (3,), or None when the bias is estimated."""
        return None if self._known_bias is None else self._known_bias.copy()

    @known_bias.setter
    def known_bias(self, value) -> None:
        self._check_locked()
        self._known_bias = None if value is None else as_bias(value)

    def set_known_bias(self, bx: float, by: float, bz: float) -> None:
        """Set the assumed bias from its three components."""
        self.known_bias = (bx, by, bz)

    @property
    def listener(self) -> Optional[CalibratorListener]:
        return self._listener

    @listener.setter
    def listener(self, value: Optional[CalibratorListener]) -> None:
        self._check_locked()
        self._listener = value

    @property
    def layout(self) -> ParameterLayout:
        return ParameterLayout(self._known_bias is not None, self._common_axis_used)

    @property
    def minimum_required_measurements(self) -> int:
        return self.layout.min_measurements

    @property
    def is_ready(self) -> bool:
        return (
            self._measurements is not None
            and len(self._measurements) >= self.minimum_required_measurements
        )

    def calibrate(self) -> CalibrationResult:
        """Estimate the error model from the configured measurements.

        Returns:
            The estimated CalibrationResult, also kept in ``result``.

        Raises:
            LockedError: If already running.
            NotReadyError: If there are too few measurements.
            CalibrationError: If the fit is numerically degenerate.
        """
        self._check_locked()
        if not self.is_ready:
            count = 0 if self._measurements is None else len(self._measurements)
            raise NotReadyError(
                f"{type(self).__name__} needs at least "
                f"{self.minimum_required_measurements} measurements, got {count}"
            )
        self._running = True
        try:
            if self._listener is not None:
                self._listener.on_calibrate_start(self)
            self._result = self._calibrate()
            if self._listener is not None:
                self._listener.on_calibrate_end(self)
        finally:
            self._running = False
        return self._result

    @abstractmethod
    def _calibrate(self) -> CalibrationResult:
        """Run the estimation; called with the running flag set."""

    @property
    def result(self) -> Optional[CalibrationResult]:
        return self._result

    @property
    def estimated_bias(self) -> Optional[np.ndarray]:
        return None if self._result is None else self._result.bias.copy()

    @property
    def estimated_mm(self) -> Optional[np.ndarray]:
        """Estimated scale factor and cross-coupling matrix M."""
        return None if self._result is None else self._result.mm.copy()

    @property
    def estimated_sx(self) -> Optional[float]:
        return None if self._result is None else float(self._result.mm[0, 0])

    @property
    def estimated_sy(self) -> Optional[float]:
        return None if self._result is None else float(self._result.mm[1, 1])

    @property
    def estimated_sz(self) -> Optional[float]:
        return None if self._result is None else float(self._result.mm[2, 2])
