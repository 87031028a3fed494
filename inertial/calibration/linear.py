"""
Closed-form calibration by linear least squares.

Rewriting the error model as

    f_meas - f_true - b_known = b + M · f_true

gives, for every measurement, three equations linear in the unknowns. They
are stacked for all measurements and solved in one least squares step. No
initial guess is needed, which makes this the calibrator of choice for
computing robust-estimation candidates from small subsets.
"""

import numpy as np

from inertial.calibration.base import KnownFrameCalibrator
from inertial.calibration.errors import CalibrationError
from inertial.calibration.parameters import CalibrationResult, measurement_arrays
from inertial.estimators.least_squares import linear_least_squares


class KnownFrameLinearLeastSquaresCalibrator(KnownFrameCalibrator):
    """Estimate bias and scale/cross-coupling matrix without iterating.

    Example:
        >>> calibrator = KnownFrameLinearLeastSquaresCalibrator(
        ...     GravityReferenceModel(), measurements=measurements)
        >>> result = calibrator.calibrate()
        >>> result.mm  # estimated M
    """

    def _calibrate(self) -> CalibrationResult:
        layout = self.layout
        measured, true_values, _ = measurement_arrays(self._measurements, self._reference_model)
        known_bias = self._known_bias if self._known_bias is not None else np.zeros(3)

        A = layout.design_matrix(true_values)
        y = (measured - true_values - known_bias).reshape(-1)
        try:
            x, _ = linear_least_squares(A, y, return_covariance=False)
        except ValueError as e:
            raise CalibrationError(f"Linear calibration failed: {e}") from e

        bias, mm = layout.unpack(x, self._known_bias)
        return CalibrationResult(bias=bias, mm=mm)
