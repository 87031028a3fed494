"""
Calibration by weighted nonlinear least squares (Levenberg-Marquardt).

Fits the error model f_meas = b + (I + M) · f_true by minimizing

    χ² = Σᵢ Σₐ ((f_meas,ia - f_pred,ia) / σ_ia)²

starting from an initial bias and matrix. Each residual component is
weighted by the inverse variance of the reading axis, so the returned
covariance (J'WJ)⁻¹ is in absolute units and χ² follows a chi-square
distribution with 3N - p degrees of freedom when the model is right.

Readings with a zero standard deviation cannot be weighted; such entries
take the smallest positive standard deviation of the set, and when no
positive value exists the fit is unweighted and the covariance is scaled
by the residual variance instead.
"""

from typing import Optional

import numpy as np

from inertial.calibration.base import KnownFrameCalibrator
from inertial.calibration.errors import CalibrationError
from inertial.calibration.parameters import (
    CalibrationResult,
    as_bias,
    as_matrix,
    measurement_arrays,
)
from inertial.estimators.nonlinear_least_squares import levenberg_marquardt

DEFAULT_MAX_ITERATIONS = 100


class KnownFrameNonLinearLeastSquaresCalibrator(KnownFrameCalibrator):
    """Refine bias and scale/cross-coupling matrix with Levenberg-Marquardt.

    Args:
        reference_model: See KnownFrameCalibrator.
        measurements: See KnownFrameCalibrator.
        common_axis_used: See KnownFrameCalibrator.
        known_bias: See KnownFrameCalibrator.
        initial_bias: Starting bias (3,) when the bias is estimated.
        initial_mm: Starting matrix M, 3x3 or 9 values.
        covariance_kept: Compute the parameter covariance.
        max_iterations: Levenberg-Marquardt iteration limit.
        listener: Optional CalibratorListener.
    """

    def __init__(
        self,
        reference_model,
        measurements=None,
        common_axis_used: bool = False,
        known_bias=None,
        initial_bias=None,
        initial_mm=None,
        covariance_kept: bool = True,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        listener=None,
    ):
        super().__init__(reference_model, measurements, common_axis_used, known_bias, listener)
        self.initial_bias = np.zeros(3) if initial_bias is None else initial_bias
        self.initial_mm = np.zeros((3, 3)) if initial_mm is None else initial_mm
        self.covariance_kept = covariance_kept
        self.max_iterations = max_iterations

    @property
    def initial_bias(self) -> np.ndarray:
        return self._initial_bias.copy()

    @initial_bias.setter
    def initial_bias(self, value) -> None:
        self._check_locked()
        self._initial_bias = as_bias(value)

    @property
    def initial_mm(self) -> np.ndarray:
        return self._initial_mm.copy()

    @initial_mm.setter
    def initial_mm(self, value) -> None:
        self._check_locked()
        self._initial_mm = as_matrix(value)

    @property
    def covariance_kept(self) -> bool:
        return self._covariance_kept

    @covariance_kept.setter
    def covariance_kept(self, value: bool) -> None:
        self._check_locked()
        self._covariance_kept = bool(value)

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        self._check_locked()
        if int(value) != value or value < 1:
            raise ValueError(f"max_iterations must be an integer ≥ 1, got {value}")
        self._max_iterations = int(value)

    @property
    def estimated_covariance(self) -> Optional[np.ndarray]:
        return None if self._result is None or self._result.covariance is None else self._result.covariance.copy()

    @property
    def estimated_mse(self) -> Optional[float]:
        return None if self._result is None else self._result.mse

    @property
    def estimated_chi_sq(self) -> Optional[float]:
        return None if self._result is None else self._result.chi_sq

    def _calibrate(self) -> CalibrationResult:
        layout = self.layout
        measured, true_values, std = measurement_arrays(self._measurements, self._reference_model)
        known_bias = self._known_bias

        sigma = std.reshape(-1)
        positive = sigma[sigma > 0.0]
        absolute_weights = positive.size > 0
        if absolute_weights:
            sigma = np.where(sigma > 0.0, sigma, positive.min())
        else:
            sigma = np.ones_like(sigma)

        A = layout.design_matrix(true_values)

        def h(x):
            return layout.predict(x, true_values, known_bias).reshape(-1)

        def jacobian(x):
            return A

        x0 = layout.pack(self._initial_bias, self._initial_mm)
        try:
            fit = levenberg_marquardt(
                h,
                jacobian,
                measured.reshape(-1),
                x0,
                weights=1.0 / sigma**2,
                max_iter=self._max_iterations,
                return_covariance=self._covariance_kept,
                absolute_weights=absolute_weights,
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            raise CalibrationError(f"Nonlinear calibration failed: {e}") from e

        if not fit.converged or not np.all(np.isfinite(fit.x)):
            raise CalibrationError(
                f"Nonlinear calibration did not converge after {fit.iterations} iterations"
            )

        bias, mm = layout.unpack(fit.x, known_bias)
        covariance = None
        if self._covariance_kept and fit.covariance is not None:
            covariance = layout.expand_covariance(fit.covariance)

        residuals = fit.residuals
        return CalibrationResult(
            bias=bias,
            mm=mm,
            covariance=covariance,
            mse=float(np.mean(residuals**2)),
            chi_sq=fit.chi_sq,
            dof=residuals.size - layout.num_parameters,
        )
