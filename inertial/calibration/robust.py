"""
Robust known-frame calibration (RANSAC / LMedS / MSAC / PROSAC / PROMedS).

Measurements collected for calibration may contain gross errors: readings
taken while the device was still settling, frames estimated wrongly, or
sensor glitches. The robust calibrator wraps the linear and nonlinear
calibrators in a consensus loop so that such outliers do not corrupt the
estimate.

Pipeline (one ``ConsensusProblem`` handed to an injected estimator):
    1. Subset solve: fit the model to a small subset of measurements, with
       the linear calibrator and/or a nonlinear pass seeded with it.
       Degenerate subsets yield no candidate.
    2. Error scoring: for a candidate (b, M), the error of measurement i is
       ‖b + (I + M) · f_true,i - f_meas,i‖.
    3. Final refinement: a nonlinear fit over the inliers of the best
       candidate, seeded with it. If refinement fails, the candidate is
       kept and a RuntimeWarning is issued.

The consensus strategy is an injected RobustEstimator; the factories at
the bottom of this module build calibrators for each strategy and sensor
with sensible thresholds.
"""

import warnings
from typing import List, Optional, Sequence

import numpy as np

from inertial.calibration.base import KnownFrameCalibrator, RobustCalibratorListener
from inertial.calibration.errors import CalibrationError, NotReadyError
from inertial.calibration.linear import KnownFrameLinearLeastSquaresCalibrator
from inertial.calibration.nonlinear import KnownFrameNonLinearLeastSquaresCalibrator
from inertial.calibration.parameters import (
    CalibrationResult,
    as_bias,
    as_matrix,
    measurement_arrays,
)
from inertial.estimators.robust import (
    DEFAULT_STOP_THRESHOLD,
    ConsensusProblem,
    InliersData,
    RobustEstimator,
    RobustEstimatorError,
    RobustEstimatorMethod,
    create_robust_estimator,
)
from inertial.sensors.reference import (
    AngularRateReferenceModel,
    GravityReferenceModel,
    MagneticFieldReferenceModel,
    ReferenceModel,
)
from inertial.sensors.units import (
    AccelerationUnit,
    AngularSpeedUnit,
    MagneticFluxDensityUnit,
    si_unit,
)

DEFAULT_USE_LINEAR_CALIBRATOR = True
DEFAULT_REFINE_PRELIMINARY_SOLUTIONS = False
DEFAULT_REFINE_RESULT = True
DEFAULT_KEEP_COVARIANCE = True
DEFAULT_ROBUST_METHOD = RobustEstimatorMethod.LMEDS

# Inlier thresholds (RANSAC, MSAC, PROSAC) and LMedS stop thresholds in SI units
ACCELEROMETER_THRESHOLD = 1e-2  # m/s²
ACCELEROMETER_STOP_THRESHOLD = 1e-4  # m/s²
GYROSCOPE_THRESHOLD = 1e-3  # rad/s
GYROSCOPE_STOP_THRESHOLD = 1e-5  # rad/s
MAGNETOMETER_THRESHOLD = 500e-9  # T
MAGNETOMETER_STOP_THRESHOLD = 1e-9  # T

_STOP_THRESHOLDS = {
    AccelerationUnit.METERS_PER_SQUARED_SECOND: ACCELEROMETER_STOP_THRESHOLD,
    AngularSpeedUnit.RADIANS_PER_SECOND: GYROSCOPE_STOP_THRESHOLD,
    MagneticFluxDensityUnit.TESLA: MAGNETOMETER_STOP_THRESHOLD,
}


def default_stop_threshold(reference_model: ReferenceModel) -> float:
    """LMedS stop threshold matching the quantity a reference model predicts.

    Models without a known unit fall back to DEFAULT_STOP_THRESHOLD.
    """
    unit = getattr(reference_model, "unit", None)
    if unit is None:
        return DEFAULT_STOP_THRESHOLD
    return _STOP_THRESHOLDS.get(si_unit(unit), DEFAULT_STOP_THRESHOLD)


class RobustKnownFrameCalibrator(KnownFrameCalibrator):
    """Outlier-tolerant calibrator from measurements at known frames.

    Args:
        reference_model: Predicts the true value of each measurement.
        estimator: Consensus strategy. Defaults to LMedS with the stop
            threshold of the sensor the reference model predicts.
        measurements: Sequence of FrameBodyMeasurement.
        quality_scores: Per-measurement quality (higher is better),
            required by PROSAC and PROMedS, ignored otherwise.
        common_axis_used: Hold myx, mzx and mzy at zero.
        known_bias: Assumed bias, or None to estimate it.
        initial_bias: Seed bias for nonlinear fits.
        initial_mm: Seed matrix M for nonlinear fits, 3x3 or 9 values.
        linear_calibrator_used: Compute subset candidates in closed form.
        preliminary_solution_refined: Refine subset candidates nonlinearly.
        result_refined: Refine the best candidate over its inliers.
        covariance_kept: Keep the covariance of the refined result.
        preliminary_subset_size: Measurements per subset, at least the
            minimum required. None uses the minimum.
        confidence: Overrides the estimator confidence when given.
        max_iterations: Overrides the estimator iteration cap when given.
        progress_delta: Overrides the estimator progress step when given.
        listener: Optional RobustCalibratorListener.

    Usage:
        >>> calibrator = create_accelerometer_calibrator(
        ...     RobustEstimatorMethod.MSAC, measurements=measurements, rng=0)
        >>> result = calibrator.calibrate()
        >>> calibrator.inliers_data.inliers  # measurements kept
    """

    def __init__(
        self,
        reference_model: ReferenceModel,
        estimator: Optional[RobustEstimator] = None,
        measurements=None,
        quality_scores=None,
        common_axis_used: bool = False,
        known_bias=None,
        initial_bias=None,
        initial_mm=None,
        linear_calibrator_used: bool = DEFAULT_USE_LINEAR_CALIBRATOR,
        preliminary_solution_refined: bool = DEFAULT_REFINE_PRELIMINARY_SOLUTIONS,
        result_refined: bool = DEFAULT_REFINE_RESULT,
        covariance_kept: bool = DEFAULT_KEEP_COVARIANCE,
        preliminary_subset_size: Optional[int] = None,
        confidence: Optional[float] = None,
        max_iterations: Optional[int] = None,
        progress_delta: Optional[float] = None,
        listener: Optional[RobustCalibratorListener] = None,
    ):
        super().__init__(reference_model, measurements, common_axis_used, known_bias, listener)
        self._inliers_data: Optional[InliersData] = None
        self.estimator = estimator if estimator is not None else create_robust_estimator(
            DEFAULT_ROBUST_METHOD, stop_threshold=default_stop_threshold(reference_model)
        )
        self.quality_scores = quality_scores
        self.initial_bias = np.zeros(3) if initial_bias is None else initial_bias
        self.initial_mm = np.zeros((3, 3)) if initial_mm is None else initial_mm
        self.linear_calibrator_used = linear_calibrator_used
        self.preliminary_solution_refined = preliminary_solution_refined
        self.result_refined = result_refined
        self.covariance_kept = covariance_kept
        self._preliminary_subset_size = None
        if preliminary_subset_size is not None:
            self.preliminary_subset_size = preliminary_subset_size
        if confidence is not None:
            self.confidence = confidence
        if max_iterations is not None:
            self.max_iterations = max_iterations
        if progress_delta is not None:
            self.progress_delta = progress_delta

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def estimator(self) -> RobustEstimator:
        return self._estimator

    @estimator.setter
    def estimator(self, value: RobustEstimator) -> None:
        self._check_locked()
        if not isinstance(value, RobustEstimator):
            raise ValueError(f"estimator must be a RobustEstimator, got {type(value).__name__}")
        self._estimator = value

    @property
    def method(self) -> RobustEstimatorMethod:
        return self._estimator.method

    @property
    def quality_scores(self) -> Optional[np.ndarray]:
        return None if self._quality_scores is None else self._quality_scores.copy()

    @quality_scores.setter
    def quality_scores(self, value) -> None:
        self._check_locked()
        if value is None:
            self._quality_scores = None
            return
        scores = np.asarray(value, dtype=np.float64)
        if scores.ndim != 1 or not np.all(np.isfinite(scores)):
            raise ValueError(f"quality_scores must be a finite 1D array, got shape {scores.shape}")
        self._quality_scores = scores.copy()

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
    def linear_calibrator_used(self) -> bool:
        return self._linear_calibrator_used

    @linear_calibrator_used.setter
    def linear_calibrator_used(self, value: bool) -> None:
        self._check_locked()
        self._linear_calibrator_used = bool(value)

    @property
    def preliminary_solution_refined(self) -> bool:
        return self._preliminary_solution_refined

    @preliminary_solution_refined.setter
    def preliminary_solution_refined(self, value: bool) -> None:
        self._check_locked()
        self._preliminary_solution_refined = bool(value)

    @property
    def result_refined(self) -> bool:
        return self._result_refined

    @result_refined.setter
    def result_refined(self, value: bool) -> None:
        self._check_locked()
        self._result_refined = bool(value)

    @property
    def covariance_kept(self) -> bool:
        return self._covariance_kept

    @covariance_kept.setter
    def covariance_kept(self, value: bool) -> None:
        self._check_locked()
        self._covariance_kept = bool(value)

    @property
    def preliminary_subset_size(self) -> int:
        """Measurements per subset (the minimum unless set explicitly)."""
        minimum = self.minimum_required_measurements
        if self._preliminary_subset_size is None:
            return minimum
        return max(self._preliminary_subset_size, minimum)

    @preliminary_subset_size.setter
    def preliminary_subset_size(self, value: int) -> None:
        self._check_locked()
        minimum = self.minimum_required_measurements
        if int(value) != value or value < minimum:
            raise ValueError(f"preliminary_subset_size must be an integer ≥ {minimum}, got {value}")
        self._preliminary_subset_size = int(value)

    @property
    def confidence(self) -> float:
        return self._estimator.confidence

    @confidence.setter
    def confidence(self, value: float) -> None:
        self._check_locked()
        self._estimator.confidence = value

    @property
    def max_iterations(self) -> int:
        return self._estimator.max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        self._check_locked()
        self._estimator.max_iterations = value

    @property
    def progress_delta(self) -> float:
        return self._estimator.progress_delta

    @progress_delta.setter
    def progress_delta(self, value: float) -> None:
        self._check_locked()
        self._estimator.progress_delta = value

    @property
    def is_ready(self) -> bool:
        if not super().is_ready or len(self._measurements) < self.preliminary_subset_size:
            return False
        if self._estimator.requires_quality_scores:
            return (
                self._quality_scores is not None
                and len(self._quality_scores) == len(self._measurements)
            )
        return True

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @property
    def inliers_data(self) -> Optional[InliersData]:
        return self._inliers_data

    @property
    def estimated_covariance(self) -> Optional[np.ndarray]:
        if self._result is None or self._result.covariance is None:
            return None
        return self._result.covariance.copy()

    @property
    def estimated_mse(self) -> Optional[float]:
        return None if self._result is None else self._result.mse

    @property
    def estimated_chi_sq(self) -> Optional[float]:
        return None if self._result is None else self._result.chi_sq

    @property
    def estimated_chi_sq_probability(self) -> Optional[float]:
        return None if self._result is None else self._result.chi_sq_probability

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate(self) -> CalibrationResult:
        """Run the consensus loop and refine the best candidate.

        Raises:
            LockedError: If already running.
            NotReadyError: If there are fewer measurements than the subset
                size, or the method needs quality scores that are missing.
            CalibrationError: If no subset produced a candidate.
        """
        self._check_locked()
        count = 0 if self._measurements is None else len(self._measurements)
        if count < self.preliminary_subset_size:
            raise NotReadyError(
                f"{type(self).__name__} needs at least {self.preliminary_subset_size} "
                f"measurements, got {count}"
            )
        if not self.is_ready:
            raise NotReadyError(f"{self.method.name} requires one quality score per measurement")
        return super().calibrate()

    def _calibrate(self) -> CalibrationResult:
        self._inliers_data = None
        self._measured, self._true_values, _ = measurement_arrays(
            self._measurements, self._reference_model
        )

        problem = ConsensusProblem(
            total_samples=len(self._measurements),
            subset_size=self.preliminary_subset_size,
            preliminary_solutions=self._compute_preliminary_solutions,
            residual=self._compute_error,
            refine=self._attempt_refine,
            quality_scores=self._quality_scores,
        )

        estimator = self._estimator
        callbacks = (estimator.on_iteration, estimator.on_progress)
        estimator.on_iteration = self._notify_iteration
        estimator.on_progress = self._notify_progress
        try:
            outcome = estimator.estimate(problem)
        except RobustEstimatorError as e:
            raise CalibrationError(f"Robust calibration failed: {e}") from e
        finally:
            estimator.on_iteration, estimator.on_progress = callbacks

        self._inliers_data = outcome.inliers_data
        return outcome.solution

    def _notify_iteration(self, estimator: RobustEstimator, iteration: int) -> None:
        if isinstance(self._listener, RobustCalibratorListener):
            self._listener.on_calibrate_next_iteration(self, iteration)

    def _notify_progress(self, estimator: RobustEstimator, progress: float) -> None:
        if isinstance(self._listener, RobustCalibratorListener):
            self._listener.on_calibrate_progress_change(self, progress)

    def _subset_calibrator_kwargs(self) -> dict:
        return dict(
            reference_model=self._reference_model,
            common_axis_used=self._common_axis_used,
            known_bias=self._known_bias,
        )

    def _compute_preliminary_solutions(self, indices: Sequence[int]) -> List[CalibrationResult]:
        """Candidate (b, M) from a subset, or an empty list if degenerate."""
        subset = [self._measurements[i] for i in indices]
        bias = self._known_bias if self._known_bias is not None else self._initial_bias
        result = CalibrationResult(bias=bias.copy(), mm=self._initial_mm.copy())

        try:
            if self._linear_calibrator_used:
                linear = KnownFrameLinearLeastSquaresCalibrator(
                    measurements=subset, **self._subset_calibrator_kwargs()
                )
                result = linear.calibrate()

            if self._preliminary_solution_refined:
                nonlinear = KnownFrameNonLinearLeastSquaresCalibrator(
                    measurements=subset,
                    initial_bias=result.bias,
                    initial_mm=result.mm,
                    covariance_kept=self._covariance_kept,
                    **self._subset_calibrator_kwargs(),
                )
                result = nonlinear.calibrate()
        except (CalibrationError, ValueError, np.linalg.LinAlgError):
            return []

        return [result]

    def _compute_error(self, result: CalibrationResult, index: int) -> float:
        """Distance between the reading predicted by ``result`` and the actual one."""
        predicted = result.bias + (np.eye(3) + result.mm) @ self._true_values[index]
        return float(np.linalg.norm(predicted - self._measured[index]))

    def _attempt_refine(self, preliminary: CalibrationResult, inliers_data: InliersData) -> CalibrationResult:
        """Refine ``preliminary`` over its inliers, falling back to it on failure."""
        if (
            not self._result_refined
            or inliers_data is None
            or inliers_data.num_inliers < self.minimum_required_measurements
        ):
            return preliminary.without_statistics()

        inliers = [m for m, keep in zip(self._measurements, inliers_data.inliers) if keep]
        nonlinear = KnownFrameNonLinearLeastSquaresCalibrator(
            measurements=inliers,
            initial_bias=preliminary.bias,
            initial_mm=preliminary.mm,
            covariance_kept=self._covariance_kept,
            **self._subset_calibrator_kwargs(),
        )
        try:
            return nonlinear.calibrate()
        except CalibrationError as e:
            warnings.warn(
                f"Refinement over {inliers_data.num_inliers} inliers failed ({e}); "
                f"keeping preliminary solution",
                RuntimeWarning,
            )
        return preliminary.without_statistics()


def create_robust_calibrator(
    reference_model: ReferenceModel,
    method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
    threshold: Optional[float] = None,
    stop_threshold: Optional[float] = None,
    rng=None,
    **kwargs,
) -> RobustKnownFrameCalibrator:
    """
    Create a robust calibrator using the given consensus method.

    Args:
        reference_model: Predicts the true value of each measurement.
        method: Consensus strategy.
        threshold: Inlier error bound for RANSAC, MSAC and PROSAC.
        stop_threshold: Early-stop bound for LMedS and PROMedS. None uses
            the default of the sensor the reference model predicts.
        rng: Random generator or seed for subset sampling.
        **kwargs: Options of RobustKnownFrameCalibrator.

    Returns:
        Configured RobustKnownFrameCalibrator.
    """
    if stop_threshold is None:
        stop_threshold = default_stop_threshold(reference_model)
    estimator = create_robust_estimator(
        method, threshold=threshold, stop_threshold=stop_threshold, rng=rng
    )
    return RobustKnownFrameCalibrator(reference_model, estimator=estimator, **kwargs)


def create_accelerometer_calibrator(
    method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
    gravity: Optional[float] = None,
    threshold: float = ACCELEROMETER_THRESHOLD,
    stop_threshold: float = ACCELEROMETER_STOP_THRESHOLD,
    **kwargs,
) -> RobustKnownFrameCalibrator:
    """Robust accelerometer calibrator against normal gravity (m/s²)."""
    return create_robust_calibrator(
        GravityReferenceModel(gravity),
        method,
        threshold=threshold,
        stop_threshold=stop_threshold,
        **kwargs,
    )


def create_gyroscope_calibrator(
    method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
    include_earth_rotation: bool = True,
    threshold: float = GYROSCOPE_THRESHOLD,
    stop_threshold: float = GYROSCOPE_STOP_THRESHOLD,
    **kwargs,
) -> RobustKnownFrameCalibrator:
    """Robust gyroscope calibrator against frame-to-frame attitude change (rad/s)."""
    return create_robust_calibrator(
        AngularRateReferenceModel(include_earth_rotation),
        method,
        threshold=threshold,
        stop_threshold=stop_threshold,
        **kwargs,
    )


def create_magnetometer_calibrator(
    field_ned: np.ndarray,
    method: RobustEstimatorMethod = DEFAULT_ROBUST_METHOD,
    secular_variation: Optional[np.ndarray] = None,
    epoch: float = 2020.0,
    threshold: float = MAGNETOMETER_THRESHOLD,
    stop_threshold: float = MAGNETOMETER_STOP_THRESHOLD,
    **kwargs,
) -> RobustKnownFrameCalibrator:
    """Robust magnetometer (hard/soft iron) calibrator against a NED field (T)."""
    return create_robust_calibrator(
        MagneticFieldReferenceModel(field_ned, secular_variation, epoch),
        method,
        threshold=threshold,
        stop_threshold=stop_threshold,
        **kwargs,
    )
