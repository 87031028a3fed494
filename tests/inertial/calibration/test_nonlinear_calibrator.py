"""
Unit tests for inertial/calibration/nonlinear.py.

Tests cover:
    - Convergence from a zero initial guess
    - Covariance layout with estimated, known and common axis parameters
    - Fit statistics (MSE, χ², degrees of freedom)
    - Readings without standard deviation
"""

import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose

from inertial.calibration.nonlinear import KnownFrameNonLinearLeastSquaresCalibrator
from inertial.calibration.parameters import mm_from_parameters, mm_to_parameters
from inertial.coords.frames import Frame
from inertial.sensors.measurements import FrameBodyMeasurement
from inertial.sensors.reference import GravityReferenceModel
from inertial.sensors.triad import AccelerationTriad

GRAVITY = 9.81
TRUE_BIAS = np.array([-0.1, 0.06, 0.03])
TRUE_MM = mm_from_parameters(0.012, 0.008, -0.015, 0.003, -0.002, 0.001, 0.004, -0.005, 0.002)


def make_measurements(n, mm=TRUE_MM, noise=0.0, std=0.01, seed=0):
    rng = np.random.default_rng(seed)
    model = GravityReferenceModel(gravity=GRAVITY)
    measurements = []
    for _ in range(n):
        frame = Frame.from_euler(*rng.uniform([-np.pi, -1.4, -np.pi], [np.pi, 1.4, np.pi]))
        f_true = model.expected(FrameBodyMeasurement(AccelerationTriad(), frame))
        f_meas = TRUE_BIAS + (np.eye(3) + mm) @ f_true + rng.normal(0.0, noise, 3)
        measurements.append(FrameBodyMeasurement(AccelerationTriad(*f_meas), frame, std=std))
    return measurements


def calibrator_for(measurements, **kwargs):
    return KnownFrameNonLinearLeastSquaresCalibrator(
        GravityReferenceModel(gravity=GRAVITY), measurements=measurements, **kwargs
    )


class TestNonLinearCalibration(unittest.TestCase):
    """Recovery of b and M by Levenberg-Marquardt."""

    def test_exact_data(self) -> None:
        calibrator = calibrator_for(make_measurements(10))
        result = calibrator.calibrate()

        assert_allclose(result.bias, TRUE_BIAS, atol=1e-8)
        assert_allclose(result.mm, TRUE_MM, atol=1e-8)
        self.assertLess(result.mse, 1e-16)
        self.assertEqual(result.dof, 30 - 12)
        assert_allclose(calibrator.estimated_chi_sq, result.chi_sq)

    def test_noisy_data_within_covariance(self) -> None:
        sigma = 0.005
        calibrator = calibrator_for(make_measurements(30, noise=sigma, std=sigma, seed=4))
        result = calibrator.calibrate()

        cov = calibrator.estimated_covariance
        self.assertEqual(cov.shape, (12, 12))
        assert_allclose(cov, cov.T, atol=1e-15)
        self.assertTrue(np.all(np.linalg.eigvalsh(cov) > 0))

        error = result.parameters - np.concatenate((TRUE_BIAS, mm_to_parameters(TRUE_MM)))
        self.assertTrue(np.all(np.abs(error) < 5.0 * np.sqrt(np.diag(cov))))

        # χ² of a correctly weighted fit is close to its degrees of freedom
        self.assertEqual(result.dof, 90 - 12)
        self.assertTrue(0.5 < result.chi_sq / result.dof < 1.6)
        self.assertTrue(0.0 < result.chi_sq_probability < 1.0)
        assert_allclose(result.mse, np.mean(_residuals(calibrator) ** 2), rtol=1e-6)

    def test_initial_guess(self) -> None:
        calibrator = calibrator_for(
            make_measurements(8), initial_bias=TRUE_BIAS + 0.01, initial_mm=TRUE_MM.T
        )
        result = calibrator.calibrate()
        assert_allclose(result.mm, TRUE_MM, atol=1e-8)

    def test_known_bias(self) -> None:
        calibrator = calibrator_for(make_measurements(6), known_bias=TRUE_BIAS)
        result = calibrator.calibrate()

        assert_allclose(result.bias, TRUE_BIAS)
        assert_allclose(result.mm, TRUE_MM, atol=1e-8)
        self.assertEqual(result.covariance.shape, (9, 9))
        self.assertEqual(result.dof, 18 - 9)

    def test_common_axis(self) -> None:
        upper = np.triu(TRUE_MM)
        calibrator = calibrator_for(make_measurements(10, mm=upper, noise=0.002, std=0.002), common_axis_used=True)
        result = calibrator.calibrate()

        assert_allclose(result.mm, upper, atol=0.01)
        for row, col in ((1, 0), (2, 0), (2, 1)):
            self.assertEqual(result.mm[row, col], 0.0)

        # Fixed entries keep zero rows and columns in the full covariance
        self.assertEqual(result.covariance.shape, (12, 12))
        for k in (8, 10, 11):  # myx, mzx, mzy
            assert_allclose(result.covariance[k], 0.0)
            assert_allclose(result.covariance[:, k], 0.0)
        self.assertEqual(result.dof, 30 - 9)

    def test_covariance_not_kept(self) -> None:
        calibrator = calibrator_for(make_measurements(6), covariance_kept=False)
        calibrator.calibrate()
        self.assertIsNone(calibrator.estimated_covariance)

    def test_zero_std_readings(self) -> None:
        """Without any standard deviation the fit is unweighted."""
        calibrator = calibrator_for(make_measurements(20, noise=0.003, std=0.0, seed=2))
        result = calibrator.calibrate()

        assert_allclose(result.bias, TRUE_BIAS, atol=0.01)
        self.assertTrue(np.all(np.diag(result.covariance) > 0))
        # Scaled by the residual variance, so comparable to σ²-sized terms
        self.assertLess(np.sqrt(result.covariance[0, 0]), 0.01)

    def test_mixed_zero_std(self) -> None:
        """Zero entries take the smallest positive std of the set."""
        measurements = make_measurements(6, std=0.01)
        measurements[0] = FrameBodyMeasurement(measurements[0].reading, measurements[0].frame, std=0.0)
        result = calibrator_for(measurements).calibrate()
        assert_allclose(result.bias, TRUE_BIAS, atol=1e-8)


class TestNonLinearConfiguration(unittest.TestCase):
    def test_defaults(self) -> None:
        calibrator = KnownFrameNonLinearLeastSquaresCalibrator(GravityReferenceModel())
        assert_allclose(calibrator.initial_bias, np.zeros(3))
        assert_allclose(calibrator.initial_mm, np.zeros((3, 3)))
        self.assertTrue(calibrator.covariance_kept)
        self.assertIsNone(calibrator.estimated_mse)

    def test_invalid_values(self) -> None:
        calibrator = KnownFrameNonLinearLeastSquaresCalibrator(GravityReferenceModel())
        with pytest.raises(ValueError, match="max_iterations"):
            calibrator.max_iterations = 0
        with pytest.raises(ValueError, match="matrix must be"):
            calibrator.initial_mm = np.zeros(4)
        with pytest.raises(ValueError, match="bias"):
            calibrator.initial_bias = np.zeros(2)


def _residuals(calibrator):
    result = calibrator.result
    model = calibrator.reference_model
    measured = np.array([m.values for m in calibrator.measurements])
    true_values = model.expected_batch(calibrator.measurements)
    return measured - (result.bias + true_values @ (np.eye(3) + result.mm).T)
