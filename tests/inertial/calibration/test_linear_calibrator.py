"""
Unit tests for inertial/calibration/linear.py and the shared calibrator
configuration in inertial/calibration/base.py.
"""

import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose

from inertial.calibration.base import CalibratorListener
from inertial.calibration.errors import CalibrationError, LockedError, NotReadyError
from inertial.calibration.linear import KnownFrameLinearLeastSquaresCalibrator
from inertial.calibration.parameters import mm_from_parameters
from inertial.coords.frames import Frame
from inertial.sensors.measurements import FrameBodyMeasurement
from inertial.sensors.reference import GravityReferenceModel, MagneticFieldReferenceModel
from inertial.sensors.triad import AccelerationTriad, AngularSpeedTriad, MagneticFluxDensityTriad

GRAVITY = 9.81
TRUE_BIAS = np.array([0.08, -0.05, 0.12])
TRUE_MM = mm_from_parameters(0.01, -0.02, 0.015, 0.004, -0.003, 0.002, 0.005, -0.001, 0.006)


def make_measurements(n, bias=TRUE_BIAS, mm=TRUE_MM, noise=0.0, seed=0):
    """Accelerometer readings at random static attitudes."""
    rng = np.random.default_rng(seed)
    model = GravityReferenceModel(gravity=GRAVITY)
    measurements = []
    for _ in range(n):
        frame = Frame.from_euler(*rng.uniform([-np.pi, -1.4, -np.pi], [np.pi, 1.4, np.pi]))
        f_true = model.expected(FrameBodyMeasurement(AccelerationTriad(), frame))
        f_meas = bias + (np.eye(3) + mm) @ f_true + rng.normal(0.0, noise, 3)
        measurements.append(FrameBodyMeasurement(AccelerationTriad(*f_meas), frame, std=0.01))
    return measurements


class TestLinearCalibration(unittest.TestCase):
    """Closed-form recovery of b and M."""

    def _calibrator(self, measurements, **kwargs):
        return KnownFrameLinearLeastSquaresCalibrator(
            GravityReferenceModel(gravity=GRAVITY), measurements=measurements, **kwargs
        )

    def test_minimum_measurements(self) -> None:
        calibrator = self._calibrator(make_measurements(4))
        self.assertEqual(calibrator.minimum_required_measurements, 4)
        self.assertTrue(calibrator.is_ready)

        result = calibrator.calibrate()

        assert_allclose(result.bias, TRUE_BIAS, atol=1e-8)
        assert_allclose(result.mm, TRUE_MM, atol=1e-8)
        self.assertIs(calibrator.result, result)
        assert_allclose(calibrator.estimated_bias, TRUE_BIAS, atol=1e-8)
        self.assertAlmostEqual(calibrator.estimated_sy, -0.02, places=7)

    def test_noisy_overdetermined(self) -> None:
        result = self._calibrator(make_measurements(50, noise=0.005, seed=1)).calibrate()
        assert_allclose(result.bias, TRUE_BIAS, atol=5e-3)
        assert_allclose(result.mm, TRUE_MM, atol=2e-3)

    def test_known_bias(self) -> None:
        calibrator = self._calibrator(make_measurements(3), known_bias=TRUE_BIAS)
        self.assertEqual(calibrator.minimum_required_measurements, 3)

        result = calibrator.calibrate()

        assert_allclose(result.bias, TRUE_BIAS)
        assert_allclose(result.mm, TRUE_MM, atol=1e-9)

    def test_common_axis(self) -> None:
        upper = np.triu(TRUE_MM)
        calibrator = self._calibrator(make_measurements(6, mm=upper), common_axis_used=True)

        result = calibrator.calibrate()

        assert_allclose(result.mm, upper, atol=1e-9)
        for row, col in ((1, 0), (2, 0), (2, 1)):
            self.assertEqual(result.mm[row, col], 0.0)

    def test_magnetometer(self) -> None:
        """Hard and soft iron against a known field."""
        field = np.array([38e-6, -0.3e-6, 23e-6])
        hard_iron = np.array([2e-6, -1e-6, 0.5e-6])
        model = MagneticFieldReferenceModel(field)
        rng = np.random.default_rng(3)
        measurements = []
        for _ in range(8):
            frame = Frame.from_euler(*rng.uniform(-np.pi / 2, np.pi / 2, 3))
            f_true = model.expected(FrameBodyMeasurement(MagneticFluxDensityTriad(), frame))
            f_meas = hard_iron + (np.eye(3) + TRUE_MM) @ f_true
            measurements.append(FrameBodyMeasurement(MagneticFluxDensityTriad(*f_meas), frame))

        result = KnownFrameLinearLeastSquaresCalibrator(model, measurements).calibrate()

        assert_allclose(result.bias, hard_iron, atol=1e-10)
        assert_allclose(result.mm, TRUE_MM, atol=1e-5)


class TestCalibratorErrors(unittest.TestCase):
    """Test readiness, degeneracy and validation."""

    def test_not_ready(self) -> None:
        calibrator = KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel(), make_measurements(3))
        self.assertFalse(calibrator.is_ready)
        with pytest.raises(NotReadyError, match="needs at least 4 measurements, got 3"):
            calibrator.calibrate()
        self.assertIsNone(calibrator.result)
        self.assertIsNone(calibrator.estimated_mm)

    def test_no_measurements(self) -> None:
        calibrator = KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel())
        with pytest.raises(NotReadyError, match="got 0"):
            calibrator.calibrate()

    def test_degenerate_attitudes(self) -> None:
        """Repeating a single pose cannot separate bias from scale."""
        m = make_measurements(1)[0]
        calibrator = KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel(gravity=GRAVITY), [m] * 5)
        with pytest.raises(CalibrationError, match="Linear calibration failed"):
            calibrator.calibrate()
        self.assertFalse(calibrator.running)

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError, match="reference_model"):
            KnownFrameLinearLeastSquaresCalibrator(object())
        with pytest.raises(ValueError, match="FrameBodyMeasurement"):
            KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel(), measurements=[np.zeros(3)])
        calibrator = KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel())
        with pytest.raises(ValueError, match="bias must have 3 elements"):
            calibrator.known_bias = [1.0, 2.0]

    def test_reading_of_another_quantity(self) -> None:
        """Gyroscope readings cannot be fitted against gravity."""
        measurements = make_measurements(5)
        m = measurements[2]
        measurements[2] = FrameBodyMeasurement(AngularSpeedTriad(*m.values), m.frame, std=0.01)
        calibrator = KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel(gravity=GRAVITY), measurements)

        with pytest.raises(ValueError, match="measurement 2 reads RADIANS_PER_SECOND"):
            calibrator.calibrate()
        self.assertFalse(calibrator.running)
        self.assertIsNone(calibrator.result)

    def test_set_known_bias(self) -> None:
        calibrator = KnownFrameLinearLeastSquaresCalibrator(GravityReferenceModel())
        calibrator.set_known_bias(0.1, 0.2, 0.3)
        assert_allclose(calibrator.known_bias, [0.1, 0.2, 0.3])
        self.assertTrue(calibrator.layout.bias_known)
        calibrator.known_bias = None
        self.assertIsNone(calibrator.known_bias)


class TestCalibratorListener(unittest.TestCase):
    """Listener events and locking during calibrate()."""

    def test_events_and_lock(self) -> None:
        events = []

        class Listener(CalibratorListener):
            def on_calibrate_start(self, calibrator):
                events.append(("start", calibrator.running))
                with pytest.raises(LockedError):
                    calibrator.common_axis_used = True
                with pytest.raises(LockedError):
                    calibrator.calibrate()

            def on_calibrate_end(self, calibrator):
                events.append(("end", calibrator.running))

        calibrator = KnownFrameLinearLeastSquaresCalibrator(
            GravityReferenceModel(gravity=GRAVITY), make_measurements(5), listener=Listener()
        )
        calibrator.calibrate()

        self.assertEqual(events, [("start", True), ("end", True)])
        self.assertFalse(calibrator.running)
        self.assertFalse(calibrator.common_axis_used)
