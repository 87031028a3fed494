"""
Unit tests for inertial/calibration/intervals.py.

Tests cover:
    - Initialization, threshold and static/dynamic transitions on a
      synthetic multi-pose accelerometer stream
    - Sudden and overall excessive movement during initialization
    - Malformed samples, unit conversion, locking and reset
"""

import unittest

import numpy as np
import pytest
from numpy.testing import assert_allclose

from inertial.calibration.errors import LockedError
from inertial.calibration.intervals import (
    AccelerationTriadStaticIntervalDetector,
    AngularSpeedTriadStaticIntervalDetector,
    ErrorReason,
    StaticIntervalDetectorListener,
    Status,
)
from inertial.calibration.noise import NoiseLevelNorm
from inertial.sensors.triad import AccelerationTriad
from inertial.sensors.units import AccelerationUnit, AngularSpeedUnit

WINDOW = 11
INITIAL = 50
SIGMA = 0.01
POSES = (
    np.array([0.0, 0.0, -9.81]),
    np.array([0.0, 9.81, 0.0]),
    np.array([-9.81, 0.0, 0.0]),
)


class RecordingListener(StaticIntervalDetectorListener):
    """Records (event, processed_samples, payload) tuples."""

    def __init__(self):
        self.events = []

    def on_initialization_started(self, detector):
        self.events.append(("started", detector.processed_samples, None))

    def on_initialization_completed(self, detector, base_noise_level):
        self.events.append(("completed", detector.processed_samples, base_noise_level))

    def on_error(self, detector, accumulated_noise_level, instantaneous_noise_level, reason):
        self.events.append(("error", detector.processed_samples, reason))

    def on_static_interval_detected(self, detector, instantaneous_avg, instantaneous_std):
        self.events.append(("static", detector.processed_samples, instantaneous_avg))

    def on_dynamic_interval_detected(
        self, detector, instantaneous_avg, instantaneous_std, accumulated_avg, accumulated_std
    ):
        self.events.append(("dynamic", detector.processed_samples, accumulated_avg))

    def on_reset(self, detector):
        self.events.append(("reset", detector.processed_samples, None))

    def of(self, kind):
        return [e for e in self.events if e[0] == kind]


def multi_pose_stream(rng):
    """50 initialization + 30 static samples at pose 0, then
    (30 dynamic, 40 static) at poses 1 and 2."""
    def static(pose, n):
        return pose + rng.normal(0.0, SIGMA, size=(n, 3))

    def dynamic(n):
        wiggle = np.where(np.arange(n) % 2 == 0, 1.0, -1.0)[:, None]
        return np.array([3.0, 0.0, -9.81]) + wiggle

    return np.vstack(
        (
            static(POSES[0], INITIAL + 30),
            dynamic(30),
            static(POSES[1], 40),
            dynamic(30),
            static(POSES[2], 40),
        )
    )


class TestStaticIntervalDetection(unittest.TestCase):
    """Run the detector over a stream with three static poses."""

    def setUp(self):
        self.listener = RecordingListener()
        self.detector = AccelerationTriadStaticIntervalDetector(
            window_size=WINDOW,
            initial_static_samples=INITIAL,
            threshold_factor=3.0,
            listener=self.listener,
        )
        self.stream = multi_pose_stream(np.random.default_rng(42))
        for sample in self.stream:
            self.assertTrue(self.detector.process(*sample))

    def test_initialization(self) -> None:
        self.assertEqual(self.listener.of("started"), [("started", 0, None)])
        (_, at, base) = self.listener.of("completed")[0]
        self.assertEqual(at, INITIAL)

        expected_base = np.linalg.norm(self.stream[:INITIAL].std(axis=0))
        assert_allclose(base, expected_base, rtol=1e-9)
        assert_allclose(self.detector.base_noise_level, expected_base, rtol=1e-9)
        assert_allclose(self.detector.threshold, 3.0 * expected_base, rtol=1e-9)
        assert_allclose(base, np.sqrt(3.0) * SIGMA, rtol=0.3)

    def test_transitions(self) -> None:
        self.assertEqual([e[1] for e in self.listener.of("static")], [51, 121, 191])
        self.assertEqual([e[1] for e in self.listener.of("dynamic")], [81, 151])
        self.assertEqual(self.listener.of("error"), [])
        self.assertIs(self.detector.status, Status.STATIC_INTERVAL)
        self.assertEqual(self.detector.processed_samples, len(self.stream))

    def test_accumulated_average_of_each_pose(self) -> None:
        """Dynamic events report the mean of the interval that just ended."""
        for (_, _, avg), pose in zip(self.listener.of("dynamic"), POSES):
            self.assertIsInstance(avg, AccelerationTriad)
            assert_allclose(avg.as_array(), pose, atol=4.0 * SIGMA / np.sqrt(30))

    def test_static_window_average(self) -> None:
        _, _, avg = self.listener.of("static")[1]
        assert_allclose(avg.as_array(), POSES[1], atol=4.0 * SIGMA)

    def test_reset(self) -> None:
        self.detector.reset()
        self.assertIs(self.detector.status, Status.IDLE)
        self.assertEqual(self.detector.processed_samples, 0)
        self.assertEqual(self.detector.threshold, 0.0)
        self.assertEqual(self.listener.events[-1], ("reset", 0, None))


class TestInitializationFailures(unittest.TestCase):
    """Excessive movement while learning the noise floor."""

    def _detector(self, listener):
        return AccelerationTriadStaticIntervalDetector(
            window_size=WINDOW,
            initial_static_samples=INITIAL,
            base_noise_level_absolute_threshold=0.1,
            listener=listener,
        )

    def test_sudden_movement(self) -> None:
        listener = RecordingListener()
        detector = self._detector(listener)
        samples = POSES[0] + np.random.default_rng(0).normal(0.0, SIGMA, size=(INITIAL, 3))
        samples[20, 0] += 5.0

        for sample in samples[:21]:
            self.assertTrue(detector.process(*sample))

        self.assertIs(detector.status, Status.FAILED)
        self.assertEqual(
            listener.of("error"), [("error", 21, ErrorReason.SUDDEN_EXCESSIVE_MOVEMENT_DETECTED)]
        )
        # Failed detectors ignore further samples until reset
        self.assertFalse(detector.process(*samples[21]))
        self.assertEqual(detector.processed_samples, 21)

        detector.reset()
        self.assertIs(detector.status, Status.IDLE)
        self.assertTrue(detector.process(*samples[0]))

    def test_overall_movement(self) -> None:
        """A slow drift stays below the ceiling per window but not overall."""
        listener = RecordingListener()
        detector = self._detector(listener)
        detector.base_noise_level_absolute_threshold = 0.01
        ramp = np.zeros((INITIAL, 3))
        ramp[:, 0] = 0.001 * np.arange(INITIAL)

        for sample in ramp:
            detector.process(*sample)

        self.assertIs(detector.status, Status.FAILED)
        self.assertEqual(
            listener.of("error"),
            [("error", INITIAL, ErrorReason.OVERALL_EXCESSIVE_MOVEMENT_DETECTED)],
        )
        self.assertEqual(listener.of("completed"), [])
        assert_allclose(detector.base_noise_level, ramp[:, 0].std())


class TestSampleInput(unittest.TestCase):
    """Test the accepted sample forms."""

    def setUp(self):
        self.detector = AccelerationTriadStaticIntervalDetector(
            window_size=3, initial_static_samples=6
        )

    def test_malformed_samples_ignored(self) -> None:
        self.assertFalse(self.detector.process([1.0, 2.0]))
        self.assertFalse(self.detector.process(1.0, np.nan, 0.0))
        self.assertFalse(self.detector.process(np.inf, 0.0, 0.0))
        self.assertEqual(self.detector.processed_samples, 0)
        self.assertIs(self.detector.status, Status.IDLE)

    def test_sample_forms(self) -> None:
        self.assertTrue(self.detector.process(0.0, 0.0, -9.81))
        self.assertTrue(self.detector.process(np.array([0.0, 0.0, -9.81])))
        self.assertTrue(self.detector.process(AccelerationTriad(0.0, 0.0, -9.81)))
        self.assertEqual(self.detector.processed_samples, 3)
        assert_allclose(self.detector.instantaneous_avg, [0.0, 0.0, -9.81])

    def test_unit_conversion(self) -> None:
        for _ in range(6):
            self.detector.process(0.0, 0.0, -1.0, unit=AccelerationUnit.G)
        self.assertIs(self.detector.status, Status.INITIALIZATION_COMPLETED)
        assert_allclose(self.detector.accumulated_avg, [0.0, 0.0, -9.80665])

    def test_triad_in_other_unit(self) -> None:
        self.detector.process(AccelerationTriad(0.0, 0.0, -1000.0, AccelerationUnit.MILLI_G))
        assert_allclose(self.detector.instantaneous_avg, [0.0, 0.0, -9.80665])

    def test_wrong_quantity(self) -> None:
        with pytest.raises(ValueError):
            self.detector.process(0.0, 0.0, 1.0, unit=AngularSpeedUnit.RADIANS_PER_SECOND)

    def test_detector_unit(self) -> None:
        detector = AccelerationTriadStaticIntervalDetector(
            window_size=3, initial_static_samples=6, unit=AccelerationUnit.G
        )
        detector.process(0.0, 0.0, -9.80665, unit=AccelerationUnit.METERS_PER_SQUARED_SECOND)
        assert_allclose(detector.instantaneous_avg, [0.0, 0.0, -1.0])
        self.assertEqual(detector.instantaneous_avg_triad.unit, AccelerationUnit.G)


class TestConfiguration(unittest.TestCase):
    """Test setters and locking."""

    def test_defaults(self) -> None:
        detector = AngularSpeedTriadStaticIntervalDetector()
        self.assertEqual(detector.window_size, 101)
        self.assertEqual(detector.initial_static_samples, 5000)
        self.assertEqual(detector.threshold_factor, 2.0)
        self.assertEqual(detector.instantaneous_noise_level_factor, 1.0)
        self.assertEqual(detector.base_noise_level_absolute_threshold, float("inf"))
        self.assertEqual(detector.time_interval, 0.02)
        self.assertEqual(detector.unit, AngularSpeedUnit.RADIANS_PER_SECOND)
        self.assertIs(detector.status, Status.IDLE)

    def test_invalid_values(self) -> None:
        detector = AccelerationTriadStaticIntervalDetector()
        with pytest.raises(ValueError, match="threshold_factor"):
            detector.threshold_factor = 0.0
        with pytest.raises(ValueError, match="instantaneous_noise_level_factor"):
            detector.instantaneous_noise_level_factor = -1.0
        with pytest.raises(ValueError, match="base_noise_level_absolute_threshold"):
            detector.base_noise_level_absolute_threshold = 0.0
        with pytest.raises(ValueError, match="window_size"):
            detector.window_size = 100
        with pytest.raises(ValueError, match="twice the window size"):
            detector.initial_static_samples = 150
        with pytest.raises(ValueError, match="time_interval"):
            detector.time_interval = -0.1
        with pytest.raises(ValueError, match="unit must be provided"):
            detector.unit = None
        with pytest.raises(ValueError):
            detector.unit = AngularSpeedUnit.RADIANS_PER_SECOND

    def test_window_larger_than_initial_period(self) -> None:
        detector = AccelerationTriadStaticIntervalDetector(window_size=11, initial_static_samples=22)
        with pytest.raises(ValueError, match="initial_static_samples"):
            detector.window_size = 13
        self.assertEqual(detector.window_size, 11)

    def test_locked_while_processing(self) -> None:
        errors = []

        class Meddler(StaticIntervalDetectorListener):
            def on_initialization_started(self, detector):
                for action in (
                    lambda: setattr(detector, "threshold_factor", 5.0),
                    lambda: detector.process(0.0, 0.0, 0.0),
                    detector.reset,
                ):
                    with pytest.raises(LockedError):
                        action()
                    errors.append(detector.running)

        detector = AccelerationTriadStaticIntervalDetector(
            window_size=3, initial_static_samples=6, listener=Meddler()
        )
        self.assertTrue(detector.process(0.0, 0.0, -9.81))

        self.assertEqual(errors, [True, True, True])
        self.assertFalse(detector.running)
        self.assertEqual(detector.threshold_factor, 2.0)
        self.assertEqual(detector.processed_samples, 1)

    def test_psd_getters(self) -> None:
        detector = AccelerationTriadStaticIntervalDetector(
            window_size=3, initial_static_samples=6, time_interval=0.01
        )
        for v in np.random.default_rng(5).normal(size=(6, 3)):
            detector.process(v)
        assert_allclose(detector.base_noise_level_psd, detector.base_noise_level**2 * 0.01)
        assert_allclose(detector.base_noise_level_root_psd, detector.base_noise_level * 0.1)
        assert_allclose(
            detector.accumulated_noise_level, np.linalg.norm(detector.accumulated_std)
        )


class TestShortWindow(unittest.TestCase):
    """Three-sample window over static / shaking / static segments."""

    def test_single_dynamic_interval(self) -> None:
        rng = np.random.default_rng(3)
        wiggle = np.where(np.arange(10) % 2 == 0, 1.0, -1.0)[:, None]
        stream = np.vstack(
            (
                POSES[0] + rng.normal(0.0, SIGMA, size=(50, 3)),
                POSES[0] + wiggle,
                POSES[1] + rng.normal(0.0, SIGMA, size=(50, 3)),
            )
        )
        listener = RecordingListener()
        # The std of three samples has two degrees of freedom, so the
        # threshold sits well above the base noise level
        detector = AccelerationTriadStaticIntervalDetector(
            window_size=3, initial_static_samples=20, threshold_factor=3.0, listener=listener
        )
        for sample in stream:
            self.assertTrue(detector.process(*sample))

        transitions = [e[:2] for e in listener.events if e[0] in ("static", "dynamic")]
        self.assertEqual(transitions, [("static", 21), ("dynamic", 51), ("static", 63)])
        self.assertIs(detector.status, Status.STATIC_INTERVAL)
        self.assertEqual(detector.processed_samples, 110)


class TestSampleCounting(unittest.TestCase):
    def test_one_increment_per_processed_sample(self) -> None:
        detector = AccelerationTriadStaticIntervalDetector(
            window_size=3, initial_static_samples=10, base_noise_level_absolute_threshold=0.5
        )
        samples = POSES[0] + np.random.default_rng(1).normal(0.0, SIGMA, size=(8, 3))
        samples[5, 2] += 5.0

        for i, sample in enumerate(samples[:5]):
            self.assertTrue(detector.process(*sample))
            self.assertEqual(detector.processed_samples, i + 1)
            self.assertFalse(detector.process(sample[0], np.nan, sample[2]))
            self.assertFalse(detector.process(sample[:2]))
            self.assertEqual(detector.processed_samples, i + 1)

        # The sample that triggers the failure is still counted
        self.assertTrue(detector.process(*samples[5]))
        self.assertIs(detector.status, Status.FAILED)
        self.assertEqual(detector.processed_samples, 6)

        for sample in samples[6:]:
            self.assertFalse(detector.process(*sample))
        self.assertEqual(detector.processed_samples, 6)


class TestRepeatedReset(unittest.TestCase):
    @staticmethod
    def _state(detector):
        return (
            detector.status,
            detector.processed_samples,
            detector.base_noise_level,
            detector.threshold,
            detector.accumulated_samples,
            detector.instantaneous_avg,
            detector.instantaneous_std,
            detector.accumulated_avg,
            detector.accumulated_std,
        )

    def _assert_same_state(self, a, b):
        self.assertEqual(a[:5], b[:5])
        for x, y in zip(a[5:], b[5:]):
            assert_allclose(x, y)

    def test_reset_twice_same_as_once(self) -> None:
        listener = RecordingListener()
        detector = AccelerationTriadStaticIntervalDetector(
            window_size=WINDOW, initial_static_samples=INITIAL, threshold_factor=3.0, listener=listener
        )
        for sample in multi_pose_stream(np.random.default_rng(42))[:100]:
            detector.process(*sample)

        detector.reset()
        once = self._state(detector)
        detector.reset()
        twice = self._state(detector)

        self._assert_same_state(once, twice)
        self._assert_same_state(once, self._state(AccelerationTriadStaticIntervalDetector()))
        self.assertEqual(listener.of("reset"), [("reset", 0, None), ("reset", 0, None)])


class TestMaxComponentNorm(unittest.TestCase):
    """Noise level taken as the largest per-axis standard deviation."""

    def test_base_noise_and_threshold(self) -> None:
        sigmas = np.array([0.01, 0.03, 0.02])
        samples = POSES[0] + np.random.default_rng(8).normal(0.0, sigmas, size=(20, 3))
        detector = AccelerationTriadStaticIntervalDetector(
            window_size=3,
            initial_static_samples=20,
            noise_level_norm=NoiseLevelNorm.MAX_COMPONENT,
        )
        self.assertIs(detector.noise_level_norm, NoiseLevelNorm.MAX_COMPONENT)

        for sample in samples:
            detector.process(*sample)

        self.assertIs(detector.status, Status.INITIALIZATION_COMPLETED)
        expected = samples.std(axis=0).max()
        assert_allclose(detector.base_noise_level, expected, rtol=1e-9)
        assert_allclose(detector.threshold, 2.0 * expected, rtol=1e-9)
        self.assertLess(detector.base_noise_level, np.linalg.norm(samples.std(axis=0)))
        assert_allclose(detector.accumulated_noise_level, expected, rtol=1e-9)
        assert_allclose(detector.instantaneous_noise_level, detector.instantaneous_std.max())

    def test_default_is_euclidean(self) -> None:
        self.assertIs(AccelerationTriadStaticIntervalDetector().noise_level_norm, NoiseLevelNorm.EUCLIDEAN)


class TestUnitChange(unittest.TestCase):
    def test_unit_fixed_after_first_sample(self) -> None:
        detector = AccelerationTriadStaticIntervalDetector(window_size=3, initial_static_samples=6)
        detector.process(0.0, 0.0, -9.81)

        with pytest.raises(LockedError, match="only change while IDLE"):
            detector.unit = AccelerationUnit.G
        self.assertEqual(detector.unit, AccelerationUnit.METERS_PER_SQUARED_SECOND)

        detector.reset()
        detector.unit = AccelerationUnit.G
        self.assertEqual(detector.unit, AccelerationUnit.G)
