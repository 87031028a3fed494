"""
Static / dynamic interval detection on triad sample streams.

Multi-position calibration needs the sensor readings averaged over periods
where the device was held still. The detector consumes one triad at a time,
learns the sensor noise floor from an initial static period, and then
classifies each new sample as belonging to a static or a dynamic interval
by comparing the noise of a sliding window to a threshold derived from
that floor.

State machine:

    IDLE ──first sample──▶ INITIALIZING ──initial_static_samples──▶ INITIALIZATION_COMPLETED
                               │                                              │
                               ▼ (excessive movement)                         ▼ next sample
                            FAILED                                      STATIC_INTERVAL ◀──▶ DYNAMIC_INTERVAL

    base_noise_level = noise of all initialization samples
    threshold        = base_noise_level · threshold_factor
    static          ⇔ windowed_noise · instantaneous_noise_level_factor < threshold

Statistics owned by the detector:
    - window: ring buffer of the last ``window_size`` samples ("instantaneous")
    - accumulator: streaming statistics of the current static interval
    - accumulated averages/stds: frozen copy of the accumulator taken at
      the end of initialization and at every static → dynamic transition

Listener callbacks run synchronously while the detector is running; any
attempt to reconfigure, reset or feed the detector from a callback raises
``LockedError``.
"""

from enum import Enum
from typing import Optional, Union

import numpy as np

from inertial.calibration.errors import LockedError
from inertial.calibration.noise import (
    DEFAULT_TIME_INTERVAL,
    AccumulatedTriadNoiseEstimator,
    NoiseLevelNorm,
    WindowedTriadNoiseEstimator,
    noise_level,
)
from inertial.sensors.triad import (
    AccelerationTriad,
    AngularSpeedTriad,
    MagneticFluxDensityTriad,
    Triad,
)
from inertial.sensors.units import Unit, convert

DEFAULT_WINDOW_SIZE = 101
MIN_WINDOW_SIZE = 3
DEFAULT_INITIAL_STATIC_SAMPLES = 5000
MIN_INITIAL_STATIC_SAMPLES = 2
DEFAULT_THRESHOLD_FACTOR = 2.0
DEFAULT_INSTANTANEOUS_NOISE_LEVEL_FACTOR = 1.0
DEFAULT_BASE_NOISE_LEVEL_ABSOLUTE_THRESHOLD = float("inf")


class Status(Enum):
    """Detector state."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    INITIALIZATION_COMPLETED = "initialization_completed"
    STATIC_INTERVAL = "static_interval"
    DYNAMIC_INTERVAL = "dynamic_interval"
    FAILED = "failed"


class ErrorReason(Enum):
    """Why initialization failed.

    Attributes:
        SUDDEN_EXCESSIVE_MOVEMENT_DETECTED: the windowed noise exceeded the
            absolute ceiling before initialization completed.
        OVERALL_EXCESSIVE_MOVEMENT_DETECTED: the noise of the whole
            initialization period exceeded the absolute ceiling.
    """

    SUDDEN_EXCESSIVE_MOVEMENT_DETECTED = "sudden_excessive_movement_detected"
    OVERALL_EXCESSIVE_MOVEMENT_DETECTED = "overall_excessive_movement_detected"


class StaticIntervalDetectorListener:
    """Receives detector events. All methods are no-ops; override as needed.

    Triads passed to callbacks are expressed in the detector's unit.
    """

    def on_initialization_started(self, detector: "TriadStaticIntervalDetector") -> None:
        pass

    def on_initialization_completed(
        self, detector: "TriadStaticIntervalDetector", base_noise_level: float
    ) -> None:
        pass

    def on_error(
        self,
        detector: "TriadStaticIntervalDetector",
        accumulated_noise_level: float,
        instantaneous_noise_level: float,
        reason: ErrorReason,
    ) -> None:
        pass

    def on_static_interval_detected(
        self,
        detector: "TriadStaticIntervalDetector",
        instantaneous_avg: Triad,
        instantaneous_std: Triad,
    ) -> None:
        pass

    def on_dynamic_interval_detected(
        self,
        detector: "TriadStaticIntervalDetector",
        instantaneous_avg: Triad,
        instantaneous_std: Triad,
        accumulated_avg: Triad,
        accumulated_std: Triad,
    ) -> None:
        pass

    def on_reset(self, detector: "TriadStaticIntervalDetector") -> None:
        pass


class TriadStaticIntervalDetector:
    """Online classifier of static and dynamic intervals in a triad stream.

    Args:
        window_size: Samples in the sliding window, odd and ≥ 3.
        initial_static_samples: Samples used to learn the noise floor,
            ≥ 2 and ≥ 2 · window_size.
        threshold_factor: Multiplier from base noise level to threshold.
        instantaneous_noise_level_factor: Multiplier applied to the
            windowed noise before comparing it with the threshold.
        base_noise_level_absolute_threshold: Ceiling on the noise allowed
            during initialization, in the detector unit.
        time_interval: Sampling interval in seconds, for PSD getters.
        noise_level_norm: How per-axis stds combine into a noise level.
        listener: Optional StaticIntervalDetectorListener.
        unit: Unit in which statistics are expressed. Defaults to the SI
            unit of the sensor-specific subclasses.

    Usage:
        >>> detector = AccelerationTriadStaticIntervalDetector(
        ...     window_size=51, initial_static_samples=500)
        >>> for f in accel_samples:  # (N, 3) m/s²
        ...     detector.process(*f)
        >>> detector.status
    """

    triad_type = Triad

    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        initial_static_samples: int = DEFAULT_INITIAL_STATIC_SAMPLES,
        threshold_factor: float = DEFAULT_THRESHOLD_FACTOR,
        instantaneous_noise_level_factor: float = DEFAULT_INSTANTANEOUS_NOISE_LEVEL_FACTOR,
        base_noise_level_absolute_threshold: float = DEFAULT_BASE_NOISE_LEVEL_ABSOLUTE_THRESHOLD,
        time_interval: float = DEFAULT_TIME_INTERVAL,
        noise_level_norm: NoiseLevelNorm = NoiseLevelNorm.EUCLIDEAN,
        listener: Optional[StaticIntervalDetectorListener] = None,
        unit: Optional[Unit] = None,
    ):
        self._running = False
        _check_window_size(window_size)
        _check_initial_static_samples(initial_static_samples, window_size)
        self._window_size = int(window_size)
        self._initial_static_samples = int(initial_static_samples)
        self.threshold_factor = threshold_factor
        self.instantaneous_noise_level_factor = instantaneous_noise_level_factor
        self.base_noise_level_absolute_threshold = base_noise_level_absolute_threshold
        self.noise_level_norm = noise_level_norm
        self.listener = listener
        self._unit = self.triad_type(unit=unit).unit
        self._time_interval = _check_time_interval(time_interval)
        self._window = WindowedTriadNoiseEstimator(self._window_size, self._time_interval)
        self._accumulator = AccumulatedTriadNoiseEstimator(self._time_interval)
        self._clear()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _check_locked(self) -> None:
        if self._running:
            raise LockedError(f"{type(self).__name__} is running")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def window_size(self) -> int:
        return self._window_size

    @window_size.setter
    def window_size(self, value: int) -> None:
        self._check_locked()
        _check_window_size(value)
        _check_initial_static_samples(self._initial_static_samples, value)
        self._window_size = int(value)
        self._window = WindowedTriadNoiseEstimator(self._window_size, self._time_interval)

    @property
    def initial_static_samples(self) -> int:
        return self._initial_static_samples

    @initial_static_samples.setter
    def initial_static_samples(self, value: int) -> None:
        self._check_locked()
        _check_initial_static_samples(value, self._window_size)
        self._initial_static_samples = int(value)

    @property
    def threshold_factor(self) -> float:
        return self._threshold_factor

    @threshold_factor.setter
    def threshold_factor(self, value: float) -> None:
        self._check_locked()
        if not value > 0.0:
            raise ValueError(f"threshold_factor must be positive, got {value}")
        self._threshold_factor = float(value)

    @property
    def instantaneous_noise_level_factor(self) -> float:
        return self._instantaneous_noise_level_factor

    @instantaneous_noise_level_factor.setter
    def instantaneous_noise_level_factor(self, value: float) -> None:
        self._check_locked()
        if not value > 0.0:
            raise ValueError(f"instantaneous_noise_level_factor must be positive, got {value}")
        self._instantaneous_noise_level_factor = float(value)

    @property
    def base_noise_level_absolute_threshold(self) -> float:
        return self._base_noise_level_absolute_threshold

    @base_noise_level_absolute_threshold.setter
    def base_noise_level_absolute_threshold(self, value: float) -> None:
        self._check_locked()
        if not value > 0.0:
            raise ValueError(f"base_noise_level_absolute_threshold must be positive, got {value}")
        self._base_noise_level_absolute_threshold = float(value)

    @property
    def time_interval(self) -> float:
        """Sampling interval in seconds."""
        return self._time_interval

    @time_interval.setter
    def time_interval(self, value: float) -> None:
        self._check_locked()
        self._time_interval = _check_time_interval(value)
        self._window.time_interval = self._time_interval
        self._accumulator.time_interval = self._time_interval

    @property
    def noise_level_norm(self) -> NoiseLevelNorm:
        return self._noise_level_norm

    @noise_level_norm.setter
    def noise_level_norm(self, value: NoiseLevelNorm) -> None:
        self._check_locked()
        self._noise_level_norm = NoiseLevelNorm(value)

    @property
    def listener(self) -> Optional[StaticIntervalDetectorListener]:
        return self._listener

    @listener.setter
    def listener(self, value: Optional[StaticIntervalDetectorListener]) -> None:
        self._check_locked()
        self._listener = value

    @property
    def unit(self) -> Unit:
        return self._unit

    @unit.setter
    def unit(self, value: Unit) -> None:
        self._check_locked()
        # Window, accumulator and threshold are stored in this unit
        if self._status is not Status.IDLE:
            raise LockedError(
                f"unit of {type(self).__name__} can only change while IDLE; call reset() first"
            )
        if value is None:
            raise ValueError("unit must be provided")
        self._unit = self.triad_type(unit=value).unit

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> Status:
        return self._status

    @property
    def processed_samples(self) -> int:
        return self._processed_samples

    @property
    def base_noise_level(self) -> float:
        """Noise level of the initialization period (0 until completed)."""
        return self._base_noise_level

    @property
    def base_noise_level_psd(self) -> float:
        return self._base_noise_level**2 * self._time_interval

    @property
    def base_noise_level_root_psd(self) -> float:
        return self._base_noise_level * np.sqrt(self._time_interval)

    @property
    def threshold(self) -> float:
        """Static/dynamic threshold (0 until initialization completes)."""
        return self._threshold

    @property
    def instantaneous_avg(self) -> np.ndarray:
        """Per-axis mean of the sliding window (3,)."""
        return self._window.avg

    @property
    def instantaneous_std(self) -> np.ndarray:
        """Per-axis standard deviation of the sliding window (3,)."""
        return self._window.std

    @property
    def instantaneous_avg_triad(self) -> Triad:
        return self._triad(self._window.avg)

    @property
    def instantaneous_std_triad(self) -> Triad:
        return self._triad(self._window.std)

    @property
    def instantaneous_noise_level(self) -> float:
        return self._window.noise_level(self._noise_level_norm)

    @property
    def instantaneous_noise_level_psd(self) -> float:
        return self.instantaneous_noise_level**2 * self._time_interval

    @property
    def instantaneous_noise_level_root_psd(self) -> float:
        return self.instantaneous_noise_level * np.sqrt(self._time_interval)

    @property
    def accumulated_avg(self) -> np.ndarray:
        """Mean of the last completed static interval (or initialization)."""
        return self._accumulated_avg.copy()

    @property
    def accumulated_std(self) -> np.ndarray:
        """Std of the last completed static interval (or initialization)."""
        return self._accumulated_std.copy()

    @property
    def accumulated_avg_triad(self) -> Triad:
        return self._triad(self._accumulated_avg)

    @property
    def accumulated_std_triad(self) -> Triad:
        return self._triad(self._accumulated_std)

    @property
    def accumulated_noise_level(self) -> float:
        return noise_level(self._accumulated_std, self._noise_level_norm)

    @property
    def accumulated_noise_level_psd(self) -> float:
        return self.accumulated_noise_level**2 * self._time_interval

    @property
    def accumulated_noise_level_root_psd(self) -> float:
        return self.accumulated_noise_level * np.sqrt(self._time_interval)

    @property
    def accumulated_samples(self) -> int:
        """Samples folded into the current static interval so far."""
        return self._accumulator.num_samples

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(
        self,
        x: Union[Triad, float, np.ndarray],
        y: Optional[float] = None,
        z: Optional[float] = None,
        unit: Optional[Unit] = None,
    ) -> bool:
        """Process one sample.

        Args:
            x: A Triad, a 3-element sequence, or the x component.
            y: y component when ``x`` is a scalar.
            z: z component when ``x`` is a scalar.
            unit: Unit of a sequence or of scalar components; defaults to
                the detector unit.

        Returns:
            True if the sample was processed, False if the detector has
            failed or the sample is malformed (wrong size or non-finite).

        Raises:
            LockedError: If called while the detector is running.
            ValueError: If the unit measures another quantity.
        """
        self._check_locked()
        if self._status is Status.FAILED:
            return False

        values = self._to_values(x, y, z, unit)
        if values is None:
            return False

        self._running = True
        try:
            self._process(values)
        finally:
            self._running = False
        return True

    def reset(self) -> None:
        """Return to IDLE, clearing window, accumulators and counters."""
        self._check_locked()
        self._running = True
        try:
            self._clear()
            if self._listener is not None:
                self._listener.on_reset(self)
        finally:
            self._running = False

    def _clear(self) -> None:
        self._status = Status.IDLE
        self._processed_samples = 0
        self._base_noise_level = 0.0
        self._threshold = 0.0
        self._window.reset()
        self._accumulator.reset()
        self._accumulated_avg = np.zeros(3)
        self._accumulated_std = np.zeros(3)

    def _to_values(self, x, y, z, unit) -> Optional[np.ndarray]:
        if isinstance(x, Triad):
            values = x.values_in(self._unit)
        else:
            if y is None and z is None:
                values = np.asarray(x, dtype=np.float64).reshape(-1)
            else:
                values = np.array([x, y, z], dtype=np.float64)
            if values.shape != (3,):
                return None
            if unit is not None:
                values = np.asarray(convert(values, unit, self._unit), dtype=np.float64)
        if not np.all(np.isfinite(values)):
            return None
        return values

    def _process(self, values: np.ndarray) -> None:
        if self._status is Status.IDLE:
            self._status = Status.INITIALIZING
            if self._listener is not None:
                self._listener.on_initialization_started(self)

        self._processed_samples += 1
        self._window.add(values)
        instantaneous_level = self._window.noise_level(self._noise_level_norm)

        if self._status is Status.INITIALIZING:
            self._initialize(values, instantaneous_level)
            return

        is_static = (
            instantaneous_level * self._instantaneous_noise_level_factor < self._threshold
        )
        if self._status is Status.INITIALIZATION_COMPLETED:
            self._enter_static()
        elif is_static:
            if self._status is Status.STATIC_INTERVAL:
                self._accumulator.add(values)
            else:
                self._enter_static()
        elif self._status is Status.STATIC_INTERVAL:
            self._enter_dynamic()

    def _initialize(self, values: np.ndarray, instantaneous_level: float) -> None:
        self._accumulator.add(values)
        accumulated_level = self._accumulator.noise_level(self._noise_level_norm)

        if self._processed_samples < self._initial_static_samples:
            if (
                self._window.is_window_filled
                and instantaneous_level > self._base_noise_level_absolute_threshold
            ):
                self._fail(
                    accumulated_level,
                    instantaneous_level,
                    ErrorReason.SUDDEN_EXCESSIVE_MOVEMENT_DETECTED,
                )
            return

        self._base_noise_level = accumulated_level
        self._threshold = accumulated_level * self._threshold_factor
        self._freeze_accumulator()

        if accumulated_level > self._base_noise_level_absolute_threshold:
            self._fail(
                accumulated_level,
                instantaneous_level,
                ErrorReason.OVERALL_EXCESSIVE_MOVEMENT_DETECTED,
            )
            return

        self._status = Status.INITIALIZATION_COMPLETED
        if self._listener is not None:
            self._listener.on_initialization_completed(self, self._base_noise_level)

    def _enter_static(self) -> None:
        # Restart accumulation seeded with the samples already in the window
        self._accumulator.reset()
        for sample in self._window.samples():
            self._accumulator.add(sample)
        self._status = Status.STATIC_INTERVAL
        if self._listener is not None:
            self._listener.on_static_interval_detected(
                self, self.instantaneous_avg_triad, self.instantaneous_std_triad
            )

    def _enter_dynamic(self) -> None:
        self._freeze_accumulator()
        self._status = Status.DYNAMIC_INTERVAL
        if self._listener is not None:
            self._listener.on_dynamic_interval_detected(
                self,
                self.instantaneous_avg_triad,
                self.instantaneous_std_triad,
                self.accumulated_avg_triad,
                self.accumulated_std_triad,
            )

    def _freeze_accumulator(self) -> None:
        self._accumulated_avg = self._accumulator.avg
        self._accumulated_std = self._accumulator.std
        self._accumulator.reset()

    def _fail(
        self, accumulated_level: float, instantaneous_level: float, reason: ErrorReason
    ) -> None:
        self._status = Status.FAILED
        if self._listener is not None:
            self._listener.on_error(self, accumulated_level, instantaneous_level, reason)

    def _triad(self, values: np.ndarray) -> Triad:
        return self.triad_type.from_array(values, self._unit)


class AccelerationTriadStaticIntervalDetector(TriadStaticIntervalDetector):
    """Static interval detector for accelerometers (default unit m/s²)."""

    triad_type = AccelerationTriad


class AngularSpeedTriadStaticIntervalDetector(TriadStaticIntervalDetector):
    """Static interval detector for gyroscopes (default unit rad/s)."""

    triad_type = AngularSpeedTriad


class MagneticFluxDensityTriadStaticIntervalDetector(TriadStaticIntervalDetector):
    """Static interval detector for magnetometers (default unit T)."""

    triad_type = MagneticFluxDensityTriad


def _check_window_size(window_size: int) -> None:
    if int(window_size) != window_size or window_size < MIN_WINDOW_SIZE or window_size % 2 == 0:
        raise ValueError(
            f"window_size must be an odd integer ≥ {MIN_WINDOW_SIZE}, got {window_size}"
        )


def _check_initial_static_samples(initial_static_samples: int, window_size: int) -> None:
    minimum = max(MIN_INITIAL_STATIC_SAMPLES, 2 * int(window_size))
    if int(initial_static_samples) != initial_static_samples or initial_static_samples < minimum:
        raise ValueError(
            f"initial_static_samples must be an integer ≥ {minimum} "
            f"(twice the window size), got {initial_static_samples}"
        )


def _check_time_interval(time_interval: float) -> float:
    if not time_interval >= 0.0:
        raise ValueError(f"time_interval must be non-negative, got {time_interval}")
    return float(time_interval)
