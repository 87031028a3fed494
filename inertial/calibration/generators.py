"""
Calibration measurements from detected static intervals.

Multi-position calibration asks the user to hold the device still in a
number of poses, moving it between them. The generator feeds a raw sample
stream through a static interval detector and, every time a static
interval ends, emits the average and standard deviation of the samples of
that interval. Paired with the frame of each pose, those samples become
the FrameBodyMeasurements consumed by the calibrators.

Intervals are discarded when
    - they are shorter than ``min_static_samples`` (a UserWarning is issued);
    - the dynamic period before them lasted more than ``max_dynamic_samples``,
      since the pose may then have drifted beyond what the caller assumes.

Only intervals closed by a dynamic transition are emitted; a static period
still open at the end of the stream is not.
"""

import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence

from inertial.calibration.errors import LockedError
from inertial.calibration.intervals import (
    AccelerationTriadStaticIntervalDetector,
    ErrorReason,
    StaticIntervalDetectorListener,
    TriadStaticIntervalDetector,
)
from inertial.coords.frames import Frame
from inertial.sensors.measurements import FrameBodyMeasurement
from inertial.sensors.triad import Triad

# Defaults are expressed in multiples of the detector window size
DEFAULT_MIN_STATIC_WINDOWS = 2
DEFAULT_MAX_DYNAMIC_WINDOWS = 30


@dataclass
class StaticIntervalSample:
    """Statistics of one completed static interval.

    Attributes:
        avg: Per-axis average of the interval samples.
        std: Per-axis standard deviation of the interval samples.
        num_samples: Number of samples in the interval.
        start_index: Index of the first sample of the interval in the stream.
        end_index: Index one past the last sample of the interval.
    """

    avg: Triad
    std: Triad
    num_samples: int
    start_index: int
    end_index: int


class StaticIntervalMeasurementsGeneratorListener:
    """Receives generator events. All methods are no-ops by default."""

    def on_static_interval_sample(
        self, generator: "StaticIntervalMeasurementsGenerator", sample: StaticIntervalSample
    ) -> None:
        pass

    def on_error(self, generator: "StaticIntervalMeasurementsGenerator", reason: ErrorReason) -> None:
        pass

    def on_reset(self, generator: "StaticIntervalMeasurementsGenerator") -> None:
        pass


class _DetectorEvents(StaticIntervalDetectorListener):
    """Forwards detector events to the owning generator."""

    def __init__(self, generator: "StaticIntervalMeasurementsGenerator"):
        self.generator = generator

    def on_error(self, detector, accumulated_noise_level, instantaneous_noise_level, reason):
        self.generator._on_error(reason)

    def on_static_interval_detected(self, detector, instantaneous_avg, instantaneous_std):
        self.generator._on_static(detector)

    def on_dynamic_interval_detected(
        self, detector, instantaneous_avg, instantaneous_std, accumulated_avg, accumulated_std
    ):
        self.generator._on_dynamic(detector, accumulated_avg, accumulated_std)


class StaticIntervalMeasurementsGenerator:
    """Collect per-pose averages from a raw triad stream.

    Args:
        detector: Static interval detector to drive. Its listener is taken
            over by the generator. Defaults to an accelerometer detector.
        min_static_samples: Shortest static interval kept. Defaults to
            twice the detector window.
        max_dynamic_samples: Longest dynamic period after which the next
            static interval is still kept. Defaults to 30 windows.
        listener: Optional StaticIntervalMeasurementsGeneratorListener.

    Usage:
        >>> generator = StaticIntervalMeasurementsGenerator(
        ...     AccelerationTriadStaticIntervalDetector(window_size=51, initial_static_samples=500))
        >>> for f in accel_samples:
        ...     generator.process(f)
        >>> measurements = generator.measurements(frames)
    """

    def __init__(
        self,
        detector: Optional[TriadStaticIntervalDetector] = None,
        min_static_samples: Optional[int] = None,
        max_dynamic_samples: Optional[int] = None,
        listener: Optional[StaticIntervalMeasurementsGeneratorListener] = None,
    ):
        self._running = False
        if detector is None:
            detector = AccelerationTriadStaticIntervalDetector()
        if not isinstance(detector, TriadStaticIntervalDetector):
            raise ValueError(
                f"detector must be a TriadStaticIntervalDetector, got {type(detector).__name__}"
            )
        detector.listener = _DetectorEvents(self)
        self._detector = detector

        window = detector.window_size
        self.min_static_samples = (
            DEFAULT_MIN_STATIC_WINDOWS * window if min_static_samples is None else min_static_samples
        )
        self.max_dynamic_samples = (
            DEFAULT_MAX_DYNAMIC_WINDOWS * window if max_dynamic_samples is None else max_dynamic_samples
        )
        self.listener = listener
        self._samples: List[StaticIntervalSample] = []
        self._clear()

    def _check_locked(self) -> None:
        if self._running:
            raise LockedError(f"{type(self).__name__} is running")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def detector(self) -> TriadStaticIntervalDetector:
        return self._detector

    @property
    def min_static_samples(self) -> int:
        return self._min_static_samples

    @min_static_samples.setter
    def min_static_samples(self, value: int) -> None:
        self._check_locked()
        if int(value) != value or value < 1:
            raise ValueError(f"min_static_samples must be an integer ≥ 1, got {value}")
        self._min_static_samples = int(value)

    @property
    def max_dynamic_samples(self) -> int:
        return self._max_dynamic_samples

    @max_dynamic_samples.setter
    def max_dynamic_samples(self, value: int) -> None:
        self._check_locked()
        if int(value) != value or value < 1:
            raise ValueError(f"max_dynamic_samples must be an integer ≥ 1, got {value}")
        self._max_dynamic_samples = int(value)

    @property
    def listener(self) -> Optional[StaticIntervalMeasurementsGeneratorListener]:
        return self._listener

    @listener.setter
    def listener(self, value: Optional[StaticIntervalMeasurementsGeneratorListener]) -> None:
        self._check_locked()
        self._listener = value

    @property
    def samples(self) -> List[StaticIntervalSample]:
        """Static interval samples collected so far, in stream order."""
        return list(self._samples)

    @property
    def status(self):
        return self._detector.status

    def process(self, x, y=None, z=None, unit=None) -> bool:
        """Feed one sample to the detector. See TriadStaticIntervalDetector.process."""
        self._check_locked()
        self._running = True
        try:
            return self._detector.process(x, y, z, unit)
        finally:
            self._running = False

    def reset(self) -> None:
        """Reset the detector and discard collected samples."""
        self._check_locked()
        self._running = True
        try:
            self._detector.reset()
            self._clear()
            if self._listener is not None:
                self._listener.on_reset(self)
        finally:
            self._running = False

    def measurements(self, frames: Sequence[Frame], **kwargs) -> List[FrameBodyMeasurement]:
        """
        Pair collected samples with the frames of their poses.

        Args:
            frames: One Frame per collected sample, in the same order.
            **kwargs: Extra FrameBodyMeasurement fields (e.g. ``year``).

        Returns:
            List of FrameBodyMeasurement with the interval average as
            reading and its per-axis std as standard deviation.

        Raises:
            ValueError: If the number of frames differs from the number of
                samples.
        """
        frames = list(frames)
        if len(frames) != len(self._samples):
            raise ValueError(
                f"Expected {len(self._samples)} frames, one per static interval, got {len(frames)}"
            )
        return [
            FrameBodyMeasurement(
                reading=sample.avg,
                frame=frame,
                std=sample.std.as_array(),
                **kwargs,
            )
            for sample, frame in zip(self._samples, frames)
        ]

    def _clear(self) -> None:
        self._samples.clear()
        self._static_start = 0
        self._dynamic_start: Optional[int] = None
        self._interval_valid = True

    def _on_error(self, reason: ErrorReason) -> None:
        if self._listener is not None:
            self._listener.on_error(self, reason)

    def _on_static(self, detector: TriadStaticIntervalDetector) -> None:
        # The interval starts with the samples already in the window
        self._static_start = max(0, detector.processed_samples - detector.window_size)
        self._interval_valid = (
            self._dynamic_start is None
            or self._static_start - self._dynamic_start <= self._max_dynamic_samples
        )

    def _on_dynamic(self, detector: TriadStaticIntervalDetector, avg: Triad, std: Triad) -> None:
        # The sample that triggered the transition is the first dynamic one
        end = detector.processed_samples - 1
        self._dynamic_start = end
        num_samples = end - self._static_start

        if not self._interval_valid:
            return
        if num_samples < self._min_static_samples:
            warnings.warn(
                f"Discarding static interval of {num_samples} samples "
                f"(minimum {self._min_static_samples})",
                UserWarning,
            )
            return

        sample = StaticIntervalSample(
            avg=avg,
            std=std,
            num_samples=num_samples,
            start_index=self._static_start,
            end_index=end,
        )
        self._samples.append(sample)
        if self._listener is not None:
            self._listener.on_static_interval_sample(self, sample)
