"""
Noise statistics of triad sample streams.

Two estimators are used by the static interval detector:

    - WindowedTriadNoiseEstimator: fixed-capacity ring buffer of the most
      recent samples, giving the "instantaneous" mean and standard
      deviation of the last ``window_size`` samples.
    - AccumulatedTriadNoiseEstimator: streaming (Welford) mean and variance
      of every sample added since the last reset, with no sample storage.

Both expose the power spectral density (PSD) forms of their noise, given
the sampling interval Δt:

    PSD = σ² · Δt        root PSD = σ · √Δt

Welford's update avoids the catastrophic cancellation of the naive
Σx² - (Σx)²/n formula over long static intervals:

    n ← n + 1
    δ = x - μ
    μ ← μ + δ / n
    M2 ← M2 + δ · (x - μ)
    σ² = M2 / n
"""

from enum import Enum
from typing import Iterator

import numpy as np

DEFAULT_TIME_INTERVAL = 0.02  # s (50 Hz)


class NoiseLevelNorm(Enum):
    """How per-axis standard deviations are combined into one noise level.

    Attributes:
        EUCLIDEAN: √(σx² + σy² + σz²).
        MAX_COMPONENT: max(σx, σy, σz).
    """

    EUCLIDEAN = "euclidean"
    MAX_COMPONENT = "max_component"


def noise_level(std: np.ndarray, norm: NoiseLevelNorm = NoiseLevelNorm.EUCLIDEAN) -> float:
    """Combine per-axis standard deviations (3,) into a scalar noise level."""
    std = np.asarray(std, dtype=np.float64)
    if norm is NoiseLevelNorm.EUCLIDEAN:
        return float(np.sqrt(std @ std))
    if norm is NoiseLevelNorm.MAX_COMPONENT:
        return float(np.max(np.abs(std)))
    raise ValueError(f"Unknown noise level norm: {norm!r}")


def _check_time_interval(time_interval: float) -> float:
    if not time_interval >= 0.0:
        raise ValueError(f"time_interval must be non-negative, got {time_interval}")
    return float(time_interval)


class WindowedTriadNoiseEstimator:
    """Mean and standard deviation over the last ``window_size`` samples.

    Samples are stored in a circular buffer; once full, each new sample
    overwrites the oldest. The standard deviation is the sample one
    (ddof=1) and is zero until two samples are available.

    Args:
        window_size: Buffer capacity, an odd number ≥ 3.
        time_interval: Sampling interval Δt in seconds, for PSD getters.

    Example:
        >>> est = WindowedTriadNoiseEstimator(window_size=5)
        >>> for v in np.random.default_rng(0).normal(size=(10, 3)):
        ...     est.add(v)
        >>> est.is_window_filled
        True
    """

    def __init__(self, window_size: int = 101, time_interval: float = DEFAULT_TIME_INTERVAL):
        if int(window_size) != window_size or window_size < 3 or window_size % 2 == 0:
            raise ValueError(f"window_size must be an odd integer ≥ 3, got {window_size}")
        self.window_size = int(window_size)
        self.time_interval = _check_time_interval(time_interval)
        self._buffer = np.zeros((self.window_size, 3))
        self.reset()

    def reset(self) -> None:
        """Empty the window."""
        self._buffer[:] = 0.0
        self._head = 0
        self._count = 0
        self._avg = np.zeros(3)
        self._std = np.zeros(3)

    def add(self, values: np.ndarray) -> None:
        """Push a (3,) sample, evicting the oldest one when full."""
        self._buffer[self._head] = values
        self._head = (self._head + 1) % self.window_size
        self._count = min(self._count + 1, self.window_size)

        window = self._buffer[: self._count] if self._count < self.window_size else self._buffer
        self._avg = window.mean(axis=0)
        if self._count > 1:
            self._std = window.std(axis=0, ddof=1)
        else:
            self._std = np.zeros(3)

    def samples(self) -> Iterator[np.ndarray]:
        """Iterate over the buffered samples, oldest first."""
        if self._count < self.window_size:
            for i in range(self._count):
                yield self._buffer[i].copy()
        else:
            for i in range(self.window_size):
                yield self._buffer[(self._head + i) % self.window_size].copy()

    @property
    def num_samples_in_window(self) -> int:
        return self._count

    @property
    def is_window_filled(self) -> bool:
        return self._count == self.window_size

    @property
    def avg(self) -> np.ndarray:
        """Per-axis mean of the window (3,)."""
        return self._avg.copy()

    @property
    def std(self) -> np.ndarray:
        """Per-axis sample standard deviation of the window (3,)."""
        return self._std.copy()

    @property
    def variance(self) -> np.ndarray:
        return self._std**2

    def noise_level(self, norm: NoiseLevelNorm = NoiseLevelNorm.EUCLIDEAN) -> float:
        return noise_level(self._std, norm)

    @property
    def psd(self) -> np.ndarray:
        """Per-axis noise PSD σ²·Δt (3,)."""
        return self.variance * self.time_interval

    @property
    def root_psd(self) -> np.ndarray:
        """Per-axis noise root PSD σ·√Δt (3,)."""
        return self._std * np.sqrt(self.time_interval)

    @property
    def avg_noise_psd(self) -> float:
        """Mean of the per-axis PSDs."""
        return float(np.mean(self.psd))

    @property
    def noise_root_psd_norm(self) -> float:
        """Norm of the per-axis root PSDs, √(Σ σ²·Δt)."""
        return float(np.sqrt(np.sum(self.psd)))


class AccumulatedTriadNoiseEstimator:
    """Streaming mean and (population) variance of all samples since reset.

    Args:
        time_interval: Sampling interval Δt in seconds, for PSD getters.
    """

    def __init__(self, time_interval: float = DEFAULT_TIME_INTERVAL):
        self.time_interval = _check_time_interval(time_interval)
        self.reset()

    def reset(self) -> None:
        self._n = 0
        self._mean = np.zeros(3)
        self._m2 = np.zeros(3)

    def add(self, values: np.ndarray) -> None:
        """Fold one (3,) sample into the running statistics."""
        x = np.asarray(values, dtype=np.float64)
        self._n += 1
        delta = x - self._mean
        self._mean = self._mean + delta / self._n
        self._m2 = self._m2 + delta * (x - self._mean)

    @property
    def num_samples(self) -> int:
        return self._n

    @property
    def avg(self) -> np.ndarray:
        return self._mean.copy()

    @property
    def variance(self) -> np.ndarray:
        if self._n == 0:
            return np.zeros(3)
        return self._m2 / self._n

    @property
    def std(self) -> np.ndarray:
        return np.sqrt(self.variance)

    def noise_level(self, norm: NoiseLevelNorm = NoiseLevelNorm.EUCLIDEAN) -> float:
        return noise_level(self.std, norm)

    @property
    def psd(self) -> np.ndarray:
        return self.variance * self.time_interval

    @property
    def root_psd(self) -> np.ndarray:
        return self.std * np.sqrt(self.time_interval)

    @property
    def avg_noise_psd(self) -> float:
        return float(np.mean(self.psd))

    @property
    def noise_root_psd_norm(self) -> float:
        return float(np.sqrt(np.sum(self.psd)))
