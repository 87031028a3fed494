"""
Sensor error model parameters and their vector layout.

The calibrated sensors follow the linear error model

    f_meas = b + (I + M) · f_true

where b is the bias (hard iron for magnetometers) and M holds the scale
factor errors on its diagonal and the cross-coupling (misalignment, soft
iron) terms off the diagonal:

        ┌ sx   mxy  mxz ┐
    M = │ myx  sy   myz │
        └ mzx  mzy  sz  ┘

Estimators work on a flat parameter vector, ordered

    [bx, by, bz,] sx, sy, sz, mxy, mxz, myx, myz, mzx, mzy

with the bias entries present only when the bias is estimated. In common
axis mode the sensor x axis is taken as reference and the lower triangle
(myx, mzx, mzy) is held at zero, leaving 6 matrix unknowns instead of 9.

Because the model is linear in b and M, the same design matrix serves the
closed-form linear calibrators and the Jacobian of the nonlinear ones.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from inertial.sensors.units import si_unit

BIAS_NAMES = ("bx", "by", "bz")
MATRIX_NAMES = ("sx", "sy", "sz", "mxy", "mxz", "myx", "myz", "mzx", "mzy")
# (row, col) of each MATRIX_NAMES entry in M
MATRIX_INDICES = ((0, 0), (1, 1), (2, 2), (0, 1), (0, 2), (1, 0), (1, 2), (2, 0), (2, 1))
COMMON_AXIS_ZEROS = ("myx", "mzx", "mzy")

# 12 unknowns need 4 triads, 9 unknowns need 3
MIN_MEASUREMENTS_UNKNOWN_BIAS = 4
MIN_MEASUREMENTS_KNOWN_BIAS = 3


def mm_from_parameters(
    sx: float,
    sy: float,
    sz: float,
    mxy: float,
    mxz: float,
    myx: float,
    myz: float,
    mzx: float,
    mzy: float,
) -> np.ndarray:
    """Assemble the scale/cross-coupling matrix M from its 9 entries."""
    mm = np.zeros((3, 3))
    for (row, col), value in zip(MATRIX_INDICES, (sx, sy, sz, mxy, mxz, myx, myz, mzx, mzy)):
        mm[row, col] = value
    return mm


def mm_to_parameters(mm: np.ndarray) -> np.ndarray:
    """Flatten M into [sx, sy, sz, mxy, mxz, myx, myz, mzx, mzy]."""
    mm = as_matrix(mm)
    return np.array([mm[row, col] for row, col in MATRIX_INDICES])


def as_bias(bias) -> np.ndarray:
    """Coerce a bias given as 3 scalars, a (3,) / (3, 1) array or a Triad."""
    if hasattr(bias, "to_si"):
        return bias.to_si()
    arr = np.asarray(bias, dtype=np.float64)
    if arr.shape not in ((3,), (3, 1), (1, 3)):
        raise ValueError(f"bias must have 3 elements (3,) or (3, 1), got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError("bias must be finite")
    return arr.reshape(3).copy()


def as_matrix(mm) -> np.ndarray:
    """Coerce M given as a 3x3 array or 9 values in MATRIX_NAMES order."""
    arr = np.asarray(mm, dtype=np.float64)
    if arr.shape == (9,):
        return mm_from_parameters(*arr)
    if arr.shape != (3, 3):
        raise ValueError(f"matrix must be (3, 3) or 9 values, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError("matrix must be finite")
    return arr.copy()


class ParameterLayout:
    """Mapping between (b, M) and the free-parameter vector of a calibrator.

    Args:
        bias_known: If True the bias is not estimated.
        common_axis: If True myx, mzx and mzy are fixed at zero.

    Example:
        >>> layout = ParameterLayout(bias_known=False, common_axis=True)
        >>> layout.names
        ('bx', 'by', 'bz', 'sx', 'sy', 'sz', 'mxy', 'mxz', 'myz')
    """

    def __init__(self, bias_known: bool = False, common_axis: bool = False):
        self.bias_known = bias_known
        self.common_axis = common_axis
        matrix = [
            (name, idx)
            for name, idx in zip(MATRIX_NAMES, MATRIX_INDICES)
            if not (common_axis and name in COMMON_AXIS_ZEROS)
        ]
        self._matrix_names = tuple(name for name, _ in matrix)
        self._matrix_indices = tuple(idx for _, idx in matrix)
        self._offset = 0 if bias_known else 3

    @property
    def names(self) -> Tuple[str, ...]:
        """Names of the free parameters, in vector order."""
        return (() if self.bias_known else BIAS_NAMES) + self._matrix_names

    @property
    def full_names(self) -> Tuple[str, ...]:
        """Names of all reported parameters, in covariance order."""
        return (() if self.bias_known else BIAS_NAMES) + MATRIX_NAMES

    @property
    def num_parameters(self) -> int:
        return self._offset + len(self._matrix_names)

    @property
    def min_measurements(self) -> int:
        """Smallest number of triad measurements accepted for a fit.

        Sized for the general (non common axis) model, so that switching
        common axis mode on or off never changes readiness.
        """
        return MIN_MEASUREMENTS_KNOWN_BIAS if self.bias_known else MIN_MEASUREMENTS_UNKNOWN_BIAS

    def pack(self, bias: np.ndarray, mm: np.ndarray) -> np.ndarray:
        """Flatten (b, M) into the free-parameter vector."""
        x = np.empty(self.num_parameters)
        if not self.bias_known:
            x[:3] = bias
        for k, (row, col) in enumerate(self._matrix_indices):
            x[self._offset + k] = mm[row, col]
        return x

    def unpack(self, x: np.ndarray, known_bias: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Rebuild (b, M) from a free-parameter vector."""
        if self.bias_known:
            bias = np.zeros(3) if known_bias is None else np.asarray(known_bias, dtype=np.float64)
        else:
            bias = np.asarray(x[:3], dtype=np.float64).copy()
        mm = np.zeros((3, 3))
        for k, (row, col) in enumerate(self._matrix_indices):
            mm[row, col] = x[self._offset + k]
        return bias, mm

    def design_matrix(self, true_values: np.ndarray) -> np.ndarray:
        """
        Design matrix A (3N × p) such that f_meas - f_true - b_known = A · x.

        Rows are ordered measurement by measurement, axis by axis. The
        model is linear, so A is also the Jacobian of the predicted
        readings with respect to x.
        """
        f = np.asarray(true_values, dtype=np.float64).reshape(-1, 3)
        n = f.shape[0]
        A = np.zeros((3 * n, self.num_parameters))
        for axis in range(3):
            rows = slice(axis, 3 * n, 3)
            if not self.bias_known:
                A[rows, axis] = 1.0
        for k, (row, col) in enumerate(self._matrix_indices):
            A[row::3, self._offset + k] = f[:, col]
        return A

    def predict(self, x: np.ndarray, true_values: np.ndarray, known_bias: Optional[np.ndarray] = None) -> np.ndarray:
        """Predicted raw readings (N, 3) for parameters x."""
        bias, mm = self.unpack(x, known_bias)
        f = np.asarray(true_values, dtype=np.float64).reshape(-1, 3)
        return bias + f @ (np.eye(3) + mm).T

    def expand_covariance(self, covariance: np.ndarray) -> np.ndarray:
        """Embed a free-parameter covariance into the full reported layout.

        Parameters fixed by common axis mode get zero rows and columns.
        """
        names = self.names
        full = self.full_names
        positions = [full.index(name) for name in names]
        out = np.zeros((len(full), len(full)))
        out[np.ix_(positions, positions)] = covariance
        return out


@dataclass
class CalibrationResult:
    """Estimated error model and its fit statistics.

    Attributes:
        bias: Bias b (3,) in SI units.
        mm: Scale factor and cross-coupling matrix M (3x3).
        covariance: Parameter covariance in the full layout (12x12 when the
            bias is estimated, 9x9 otherwise), or None.
        mse: Mean of squared residual components.
        chi_sq: Σ (r / σ)² over all residual components.
        dof: Degrees of freedom of the fit (residuals - parameters).
    """

    bias: np.ndarray
    mm: np.ndarray
    covariance: Optional[np.ndarray] = None
    mse: float = 0.0
    chi_sq: float = 0.0
    dof: int = 0

    @property
    def parameters(self) -> np.ndarray:
        """[bx, by, bz, sx, sy, sz, mxy, mxz, myx, myz, mzx, mzy]."""
        return np.concatenate((self.bias, mm_to_parameters(self.mm)))

    @property
    def chi_sq_probability(self) -> Optional[float]:
        """Probability of a χ² at least this large if the model is right."""
        if self.dof <= 0:
            return None
        return float(stats.chi2.sf(self.chi_sq, self.dof))

    def without_statistics(self) -> "CalibrationResult":
        """Same parameters with zeroed statistics and no covariance."""
        return CalibrationResult(bias=self.bias.copy(), mm=self.mm.copy())


def check_measured_quantity(measurements: Sequence, reference_model) -> None:
    """Ensure every reading measures the quantity the reference model predicts.

    Raises:
        ValueError: If a reading is, e.g., an angular speed while the model
            predicts specific force.
    """
    unit = getattr(reference_model, "unit", None)
    if unit is None:
        return
    expected = si_unit(unit)
    for i, m in enumerate(measurements):
        if si_unit(m.reading.unit) is not expected:
            raise ValueError(
                f"measurement {i} reads {m.reading.unit.name} but "
                f"{type(reference_model).__name__} predicts {expected.name}"
            )


def measurement_arrays(measurements: Sequence, reference_model) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Stack (measured, true, std) arrays (N, 3) from FrameBodyMeasurements."""
    check_measured_quantity(measurements, reference_model)
    measured = np.array([m.values for m in measurements], dtype=np.float64).reshape(-1, 3)
    true_values = reference_model.expected_batch(measurements)
    std = np.array([m.std_values for m in measurements], dtype=np.float64).reshape(-1, 3)
    return measured, true_values, std
