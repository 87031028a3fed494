"""
Correction of raw triad readings with an estimated error model.

Once the bias b and scale/cross-coupling matrix M are known, the true value
of any later reading is recovered by inverting the error model:

    f_true = (I + M)⁻¹ · (f_meas - b)
"""

from typing import Optional, Union

import numpy as np

from inertial.calibration.parameters import CalibrationResult, as_bias, as_matrix
from inertial.sensors.triad import Triad
from inertial.sensors.units import si_unit


class TriadFixer:
    """Remove bias, scale and cross-coupling errors from sensor readings.

    Args:
        bias: Bias b in SI units, (3,) array or Triad. Defaults to zero.
        mm: Scale factor and cross-coupling matrix M, 3x3 or 9 values.
            Defaults to zero.

    Raises:
        ValueError: If I + M is singular.

    Example:
        >>> fixer = TriadFixer.from_result(calibrator.result)
        >>> fixer.fix(raw_accel)  # (N, 3) m/s²
    """

    def __init__(self, bias=None, mm=None):
        self.set_model(np.zeros(3) if bias is None else bias, np.zeros((3, 3)) if mm is None else mm)

    @classmethod
    def from_result(cls, result: CalibrationResult) -> "TriadFixer":
        return cls(result.bias, result.mm)

    def set_model(self, bias, mm) -> None:
        """Replace the error model; the inverse of I + M is recomputed."""
        bias = as_bias(bias)
        mm = as_matrix(mm)
        t = np.eye(3) + mm
        if abs(np.linalg.det(t)) < 1e-12:
            raise ValueError("I + M is singular; readings cannot be corrected")
        self._bias = bias
        self._mm = mm
        self._inverse = np.linalg.inv(t)

    @property
    def bias(self) -> np.ndarray:
        return self._bias.copy()

    @property
    def mm(self) -> np.ndarray:
        return self._mm.copy()

    def fix(self, measured: Union[Triad, np.ndarray], out: Optional[Triad] = None) -> Union[Triad, np.ndarray]:
        """
        Correct one reading or a batch of readings.

        Args:
            measured: A Triad, a (3,) array or an (N, 3) array. Arrays are
                assumed to be in SI units.
            out: Optional Triad receiving the result when ``measured`` is a
                Triad; otherwise a new triad of the same type is returned.

        Returns:
            Corrected value with the same type (and, for triads, unit) as
            ``measured``.
        """
        if isinstance(measured, Triad):
            unit = measured.unit
            fixed = type(measured).from_array(
                self._inverse @ (measured.to_si() - self._bias), si_unit(unit)
            ).to_unit(unit)
            if out is None:
                return fixed
            out.copy_from(fixed)
            return out
        u = np.asarray(measured, dtype=np.float64)
        if u.ndim == 1 and u.shape == (3,):
            return self._inverse @ (u - self._bias)
        if u.ndim == 2 and u.shape[1] == 3:
            return (u - self._bias) @ self._inverse.T
        raise ValueError(f"measured must have shape (3,) or (N, 3), got {u.shape}")
