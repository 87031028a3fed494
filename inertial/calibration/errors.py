"""
Exceptions raised by calibrators and interval detectors.

Configuration mistakes (out-of-range factors, wrong-shaped matrices) are
reported with the built-in ``ValueError``. The classes below cover the
conditions specific to stateful calibration objects.
"""


class CalibrationError(Exception):
    """Calibration could not produce a result.

    Raised when the linear system of a calibrator is singular, when a
    nonlinear fit does not converge, or when a robust calibration never
    obtained a candidate solution.
    """


class LockedError(CalibrationError):
    """An instance was modified or re-entered while it is running.

    Raised by every mutator of a detector or calibrator whose ``running``
    flag is set, including calls made from listener callbacks during
    ``process()`` or ``calibrate()``. The instance state is left unchanged.
    """


class NotReadyError(CalibrationError):
    """``calibrate()`` was called before the calibrator had enough input.

    Typically too few measurements, or missing quality scores for a
    quality-driven robust method.
    """
