"""
Static interval detection and known-frame sensor calibration.

Available components:
    - Noise estimators (sliding window and accumulated)
    - Static/dynamic interval detectors for each sensor type
    - Static interval measurement generator
    - Linear, nonlinear and robust known-frame calibrators
    - TriadFixer to correct readings with an estimated model
"""

from inertial.calibration.errors import CalibrationError, LockedError, NotReadyError
from inertial.calibration.noise import (
    AccumulatedTriadNoiseEstimator,
    NoiseLevelNorm,
    WindowedTriadNoiseEstimator,
)
from inertial.calibration.intervals import (
    AccelerationTriadStaticIntervalDetector,
    AngularSpeedTriadStaticIntervalDetector,
    ErrorReason,
    MagneticFluxDensityTriadStaticIntervalDetector,
    StaticIntervalDetectorListener,
    Status,
    TriadStaticIntervalDetector,
)
from inertial.calibration.generators import (
    StaticIntervalMeasurementsGenerator,
    StaticIntervalMeasurementsGeneratorListener,
    StaticIntervalSample,
)
from inertial.calibration.parameters import CalibrationResult, ParameterLayout
from inertial.calibration.base import (
    CalibratorListener,
    KnownFrameCalibrator,
    RobustCalibratorListener,
)
from inertial.calibration.linear import KnownFrameLinearLeastSquaresCalibrator
from inertial.calibration.nonlinear import KnownFrameNonLinearLeastSquaresCalibrator
from inertial.calibration.robust import (
    RobustKnownFrameCalibrator,
    create_accelerometer_calibrator,
    create_gyroscope_calibrator,
    create_magnetometer_calibrator,
    create_robust_calibrator,
)
from inertial.calibration.fixer import TriadFixer

__all__ = [
    # Errors
    "CalibrationError",
    "LockedError",
    "NotReadyError",
    # Noise
    "AccumulatedTriadNoiseEstimator",
    "NoiseLevelNorm",
    "WindowedTriadNoiseEstimator",
    # Interval detection
    "Status",
    "ErrorReason",
    "StaticIntervalDetectorListener",
    "TriadStaticIntervalDetector",
    "AccelerationTriadStaticIntervalDetector",
    "AngularSpeedTriadStaticIntervalDetector",
    "MagneticFluxDensityTriadStaticIntervalDetector",
    # Measurement generation
    "StaticIntervalMeasurementsGenerator",
    "StaticIntervalMeasurementsGeneratorListener",
    "StaticIntervalSample",
    # Calibrators
    "CalibrationResult",
    "ParameterLayout",
    "CalibratorListener",
    "RobustCalibratorListener",
    "KnownFrameCalibrator",
    "KnownFrameLinearLeastSquaresCalibrator",
    "KnownFrameNonLinearLeastSquaresCalibrator",
    "RobustKnownFrameCalibrator",
    "create_robust_calibrator",
    "create_accelerometer_calibrator",
    "create_gyroscope_calibrator",
    "create_magnetometer_calibrator",
    # Correction
    "TriadFixer",
]
