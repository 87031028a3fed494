"""Inertial sensor calibration.

This package turns raw accelerometer, gyroscope and magnetometer streams into
estimated sensor error models:
- coords: Navigation frames and rotation conversions
- sensors: Units, triads, calibration measurements and reference models
- estimators: Linear, nonlinear and robust (consensus) estimation
- calibration: Static interval detection and known-frame calibrators
"""

__version__ = "0.1.0"
