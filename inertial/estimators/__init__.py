"""
Estimation algorithms used by the calibrators.

Available estimators:
    - Linear Least Squares
    - Nonlinear Least Squares (Levenberg-Marquardt)
    - Robust consensus estimation (RANSAC, MSAC, LMedS, PROSAC, PROMedS)
"""

from inertial.estimators.least_squares import linear_least_squares
from inertial.estimators.nonlinear_least_squares import (
    levenberg_marquardt,
    NonlinearLSResult,
)
from inertial.estimators.robust import (
    ConsensusProblem,
    InliersData,
    LMedSRobustEstimator,
    MSACRobustEstimator,
    PROMedSRobustEstimator,
    PROSACRobustEstimator,
    RANSACRobustEstimator,
    RobustEstimator,
    RobustEstimatorError,
    RobustEstimatorMethod,
    RobustEstimatorResult,
    create_robust_estimator,
    quality_scores_from_std,
)

__all__ = [
    # Linear LS
    "linear_least_squares",
    # Nonlinear LS
    "levenberg_marquardt",
    "NonlinearLSResult",
    # Robust estimation
    "ConsensusProblem",
    "InliersData",
    "RobustEstimator",
    "RobustEstimatorError",
    "RobustEstimatorMethod",
    "RobustEstimatorResult",
    "RANSACRobustEstimator",
    "MSACRobustEstimator",
    "LMedSRobustEstimator",
    "PROSACRobustEstimator",
    "PROMedSRobustEstimator",
    "create_robust_estimator",
    "quality_scores_from_std",
]
