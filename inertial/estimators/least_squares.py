"""
Closed-form linear least squares.

Used by the linear calibrators, whose sensor error model is linear in the
bias and in the scale/cross-coupling terms, so that a calibration candidate
can be obtained without iterating.

Functions:
    - linear_least_squares: ordinary LS through the normal equations
"""

from typing import Optional, Tuple

import numpy as np


def linear_least_squares(
    A: np.ndarray, b: np.ndarray, return_covariance: bool = True
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Ordinary linear least squares estimation.

    Solves: x_hat = argmin ||Ax - b||²
    Solution: x_hat = (A'A)^(-1) A'b

    Args:
        A: Design matrix (m × n), where m ≥ n.
        b: Observation vector (m,).
        return_covariance: If True, compute covariance matrix.

    Returns:
        Tuple of:
            - x_hat: Estimated parameter vector (n,).
            - P: Covariance matrix (n × n), or None if return_covariance is False.

    Raises:
        ValueError: If A and b dimensions don't match or A is rank deficient.

    Example:
        >>> A = np.array([[1, 0], [0, 1], [1, 1], [1, -1]], dtype=float)
        >>> b = np.array([1.0, 2.0, 3.5, -0.5])
        >>> x_hat, P = linear_least_squares(A, b)
    """
    A = np.asarray(A, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if A.ndim != 2 or b.ndim != 1:
        raise ValueError(f"A must be 2D and b must be 1D. Got A: {A.shape}, b: {b.shape}")

    m, n = A.shape
    if m < n:
        raise ValueError(f"Underdetermined system: m={m} < n={n}. Need m ≥ n.")
    if len(b) != m:
        raise ValueError(f"Dimension mismatch: A has {m} rows, b has {len(b)} elements")

    rank = np.linalg.matrix_rank(A)
    if rank < n:
        raise ValueError(
            f"A is rank deficient: rank={rank} < n={n}. System has no unique solution."
        )

    ATA = A.T @ A
    ATb = A.T @ b
    try:
        x_hat = np.linalg.solve(ATA, ATb)
    except np.linalg.LinAlgError as e:
        raise ValueError(f"Failed to solve normal equations: {e}")

    P = None
    if return_covariance:
        residuals = b - A @ x_hat
        # Unbiased residual variance; exact fits fall back to unit variance
        sigma2 = np.sum(residuals**2) / (m - n) if m > n else 1.0
        P = sigma2 * np.linalg.inv(ATA)

    return x_hat, P
