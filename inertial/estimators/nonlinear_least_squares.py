"""
Nonlinear least squares solver using Levenberg-Marquardt.

The nonlinear calibrators fit the sensor error model by minimizing the
weighted residual between raw readings and the model prediction. The
solver here is generic: it takes the model h(x), its Jacobian and the
observations.

Mathematical Formulation:
    Given observations y and measurement model h(x), we seek:
        x̂ = argmin ½‖r(x)‖²_W
    where r(x) = y - h(x) is the residual vector.

    Levenberg-Marquardt update (Marquardt scaling):
        (J'WJ + μ·diag(J'WJ)) Δx = J'W r
    where μ is an adaptive damping parameter updated from the gain ratio
    between the actual and the predicted cost decrease.

Scaling the damping by diag(J'WJ) keeps the iteration invariant to the
units of each parameter, which matters when biases in Tesla (~1e-6) are
estimated alongside dimensionless scale factors.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

# Damping beyond which no descent direction is considered to exist
_MAX_DAMPING = 1e16


@dataclass
class NonlinearLSResult:
    """Result container for nonlinear least squares optimization.

    Attributes:
        x: Estimated parameter vector.
        covariance: Covariance matrix (n × n), or None.
        iterations: Number of iterations performed.
        residuals: Final residuals r = y - h(x̂).
        cost: Final cost value ½‖r‖²_W.
        converged: Whether the solver converged within tolerance.
        chi_sq: Weighted sum of squared residuals r'Wr.
    """

    x: np.ndarray
    covariance: Optional[np.ndarray]
    iterations: int
    residuals: np.ndarray
    cost: float
    converged: bool
    chi_sq: float = 0.0


def levenberg_marquardt(
    h: Callable[[np.ndarray], np.ndarray],
    jacobian: Callable[[np.ndarray], np.ndarray],
    y: np.ndarray,
    x0: np.ndarray,
    weights: Optional[np.ndarray] = None,
    max_iter: int = 100,
    tol: float = 1e-10,
    mu0: float = 1e-3,
    return_covariance: bool = True,
    absolute_weights: bool = False,
) -> NonlinearLSResult:
    """
    Levenberg-Marquardt solver for weighted nonlinear least squares.

    Solves: x̂ = argmin ½‖y - h(x)‖²_W, W = diag(weights)

    LM combines Gauss-Newton (fast near the solution) with gradient descent
    (robust far from it) by adaptively adjusting μ:
        - Small μ: Gauss-Newton behavior (quadratic convergence)
        - Large μ: Gradient descent behavior (global convergence)

    Args:
        h: Measurement model function h: R^n → R^m.
        jacobian: Function returning Jacobian matrix J = ∂h/∂x (m × n).
        y: Observation vector (m,).
        x0: Initial parameter estimate (n,).
        weights: Optional non-negative measurement weights (m,). Use
            1/σᵢ² to weight by measurement standard deviation.
        max_iter: Maximum number of iterations.
        tol: Relative convergence tolerance on ‖Δx‖ / (‖x‖ + tol).
        mu0: Initial damping parameter (default 1e-3).
        return_covariance: If True, compute covariance at final estimate.
        absolute_weights: If True, weights are taken as exact inverse
            variances and the covariance is (J'WJ)⁻¹. Otherwise the
            covariance is rescaled by the residual variance
            r'Wr / (m - n), as for unit-less weights.

    Returns:
        NonlinearLSResult containing estimate, covariance, and diagnostics.

    Raises:
        ValueError: On inconsistent shapes or negative weights.

    Example:
        >>> anchors = np.array([[0, 0], [10, 0], [0, 10], [10, 10]], dtype=float)
        >>> def h(x):
        ...     return np.linalg.norm(anchors - x, axis=1)
        >>> def jac(x):
        ...     diff = x - anchors
        ...     return diff / np.linalg.norm(diff, axis=1, keepdims=True)
        >>> y = h(np.array([3.0, 4.0]))
        >>> result = levenberg_marquardt(h, jac, y, x0=np.array([5.0, 5.0]))
        >>> print(f"Estimate: {result.x}, Converged: {result.converged}")
    """
    y = np.asarray(y, dtype=np.float64)
    x0 = np.asarray(x0, dtype=np.float64)
    if y.ndim != 1:
        raise ValueError(f"y must be 1D array, got shape {y.shape}")
    if x0.ndim != 1:
        raise ValueError(f"x0 must be 1D array, got shape {x0.shape}")

    m = len(y)
    n = len(x0)
    x = x0.copy()

    if weights is None:
        w = np.ones(m)
    else:
        w = np.asarray(weights, dtype=np.float64)
        if w.ndim != 1 or len(w) != m:
            raise ValueError(f"weights must be 1D array of length {m}")
        if np.any(w < 0):
            raise ValueError("weights must be non-negative")

    def evaluate(x_eval):
        hx = np.asarray(h(x_eval), dtype=np.float64)
        if hx.shape != (m,):
            raise ValueError(f"h(x) returned shape {hx.shape}, expected ({m},)")
        r_eval = y - hx
        return r_eval, 0.5 * r_eval @ (w * r_eval)

    mu = mu0
    nu = 2.0
    converged = False
    iteration = 0
    r, cost = evaluate(x)

    for iteration in range(max_iter):
        J = np.asarray(jacobian(x), dtype=np.float64)
        if J.shape != (m, n):
            raise ValueError(f"Jacobian shape {J.shape}, expected ({m}, {n})")

        JtW = J.T * w
        JtWJ = JtW @ J
        JtWr = JtW @ r
        D = np.diag(np.maximum(np.diag(JtWJ), np.finfo(float).tiny))

        step_accepted = False
        delta_x = np.zeros(n)
        while mu <= _MAX_DAMPING:
            JtWJ_damped = JtWJ + mu * D
            try:
                delta_x = np.linalg.solve(JtWJ_damped, JtWr)
            except np.linalg.LinAlgError:
                delta_x = np.linalg.lstsq(JtWJ_damped, JtWr, rcond=None)[0]

            x_new = x + delta_x
            r_new, cost_new = evaluate(x_new)

            # Predicted decrease: ½ Δx'(μDΔx + J'Wr)
            predicted_decrease = 0.5 * delta_x @ (mu * (D @ delta_x) + JtWr)
            actual_decrease = cost - cost_new
            gain_ratio = actual_decrease / predicted_decrease if predicted_decrease > 0 else 0.0

            if gain_ratio > 0 and np.isfinite(cost_new):
                x, r, cost = x_new, r_new, cost_new
                mu = mu * max(1.0 / 3.0, 1.0 - (2.0 * gain_ratio - 1.0) ** 3)
                nu = 2.0
                step_accepted = True
                break
            mu = mu * nu
            nu = 2.0 * nu

        if not step_accepted:
            # No damping yields a decrease: x is a stationary point
            converged = bool(np.all(np.isfinite(x)))
            break

        if np.linalg.norm(delta_x) <= tol * (np.linalg.norm(x) + tol):
            converged = True
            break

    chi_sq = float(r @ (w * r))

    P = None
    if return_covariance:
        J = np.asarray(jacobian(x), dtype=np.float64)
        JtWJ = (J.T * w) @ J
        if absolute_weights:
            sigma2 = 1.0
        elif m > n:
            sigma2 = chi_sq / (m - n)
        else:
            sigma2 = 1.0
        try:
            P = sigma2 * np.linalg.inv(JtWJ)
        except np.linalg.LinAlgError:
            P = sigma2 * np.linalg.pinv(JtWJ)

    return NonlinearLSResult(
        x=x,
        covariance=P,
        iterations=iteration + 1,
        residuals=r,
        cost=float(cost),
        converged=converged,
        chi_sq=chi_sq,
    )
