"""
Consensus-based robust estimation (RANSAC family).

Robust estimators fit a model to data containing gross outliers by
repeatedly solving the model from small random subsets, scoring every
sample against each candidate and keeping the candidate with the best
consensus. The model itself is never known to the estimator: it is
described by a ``ConsensusProblem`` holding the callables that compute
candidates from a subset, score a sample against a candidate and
(optionally) refine the winner once its inliers are known.

Strategies:
    - RANSAC: maximize the number of samples with residual below a threshold
    - MSAC: minimize the truncated quadratic cost Σ min(r², t²)
    - LMedS: minimize the median residual; inlier bound derived from it
    - PROSAC: RANSAC scoring with quality-ordered progressive sampling
    - PROMedS: LMedS scoring with quality-ordered progressive sampling

The number of iterations adapts to the best inlier ratio ε found so far:
    k = log(1 - confidence) / log(1 - ε^s)
where s is the subset size, capped by ``max_iterations``.

References:
    Fischler & Bolles (1981), RANSAC
    Torr & Zisserman (2000), MLESAC/MSAC
    Rousseeuw (1984), Least Median of Squares
    Chum & Matas (2005), PROSAC
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

DEFAULT_CONFIDENCE = 0.99
DEFAULT_MAX_ITERATIONS = 5000
DEFAULT_PROGRESS_DELTA = 0.05
# Residual bound used by LMedS-family estimators to stop early
DEFAULT_STOP_THRESHOLD = 1e-4
# Multiplier applied to the robust standard deviation to bound inliers
DEFAULT_INLIER_FACTOR = 1.5
# Consistency constant making the median absolute residual a std estimate
_MAD_SCALE = 1.4826


class RobustEstimatorMethod(Enum):
    """Consensus strategy used by a robust estimator."""

    RANSAC = "ransac"
    LMEDS = "lmeds"
    MSAC = "msac"
    PROSAC = "prosac"
    PROMEDS = "promeds"


class RobustEstimatorError(Exception):
    """Raised when no subset produced a usable candidate."""


@dataclass
class InliersData:
    """Inlier classification of every sample against the selected candidate.

    Attributes:
        inliers: Boolean mask (N,), True for samples used in refinement.
        residuals: Residual of every sample against the candidate (N,).
        num_inliers: Number of True entries in ``inliers``.
        inlier_threshold: Residual bound used to classify inliers.
    """

    inliers: np.ndarray
    residuals: np.ndarray
    num_inliers: int
    inlier_threshold: float

    @classmethod
    def from_residuals(cls, residuals: np.ndarray, threshold: float) -> "InliersData":
        residuals = np.asarray(residuals, dtype=np.float64)
        inliers = residuals <= threshold
        return cls(
            inliers=inliers,
            residuals=residuals,
            num_inliers=int(np.count_nonzero(inliers)),
            inlier_threshold=float(threshold),
        )


@dataclass
class ConsensusProblem:
    """Model-specific callables consumed by a robust estimator.

    Attributes:
        total_samples: Number of samples N.
        subset_size: Number of samples needed to compute a candidate.
        preliminary_solutions: Callable mapping a list of sample indices to
            a (possibly empty) list of candidate solutions. Degenerate
            subsets must yield an empty list rather than raise.
        residual: Callable (candidate, index) -> non-negative residual.
        refine: Optional callable (candidate, InliersData) -> refined
            solution, invoked once with the best candidate.
        quality_scores: Optional per-sample quality (N,), higher is better.
    """

    total_samples: int
    subset_size: int
    preliminary_solutions: Callable[[List[int]], List[Any]]
    residual: Callable[[Any, int], float]
    refine: Optional[Callable[[Any, InliersData], Any]] = None
    quality_scores: Optional[np.ndarray] = None


@dataclass
class RobustEstimatorResult:
    """Outcome of a robust estimation.

    Attributes:
        solution: Refined solution, or the best candidate if no refine
            callable was given.
        preliminary_solution: Best candidate found by the consensus loop.
        inliers_data: Inlier classification against the best candidate.
        iterations: Number of subsets drawn.
    """

    solution: Any
    preliminary_solution: Any
    inliers_data: InliersData
    iterations: int


class UniformSubsetSampler:
    """Draws subsets uniformly at random without replacement."""

    def __init__(self, rng: np.random.Generator, total_samples: int, subset_size: int):
        self.rng = rng
        self.total_samples = total_samples
        self.subset_size = subset_size

    def draw(self) -> List[int]:
        return sorted(self.rng.choice(self.total_samples, self.subset_size, replace=False).tolist())


class ProgressiveSubsetSampler:
    """PROSAC sampler: subsets drawn from a growing pool of best-scored samples.

    Samples are ranked by quality score. Early subsets only use the top
    ranked samples, and the pool grows on the schedule T'_n of Chum & Matas
    so that after ``max_iterations`` draws the sampler degenerates to
    uniform sampling over all samples.
    """

    def __init__(
        self,
        rng: np.random.Generator,
        quality_scores: np.ndarray,
        subset_size: int,
        max_iterations: int,
    ):
        self.rng = rng
        self.subset_size = subset_size
        self.total_samples = len(quality_scores)
        # Stable sort keeps the input order among equal scores
        self.order = np.argsort(-np.asarray(quality_scores, dtype=np.float64), kind="stable")

        s = subset_size
        N = self.total_samples
        self.pool_size = s
        t_n = float(max_iterations)
        for i in range(s):
            t_n *= (s - i) / (N - i)
        self._t_n = t_n
        self._t_n_prime = 1
        self._drawn = 0

    def draw(self) -> List[int]:
        self._drawn += 1
        s = self.subset_size
        if self._drawn > self._t_n_prime and self.pool_size < self.total_samples:
            t_next = self._t_n * (self.pool_size + 1) / (self.pool_size + 1 - s)
            self._t_n_prime += int(np.ceil(t_next - self._t_n))
            self._t_n = t_next
            self.pool_size += 1

        n = self.pool_size
        if self._t_n_prime < self._drawn:
            ranks = self.rng.choice(n, s, replace=False)
        else:
            # s - 1 from the first n - 1 ranks plus the n-th ranked sample
            ranks = np.append(self.rng.choice(n - 1, s - 1, replace=False), n - 1)
        return sorted(self.order[ranks].tolist())


class RobustEstimator:
    """Base consensus loop shared by all strategies.

    Subclasses define how a residual vector is scored (lower is better),
    how inliers are bounded for the winning candidate, and optionally how
    subsets are drawn.

    Args:
        confidence: Probability in (0, 1] that at least one outlier-free
            subset is drawn.
        max_iterations: Upper bound on the number of subsets drawn (≥ 1).
        progress_delta: Minimum progress increment in [0, 1] between two
            progress notifications.
        rng: Random generator or seed. None draws fresh OS entropy.
        on_iteration: Optional callback (estimator, iteration).
        on_progress: Optional callback (estimator, progress in [0, 1]).
    """

    method: RobustEstimatorMethod
    requires_quality_scores = False

    def __init__(
        self,
        confidence: float = DEFAULT_CONFIDENCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        progress_delta: float = DEFAULT_PROGRESS_DELTA,
        rng=None,
        on_iteration: Optional[Callable[["RobustEstimator", int], None]] = None,
        on_progress: Optional[Callable[["RobustEstimator", float], None]] = None,
    ):
        self.confidence = confidence
        self.max_iterations = max_iterations
        self.progress_delta = progress_delta
        self.rng = rng
        self.on_iteration = on_iteration
        self.on_progress = on_progress

    @property
    def confidence(self) -> float:
        return self._confidence

    @confidence.setter
    def confidence(self, value: float) -> None:
        if not 0.0 < value <= 1.0:
            raise ValueError(f"confidence must be in (0, 1], got {value}")
        self._confidence = float(value)

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        if int(value) != value or value < 1:
            raise ValueError(f"max_iterations must be an integer ≥ 1, got {value}")
        self._max_iterations = int(value)

    @property
    def progress_delta(self) -> float:
        return self._progress_delta

    @progress_delta.setter
    def progress_delta(self, value: float) -> None:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"progress_delta must be in [0, 1], got {value}")
        self._progress_delta = float(value)

    @property
    def rng(self) -> np.random.Generator:
        return self._rng

    @rng.setter
    def rng(self, value) -> None:
        self._rng = value if isinstance(value, np.random.Generator) else np.random.default_rng(value)

    # ------------------------------------------------------------------
    # Strategy hooks
    # ------------------------------------------------------------------

    def _score(self, residuals: np.ndarray) -> float:
        """Cost of a candidate given its residuals; lower is better."""
        raise NotImplementedError

    def _inlier_threshold(self, residuals: np.ndarray, subset_size: int) -> float:
        """Residual bound classifying inliers of a candidate."""
        raise NotImplementedError

    def _stop_early(self, best_residuals: np.ndarray) -> bool:
        return False

    def _make_sampler(self, problem: ConsensusProblem):
        return UniformSubsetSampler(self.rng, problem.total_samples, problem.subset_size)

    # ------------------------------------------------------------------

    def required_iterations(self, inlier_ratio: float, subset_size: int) -> int:
        """Number of draws needed to hit an all-inlier subset with ``confidence``."""
        if inlier_ratio <= 0.0:
            return self.max_iterations
        p_good = inlier_ratio**subset_size
        if p_good >= 1.0:
            return 1
        if self.confidence >= 1.0:
            return self.max_iterations
        k = np.log(1.0 - self.confidence) / np.log(1.0 - p_good)
        return int(min(self.max_iterations, max(1, np.ceil(k))))

    def _validate(self, problem: ConsensusProblem) -> None:
        if problem.subset_size < 1:
            raise ValueError(f"subset_size must be ≥ 1, got {problem.subset_size}")
        if problem.total_samples < problem.subset_size:
            raise ValueError(
                f"Need at least {problem.subset_size} samples, got {problem.total_samples}"
            )
        if self.requires_quality_scores:
            if problem.quality_scores is None:
                raise ValueError(f"{self.method.name} requires quality scores")
            if len(problem.quality_scores) != problem.total_samples:
                raise ValueError(
                    f"quality_scores must have {problem.total_samples} entries, "
                    f"got {len(problem.quality_scores)}"
                )

    def _residuals(self, problem: ConsensusProblem, candidate) -> np.ndarray:
        residuals = np.array(
            [problem.residual(candidate, i) for i in range(problem.total_samples)],
            dtype=np.float64,
        )
        residuals[~np.isfinite(residuals)] = np.inf
        return residuals

    def estimate(self, problem: ConsensusProblem) -> RobustEstimatorResult:
        """Run the consensus loop on ``problem``.

        Returns:
            RobustEstimatorResult with the (refined) best solution and
            its inliers.

        Raises:
            ValueError: If the problem is inconsistent with the strategy.
            RobustEstimatorError: If no subset yielded a candidate.
        """
        self._validate(problem)
        sampler = self._make_sampler(problem)
        s = problem.subset_size
        N = problem.total_samples

        best_candidate = None
        best_residuals = None
        best_score = np.inf
        budget = self.max_iterations
        iteration = 0
        last_progress = 0.0

        while iteration < budget:
            subset = sampler.draw()
            iteration += 1
            if self.on_iteration is not None:
                self.on_iteration(self, iteration)

            for candidate in problem.preliminary_solutions(subset):
                residuals = self._residuals(problem, candidate)
                score = self._score(residuals)
                if best_candidate is None or score < best_score:
                    best_candidate = candidate
                    best_residuals = residuals
                    best_score = score
                    threshold = self._inlier_threshold(residuals, s)
                    ratio = np.count_nonzero(residuals <= threshold) / N
                    budget = self.required_iterations(ratio, s)

            progress = min(1.0, iteration / budget)
            if self.on_progress is not None and progress - last_progress >= self.progress_delta:
                last_progress = progress
                self.on_progress(self, progress)

            if best_candidate is not None and self._stop_early(best_residuals):
                break

        if best_candidate is None:
            raise RobustEstimatorError(
                f"{self.method.name} found no valid candidate after {iteration} iterations"
            )

        inliers_data = InliersData.from_residuals(
            best_residuals, self._inlier_threshold(best_residuals, s)
        )
        solution = best_candidate
        if problem.refine is not None:
            solution = problem.refine(best_candidate, inliers_data)

        return RobustEstimatorResult(
            solution=solution,
            preliminary_solution=best_candidate,
            inliers_data=inliers_data,
            iterations=iteration,
        )


class RANSACRobustEstimator(RobustEstimator):
    """RANSAC: keep the candidate with most residuals ≤ threshold.

    Ties on the inlier count are broken by the smaller sum of inlier
    residuals.
    """

    method = RobustEstimatorMethod.RANSAC

    def __init__(self, threshold: float, **kwargs):
        super().__init__(**kwargs)
        self.threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        if not value > 0.0:
            raise ValueError(f"threshold must be positive, got {value}")
        self._threshold = float(value)

    def _score(self, residuals: np.ndarray) -> float:
        inliers = residuals <= self._threshold
        count = np.count_nonzero(inliers)
        if not count:
            return 0.0
        # Mean inlier residual scaled into [0, 0.5] so it only breaks ties
        tie_break = 0.5 * np.mean(residuals[inliers]) / self._threshold
        return -float(count) + float(tie_break)

    def _inlier_threshold(self, residuals: np.ndarray, subset_size: int) -> float:
        return self._threshold


class MSACRobustEstimator(RANSACRobustEstimator):
    """MSAC: minimize Σ min(r², t²), penalizing inliers by their residual."""

    method = RobustEstimatorMethod.MSAC

    def _score(self, residuals: np.ndarray) -> float:
        t2 = self._threshold**2
        return float(np.sum(np.minimum(residuals**2, t2)))


class LMedSRobustEstimator(RobustEstimator):
    """Least Median of Squares: minimize the median residual.

    Needs no a priori threshold. The inlier bound of the winning candidate
    is derived from its median residual through the robust standard
    deviation estimate of Rousseeuw & Leroy:

        σ̂ = 1.4826 · (1 + 5 / (N - s)) · √median(r²)
        t = max(inlier_factor · σ̂, stop_threshold)

    Args:
        stop_threshold: Median residual below which the search stops early.
        inlier_factor: Multiplier on σ̂ bounding inliers.
    """

    method = RobustEstimatorMethod.LMEDS

    def __init__(
        self,
        stop_threshold: float = DEFAULT_STOP_THRESHOLD,
        inlier_factor: float = DEFAULT_INLIER_FACTOR,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.stop_threshold = stop_threshold
        self.inlier_factor = inlier_factor

    @property
    def stop_threshold(self) -> float:
        return self._stop_threshold

    @stop_threshold.setter
    def stop_threshold(self, value: float) -> None:
        if not value >= 0.0:
            raise ValueError(f"stop_threshold must be non-negative, got {value}")
        self._stop_threshold = float(value)

    @property
    def inlier_factor(self) -> float:
        return self._inlier_factor

    @inlier_factor.setter
    def inlier_factor(self, value: float) -> None:
        if not value > 0.0:
            raise ValueError(f"inlier_factor must be positive, got {value}")
        self._inlier_factor = float(value)

    def _score(self, residuals: np.ndarray) -> float:
        return float(np.median(residuals))

    def _inlier_threshold(self, residuals: np.ndarray, subset_size: int) -> float:
        n = len(residuals)
        correction = 1.0 + 5.0 / (n - subset_size) if n > subset_size else 1.0
        sigma = _MAD_SCALE * correction * np.sqrt(np.median(residuals**2))
        return float(max(self._inlier_factor * sigma, self._stop_threshold))

    def _stop_early(self, best_residuals: np.ndarray) -> bool:
        return self._score(best_residuals) <= self._stop_threshold


class PROSACRobustEstimator(RANSACRobustEstimator):
    """PROSAC: RANSAC scoring with subsets drawn preferentially from
    samples with the highest quality scores."""

    method = RobustEstimatorMethod.PROSAC
    requires_quality_scores = True

    def _make_sampler(self, problem: ConsensusProblem):
        return ProgressiveSubsetSampler(
            self.rng, problem.quality_scores, problem.subset_size, self.max_iterations
        )


class PROMedSRobustEstimator(LMedSRobustEstimator):
    """PROMedS: LMedS scoring with PROSAC progressive sampling."""

    method = RobustEstimatorMethod.PROMEDS
    requires_quality_scores = True

    def _make_sampler(self, problem: ConsensusProblem):
        return ProgressiveSubsetSampler(
            self.rng, problem.quality_scores, problem.subset_size, self.max_iterations
        )


_ESTIMATORS = {
    RobustEstimatorMethod.RANSAC: RANSACRobustEstimator,
    RobustEstimatorMethod.LMEDS: LMedSRobustEstimator,
    RobustEstimatorMethod.MSAC: MSACRobustEstimator,
    RobustEstimatorMethod.PROSAC: PROSACRobustEstimator,
    RobustEstimatorMethod.PROMEDS: PROMedSRobustEstimator,
}


def create_robust_estimator(
    method: RobustEstimatorMethod = RobustEstimatorMethod.LMEDS,
    threshold: Optional[float] = None,
    stop_threshold: float = DEFAULT_STOP_THRESHOLD,
    **kwargs,
) -> RobustEstimator:
    """
    Create a robust estimator for a consensus method.

    Args:
        method: Consensus strategy.
        threshold: Inlier residual bound, required by RANSAC, MSAC and
            PROSAC.
        stop_threshold: Early-stop median bound for LMedS and PROMedS.
        **kwargs: Common estimator options (confidence, max_iterations,
            progress_delta, rng, callbacks); ``inlier_factor`` for the
            LMedS family.

    Returns:
        Configured RobustEstimator.

    Raises:
        ValueError: If a threshold-based method is requested without a
            threshold.

    Example:
        >>> est = create_robust_estimator(RobustEstimatorMethod.MSAC, threshold=1e-2, rng=0)
    """
    method = RobustEstimatorMethod(method)
    cls = _ESTIMATORS[method]
    if issubclass(cls, RANSACRobustEstimator):
        if threshold is None:
            raise ValueError(f"{method.name} requires an inlier threshold")
        kwargs.pop("inlier_factor", None)
        return cls(threshold, **kwargs)
    return cls(stop_threshold=stop_threshold, **kwargs)


def quality_scores_from_std(std: Sequence[float]) -> np.ndarray:
    """Derive PROSAC quality scores from measurement standard deviations.

    Samples with smaller standard deviation get a higher score (1/σ).
    Zero standard deviations get the highest finite score.
    """
    std = np.asarray(std, dtype=np.float64)
    if std.ndim != 1 or std.size == 0:
        raise ValueError(f"std must be a non-empty 1D array, got shape {std.shape}")
    if np.any(std < 0.0):
        raise ValueError("std must be non-negative")
    positive = std[std > 0.0]
    floor = positive.min() * 0.5 if positive.size else 1.0
    return 1.0 / np.maximum(std, floor)
