"""
Repair of estimated symmetric matrices into valid covariances/Hessians.

Pipeline:
1. Soft-abs eigenvalue transform, lambda -> max(|lambda|, 1 / alpha)
2. Shrink towards a reference matrix so variances lie in
   [var_low, var_high] times the reference variances (optional)
3. Split into standard deviations and correlations
4. Shrink off-diagonal correlations until the condition number is acceptable
5. Zero correlations with magnitude below threshold (repeat 4 if needed)
6. Rebuild the matrix
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import DimensionMismatch, NonPositiveDefinite

logger = logging.getLogger(__name__)

MAX_CORRELATION_PASSES = 50
CONDITION_RTOL = 1e-8


def soft_abs(eigenvalues: np.ndarray, alpha: float) -> np.ndarray:
    """
    Absolute value floored at 1 / alpha.

    Tends to |lambda| as alpha grows. Values already at or above the floor
    are returned unchanged, so the transform is a projection.
    """
    lam = np.asarray(eigenvalues, dtype=float)
    return np.maximum(np.abs(lam), 1.0 / alpha)


def soft_abs_matrix(matrix: np.ndarray, alpha: float) -> np.ndarray:
    """Apply soft_abs to the eigenvalues of a symmetric matrix."""
    lam, vecs = np.linalg.eigh(matrix)
    out = (vecs * soft_abs(lam, alpha)) @ vecs.T
    return 0.5 * (out + out.T)


def variance_shrink_weight(
    variances: np.ndarray,
    reference: np.ndarray,
    low: float,
    high: float
) -> float:
    """
    Largest weight w in [0, 1] such that w * v + (1 - w) * r lies within
    [low * r, high * r] for every dimension.
    """
    w = 1.0
    for v, r in zip(variances, reference):
        if v > high * r:
            w = min(w, (high - 1.0) * r / (v - r))
        elif v < low * r:
            w = min(w, (1.0 - low) * r / (r - v))
    return max(w, 0.0)


def cov_to_cor(matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split a covariance into (standard deviations, correlation matrix)."""
    sd = np.sqrt(np.diag(matrix))
    corr = matrix / np.outer(sd, sd)
    np.fill_diagonal(corr, 1.0)
    return sd, 0.5 * (corr + corr.T)


def cor_to_cov(sd: np.ndarray, corr: np.ndarray) -> np.ndarray:
    """Rebuild a covariance from standard deviations and correlations."""
    return corr * np.outer(sd, sd)


def correlation_shrink_factor(corr: np.ndarray, max_condition: float) -> float:
    """
    Divisor d >= 1 for the off-diagonals such that cond(I + (C - I) / d)
    does not exceed max_condition.
    """
    lam = np.linalg.eigvalsh(corr)
    lam_min, lam_max = lam[0], lam[-1]
    if lam_min > 0 and lam_max / lam_min <= max_condition * (1.0 + CONDITION_RTOL):
        return 1.0
    d = ((lam_max - 1.0) - max_condition * (lam_min - 1.0)) / (max_condition - 1.0)
    return max(d, 1.0)


@dataclass
class Regularizer:
    """
    Configuration of the regularization pipeline.

    Attributes:
        alpha: Soft-abs sharpness; eigenvalues end up at least 1 / alpha
        reference: Optional matrix whose variances bound the result
        var_low: Lower bound on variances as a multiple of the reference
        var_high: Upper bound on variances as a multiple of the reference
        max_condition: Maximum condition number of the correlation matrix
        threshold: Correlations with smaller magnitude are set to zero
    """
    alpha: float = 1e6
    reference: Optional[np.ndarray] = None
    var_low: float = 0.1
    var_high: float = 10.0
    max_condition: float = 1e4
    threshold: float = 1e-3

    def __post_init__(self):
        if self.alpha <= 0:
            raise ValueError(f"alpha must be positive, got {self.alpha}")
        if not self.var_low <= 1.0 <= self.var_high:
            raise ValueError("var_low <= 1 <= var_high is required")
        if self.max_condition <= 1.0:
            raise ValueError(f"max_condition must exceed 1, got {self.max_condition}")
        if self.reference is not None:
            self.reference = np.atleast_2d(np.asarray(self.reference, dtype=float))

    def __call__(self, matrix: np.ndarray) -> np.ndarray:
        return regularize(matrix, self)


def regularize(matrix: np.ndarray, config: Optional[Regularizer] = None) -> np.ndarray:
    """
    Regularize a symmetric matrix into a well conditioned positive-definite one.

    Args:
        matrix: Symmetric (n, n) matrix, possibly indefinite
        config: Regularizer settings (defaults if None)

    Returns:
        Positive-definite (n, n) matrix

    Raises:
        NonPositiveDefinite: If the result fails the final eigenvalue check
    """
    config = config if config is not None else Regularizer()
    matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
    n = matrix.shape[0]
    if matrix.shape != (n, n):
        raise DimensionMismatch(f"Expected a square matrix, got shape {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise NonPositiveDefinite("Matrix contains non-finite entries")

    out = soft_abs_matrix(0.5 * (matrix + matrix.T), config.alpha)

    if config.reference is not None:
        ref = config.reference
        if ref.shape != (n, n):
            raise DimensionMismatch(f"Reference has shape {ref.shape}, expected {(n, n)}")
        w = variance_shrink_weight(np.diag(out), np.diag(ref), config.var_low, config.var_high)
        if w < 1.0:
            logger.debug("Shrinking towards reference with weight %.4g", w)
            out = w * out + (1.0 - w) * ref

    sd, corr = cov_to_cor(out)

    for n_pass in range(MAX_CORRELATION_PASSES):
        d = correlation_shrink_factor(corr, config.max_condition)
        if d > 1.0:
            logger.debug("Shrinking correlations by factor %.4g", d)
            off = ~np.eye(n, dtype=bool)
            corr[off] = corr[off] / d
        small = np.abs(corr) < config.threshold
        if not small.any():
            break
        corr[small] = 0.0
        lam = np.linalg.eigvalsh(corr)
        if lam[0] > 0 and lam[-1] / lam[0] <= config.max_condition * (1.0 + CONDITION_RTOL):
            break
    else:
        raise NonPositiveDefinite("Correlation shrinkage did not converge")

    if n_pass > 0:
        warnings.warn(
            f"Correlation shrink and threshold needed {n_pass + 1} passes",
            RuntimeWarning,
            stacklevel=2
        )

    out = cor_to_cov(sd, corr)
    out = 0.5 * (out + out.T)

    if np.linalg.eigvalsh(out)[0] <= 0:
        raise NonPositiveDefinite("Regularized matrix is not positive-definite")
    return out
