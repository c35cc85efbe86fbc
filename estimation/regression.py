"""
Quadratic local regression of summary statistic means.

Each summary statistic is regressed on a quadratic design in the centred
parameters, theta - theta_orig:

    s ~ mu + grad' d + sum_{j<=k} beta_jk d_j d_k

The bias gives the local mean, the linear coefficients the gradient and the
quadratic coefficients the Hessian. The design is built once and shared by all
statistics; the fit is a QR-based least-squares solve.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from scipy import linalg

from .errors import DimensionMismatch, RegressionSingular


@dataclass
class LocalMean:
    """Local properties of one summary statistic mean."""
    mu: float  # Mean of the summary statistic
    grad: np.ndarray  # (n_theta,) first derivative w.r.t. parameters
    hess: np.ndarray  # (n_theta, n_theta) second derivative w.r.t. parameters
    residuals: np.ndarray  # (n_sim,) fitted minus observed


def pairwise_combinations(n: int) -> List[Tuple[int, int]]:
    """All index pairs (j, k) with j <= k over range(n), matched pairs included."""
    return [(j, k) for j in range(n) for k in range(j, n)]


def n_quadratic_terms(n_theta: int) -> int:
    """Number of design columns: bias, linear and pairwise terms."""
    return 1 + n_theta + n_theta * (n_theta + 1) // 2


def quadratic_design_matrix(X: np.ndarray) -> Tuple[np.ndarray, List[Tuple[int, int]]]:
    """
    Design matrix for quadratic regression.

    Bias column first, then the columns of X, then all pairwise products.

    Returns:
        (design, pairs) where pairs[i] gives the column indices of X
        multiplied to form quadratic column i
    """
    X = np.atleast_2d(X)
    pairs = pairwise_combinations(X.shape[1])
    quadratic = np.column_stack([X[:, j] * X[:, k] for j, k in pairs])
    design = np.column_stack([np.ones(X.shape[0]), X, quadratic])
    return design, pairs


def linear_regression(X: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Least-squares regression. X should already contain a bias column.

    y may be a matrix, in which case each column is fitted against the same
    factorization of X.

    Returns:
        (beta, y_hat)

    Raises:
        RegressionSingular: If X does not have full column rank
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    if X.shape[0] != y.shape[0]:
        raise DimensionMismatch(f"X has {X.shape[0]} rows but y has {y.shape[0]}")
    if X.shape[0] < X.shape[1]:
        raise RegressionSingular(
            f"{X.shape[0]} observations cannot identify {X.shape[1]} coefficients"
        )

    q, r = linalg.qr(X, mode="economic")
    diag = np.abs(np.diag(r))
    tol = diag.max() * max(X.shape) * np.finfo(float).eps if diag.size else 0.0
    if diag.size == 0 or diag.min() <= tol:
        raise RegressionSingular(
            f"Design matrix ({X.shape[0]} x {X.shape[1]}) is rank deficient; "
            "use more simulations or fewer parameters"
        )

    beta = linalg.solve_triangular(r, q.T @ y)
    return beta, X @ beta


def quadratic_local_mu(
    theta_orig: np.ndarray,
    theta: np.ndarray,
    s: np.ndarray
) -> List[LocalMean]:
    """
    Local behaviour of the summary statistic means around theta_orig.

    Args:
        theta_orig: Centre parameter vector
        theta: (n_sim, n_theta) perturbed parameters
        s: (n_sim, n_s) corresponding summary statistics

    Returns:
        One LocalMean per summary statistic
    """
    theta_orig = np.atleast_1d(np.asarray(theta_orig, dtype=float))
    theta = np.atleast_2d(np.asarray(theta, dtype=float))
    s = np.asarray(s, dtype=float)
    if s.ndim == 1:
        s = s[:, None]

    if theta.shape[1] != theta_orig.shape[0]:
        raise DimensionMismatch(
            f"theta has {theta.shape[1]} columns but theta_orig has length {theta_orig.shape[0]}"
        )
    if theta.shape[0] != s.shape[0]:
        raise DimensionMismatch(f"theta has {theta.shape[0]} rows but s has {s.shape[0]}")

    n_theta = theta_orig.shape[0]
    design, pairs = quadratic_design_matrix(theta - theta_orig)
    beta, s_hat = linear_regression(design, s)
    residuals = s_hat - s

    rows, cols = map(list, zip(*pairs))
    results = []
    for i in range(s.shape[1]):
        b = beta[:, i]
        # Upper triangle then H + H' doubles the squared terms and mirrors the rest
        hess = np.zeros((n_theta, n_theta))
        hess[rows, cols] = b[1 + n_theta:]
        hess = hess + hess.T
        results.append(LocalMean(
            mu=float(b[0]),
            grad=b[1:1 + n_theta].copy(),
            hess=hess,
            residuals=residuals[:, i].copy()
        ))
    return results


def get_residuals(local_means: Sequence[LocalMean]) -> np.ndarray:
    """Stack residuals into an (n_sim, n_s) matrix."""
    return np.column_stack([m.residuals for m in local_means])
