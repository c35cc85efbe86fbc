"""
Local estimate of the summary statistic covariance and its parameter gradient.

Diagonal variances are fitted with a gamma GLM (log link) of the squared
regression residuals on the centred parameters. Off-diagonal entries keep the
sample correlation of the residuals and are rescaled by the fitted standard
deviations, so

    Sigma_ij = rho_ij * sqrt(Sigma_ii * Sigma_jj)
    dSigma_ij = Sigma_ij * (beta_i + beta_j) / 2

where beta_i are the log-scale GLM slopes.
"""

import logging
import warnings
from dataclasses import dataclass

import numpy as np
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from .errors import DimensionMismatch, RegressionSingular

logger = logging.getLogger(__name__)


@dataclass
class LocalSigma:
    """Estimated local properties of the summary statistic covariance."""
    sigma: np.ndarray  # (n_s, n_s) covariance matrix
    grad: np.ndarray  # (n_s, n_s, n_theta) first derivatives

    @property
    def n_s(self) -> int:
        return self.sigma.shape[0]


def _fit_log_variance(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Gamma GLM with log link; returns coefficients on the log scale."""
    scale = y.mean()
    if not np.isfinite(scale) or scale <= 0:
        raise RegressionSingular("Squared residuals are identically zero; variance is not identifiable")
    # Gamma responses must be strictly positive
    y = np.maximum(y, 1e-10 * scale)
    model = sm.GLM(y, X, family=sm.families.Gamma(link=sm.families.links.Log()))
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ConvergenceWarning)
        result = model.fit()
    for w in caught:
        warnings.warn(f"Local variance GLM: {w.message}", RuntimeWarning, stacklevel=3)
    beta = np.asarray(result.params, dtype=float)
    if not np.all(np.isfinite(beta)):
        raise RegressionSingular("Local variance GLM returned non-finite coefficients")
    return beta


def glm_local_sigma(
    theta_orig: np.ndarray,
    theta: np.ndarray,
    residuals: np.ndarray
) -> LocalSigma:
    """
    Estimate the local covariance of the summary statistics.

    Args:
        theta_orig: Centre parameter vector (used for centring)
        theta: (n_sim, n_theta) perturbed parameters (no bias column)
        residuals: (n_sim, n_s) residuals from quadratic regression

    Returns:
        LocalSigma with the covariance and its gradient
    """
    theta_orig = np.atleast_1d(np.asarray(theta_orig, dtype=float))
    theta = np.atleast_2d(np.asarray(theta, dtype=float))
    residuals = np.asarray(residuals, dtype=float)
    if residuals.ndim == 1:
        residuals = residuals[:, None]
    if theta.shape[0] != residuals.shape[0]:
        raise DimensionMismatch(
            f"theta has {theta.shape[0]} rows but residuals have {residuals.shape[0]}"
        )
    if theta.shape[1] != theta_orig.shape[0]:
        raise DimensionMismatch(
            f"theta has {theta.shape[1]} columns but theta_orig has length {theta_orig.shape[0]}"
        )

    n_sim, n_s = residuals.shape
    n_theta = theta_orig.shape[0]
    if n_sim <= n_theta + 1:
        raise RegressionSingular(f"{n_sim} residuals cannot identify {n_theta + 1} GLM coefficients")

    X = np.column_stack([np.ones(n_sim), theta - theta_orig])

    variances = np.empty(n_s)
    slopes = np.empty((n_s, n_theta))
    for j in range(n_s):
        beta = _fit_log_variance(X, residuals[:, j] ** 2)
        variances[j] = np.exp(beta[0])
        slopes[j] = beta[1:]

    rough = np.atleast_2d(np.cov(residuals, rowvar=False))
    sd = np.sqrt(np.diag(rough))
    with np.errstate(invalid="ignore", divide="ignore"):
        corr = rough / np.outer(sd, sd)
    corr = np.where(np.isfinite(corr), corr, 0.0)
    np.fill_diagonal(corr, 1.0)

    fitted_sd = np.sqrt(variances)
    sigma = corr * np.outer(fitted_sd, fitted_sd)
    sigma = 0.5 * (sigma + sigma.T)

    mean_slopes = 0.5 * (slopes[:, None, :] + slopes[None, :, :])
    grad = sigma[:, :, None] * mean_slopes

    logger.debug("Local variances %s", variances)
    return LocalSigma(sigma=sigma, grad=grad)
