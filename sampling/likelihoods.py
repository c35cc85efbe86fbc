"""
Objective providers for the samplers.

Every provider maps a parameter vector to an ObjGradHess triple (negative
log-density, gradient, Hessian), computing the derivatives only when asked.

Supports:
- Analytic objectives from user functions (derivatives by autodiff if missing)
- Local synthetic likelihood estimated from simulations around theta
- Local synthetic posterior (local likelihood combined with a prior)

The local likelihood assumes Gaussian summary statistics, s ~ N(mu(theta), Sigma(theta)),
with mu and Sigma estimated by local regression (see the estimation package).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

import numpy as np
from scipy import linalg, stats

from estimation.covariance import LocalSigma, glm_local_sigma
from estimation.errors import DimensionMismatch, NonPositiveDefinite, RegressionSingular
from estimation.perturb import DEFAULT_MAX_RETRIES, perturb
from estimation.regression import LocalMean, get_residuals, n_quadratic_terms, quadratic_local_mu
from estimation.regularize import Regularizer
from estimation.simulate import clean_batch, identity, simulate_n_s

from .autodiff import gradient_of, hessian_of
from .priors import Prior

logger = logging.getLogger(__name__)


@dataclass
class ObjGradHess:
    """Objective with optional gradient and Hessian (negative-log convention)."""
    objective: float
    gradient: Optional[np.ndarray] = None
    hessian: Optional[np.ndarray] = None

    @property
    def has_gradient(self) -> bool:
        return self.gradient is not None

    @property
    def has_hessian(self) -> bool:
        return self.hessian is not None


class Objective(ABC):
    """Base class for objective providers."""

    @abstractmethod
    def __call__(
        self,
        theta: np.ndarray,
        gradient: bool = False,
        hessian: bool = False
    ) -> ObjGradHess:
        """
        Evaluate the objective at theta.

        Args:
            theta: Parameter vector
            gradient: Whether the gradient is needed
            hessian: Whether the Hessian is needed

        Returns:
            ObjGradHess; fields not requested may be None
        """
        pass


class AnalyticObjective(Objective):
    """
    Objective from explicit functions, e.g. the negative log-density of a
    known distribution. Missing derivatives are obtained with jax, in which
    case the objective must be written with jax.numpy.
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        gradient: Optional[Callable[[np.ndarray], np.ndarray]] = None,
        hessian: Optional[Callable[[np.ndarray], np.ndarray]] = None
    ):
        self.objective = objective
        self._gradient = gradient
        self._hessian = hessian

    def gradient(self, theta: np.ndarray) -> np.ndarray:
        if self._gradient is None:
            self._gradient = gradient_of(self.objective)
        return np.asarray(self._gradient(theta), dtype=float)

    def hessian(self, theta: np.ndarray) -> np.ndarray:
        if self._hessian is None:
            self._hessian = hessian_of(self.objective)
        return np.atleast_2d(np.asarray(self._hessian(theta), dtype=float))

    def __call__(self, theta, gradient=False, hessian=False):
        return ObjGradHess(
            objective=float(self.objective(theta)),
            gradient=self.gradient(theta) if gradient else None,
            hessian=self.hessian(theta) if hessian else None
        )


def likelihood_calc(
    local_means: Sequence[LocalMean],
    local_sigma: LocalSigma,
    s_true: np.ndarray,
    gradient: bool = True,
    hessian: bool = True
) -> ObjGradHess:
    """
    Negative log-likelihood of s_true under N(mu, Sigma) with derivatives.

    With r = mu - s_true and P = Sigma^-1:
        objective = 0.5 r'Pr + 0.5 log|Sigma| + 0.5 n_s log(2 pi)
        gradient_k = J_k'Pr - 0.5 r'P dS_k P r + 0.5 tr(P dS_k)

    The Hessian uses d2mu and first derivatives of Sigma only (second
    derivatives of Sigma are dropped), so it need not be positive-definite.
    """
    s_true = np.atleast_1d(np.asarray(s_true, dtype=float))
    n_s = len(local_means)
    if s_true.shape[0] != n_s or local_sigma.n_s != n_s:
        raise DimensionMismatch(
            f"{n_s} local means, Sigma of size {local_sigma.n_s}, s_true of length {s_true.shape[0]}"
        )

    mu = np.array([m.mu for m in local_means])
    J = np.vstack([m.grad for m in local_means])  # (n_s, n_theta)
    r = mu - s_true

    try:
        factor = linalg.cho_factor(local_sigma.sigma)
    except linalg.LinAlgError as e:
        raise NonPositiveDefinite(f"Estimated summary covariance is not positive-definite: {e}") from e

    logdet = 2.0 * np.sum(np.log(np.diag(factor[0])))
    Pr = linalg.cho_solve(factor, r)
    objective = 0.5 * (r @ Pr + logdet + n_s * np.log(2 * np.pi))

    if not (gradient or hessian):
        return ObjGradHess(objective=float(objective))

    P = linalg.cho_solve(factor, np.eye(n_s))
    dS = local_sigma.grad  # (n_s, n_s, n_theta)
    PdS = np.einsum("ij,jkl->ikl", P, dS)
    trace = np.einsum("iik->k", PdS)
    quad = np.einsum("i,ijk,j->k", Pr, dS, Pr)
    grad = J.T @ Pr - 0.5 * quad + 0.5 * trace

    hess = None
    if hessian:
        d2mu = np.stack([m.hess for m in local_means])  # (n_s, n_theta, n_theta)
        v = np.einsum("ijk,j->ik", dS, Pr)  # dS_k P r for each k
        cross = J.T @ P @ v
        hess = (
            J.T @ P @ J
            + np.einsum("i,ikl->kl", Pr, d2mu)
            - (cross + cross.T)
            + v.T @ P @ v
            - 0.5 * np.einsum("ijk,jil->kl", PdS, PdS)
        )
        hess = 0.5 * (hess + hess.T)

    return ObjGradHess(objective=float(objective), gradient=grad, hessian=hess)


@dataclass
class LocalLikelihood(Objective):
    """
    Local synthetic likelihood.

    At each theta, n_sim parameter vectors are drawn from theta + P, simulated
    and summarised; quadratic regression gives the local mean surface and a
    gamma GLM on the residuals gives the local covariance.

    Attributes:
        simulator: Function theta -> raw output
        s_true: Observed summary statistics
        P: Perturbation distribution (zero-mean scipy.stats frozen distribution)
        n_sim: Simulations per evaluation
        summary: Function raw output -> summary vector
        simulator_kwargs: Passed to the simulator
        summary_kwargs: Passed to the summary function
        valid_params: Predicate for admissible perturbed parameters
        parallel: Simulate on a thread pool
        n_workers: Thread pool size
        outlier_iqr: IQR multiple for outlier removal (None disables)
        sigma_regularizer: Optional regularization of the estimated Sigma
        max_retries: Resampling cap for invalid perturbations
        seed: Seed for the perturbation draws
    """
    simulator: Callable
    s_true: np.ndarray
    P: Any
    n_sim: int
    summary: Callable = identity
    simulator_kwargs: Dict[str, Any] = field(default_factory=dict)
    summary_kwargs: Dict[str, Any] = field(default_factory=dict)
    valid_params: Optional[Callable[[np.ndarray], bool]] = None
    parallel: bool = False
    n_workers: Optional[int] = None
    outlier_iqr: Optional[float] = None
    sigma_regularizer: Optional[Regularizer] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    seed: Optional[int] = None

    def __post_init__(self):
        self.s_true = np.atleast_1d(np.asarray(self.s_true, dtype=float))
        self.rng = np.random.default_rng(self.seed)

    def local_estimates(self, theta: np.ndarray):
        """
        Simulate around theta and estimate the local mean and covariance.

        Returns:
            (local_means, local_sigma, s_true) with s_true restricted to the
            summary columns that were kept
        """
        theta = np.atleast_1d(np.asarray(theta, dtype=float))
        n_terms = n_quadratic_terms(theta.shape[0])
        if self.n_sim < n_terms:
            raise RegressionSingular(
                f"n_sim={self.n_sim} is below the {n_terms} simulations needed for a "
                f"quadratic fit in {theta.shape[0]} parameters"
            )
        theta_pert = perturb(
            theta,
            self.P,
            n=self.n_sim,
            valid=self.valid_params,
            max_retries=self.max_retries,
            rng=self.rng
        )
        s = simulate_n_s(
            theta_pert,
            simulator=self.simulator,
            summary=self.summary,
            simulator_kwargs=self.simulator_kwargs,
            summary_kwargs=self.summary_kwargs,
            parallel=self.parallel,
            n_workers=self.n_workers
        )
        batch = clean_batch(theta_pert, s, self.s_true, iqr_multiple=self.outlier_iqr)
        if batch.n_s == 0:
            raise RegressionSingular("All summary statistics have zero variance")

        local_means = quadratic_local_mu(theta, batch.theta, batch.s)
        local_sigma = glm_local_sigma(theta, batch.theta, get_residuals(local_means))
        if self.sigma_regularizer is not None:
            local_sigma = LocalSigma(sigma=self.sigma_regularizer(local_sigma.sigma), grad=local_sigma.grad)
        return local_means, local_sigma, batch.s_true

    def __call__(self, theta, gradient=False, hessian=False):
        local_means, local_sigma, s_true = self.local_estimates(theta)
        return likelihood_calc(local_means, local_sigma, s_true, gradient=gradient, hessian=hessian)


@dataclass
class LocalPosterior(LocalLikelihood):
    """
    Local synthetic posterior: local likelihood plus a prior.

    Perturbations default to the prior support. Outside the support the
    objective is +inf and no simulations are run.
    """
    prior: Optional[Prior] = None

    def __post_init__(self):
        if self.prior is None:
            raise ValueError("LocalPosterior requires a prior")
        if self.valid_params is None:
            self.valid_params = self.prior.insupport
        super().__post_init__()

    def __call__(self, theta, gradient=False, hessian=False):
        theta = np.atleast_1d(np.asarray(theta, dtype=float))
        if not self.prior.insupport(theta):
            return ObjGradHess(objective=np.inf)
        result = super().__call__(theta, gradient=gradient, hessian=hessian)
        result.objective -= self.prior.logpdf(theta)
        if result.gradient is not None:
            result.gradient = result.gradient - self.prior.gradlogpdf(theta)
        if result.hessian is not None:
            result.hessian = result.hessian - self.prior.hesslogpdf(theta)
        return result


def synthetic_likelihood(
    theta: np.ndarray,
    simulator: Callable,
    s_true: np.ndarray,
    n_sim: int,
    summary: Callable = identity,
    simulator_kwargs: Optional[Dict[str, Any]] = None,
    summary_kwargs: Optional[Dict[str, Any]] = None,
    parallel: bool = False
) -> float:
    """
    Synthetic log-likelihood of s_true at a fixed theta (Wood, 2010).

    Summaries simulated at theta are assumed multivariate Gaussian with their
    empirical mean and covariance.
    """
    s = simulate_n_s(
        theta,
        simulator=simulator,
        summary=summary,
        n_sim=n_sim,
        simulator_kwargs=simulator_kwargs,
        summary_kwargs=summary_kwargs,
        parallel=parallel
    )
    s_true = np.atleast_1d(np.asarray(s_true, dtype=float))
    if s_true.shape[0] != s.shape[1]:
        raise DimensionMismatch(f"s_true has length {s_true.shape[0]} but summaries have {s.shape[1]}")
    mean = s.mean(axis=0)
    cov = np.atleast_2d(np.cov(s, rowvar=False))
    try:
        return float(stats.multivariate_normal(mean=mean, cov=cov).logpdf(s_true))
    except (np.linalg.LinAlgError, ValueError) as e:
        raise NonPositiveDefinite(f"Empirical summary covariance is singular: {e}") from e
