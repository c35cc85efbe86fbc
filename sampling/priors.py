"""
Prior distributions over parameter vectors.

A prior exposes the log-density, its gradient and Hessian (by automatic
differentiation unless supplied), a support predicate, sampling and a
covariance accessor. Log-densities are written with jax.numpy.
"""

from typing import Callable, Optional

import jax.numpy as jnp
import numpy as np
from scipy import stats

from .autodiff import gradient_of, hessian_of


class Prior:
    """
    Generic prior built from a jax-compatible log-density.

    Args:
        logpdf: Function theta -> log density (jax.numpy operations only)
        sampler: Function (n, rng) -> (n, dim) array of draws
        support: Predicate theta -> bool (default: finite log density)
        cov: Covariance matrix of the prior
        gradient: Optional gradient of the log density
        hessian: Optional Hessian of the log density
    """

    def __init__(
        self,
        logpdf: Callable,
        sampler: Optional[Callable[[int, np.random.Generator], np.ndarray]] = None,
        support: Optional[Callable[[np.ndarray], bool]] = None,
        cov: Optional[np.ndarray] = None,
        gradient: Optional[Callable] = None,
        hessian: Optional[Callable] = None
    ):
        self._logpdf = logpdf
        self._sampler = sampler
        self._support = support
        self._cov = None if cov is None else np.atleast_2d(np.asarray(cov, dtype=float))
        self._gradient = gradient if gradient is not None else gradient_of(logpdf)
        self._hessian = hessian if hessian is not None else hessian_of(logpdf)

    def logpdf(self, theta: np.ndarray) -> float:
        return float(self._logpdf(jnp.asarray(theta, dtype=jnp.float64)))

    def gradlogpdf(self, theta: np.ndarray) -> np.ndarray:
        return np.asarray(self._gradient(theta), dtype=float)

    def hesslogpdf(self, theta: np.ndarray) -> np.ndarray:
        return np.atleast_2d(np.asarray(self._hessian(theta), dtype=float))

    def insupport(self, theta: np.ndarray) -> bool:
        if self._support is not None:
            return bool(self._support(theta))
        return bool(np.isfinite(self.logpdf(theta)))

    def rvs(self, n: int = 1, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        if self._sampler is None:
            raise NotImplementedError("Prior has no sampler")
        rng = rng if rng is not None else np.random.default_rng()
        return np.atleast_2d(self._sampler(n, rng))

    @property
    def cov(self) -> np.ndarray:
        if self._cov is None:
            raise NotImplementedError("Prior has no covariance")
        return self._cov


class GaussianPrior(Prior):
    """Multivariate normal prior."""

    def __init__(self, mean: np.ndarray, cov: np.ndarray):
        self.mean = np.atleast_1d(np.asarray(mean, dtype=float))
        cov = np.atleast_2d(np.asarray(cov, dtype=float))
        self._dist = stats.multivariate_normal(mean=self.mean, cov=cov)

        mean_j = jnp.asarray(self.mean)
        precision = jnp.asarray(np.linalg.inv(cov))
        _, logdet = np.linalg.slogdet(cov)
        const = -0.5 * (len(self.mean) * np.log(2 * np.pi) + logdet)

        def logpdf(theta):
            r = theta - mean_j
            return const - 0.5 * r @ precision @ r

        def sampler(n, rng):
            return self._dist.rvs(size=n, random_state=rng).reshape(n, -1)

        super().__init__(logpdf, sampler=sampler, support=lambda theta: True, cov=cov)


class UniformPrior(Prior):
    """Independent uniform prior on a box [low, high]."""

    def __init__(self, low: np.ndarray, high: np.ndarray):
        self.low = np.atleast_1d(np.asarray(low, dtype=float))
        self.high = np.atleast_1d(np.asarray(high, dtype=float))
        if self.low.shape != self.high.shape or np.any(self.high <= self.low):
            raise ValueError("UniformPrior requires low < high elementwise")

        low_j = jnp.asarray(self.low)
        high_j = jnp.asarray(self.high)
        log_volume = float(np.sum(np.log(self.high - self.low)))

        def logpdf(theta):
            inside = jnp.all((theta >= low_j) & (theta <= high_j))
            return jnp.where(inside, -log_volume, -jnp.inf)

        def support(theta):
            theta = np.asarray(theta)
            return bool(np.all((theta >= self.low) & (theta <= self.high)))

        def sampler(n, rng):
            return rng.uniform(self.low, self.high, size=(n, len(self.low)))

        super().__init__(
            logpdf,
            sampler=sampler,
            support=support,
            cov=np.diag((self.high - self.low) ** 2 / 12.0)
        )
