"""
Tests for prior distributions.
"""

import jax.numpy as jnp
import numpy as np
import pytest
import sys
import os
from scipy import stats

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sampling.priors import GaussianPrior, Prior, UniformPrior


class TestGaussianPrior:
    """Tests for the multivariate normal prior."""

    def setup_method(self):
        self.mean = np.array([1.0, -1.0])
        self.cov = np.array([[2.0, 0.5], [0.5, 1.0]])
        self.prior = GaussianPrior(self.mean, self.cov)

    def test_logpdf_matches_scipy(self):
        theta = np.array([0.3, 0.2])
        expected = stats.multivariate_normal(self.mean, self.cov).logpdf(theta)
        np.testing.assert_allclose(self.prior.logpdf(theta), expected)

    def test_derivatives(self):
        """Autodiff gradient and Hessian match the closed forms."""
        theta = np.array([0.3, 0.2])
        precision = np.linalg.inv(self.cov)

        np.testing.assert_allclose(self.prior.gradlogpdf(theta), -precision @ (theta - self.mean))
        np.testing.assert_allclose(self.prior.hesslogpdf(theta), -precision)

    def test_sampling_and_cov(self):
        rng = np.random.default_rng(0)
        draws = self.prior.rvs(5000, rng=rng)

        assert draws.shape == (5000, 2)
        np.testing.assert_allclose(draws.mean(axis=0), self.mean, atol=0.1)
        np.testing.assert_allclose(self.prior.cov, self.cov)
        assert self.prior.insupport(np.array([1e6, -1e6]))


class TestUniformPrior:
    """Tests for the box uniform prior."""

    def setup_method(self):
        self.prior = UniformPrior([0.0, -1.0], [2.0, 1.0])

    def test_logpdf(self):
        np.testing.assert_allclose(self.prior.logpdf(np.array([1.0, 0.0])), -np.log(4.0))
        assert self.prior.logpdf(np.array([3.0, 0.0])) == -np.inf

    def test_support(self):
        assert self.prior.insupport(np.array([0.5, 0.5]))
        assert not self.prior.insupport(np.array([-0.1, 0.5]))

    def test_flat_inside(self):
        np.testing.assert_allclose(self.prior.gradlogpdf(np.array([1.0, 0.0])), [0.0, 0.0])
        np.testing.assert_allclose(self.prior.hesslogpdf(np.array([1.0, 0.0])), np.zeros((2, 2)))

    def test_sampling_and_cov(self):
        rng = np.random.default_rng(1)
        draws = self.prior.rvs(1000, rng=rng)

        assert draws.shape == (1000, 2)
        assert all(self.prior.insupport(row) for row in draws)
        np.testing.assert_allclose(self.prior.cov, np.diag([4.0 / 12, 4.0 / 12]))

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            UniformPrior([1.0], [0.0])


class TestGenericPrior:
    """Tests for a prior built from a log-density function."""

    def test_exponential_prior(self):
        def logpdf(theta):
            return jnp.where(jnp.all(theta >= 0), -jnp.sum(theta), -jnp.inf)

        prior = Prior(logpdf)

        np.testing.assert_allclose(prior.logpdf(np.array([1.0, 2.0])), -3.0)
        np.testing.assert_allclose(prior.gradlogpdf(np.array([1.0, 2.0])), [-1.0, -1.0])
        assert prior.insupport(np.array([1.0, 2.0]))
        assert not prior.insupport(np.array([-1.0, 2.0]))

    def test_missing_sampler_and_cov(self):
        prior = Prior(lambda theta: -0.5 * jnp.sum(theta ** 2))

        with pytest.raises(NotImplementedError):
            prior.rvs(3)
        with pytest.raises(NotImplementedError):
            prior.cov


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
