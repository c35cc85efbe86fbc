"""
Tests for parameter perturbation.
"""

import numpy as np
import pytest
import sys
import os
from scipy import stats

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from estimation.errors import DimensionMismatch, ProposalExhausted
from estimation.perturb import perturb


class TestPerturb:
    """Tests for perturb()."""

    def test_shape_and_centre(self):
        """Draws have shape (n, dim) and are centred on theta."""
        rng = np.random.default_rng(0)
        theta = np.array([1.0, -2.0])
        proposal = stats.multivariate_normal(mean=np.zeros(2), cov=0.25 * np.eye(2))

        draws = perturb(theta, proposal, n=5000, rng=rng)

        assert draws.shape == (5000, 2)
        np.testing.assert_allclose(draws.mean(axis=0), theta, atol=0.05)
        np.testing.assert_allclose(np.cov(draws, rowvar=False), 0.25 * np.eye(2), atol=0.03)

    def test_single_parameter(self):
        """One-dimensional proposals still give a column of draws."""
        rng = np.random.default_rng(1)
        proposal = stats.norm(loc=0.0, scale=1.0)

        draws = perturb(np.array([3.0]), proposal, n=10, rng=rng)

        assert draws.shape == (10, 1)

    def test_invalid_draws_resampled(self):
        """Every returned draw satisfies the validity predicate."""
        rng = np.random.default_rng(2)
        proposal = stats.multivariate_normal(mean=np.zeros(2), cov=np.eye(2))

        def valid(theta):
            return theta[0] > 0

        draws = perturb(np.zeros(2), proposal, n=200, valid=valid, rng=rng)

        assert draws.shape == (200, 2)
        assert np.all(draws[:, 0] > 0)

    def test_always_valid(self):
        """A predicate that always succeeds leaves the draws unchanged."""
        proposal = stats.multivariate_normal(mean=np.zeros(2), cov=np.eye(2))

        plain = perturb(np.ones(2), proposal, n=25, rng=np.random.default_rng(5))
        checked = perturb(np.ones(2), proposal, n=25, valid=lambda t: True, rng=np.random.default_rng(5))

        assert checked.shape == (25, 2)
        np.testing.assert_array_equal(checked, plain)

    def test_retry_cap(self):
        """A predicate that is never satisfied exhausts the retries."""
        rng = np.random.default_rng(3)
        proposal = stats.multivariate_normal(mean=np.zeros(2), cov=np.eye(2))

        with pytest.raises(ProposalExhausted):
            perturb(np.zeros(2), proposal, n=10, valid=lambda t: False, max_retries=3, rng=rng)

    def test_dimension_mismatch(self):
        """Proposal dimension must match theta."""
        rng = np.random.default_rng(4)
        proposal = stats.multivariate_normal(mean=np.zeros(3), cov=np.eye(3))

        with pytest.raises(DimensionMismatch):
            perturb(np.zeros(2), proposal, n=4, rng=rng)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
