"""
Tests for the GLM local covariance estimate.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from estimation.covariance import glm_local_sigma
from estimation.errors import DimensionMismatch, RegressionSingular


class TestGlmLocalSigma:
    """Tests for glm_local_sigma()."""

    def test_constant_variances(self):
        """Homoscedastic residuals give their variances and flat gradients."""
        rng = np.random.default_rng(0)
        theta = rng.normal(size=(4000, 2))
        residuals = rng.normal(size=(4000, 2)) * np.sqrt([1.0, 4.0])

        local = glm_local_sigma(np.zeros(2), theta, residuals)

        assert local.sigma.shape == (2, 2)
        assert local.grad.shape == (2, 2, 2)
        np.testing.assert_allclose(np.diag(local.sigma), [1.0, 4.0], rtol=0.1)
        assert np.all(np.abs(local.grad) < 0.5)

    def test_log_linear_variance(self):
        """A log-linear variance trend appears as Sigma * slope."""
        rng = np.random.default_rng(1)
        theta = rng.normal(size=(4000, 1))
        residuals = rng.normal(size=(4000, 1)) * np.exp(0.4 * theta)

        local = glm_local_sigma(np.zeros(1), theta, residuals)

        np.testing.assert_allclose(local.sigma[0, 0], 1.0, rtol=0.1)
        np.testing.assert_allclose(local.grad[0, 0, 0] / local.sigma[0, 0], 0.8, atol=0.1)

    def test_correlation_kept(self):
        """Off-diagonals follow the residual correlation."""
        rng = np.random.default_rng(2)
        theta = rng.normal(size=(3000, 1))
        cov = np.array([[1.0, 0.6], [0.6, 1.0]])
        residuals = rng.multivariate_normal(np.zeros(2), cov, size=3000)

        local = glm_local_sigma(np.zeros(1), theta, residuals)
        corr = local.sigma[0, 1] / np.sqrt(local.sigma[0, 0] * local.sigma[1, 1])

        np.testing.assert_allclose(corr, 0.6, atol=0.05)
        np.testing.assert_allclose(local.sigma, local.sigma.T)
        np.testing.assert_allclose(local.grad, local.grad.transpose(1, 0, 2))

    def test_off_diagonal_gradient_rule(self):
        """dSigma_ij = Sigma_ij * (beta_i + beta_j) / 2."""
        rng = np.random.default_rng(3)
        theta = rng.normal(size=(2000, 1))
        z = rng.multivariate_normal(np.zeros(2), [[1.0, 0.5], [0.5, 1.0]], size=2000)
        residuals = z * np.exp(np.column_stack([0.3 * theta[:, 0], -0.2 * theta[:, 0]]))

        local = glm_local_sigma(np.zeros(1), theta, residuals)
        beta = np.array([local.grad[i, i, 0] / local.sigma[i, i] for i in range(2)])

        np.testing.assert_allclose(
            local.grad[0, 1, 0],
            local.sigma[0, 1] * (beta[0] + beta[1]) / 2
        )

    def test_too_few_residuals(self):
        """The GLM needs more rows than coefficients."""
        with pytest.raises(RegressionSingular):
            glm_local_sigma(np.zeros(2), np.zeros((3, 2)), np.ones((3, 1)))

    def test_zero_residuals(self):
        """Exact fits leave no variance to model."""
        rng = np.random.default_rng(4)
        with pytest.raises(RegressionSingular):
            glm_local_sigma(np.zeros(1), rng.normal(size=(20, 1)), np.zeros((20, 1)))

    def test_row_mismatch(self):
        with pytest.raises(DimensionMismatch):
            glm_local_sigma(np.zeros(1), np.zeros((10, 1)), np.ones((9, 1)))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
