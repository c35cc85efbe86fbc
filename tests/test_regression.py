"""
Tests for quadratic local-mean regression.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from estimation.errors import DimensionMismatch, RegressionSingular
from estimation.regression import (
    get_residuals,
    linear_regression,
    n_quadratic_terms,
    pairwise_combinations,
    quadratic_design_matrix,
    quadratic_local_mu
)


class TestDesign:
    """Tests for the quadratic design."""

    def test_pairwise_combinations(self):
        """Pairs include matched indices, in row-major order."""
        assert pairwise_combinations(3) == [(0, 0), (0, 1), (0, 2), (1, 1), (1, 2), (2, 2)]
        assert pairwise_combinations(1) == [(0, 0)]

    def test_design_columns(self):
        """Bias, linear, then pairwise product columns."""
        X = np.array([[1.0, 2.0], [3.0, 4.0]])

        design, pairs = quadratic_design_matrix(X)

        assert design.shape == (2, n_quadratic_terms(2))
        np.testing.assert_allclose(design[0], [1, 1, 2, 1, 2, 4])
        np.testing.assert_allclose(design[1], [1, 3, 4, 9, 12, 16])
        assert pairs == [(0, 0), (0, 1), (1, 1)]


class TestLinearRegression:
    """Tests for linear_regression()."""

    def test_exact_fit_matrix_response(self):
        """Columns of y are fitted against one factorization."""
        rng = np.random.default_rng(0)
        X = np.column_stack([np.ones(30), rng.normal(size=(30, 2))])
        beta_true = np.array([[1.0, -1.0], [2.0, 0.5], [-3.0, 0.0]])
        y = X @ beta_true

        beta, y_hat = linear_regression(X, y)

        np.testing.assert_allclose(beta, beta_true, atol=1e-10)
        np.testing.assert_allclose(y_hat, y, atol=1e-10)

    def test_too_few_rows(self):
        """Fewer observations than coefficients is singular."""
        with pytest.raises(RegressionSingular):
            linear_regression(np.ones((2, 3)), np.ones(2))

    def test_rank_deficient(self):
        """Collinear columns are rejected rather than solved."""
        x = np.linspace(0, 1, 10)
        X = np.column_stack([np.ones(10), x, 2 * x])

        with pytest.raises(RegressionSingular):
            linear_regression(X, x)

    def test_row_mismatch(self):
        with pytest.raises(DimensionMismatch):
            linear_regression(np.ones((5, 2)), np.ones(4))


class TestQuadraticLocalMu:
    """Tests for quadratic_local_mu()."""

    def test_recovers_quadratic_surface(self):
        """Mean, gradient and Hessian of an exact quadratic are recovered."""
        rng = np.random.default_rng(1)
        theta_orig = np.array([0.5, -1.0])
        theta = theta_orig + rng.normal(size=(50, 2))
        d = theta - theta_orig

        s1 = 1 + 2 * d[:, 0] - d[:, 1] + 0.5 * d[:, 0] ** 2 + 3 * d[:, 0] * d[:, 1] - d[:, 1] ** 2
        s2 = -4 + d[:, 1] + 2 * d[:, 1] ** 2
        s = np.column_stack([s1, s2])

        means = quadratic_local_mu(theta_orig, theta, s)

        assert len(means) == 2
        np.testing.assert_allclose(means[0].mu, 1.0, atol=1e-8)
        np.testing.assert_allclose(means[0].grad, [2.0, -1.0], atol=1e-8)
        np.testing.assert_allclose(means[0].hess, [[1.0, 3.0], [3.0, -2.0]], atol=1e-8)
        np.testing.assert_allclose(means[1].mu, -4.0, atol=1e-8)
        np.testing.assert_allclose(means[1].grad, [0.0, 1.0], atol=1e-8)
        np.testing.assert_allclose(means[1].hess, [[0.0, 0.0], [0.0, 4.0]], atol=1e-8)
        np.testing.assert_allclose(get_residuals(means), np.zeros((50, 2)), atol=1e-8)

    def test_hessian_symmetric(self):
        """Noisy fits still give symmetric Hessians."""
        rng = np.random.default_rng(2)
        theta = rng.normal(size=(100, 3))
        s = rng.normal(size=(100, 2))

        for m in quadratic_local_mu(np.zeros(3), theta, s):
            np.testing.assert_allclose(m.hess, m.hess.T)

    def test_residuals_are_fitted_minus_observed(self):
        """Residual sign convention."""
        rng = np.random.default_rng(3)
        theta = rng.normal(size=(40, 1))
        noise = rng.normal(size=40)
        s = 2.0 + theta[:, 0] + noise

        m = quadratic_local_mu(np.zeros(1), theta, s)[0]
        fitted = m.mu + m.grad[0] * theta[:, 0] + 0.5 * m.hess[0, 0] * theta[:, 0] ** 2

        np.testing.assert_allclose(m.residuals, fitted - s, atol=1e-10)
        assert get_residuals([m]).shape == (40, 1)

    def test_too_few_simulations(self):
        """Fewer simulations than design columns is singular."""
        rng = np.random.default_rng(4)
        with pytest.raises(RegressionSingular):
            quadratic_local_mu(np.zeros(2), rng.normal(size=(5, 2)), rng.normal(size=(5, 1)))

    def test_identical_parameters(self):
        """No spread in theta means no identifiable slope."""
        with pytest.raises(RegressionSingular):
            quadratic_local_mu(np.zeros(2), np.ones((20, 2)), np.arange(20.0))

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatch):
            quadratic_local_mu(np.zeros(3), np.zeros((10, 2)), np.zeros(10))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
