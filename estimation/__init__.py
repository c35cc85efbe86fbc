"""
Local estimation of the synthetic likelihood surface.

Provides perturbation of parameters, batched simulation, quadratic regression
of summary statistic means, GLM estimation of their covariance, and
regularization of estimated covariance/Hessian matrices.
"""

from .errors import (
    SyntheticLikelihoodError,
    InvalidProposal,
    ProposalExhausted,
    RegressionSingular,
    NonPositiveDefinite,
    DimensionMismatch,
    MissingDerivative
)
from .perturb import perturb
from .simulate import SummaryBatch, simulate_n_s, clean_batch
from .regression import (
    LocalMean,
    quadratic_local_mu,
    quadratic_design_matrix,
    linear_regression,
    get_residuals
)
from .covariance import LocalSigma, glm_local_sigma
from .regularize import Regularizer, regularize, soft_abs

__all__ = [
    "SyntheticLikelihoodError",
    "InvalidProposal",
    "ProposalExhausted",
    "RegressionSingular",
    "NonPositiveDefinite",
    "MissingDerivative",
    "DimensionMismatch",
    "perturb",
    "SummaryBatch",
    "simulate_n_s",
    "clean_batch",
    "LocalMean",
    "quadratic_local_mu",
    "quadratic_design_matrix",
    "linear_regression",
    "get_residuals",
    "LocalSigma",
    "glm_local_sigma",
    "Regularizer",
    "regularize",
    "soft_abs"
]
