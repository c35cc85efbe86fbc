"""
Error taxonomy for local synthetic-likelihood estimation and sampling.

Locally recoverable conditions (invalid perturbation draws, invalid sampler
proposals) are handled where they are raised. Everything else aborts the run.
"""


class SyntheticLikelihoodError(Exception):
    """Base class for all estimation and sampling failures."""


class InvalidProposal(SyntheticLikelihoodError):
    """A proposed parameter vector failed the validity predicate."""


class ProposalExhausted(SyntheticLikelihoodError):
    """Resampling of invalid parameter draws exceeded the retry cap."""


class RegressionSingular(SyntheticLikelihoodError):
    """Design matrix is rank deficient (too few simulations for the fit)."""


class NonPositiveDefinite(SyntheticLikelihoodError):
    """A matrix that must be positive-definite is not."""


class DimensionMismatch(SyntheticLikelihoodError, ValueError):
    """Parameter and summary arrays do not line up."""


class MissingDerivative(SyntheticLikelihoodError):
    """The objective returned no gradient or Hessian where a sampler needs one."""
