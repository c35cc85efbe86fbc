"""
Sampling with local synthetic likelihoods.

Provides priors, objective providers (analytic, local likelihood, local
posterior), the random-walk Metropolis, ULA and Riemannian ULA samplers, and
the driver loop that records trajectories.
"""

from .priors import Prior, GaussianPrior, UniformPrior
from .likelihoods import (
    ObjGradHess,
    Objective,
    AnalyticObjective,
    LocalLikelihood,
    LocalPosterior,
    likelihood_calc,
    synthetic_likelihood
)
from .samplers import (
    SamplerState,
    Sampler,
    RandomWalkMetropolis,
    ULA,
    RiemannianULA,
    SAMPLERS
)
from .driver import (
    Trajectory,
    init_trajectory,
    add_state,
    stack_arrays,
    simplify,
    run_sampler,
    acceptance_rate,
    chain,
    summarize
)

__all__ = [
    "Prior",
    "GaussianPrior",
    "UniformPrior",
    "ObjGradHess",
    "Objective",
    "AnalyticObjective",
    "LocalLikelihood",
    "LocalPosterior",
    "likelihood_calc",
    "synthetic_likelihood",
    "SamplerState",
    "Sampler",
    "RandomWalkMetropolis",
    "ULA",
    "RiemannianULA",
    "SAMPLERS",
    "Trajectory",
    "init_trajectory",
    "add_state",
    "stack_arrays",
    "simplify",
    "run_sampler",
    "acceptance_rate",
    "chain",
    "summarize"
]
