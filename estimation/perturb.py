"""
Perturbation of parameter vectors around a centre point.

Draws are centre + proposal sample, where the proposal is any object with a
scipy.stats-style ``rvs(size=..., random_state=...)`` method (typically a
frozen ``scipy.stats.multivariate_normal`` with zero mean).
"""

import logging
from typing import Any, Callable, Optional

import numpy as np

from .errors import DimensionMismatch, ProposalExhausted

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 1000


def _draw(proposal: Any, n: int, dim: int, rng: np.random.Generator) -> np.ndarray:
    """Draw n offsets and force shape (n, dim)."""
    offsets = np.asarray(proposal.rvs(size=n, random_state=rng), dtype=float)
    if offsets.size != n * dim:
        raise DimensionMismatch(
            f"Proposal produced {offsets.size} values, expected {n} x {dim}"
        )
    return offsets.reshape(n, dim)


def perturb(
    theta: np.ndarray,
    proposal: Any,
    n: int = 1,
    valid: Optional[Callable[[np.ndarray], bool]] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Perturb a parameter vector using a proposal distribution.

    Args:
        theta: Centre parameter vector
        proposal: Distribution of offsets (scipy.stats frozen distribution)
        n: Number of perturbed vectors to return
        valid: Optional predicate; invalid draws are resampled
        max_retries: Resampling rounds allowed before giving up
        rng: Random generator

    Returns:
        Array of shape (n, len(theta))

    Raises:
        ProposalExhausted: If some draws are still invalid after max_retries
    """
    rng = rng if rng is not None else np.random.default_rng()
    theta = np.atleast_1d(np.asarray(theta, dtype=float))
    dim = theta.shape[0]

    draws = theta + _draw(proposal, n, dim, rng)
    if valid is None:
        return draws

    invalid = ~np.array([bool(valid(row)) for row in draws], dtype=bool)
    retries = 0
    while invalid.any():
        if retries >= max_retries:
            raise ProposalExhausted(
                f"{int(invalid.sum())} of {n} perturbed parameter vectors still "
                f"invalid after {max_retries} resampling rounds"
            )
        idx = np.flatnonzero(invalid)
        draws[idx] = theta + _draw(proposal, len(idx), dim, rng)
        invalid[idx] = ~np.array([bool(valid(row)) for row in draws[idx]], dtype=bool)
        retries += 1

    if retries:
        logger.debug("Perturbation needed %d resampling rounds", retries)
    return draws
