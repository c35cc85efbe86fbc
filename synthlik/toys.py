"""
Toy simulators for demos and tests.
"""

from typing import Optional

import numpy as np

_default_rng = np.random.default_rng()


def normal_location(
    theta: np.ndarray,
    noise_var: float = 0.1,
    n_obs: int = 1,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Gaussian location model: theta plus N(0, noise_var) noise.

    With n_obs > 1 the output is the mean of n_obs draws.
    """
    rng = rng if rng is not None else _default_rng
    theta = np.atleast_1d(np.asarray(theta, dtype=float))
    draws = theta + np.sqrt(noise_var) * rng.standard_normal((n_obs, theta.shape[0]))
    return draws.mean(axis=0)


def identity_summary(x: np.ndarray) -> np.ndarray:
    """Use the simulated output itself as the summary statistics."""
    return np.atleast_1d(np.asarray(x, dtype=float))


def normal_negative_logpdf(theta):
    """Negative log-density of a standard normal, up to a constant (jax-compatible)."""
    return 0.5 * (theta @ theta)
