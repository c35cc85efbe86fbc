"""
Automatic differentiation of scalar log-density/objective functions.

Functions must be written with jax.numpy. Results are returned as float64
numpy arrays so callers never see jax arrays.
"""

from typing import Callable

import jax
import jax.numpy as jnp
import numpy as np

jax.config.update("jax_enable_x64", True)


def gradient_of(f: Callable) -> Callable[[np.ndarray], np.ndarray]:
    """Gradient of a scalar function f(theta)."""
    g = jax.jit(jax.grad(f))

    def gradient(theta: np.ndarray) -> np.ndarray:
        return np.asarray(g(jnp.asarray(theta, dtype=jnp.float64)), dtype=float)
    return gradient


def hessian_of(f: Callable) -> Callable[[np.ndarray], np.ndarray]:
    """Hessian of a scalar function f(theta)."""
    h = jax.jit(jax.hessian(f))

    def hessian(theta: np.ndarray) -> np.ndarray:
        return np.asarray(h(jnp.asarray(theta, dtype=jnp.float64)), dtype=float)
    return hessian
