"""
Markov chain samplers driven by an objective provider.

The objective is the quantity a sampler "aims" to minimise, so to sample from
a density pass its negative log-density (and the matching derivatives).

Implements:
- Random-walk Metropolis
- Unadjusted Langevin algorithm (ULA)
- Riemannian ULA, preconditioned by the regularized inverse Hessian

All samplers support a validity predicate: an invalid proposal has its update
term halved until it is valid, up to max_halvings. If that fails the update is
abandoned and the state is flagged.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import Callable, Optional, Tuple, Union

import numpy as np

from estimation.errors import DimensionMismatch, InvalidProposal, MissingDerivative, NonPositiveDefinite
from estimation.regularize import Regularizer

from .likelihoods import ObjGradHess, Objective

logger = logging.getLogger(__name__)

StepSize = Union[float, np.ndarray]


@dataclass
class SamplerState:
    """
    State of a sampler at one iteration.

    For random-walk Metropolis, theta/objective hold the latest proposal and
    chain_theta/chain_objective the current position of the chain.
    """
    theta: np.ndarray
    objective: Optional[float] = None
    gradient: Optional[np.ndarray] = None
    hessian: Optional[np.ndarray] = None
    counter: int = 0
    accepted: Optional[bool] = None
    halvings: int = 0
    halving_exhausted: bool = False
    chain_theta: Optional[np.ndarray] = None
    chain_objective: Optional[float] = None

    def update_from(self, result: ObjGradHess) -> None:
        self.objective = result.objective
        self.gradient = result.gradient
        self.hessian = result.hessian

    def has(self, needs: Tuple[str, ...]) -> bool:
        return self.objective is not None and all(getattr(self, n) is not None for n in needs)


STATE_FIELDS = tuple(f.name for f in fields(SamplerState))

# Only set by samplers with an accept/reject step
CHAIN_FIELDS = ("accepted", "chain_theta", "chain_objective")


def _check_valid(theta: np.ndarray, valid: Optional[Callable[[np.ndarray], bool]]) -> None:
    if valid is not None and not valid(theta):
        raise InvalidProposal(f"Invalid parameter proposal {theta}")


@dataclass
class Sampler(ABC):
    """
    Base sampler.

    Attributes:
        step_size: Scalar or per-parameter step size
        valid_params: Optional predicate for admissible parameters
        max_halvings: Cap on step-halving for invalid proposals
    """
    step_size: StepSize = 0.1
    valid_params: Optional[Callable[[np.ndarray], bool]] = None
    max_halvings: int = 20

    requires: Tuple[str, ...] = field(default=(), init=False, repr=False)

    def __post_init__(self):
        self.step_size = np.asarray(self.step_size, dtype=float)
        if np.any(self.step_size <= 0):
            raise ValueError("step_size must be positive")

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def provides(self) -> Tuple[str, ...]:
        """State fields set on every update."""
        return tuple(f for f in STATE_FIELDS if f not in CHAIN_FIELDS)

    def init_state(self, theta: np.ndarray) -> SamplerState:
        """Initial state; objective and derivatives are evaluated lazily."""
        theta = np.atleast_1d(np.asarray(theta, dtype=float)).copy()
        if self.step_size.ndim == 1 and self.step_size.shape != theta.shape:
            raise DimensionMismatch(
                f"step_size has length {self.step_size.shape[0]} but theta has {theta.shape[0]}"
            )
        return SamplerState(theta=theta)

    def ensure(self, state: SamplerState, objective: Objective, needs: Tuple[str, ...]) -> None:
        """Evaluate whatever the state is missing."""
        if not state.has(needs):
            state.update_from(objective(
                state.theta,
                gradient="gradient" in needs,
                hessian="hessian" in needs
            ))
            missing = [n for n in needs if getattr(state, n) is None]
            if missing:
                raise MissingDerivative(
                    f"{self.name} needs the {', '.join(missing)} at theta={state.theta} but the "
                    f"objective returned none (objective={state.objective}); restrict proposals "
                    f"with valid_params to where the objective is defined"
                )

    def backtrack(self, theta: np.ndarray, delta: np.ndarray) -> Tuple[np.ndarray, int, bool]:
        """
        Halve delta until theta + delta is valid.

        Returns:
            (new_theta, n_halvings, exhausted); when exhausted, new_theta is theta
        """
        for n in range(self.max_halvings + 1):
            proposal = theta + delta
            try:
                _check_valid(proposal, self.valid_params)
                return proposal, n, False
            except InvalidProposal:
                delta = delta / 2
        logger.debug("Step halving exhausted after %d halvings at %s", self.max_halvings, theta)
        return theta.copy(), self.max_halvings, True

    @abstractmethod
    def update(
        self,
        state: SamplerState,
        objective: Objective,
        needs: Tuple[str, ...],
        rng: np.random.Generator
    ) -> None:
        """Advance the state by one iteration, in place."""
        pass


@dataclass
class RandomWalkMetropolis(Sampler):
    """
    Random-walk Metropolis: theta' = theta + step_size * z, accepted with
    probability min(1, exp(objective(theta) - objective(theta'))).
    """

    @property
    def provides(self):
        return STATE_FIELDS

    def init_state(self, theta):
        state = super().init_state(theta)
        state.chain_theta = state.theta.copy()
        return state

    def update(self, state, objective, needs, rng):
        if state.chain_theta is None:
            state.chain_theta = state.theta.copy()
            state.chain_objective = state.objective
        if state.chain_objective is None:
            state.chain_objective = objective(state.chain_theta).objective

        current = state.chain_theta
        delta = self.step_size * rng.standard_normal(current.shape)
        proposal, state.halvings, state.halving_exhausted = self.backtrack(current, delta)

        result = objective(proposal, gradient="gradient" in needs, hessian="hessian" in needs)
        log_alpha = state.chain_objective - result.objective
        accepted = bool(
            not state.halving_exhausted
            and np.isfinite(result.objective)
            and np.log(rng.uniform()) < min(0.0, log_alpha)
        )

        state.theta = proposal
        state.update_from(result)
        state.accepted = accepted
        if accepted:
            state.chain_theta = proposal.copy()
            state.chain_objective = result.objective
        state.counter += 1


@dataclass
class ULA(Sampler):
    """
    Unadjusted Langevin algorithm:
    theta := theta - step_size / 2 * gradient + xi, xi ~ N(0, diag(step_size)).
    """

    def __post_init__(self):
        super().__post_init__()
        self.requires = ("gradient",)

    def update(self, state, objective, needs, rng):
        self.ensure(state, objective, needs)
        noise = np.sqrt(self.step_size) * rng.standard_normal(state.theta.shape)
        delta = -0.5 * self.step_size * state.gradient + noise
        new_theta, state.halvings, state.halving_exhausted = self.backtrack(state.theta, delta)

        if not state.halving_exhausted:
            state.theta = new_theta
            state.update_from(objective(new_theta, gradient=True, hessian="hessian" in needs))
        state.counter += 1


@dataclass
class RiemannianULA(Sampler):
    """
    ULA preconditioned by the inverse of the regularized Hessian H:
    theta := theta - step_size^2 * H^-1 gradient + step_size * sqrt(H^-1) z.

    Attributes:
        regularizer: Applied to the Hessian before inversion
    """
    regularizer: Regularizer = field(default_factory=Regularizer)

    def __post_init__(self):
        super().__post_init__()
        self.requires = ("gradient", "hessian")

    def preconditioner(self, hessian: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Returns (H^-1, Cholesky factor of H^-1) for the regularized Hessian."""
        h = self.regularizer(hessian)
        h_inv = np.linalg.inv(h)
        h_inv = 0.5 * (h_inv + h_inv.T)
        try:
            root = np.linalg.cholesky(h_inv)
        except np.linalg.LinAlgError as e:
            raise NonPositiveDefinite(f"Inverse regularized Hessian is not positive-definite: {e}") from e
        return h_inv, root

    def update(self, state, objective, needs, rng):
        self.ensure(state, objective, needs)
        h_inv, root = self.preconditioner(state.hessian)
        z = rng.standard_normal(state.theta.shape)
        delta = -self.step_size ** 2 * (h_inv @ state.gradient) + self.step_size * (root @ z)
        new_theta, state.halvings, state.halving_exhausted = self.backtrack(state.theta, delta)

        if not state.halving_exhausted:
            state.theta = new_theta
            state.update_from(objective(new_theta, gradient=True, hessian=True))
        state.counter += 1


SAMPLERS = {
    "random_walk": RandomWalkMetropolis,
    "ula": ULA,
    "riemannian_ula": RiemannianULA
}
