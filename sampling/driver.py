"""
Sampler driver loop.

Implements:
- Trajectory: per-field buffers, pre-sized to the number of steps, stacked
  into arrays with a leading iteration axis once the run finishes
- run_sampler: advances a sampler n_steps times, recording the requested
  fields, and returns the trajectory with the final state for continuation
"""

import dataclasses
import logging
from collections.abc import Mapping
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import trange

from .likelihoods import Objective
from .samplers import Sampler, SamplerState

logger = logging.getLogger(__name__)

FIELDS = (
    "theta",
    "objective",
    "gradient",
    "hessian",
    "counter",
    "accepted",
    "halvings",
    "halving_exhausted",
    "chain_theta",
    "chain_objective"
)

DERIVATIVE_FIELDS = ("gradient", "hessian")


def stack_arrays(values: Sequence) -> np.ndarray:
    """Stack per-iteration values into one array with a leading iteration axis."""
    if len(values) == 0:
        return np.empty((0,))
    return np.stack([np.asarray(v) for v in values])


class Trajectory(Mapping):
    """
    Recorded sampler fields, keyed by field name.

    While a run is in progress each field is a list of per-iteration
    snapshots; after simplify() each is a single numpy array.
    """

    def __init__(self, fields: Sequence[str], n_steps: int):
        self.fields = tuple(fields)
        self.n_steps = n_steps
        self.length = 0
        self.finalized = False
        self._data = {f: [None] * n_steps for f in self.fields}

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def __repr__(self):
        return f"Trajectory(fields={self.fields}, length={self.length})"


def init_trajectory(fields: Iterable[str], n_steps: int) -> Trajectory:
    """Create empty buffers for the requested fields."""
    fields = list(dict.fromkeys(fields))
    unknown = [f for f in fields if f not in FIELDS]
    if unknown:
        raise ValueError(f"Unknown trajectory fields {unknown}; choose from {list(FIELDS)}")
    if n_steps < 0:
        raise ValueError(f"n_steps must be non-negative, got {n_steps}")
    return Trajectory(fields, n_steps)


def add_state(trajectory: Trajectory, state: SamplerState) -> None:
    """Snapshot the requested fields of state into the trajectory."""
    if trajectory.finalized:
        raise ValueError("Cannot add to a finalized trajectory")
    if trajectory.length >= trajectory.n_steps:
        raise IndexError(f"Trajectory is full ({trajectory.n_steps} steps)")
    i = trajectory.length
    for f in trajectory.fields:
        value = getattr(state, f)
        if value is None:
            raise ValueError(f"Field '{f}' is not available on the sampler state")
        trajectory[f][i] = np.array(value, copy=True) if isinstance(value, np.ndarray) else value
    trajectory.length += 1


def simplify(trajectory: Trajectory) -> Trajectory:
    """Stack every field into a single array; idempotent."""
    if not trajectory.finalized:
        trajectory._data = {
            f: stack_arrays(values[:trajectory.length])
            for f, values in trajectory._data.items()
        }
        trajectory.finalized = True
    return trajectory


def _with_parallel(objective: Objective, parallel: Optional[bool]) -> Objective:
    if parallel is None or not dataclasses.is_dataclass(objective):
        return objective
    names = {f.name for f in dataclasses.fields(objective)}
    if "parallel" not in names or objective.parallel == parallel:
        return objective
    return dataclasses.replace(objective, parallel=parallel)


def _with_support(sampler: Sampler, objective: Objective) -> Sampler:
    """Keep proposals inside the prior support unless the sampler has its own predicate."""
    prior = getattr(objective, "prior", None)
    if prior is None or sampler.valid_params is not None:
        return sampler
    logger.debug("Restricting %s proposals to the prior support", sampler.name)
    return dataclasses.replace(sampler, valid_params=prior.insupport)


def run_sampler(
    sampler: Sampler,
    objective: Objective,
    init: Union[np.ndarray, SamplerState],
    n_steps: int,
    collect: Sequence[str] = ("theta", "objective"),
    parallel: Optional[bool] = None,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    progress: bool = False
) -> Tuple[Trajectory, SamplerState]:
    """
    Run a sampler for n_steps iterations.

    Args:
        sampler: Sampler instance
        objective: Objective provider (negative log-density convention)
        init: Initial parameter vector, or a state returned by a previous run
        n_steps: Number of iterations
        collect: State fields to record each iteration
        parallel: Override the objective's parallel simulation flag
        rng: Random generator for the sampler's draws
        seed: Seed used when rng is not given
        progress: Show a progress bar

    Returns:
        (trajectory, final_state); trajectory fields are arrays whose first
        axis is the iteration
    """
    trajectory = init_trajectory(collect, n_steps)
    unsupported = [f for f in trajectory.fields if f not in sampler.provides]
    if unsupported:
        raise ValueError(f"{sampler.name} does not set {', '.join(unsupported)}")

    if rng is None:
        rng = np.random.default_rng(seed)
    objective = _with_parallel(objective, parallel)
    sampler = _with_support(sampler, objective)

    # Derivatives are only computed when the sampler uses them or they are recorded
    needs = tuple(
        f for f in DERIVATIVE_FIELDS
        if f in sampler.requires or f in trajectory.fields
    )

    state = init if isinstance(init, SamplerState) else sampler.init_state(init)
    logger.info(
        "Running %s for %d steps from theta=%s (collect=%s)",
        sampler.name, n_steps, state.theta, list(trajectory.fields)
    )

    n_accepted = 0
    n_exhausted = 0
    for _ in trange(n_steps, disable=not progress, desc=sampler.name):
        sampler.update(state, objective, needs, rng)
        if state.accepted:
            n_accepted += 1
        if state.halving_exhausted:
            n_exhausted += 1
        add_state(trajectory, state)

    if state.accepted is not None and n_steps > 0:
        logger.info("%s finished: acceptance rate %.3f", sampler.name, n_accepted / n_steps)
    else:
        logger.info("%s finished after %d steps", sampler.name, n_steps)
    if n_exhausted:
        logger.info("Step halving was exhausted in %d of %d steps", n_exhausted, n_steps)

    return simplify(trajectory), state


def acceptance_rate(trajectory: Trajectory) -> Optional[float]:
    """Fraction of accepted proposals, if 'accepted' was recorded."""
    if "accepted" not in trajectory or len(trajectory["accepted"]) == 0:
        return None
    return float(np.mean(trajectory["accepted"]))


def chain(trajectory: Trajectory, burn_in: int = 0) -> np.ndarray:
    """
    Parameter chain from a trajectory.

    For trajectories with an 'accepted' flag the rejected proposals are
    filtered out, which gives the Metropolis chain without duplicated states.
    """
    theta = np.asarray(trajectory["theta"])[burn_in:]
    if "accepted" in trajectory:
        return theta[np.asarray(trajectory["accepted"], dtype=bool)[burn_in:]]
    return theta


def summarize(trajectory: Trajectory, names: Optional[List[str]] = None, burn_in: int = 0) -> dict:
    """Posterior mean and standard deviation per parameter after burn-in."""
    samples = chain(trajectory, burn_in=burn_in)
    names = names or [f"theta_{i}" for i in range(samples.shape[1] if samples.ndim > 1 else 1)]
    samples = samples.reshape(len(samples), -1)
    out = {
        "n_samples": int(samples.shape[0]),
        "mean": dict(zip(names, samples.mean(axis=0).tolist() if len(samples) else [None] * len(names))),
        "std": dict(zip(names, samples.std(axis=0).tolist() if len(samples) else [None] * len(names)))
    }
    rate = acceptance_rate(trajectory)
    if rate is not None:
        out["acceptance_rate"] = rate
    return out
