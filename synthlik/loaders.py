"""
Run configuration loading.

A run configuration is a YAML file validated against RUN_CONFIG_SCHEMA.
RunConfig.build() turns it into a sampler, an objective provider and the
initial parameter vector ready for run_sampler.
"""

import importlib
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import yaml
from scipy import stats

from estimation.regularize import Regularizer
from estimation.simulate import identity
from sampling.likelihoods import AnalyticObjective, LocalLikelihood, LocalPosterior, Objective
from sampling.priors import GaussianPrior, Prior, UniformPrior
from sampling.samplers import SAMPLERS, Sampler

from .schemas import RUN_CONFIG_SCHEMA, validate_against_schema

logger = logging.getLogger(__name__)


def simulator_rng(seed: Optional[int]) -> np.random.Generator:
    """Noise stream for simulators, independent of the perturbation draws."""
    return np.random.default_rng(None if seed is None else [seed, 1])


def accepts_rng(func: Callable) -> bool:
    try:
        return "rng" in inspect.signature(func).parameters
    except (TypeError, ValueError):
        return False


def resolve_callable(path: str) -> Callable:
    """
    Import a callable from a 'package.module:function' path.

    Raises:
        ValueError: If the path is malformed or does not name a callable
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:function', got '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import module '{module_name}': {e}") from e
    obj = getattr(module, attr, None)
    if not callable(obj):
        raise ValueError(f"'{path}' is not a callable")
    return obj


def build_regularizer(spec: Optional[Dict[str, Any]]) -> Optional[Regularizer]:
    if spec is None:
        return None
    return Regularizer(**spec)


def build_prior(spec: Dict[str, Any]) -> Prior:
    if spec["type"] == "gaussian":
        return GaussianPrior(spec["mean"], spec["cov"])
    return UniformPrior(spec["low"], spec["high"])


@dataclass
class RunConfig:
    """Validated run configuration."""
    name: str
    parameter_names: List[str]
    init: np.ndarray
    objective: Dict[str, Any]
    sampler: Dict[str, Any]
    n_steps: int
    collect: List[str] = field(default_factory=lambda: ["theta", "objective"])
    burn_in: int = 0
    parallel: Optional[bool] = None
    prior: Optional[Dict[str, Any]] = None
    seed: Optional[int] = None
    description: str = ""
    path: Optional[Path] = None

    @property
    def n_params(self) -> int:
        return len(self.parameter_names)

    def build_prior(self) -> Optional[Prior]:
        return build_prior(self.prior) if self.prior is not None else None

    def build_objective(self, prior: Optional[Prior] = None) -> Objective:
        spec = self.objective
        kind = spec["type"]

        if kind == "analytic":
            return AnalyticObjective(
                resolve_callable(spec["function"]),
                gradient=resolve_callable(spec["gradient"]) if "gradient" in spec else None,
                hessian=resolve_callable(spec["hessian"]) if "hessian" in spec else None
            )

        simulator = resolve_callable(spec["simulator"])
        simulator_kwargs = dict(spec.get("simulator_kwargs", {}))
        # Simulators that take an rng get one seeded from the run seed
        if "rng" not in simulator_kwargs and accepts_rng(simulator):
            simulator_kwargs["rng"] = simulator_rng(self.seed)

        kwargs = dict(
            simulator=simulator,
            s_true=np.asarray(spec["s_true"], dtype=float),
            P=stats.multivariate_normal(
                mean=np.zeros(self.n_params),
                cov=np.asarray(spec["perturbation"]["cov"], dtype=float)
            ),
            n_sim=spec["n_sim"],
            summary=resolve_callable(spec["summary"]) if "summary" in spec else identity,
            simulator_kwargs=simulator_kwargs,
            summary_kwargs=dict(spec.get("summary_kwargs", {})),
            parallel=spec.get("parallel", False),
            n_workers=spec.get("n_workers"),
            outlier_iqr=spec.get("outlier_iqr"),
            sigma_regularizer=build_regularizer(spec.get("sigma_regularizer")),
            seed=self.seed
        )
        if kind == "local_posterior":
            return LocalPosterior(prior=prior if prior is not None else self.build_prior(), **kwargs)
        if prior is not None:
            kwargs["valid_params"] = prior.insupport
        return LocalLikelihood(**kwargs)

    def build_sampler(self, prior: Optional[Prior] = None) -> Sampler:
        spec = self.sampler
        kwargs = dict(
            step_size=np.asarray(spec["step_size"], dtype=float),
            valid_params=prior.insupport if prior is not None else None
        )
        if "max_halvings" in spec:
            kwargs["max_halvings"] = spec["max_halvings"]
        if spec["type"] == "riemannian_ula" and "regularizer" in spec:
            kwargs["regularizer"] = build_regularizer(spec["regularizer"])
        return SAMPLERS[spec["type"]](**kwargs)

    def build(self) -> Tuple[Sampler, Objective, np.ndarray]:
        """
        Construct the run components.

        Returns:
            (sampler, objective, init)
        """
        prior = self.build_prior()
        sampler = self.build_sampler(prior)
        objective = self.build_objective(prior)
        logger.debug(
            "Built %s with %s objective for run '%s'",
            sampler.name, self.objective["type"], self.name
        )
        return sampler, objective, self.init.copy()


def check_config(data: Dict[str, Any]) -> List[str]:
    """Schema validation plus cross-field consistency checks."""
    valid, errors = validate_against_schema(data, RUN_CONFIG_SCHEMA)
    if not valid:
        return errors

    n = len(data["parameters"]["names"])
    if len(data["parameters"]["init"]) != n:
        errors.append(f"parameters.init has length {len(data['parameters']['init'])}, expected {n}")

    cov = data["objective"].get("perturbation", {}).get("cov")
    if cov is not None and (len(cov) != n or any(len(row) != n for row in cov)):
        errors.append(f"objective.perturbation.cov must be {n}x{n}")

    step = data["sampler"]["step_size"]
    if isinstance(step, list) and len(step) != n:
        errors.append(f"sampler.step_size has length {len(step)}, expected {n}")

    prior = data.get("prior")
    if prior is not None:
        keys = ("mean",) if prior["type"] == "gaussian" else ("low", "high")
        for key in keys:
            if len(prior[key]) != n:
                errors.append(f"prior.{key} has length {len(prior[key])}, expected {n}")

    for key in ("simulator", "summary", "function", "gradient", "hessian"):
        path = data["objective"].get(key)
        if path is None:
            continue
        try:
            resolve_callable(path)
        except ValueError as e:
            errors.append(f"objective.{key}: {e}")

    return errors


def load_config(config_path: str) -> RunConfig:
    """
    Load a run configuration from a YAML file.

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If validation fails
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Run configuration not found: {config_path}")

    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Run configuration must be a mapping: {config_path}")

    errors = check_config(data)
    if errors:
        raise ValueError(f"Run configuration validation failed:\n" + "\n".join(errors))

    run = data["run"]
    return RunConfig(
        name=data["name"],
        description=data.get("description", ""),
        parameter_names=list(data["parameters"]["names"]),
        init=np.asarray(data["parameters"]["init"], dtype=float),
        objective=data["objective"],
        sampler=data["sampler"],
        prior=data.get("prior"),
        n_steps=run["n_steps"],
        collect=list(run.get("collect", ["theta", "objective"])),
        burn_in=run.get("burn_in", 0),
        parallel=run.get("parallel"),
        seed=data.get("seed"),
        path=path
    )
