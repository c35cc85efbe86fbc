"""
Tests for run configuration loading and validation.
"""

import copy

import numpy as np
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from estimation.regularize import Regularizer
from sampling.likelihoods import AnalyticObjective, LocalLikelihood, LocalPosterior
from sampling.priors import GaussianPrior
from sampling.samplers import ULA, RandomWalkMetropolis, RiemannianULA
from synthlik import RUN_CONFIG_SCHEMA, load_config, resolve_callable, validate_against_schema
from synthlik.toys import identity_summary, normal_location

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
EXAMPLE_CONFIG = os.path.join(ROOT, "examples", "toy_normal", "config.yaml")

BASE = {
    "name": "test_run",
    "seed": 3,
    "parameters": {"names": ["a", "b"], "init": [0.0, 0.0]},
    "objective": {
        "type": "local_likelihood",
        "simulator": "synthlik.toys:normal_location",
        "s_true": [1.0, 1.0],
        "n_sim": 50,
        "perturbation": {"cov": [[0.5, 0.0], [0.0, 0.5]]}
    },
    "sampler": {"type": "ula", "step_size": 0.1},
    "run": {"n_steps": 10}
}


def write_config(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestSchema:
    """Tests for RUN_CONFIG_SCHEMA."""

    def test_base_config_valid(self):
        valid, errors = validate_against_schema(BASE, RUN_CONFIG_SCHEMA)
        assert valid, errors

    def test_missing_section(self):
        data = copy.deepcopy(BASE)
        del data["sampler"]

        valid, errors = validate_against_schema(data, RUN_CONFIG_SCHEMA)

        assert not valid
        assert any("sampler" in e for e in errors)

    def test_local_objective_needs_simulator(self):
        data = copy.deepcopy(BASE)
        del data["objective"]["simulator"]

        valid, _ = validate_against_schema(data, RUN_CONFIG_SCHEMA)

        assert not valid

    def test_posterior_needs_prior(self):
        data = copy.deepcopy(BASE)
        data["objective"]["type"] = "local_posterior"

        valid, _ = validate_against_schema(data, RUN_CONFIG_SCHEMA)

        assert not valid

    def test_unknown_sampler(self):
        data = copy.deepcopy(BASE)
        data["sampler"]["type"] = "hmc"

        valid, _ = validate_against_schema(data, RUN_CONFIG_SCHEMA)

        assert not valid


class TestLoadConfig:
    """Tests for load_config() and RunConfig.build()."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_config_raises(self, tmp_path):
        data = copy.deepcopy(BASE)
        data["parameters"]["init"] = [0.0, 0.0, 0.0]

        with pytest.raises(ValueError, match="parameters.init"):
            load_config(write_config(tmp_path, data))

    def test_unresolvable_simulator(self, tmp_path):
        data = copy.deepcopy(BASE)
        data["objective"]["simulator"] = "synthlik.toys:no_such_function"

        with pytest.raises(ValueError, match="objective.simulator"):
            load_config(write_config(tmp_path, data))

    def test_build_local_likelihood(self, tmp_path):
        config = load_config(write_config(tmp_path, BASE))

        sampler, objective, init = config.build()

        assert config.name == "test_run"
        assert config.collect == ["theta", "objective"]
        assert isinstance(sampler, ULA)
        assert isinstance(objective, LocalLikelihood)
        assert objective.n_sim == 50
        assert objective.simulator is normal_location
        assert objective.seed == 3
        np.testing.assert_array_equal(init, [0.0, 0.0])

    def test_build_posterior_with_regularizers(self, tmp_path):
        data = copy.deepcopy(BASE)
        data["objective"]["type"] = "local_posterior"
        data["objective"]["summary"] = "synthlik.toys:identity_summary"
        data["objective"]["sigma_regularizer"] = {"max_condition": 100.0}
        data["prior"] = {"type": "gaussian", "mean": [0.0, 0.0], "cov": [[4.0, 0.0], [0.0, 4.0]]}
        data["sampler"] = {
            "type": "riemannian_ula",
            "step_size": [0.1, 0.2],
            "max_halvings": 5,
            "regularizer": {"alpha": 1000.0, "threshold": 0.01}
        }

        sampler, objective, _ = load_config(write_config(tmp_path, data)).build()

        assert isinstance(objective, LocalPosterior)
        assert isinstance(objective.prior, GaussianPrior)
        assert objective.summary is identity_summary
        assert isinstance(objective.sigma_regularizer, Regularizer)
        assert objective.sigma_regularizer.max_condition == 100.0
        assert isinstance(sampler, RiemannianULA)
        assert sampler.max_halvings == 5
        assert sampler.regularizer.alpha == 1000.0
        np.testing.assert_array_equal(sampler.step_size, [0.1, 0.2])
        assert sampler.valid_params is not None

    def test_build_analytic(self, tmp_path):
        data = copy.deepcopy(BASE)
        data["objective"] = {"type": "analytic", "function": "synthlik.toys:normal_negative_logpdf"}
        data["sampler"] = {"type": "random_walk", "step_size": 0.5}

        sampler, objective, _ = load_config(write_config(tmp_path, data)).build()

        assert isinstance(sampler, RandomWalkMetropolis)
        assert isinstance(objective, AnalyticObjective)
        result = objective(np.array([1.0, 2.0]), gradient=True)
        np.testing.assert_allclose(result.objective, 2.5)
        np.testing.assert_allclose(result.gradient, [1.0, 2.0])

    def test_seeded_simulator_reproducible(self, tmp_path):
        """The run seed fixes the simulator noise as well as the perturbations."""
        path = write_config(tmp_path, BASE)
        theta = np.array([0.5, 0.5])

        first = load_config(path).build()[1](theta)
        second = load_config(path).build()[1](theta)

        assert "rng" in load_config(path).build()[1].simulator_kwargs
        assert first.objective == second.objective

    def test_explicit_simulator_rng_kept(self):
        config = load_config(EXAMPLE_CONFIG)
        config.objective["simulator_kwargs"]["rng"] = "given"

        objective = config.build_objective()

        assert objective.simulator_kwargs["rng"] == "given"

    def test_example_config(self):
        """The shipped example configuration is valid."""
        config = load_config(EXAMPLE_CONFIG)

        assert config.parameter_names == ["mu_1", "mu_2"]
        assert config.objective["type"] == "local_posterior"
        assert config.burn_in < config.n_steps


class TestResolveCallable:
    """Tests for 'module:function' resolution."""

    def test_resolves(self):
        assert resolve_callable("synthlik.toys:normal_location") is normal_location

    @pytest.mark.parametrize("path", ["synthlik.toys", "no_such_module:f", "synthlik.toys:__doc__"])
    def test_rejects(self, path):
        with pytest.raises(ValueError):
            resolve_callable(path)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
