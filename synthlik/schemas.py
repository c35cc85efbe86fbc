"""
JSON Schemas for run configurations.

A run configuration describes the parameters, the objective (analytic
negative log-density, local likelihood or local posterior), the prior, the
sampler and the run length.
"""

from typing import Any, Dict, List, Tuple

import jsonschema

_VECTOR = {"type": "array", "items": {"type": "number"}, "minItems": 1}
_MATRIX = {"type": "array", "items": _VECTOR, "minItems": 1}
_IMPORT_PATH = {
    "type": "string",
    "pattern": r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$",
    "description": "Callable as 'package.module:function'"
}

REGULARIZER_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "alpha": {"type": "number", "exclusiveMinimum": 0},
        "reference": _MATRIX,
        "var_low": {"type": "number", "exclusiveMinimum": 0, "maximum": 1},
        "var_high": {"type": "number", "minimum": 1},
        "max_condition": {"type": "number", "exclusiveMinimum": 1},
        "threshold": {"type": "number", "minimum": 0}
    }
}

RUN_CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["name", "parameters", "objective", "sampler", "run"],
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "seed": {"type": "integer", "minimum": 0},
        "parameters": {
            "type": "object",
            "required": ["names", "init"],
            "properties": {
                "names": {"type": "array", "items": {"type": "string"}, "minItems": 1},
                "init": _VECTOR
            }
        },
        "objective": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["analytic", "local_likelihood", "local_posterior"]
                },
                "function": _IMPORT_PATH,
                "gradient": _IMPORT_PATH,
                "hessian": _IMPORT_PATH,
                "simulator": _IMPORT_PATH,
                "summary": _IMPORT_PATH,
                "simulator_kwargs": {"type": "object"},
                "summary_kwargs": {"type": "object"},
                "s_true": _VECTOR,
                "n_sim": {"type": "integer", "minimum": 1},
                "perturbation": {
                    "type": "object",
                    "required": ["cov"],
                    "properties": {"cov": _MATRIX}
                },
                "parallel": {"type": "boolean"},
                "n_workers": {"type": "integer", "minimum": 1},
                "outlier_iqr": {"type": "number", "exclusiveMinimum": 0},
                "sigma_regularizer": REGULARIZER_SCHEMA
            },
            "allOf": [
                {
                    "if": {"properties": {"type": {"const": "analytic"}}},
                    "then": {"required": ["function"]}
                },
                {
                    "if": {"properties": {"type": {"enum": ["local_likelihood", "local_posterior"]}}},
                    "then": {"required": ["simulator", "s_true", "n_sim", "perturbation"]}
                }
            ]
        },
        "prior": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {"type": "string", "enum": ["gaussian", "uniform"]},
                "mean": _VECTOR,
                "cov": _MATRIX,
                "low": _VECTOR,
                "high": _VECTOR
            },
            "allOf": [
                {
                    "if": {"properties": {"type": {"const": "gaussian"}}},
                    "then": {"required": ["mean", "cov"]}
                },
                {
                    "if": {"properties": {"type": {"const": "uniform"}}},
                    "then": {"required": ["low", "high"]}
                }
            ]
        },
        "sampler": {
            "type": "object",
            "required": ["type", "step_size"],
            "properties": {
                "type": {"type": "string", "enum": ["random_walk", "ula", "riemannian_ula"]},
                "step_size": {
                    "oneOf": [
                        {"type": "number", "exclusiveMinimum": 0},
                        {"type": "array", "items": {"type": "number", "exclusiveMinimum": 0}}
                    ]
                },
                "max_halvings": {"type": "integer", "minimum": 0},
                "regularizer": REGULARIZER_SCHEMA
            }
        },
        "run": {
            "type": "object",
            "required": ["n_steps"],
            "properties": {
                "n_steps": {"type": "integer", "minimum": 1},
                "collect": {"type": "array", "items": {"type": "string"}},
                "burn_in": {"type": "integer", "minimum": 0},
                "parallel": {"type": "boolean"}
            }
        }
    },
    "if": {"properties": {"objective": {"properties": {"type": {"const": "local_posterior"}}}}},
    "then": {"required": ["prior"]}
}


def validate_against_schema(data: Dict[str, Any], schema: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate data against a JSON schema.

    Returns:
        (is_valid, list_of_errors)
    """
    validator = jsonschema.Draft202012Validator(schema)
    errors = list(validator.iter_errors(data))
    if errors:
        return False, [f"{e.json_path}: {e.message}" for e in errors]
    return True, []
