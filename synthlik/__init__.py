"""
Run configuration layer for local synthetic likelihood sampling.

Loads YAML run configurations, validates them and builds the sampler and
objective they describe.
"""

__version__ = "0.1.0"

from .schemas import RUN_CONFIG_SCHEMA, validate_against_schema
from .loaders import RunConfig, load_config, check_config, resolve_callable

__all__ = [
    "RUN_CONFIG_SCHEMA",
    "validate_against_schema",
    "RunConfig",
    "load_config",
    "check_config",
    "resolve_callable"
]
