"""Core pipeline components."""

from dfgen.core.errors import (
    DeformationFieldError,
    UnsupportedConfiguration,
    ConfigurationError,
    MalformedInput,
    MissingDependency,
    SingularSystem,
    IOFailure,
)
from dfgen.core.grid import Grid, make_grid
from dfgen.core.config import GeneratorConfig, KernelConfig, EvaluationConfig, create_default_config
from dfgen.core.dispatch import ScalarType, FieldGenerator, DispatchRegistry, create_default_registry
from dfgen.core.generator import DeformationFieldGenerator

__all__ = [
    'DeformationFieldError',
    'UnsupportedConfiguration',
    'ConfigurationError',
    'MalformedInput',
    'MissingDependency',
    'SingularSystem',
    'IOFailure',
    'Grid',
    'make_grid',
    'GeneratorConfig',
    'KernelConfig',
    'EvaluationConfig',
    'create_default_config',
    'ScalarType',
    'FieldGenerator',
    'DispatchRegistry',
    'create_default_registry',
    'DeformationFieldGenerator',
]
