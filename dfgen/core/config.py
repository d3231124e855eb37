"""
Configuration system for dfgen.

YAML-loadable dataclasses for the kernel fit and the dense evaluation.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Any
import math
import yaml
from pathlib import Path

from dfgen.core.errors import ConfigurationError

KERNEL_NAMES = ('TPS', 'TPSR2LOGR', 'VS', 'EBS', 'EBSR')
FIELD_DTYPES = ('float32', 'float64')


@dataclass
class KernelConfig:
    """Configuration for the kernel transform fit."""
    name: str = 'TPS'  # 'TPS', 'TPSR2LOGR', 'VS', 'EBS' or 'EBSR'
    stiffness: float = 0.0  # 0 = exact interpolation, > 0 = approximation
    poisson_ratio: float = 0.25  # Only used by the elastic body splines


@dataclass
class EvaluationConfig:
    """Configuration for dense field evaluation."""
    num_workers: int = 1
    chunk_size: int = 16384  # Grid cells per work item
    field_dtype: str = 'float32'  # Vector component type of the output field


@dataclass
class GeneratorConfig:
    """Main generator configuration."""
    # Sub-configs
    kernel: KernelConfig = field(default_factory=KernelConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)

    # Global settings
    verbose: bool = True
    check_landmark_residuals: bool = True
    residual_tolerance: float = 1e-6  # Relative, interpolation mode only

    @classmethod
    def from_yaml(cls, path: str) -> 'GeneratorConfig':
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML config file

        Returns:
            GeneratorConfig instance
        """
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read configuration {path}: {e}") from e

        try:
            kernel = KernelConfig(**data.get('kernel', {}))
            evaluation = EvaluationConfig(**data.get('evaluation', {}))

            global_settings = {
                k: v for k, v in data.items()
                if k not in ['kernel', 'evaluation']
            }

            config = cls(kernel=kernel, evaluation=evaluation, **global_settings)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

        config.validate()
        return config

    def to_yaml(self, path: str) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Output path
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'kernel': asdict(self.kernel),
            'evaluation': asdict(self.evaluation),
            'verbose': self.verbose,
            'check_landmark_residuals': self.check_landmark_residuals,
            'residual_tolerance': self.residual_tolerance,
        }

    def validate(self) -> None:
        """Raise ConfigurationError if any setting is out of range."""
        if str(self.kernel.name).upper() not in KERNEL_NAMES:
            raise ConfigurationError(
                f"Invalid kernel transform type: {self.kernel.name}. "
                f"Choose one of {', '.join(KERNEL_NAMES)}"
            )
        stiffness = float(self.kernel.stiffness)
        if not math.isfinite(stiffness) or stiffness < 0:
            raise ConfigurationError(f"Stiffness must be non-negative, got {self.kernel.stiffness}")
        if not -1.0 < float(self.kernel.poisson_ratio) < 0.5:
            raise ConfigurationError(
                f"Poisson ratio must lie in (-1, 0.5), got {self.kernel.poisson_ratio}"
            )
        if int(self.evaluation.num_workers) < 1:
            raise ConfigurationError(f"num_workers must be >= 1, got {self.evaluation.num_workers}")
        if int(self.evaluation.chunk_size) < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.evaluation.chunk_size}")
        if self.evaluation.field_dtype not in FIELD_DTYPES:
            raise ConfigurationError(
                f"field_dtype must be one of {FIELD_DTYPES}, got {self.evaluation.field_dtype}"
            )


def create_default_config() -> GeneratorConfig:
    """Create default configuration."""
    return GeneratorConfig()
