"""
Tests for the YAML configuration system.
"""

import pytest
from dfgen.core import ConfigurationError, GeneratorConfig, create_default_config


def test_default_config():
    config = create_default_config()

    config.validate()
    assert config.kernel.name == 'TPS'
    assert config.kernel.stiffness == 0.0
    assert config.evaluation.field_dtype == 'float32'


def test_yaml_round_trip(tmp_path):
    config = GeneratorConfig()
    config.kernel.name = 'EBS'
    config.kernel.stiffness = 0.5
    config.evaluation.num_workers = 4
    config.verbose = False
    path = str(tmp_path / 'configs' / 'generator.yaml')

    config.to_yaml(path)
    loaded = GeneratorConfig.from_yaml(path)

    assert loaded.to_dict() == config.to_dict()


def test_partial_yaml(tmp_path):
    path = tmp_path / 'generator.yaml'
    path.write_text("kernel:\n  name: VS\n")

    config = GeneratorConfig.from_yaml(str(path))

    assert config.kernel.name == 'VS'
    assert config.kernel.poisson_ratio == 0.25
    assert config.evaluation.chunk_size == 16384


@pytest.mark.parametrize('text', [
    "kernel:\n  name: GAUSSIAN\n",
    "kernel:\n  stiffness: -1.0\n",
    "kernel:\n  poisson_ratio: 0.5\n",
    "evaluation:\n  num_workers: 0\n",
    "evaluation:\n  field_dtype: int16\n",
    "kernel:\n  sigma: 2.0\n",
    "unknown_setting: 1\n",
    "kernel: [unclosed\n",
])
def test_invalid_yaml(tmp_path, text):
    path = tmp_path / 'generator.yaml'
    path.write_text(text)

    with pytest.raises(ConfigurationError):
        GeneratorConfig.from_yaml(str(path))


def test_missing_yaml(tmp_path):
    with pytest.raises(ConfigurationError):
        GeneratorConfig.from_yaml(str(tmp_path / 'missing.yaml'))


if __name__ == '__main__':
    pytest.main([__file__])
