"""
dfgen: landmark-driven deformation field generation

Synthesizes dense displacement fields from sparse landmark correspondences
with radial basis kernel transforms, for use as reference deformations in
image registration evaluation.
"""

__version__ = "0.1.0"

from dfgen.core.generator import DeformationFieldGenerator
from dfgen.core.config import GeneratorConfig

__all__ = ["DeformationFieldGenerator", "GeneratorConfig", "__version__"]
