"""
Runtime selection of a (scalar type, dimensionality) implementation.

The pixel type and dimensionality of the reference image are only known
after its header has been read. The registry maps that runtime tag to the
single generator implementation registered for it.
"""

from enum import Enum
from typing import Callable, Dict, Iterator, Optional, Tuple, Union

import numpy as np

from dfgen.core.errors import UnsupportedConfiguration
from dfgen.core.grid import SUPPORTED_DIMENSIONS
from dfgen.deformation.field import evaluate_displacement_field
from dfgen.kernels.transform import fit_kernel_transform


class ScalarType(Enum):
    """Enumerated pixel (component) types, valued by their numpy dtype name."""
    INT8 = 'int8'
    UINT8 = 'uint8'
    INT16 = 'int16'
    UINT16 = 'uint16'
    INT32 = 'int32'
    UINT32 = 'uint32'
    INT64 = 'int64'
    UINT64 = 'uint64'
    FLOAT32 = 'float32'
    FLOAT64 = 'float64'

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @classmethod
    def from_dtype(cls, dtype) -> 'ScalarType':
        """Tag for a numpy dtype (or anything np.dtype accepts)."""
        try:
            name = np.dtype(dtype).name
        except TypeError as e:
            raise UnsupportedConfiguration(f"Unknown pixel type: {dtype}") from e
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedConfiguration(f"Unsupported pixel type: {name}") from None

    @classmethod
    def from_name(cls, name: str) -> 'ScalarType':
        """
        Tag for a pixel type name.

        Accepts numpy names ('int16') as well as the C-style names used by
        ITK image headers ('short', 'unsigned char', 'float', ...).
        """
        key = str(name).strip().lower()
        if key in _C_TYPE_NAMES:
            return _C_TYPE_NAMES[key]
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedConfiguration(f"Unsupported pixel type: {name}") from None


_C_TYPE_NAMES = {
    'char': ScalarType.INT8,
    'signed char': ScalarType.INT8,
    'unsigned char': ScalarType.UINT8,
    'short': ScalarType.INT16,
    'unsigned short': ScalarType.UINT16,
    'int': ScalarType.INT32,
    'unsigned int': ScalarType.UINT32,
    'long': ScalarType.INT64,
    'unsigned long': ScalarType.UINT64,
    'long long': ScalarType.INT64,
    'unsigned long long': ScalarType.UINT64,
    'float': ScalarType.FLOAT32,
    'double': ScalarType.FLOAT64,
}


class FieldGenerator:
    """
    Generator implementation pinned to one scalar type and dimensionality.

    All implementations share this non-generic interface: the pipeline only
    ever sees ``generate(...)``, whatever the pixel type of the reference.
    """

    def __init__(self, scalar_type: ScalarType, dimension: int):
        self.scalar_type = scalar_type
        self.dimension = dimension

    @property
    def key(self) -> Tuple[ScalarType, int]:
        return self.scalar_type, self.dimension

    def generate(self, grid, correspondences, kernel_config, evaluation_config, progress: bool = False):
        """
        Fit the kernel transform and evaluate it over the grid.

        Args:
            grid: Reference Grid
            correspondences: CorrespondenceSet in physical coordinates
            kernel_config: KernelConfig (name, stiffness, poisson_ratio)
            evaluation_config: EvaluationConfig (workers, chunk size, dtype)
            progress: Show a progress bar during dense evaluation

        Returns:
            (transform, field) tuple
        """
        if grid.dimension != self.dimension:
            raise UnsupportedConfiguration(f"{self!r} cannot process a {grid.dimension}D grid")

        transform = self.fit(correspondences, kernel_config)
        field = self.evaluate(transform, grid, evaluation_config, progress=progress)
        return transform, field

    def fit(self, correspondences, kernel_config):
        """Fit the kernel transform to correspondences of this dimensionality."""
        if correspondences.dimension != self.dimension:
            raise UnsupportedConfiguration(
                f"Landmarks are {correspondences.dimension}D but {self!r} is {self.dimension}D"
            )
        return fit_kernel_transform(
            correspondences.source,
            correspondences.target,
            kernel=kernel_config.name,
            stiffness=kernel_config.stiffness,
            poisson_ratio=kernel_config.poisson_ratio,
        )

    def evaluate(self, transform, grid, evaluation_config, progress: bool = False):
        """Sample a fitted transform over every cell of the grid."""
        if grid.dimension != self.dimension:
            raise UnsupportedConfiguration(f"{self!r} cannot process a {grid.dimension}D grid")
        return evaluate_displacement_field(
            transform,
            grid,
            num_workers=evaluation_config.num_workers,
            chunk_size=evaluation_config.chunk_size,
            dtype=evaluation_config.field_dtype,
            progress=progress,
        )

    def __repr__(self) -> str:
        return f"FieldGenerator(pixel={self.scalar_type.value}, dim={self.dimension})"


GeneratorFactory = Callable[[], FieldGenerator]


class DispatchRegistry:
    """
    Lookup table from (scalar type, dimensionality) to an implementation factory.

    Each key maps to exactly one factory. ``lookup`` returns None for an
    unregistered combination; ``require`` raises UnsupportedConfiguration.
    """

    def __init__(self):
        self._factories: Dict[Tuple[ScalarType, int], GeneratorFactory] = {}

    def register(self,
                 scalar_type: ScalarType,
                 dimension: int,
                 factory: Optional[GeneratorFactory] = None,
                 ) -> None:
        """
        Register the implementation for one combination.

        Args:
            scalar_type: Pixel type tag
            dimension: Dimensionality
            factory: Zero-argument callable returning a FieldGenerator
                (defaults to a plain FieldGenerator for the combination)
        """
        key = (ScalarType(scalar_type), int(dimension))
        if key in self._factories:
            raise ValueError(f"Implementation already registered for {key[0].value}, {key[1]}D")
        if factory is None:
            factory = _default_factory(*key)
        self._factories[key] = factory

    def lookup(self,
               scalar_type: Union[ScalarType, str],
               dimension: int,
               ) -> Optional[FieldGenerator]:
        """Return a new implementation for the combination, or None if unsupported."""
        try:
            if not isinstance(scalar_type, ScalarType):
                scalar_type = ScalarType.from_name(scalar_type)
        except UnsupportedConfiguration:
            return None
        factory = self._factories.get((scalar_type, int(dimension)))
        if factory is None:
            return None
        return factory()

    def require(self,
                scalar_type: Union[ScalarType, str],
                dimension: int,
                ) -> FieldGenerator:
        """Like lookup, but raises UnsupportedConfiguration for unknown combinations."""
        generator = self.lookup(scalar_type, dimension)
        if generator is None:
            name = scalar_type.value if isinstance(scalar_type, ScalarType) else scalar_type
            raise UnsupportedConfiguration(
                f"This combination of pixel type and dimension is not supported: "
                f"pixel (component) type = {name} ; dimension = {dimension}"
            )
        return generator

    def supported(self) -> Iterator[Tuple[ScalarType, int]]:
        return iter(sorted(self._factories, key=lambda k: (k[1], k[0].value)))

    def __contains__(self, key) -> bool:
        return key in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def _default_factory(scalar_type: ScalarType, dimension: int) -> GeneratorFactory:
    def factory() -> FieldGenerator:
        return FieldGenerator(scalar_type, dimension)
    return factory


def create_default_registry() -> DispatchRegistry:
    """Registry with every supported pixel type in 2D and 3D."""
    registry = DispatchRegistry()
    for dimension in SUPPORTED_DIMENSIONS:
        for scalar_type in ScalarType:
            registry.register(scalar_type, dimension)
    return registry
