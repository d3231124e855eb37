"""
Dense displacement field evaluation.

Samples a fitted kernel transform at every cell of a grid.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from tqdm import tqdm

from dfgen.core.errors import ConfigurationError, DeformationFieldError, UnsupportedConfiguration
from dfgen.core.grid import Grid


@dataclass
class DisplacementField:
    """
    One D-dimensional displacement vector per grid cell.

    ``vectors[i0, i1(, i2)]`` is the displacement at grid index (i0, i1(, i2)).
    """
    vectors: np.ndarray
    grid: Grid

    def __post_init__(self):
        expected = (*self.grid.size, self.grid.dimension)
        if self.vectors.shape != expected:
            raise ValueError(f"Field shape {self.vectors.shape} does not match grid {expected}")

    @property
    def dimension(self) -> int:
        return self.grid.dimension

    @property
    def num_cells(self) -> int:
        return self.grid.num_cells

    @property
    def dtype(self) -> np.dtype:
        return self.vectors.dtype

    def populated_cells(self) -> int:
        """Number of cells holding a finite displacement vector."""
        return int(np.isfinite(self.vectors).all(axis=-1).sum())

    def magnitude(self) -> np.ndarray:
        """(*size) array of displacement lengths in physical units."""
        return np.linalg.norm(self.vectors, axis=-1)

    def at(self, index: Sequence[int]) -> np.ndarray:
        return self.vectors[tuple(int(i) for i in index)]


def evaluate_displacement_field(transform,
                                grid: Grid,
                                num_workers: int = 1,
                                chunk_size: int = 16384,
                                dtype: str = 'float32',
                                progress: bool = False,
                                ) -> DisplacementField:
    """
    Evaluate a transform over every cell of a grid.

    Cells are visited in row-major order, split into disjoint chunks. With
    ``num_workers > 1`` chunks are evaluated on a thread pool; every chunk
    writes its own slice of the output, and the transform is only read.

    Args:
        transform: Fitted KernelTransform
        grid: Grid to sample
        num_workers: Number of evaluation threads
        chunk_size: Cells per chunk
        dtype: Vector component type ('float32' or 'float64')
        progress: Show a tqdm progress bar

    Returns:
        Fully populated DisplacementField
    """
    if transform.dimension != grid.dimension:
        raise UnsupportedConfiguration(
            f"Transform is {transform.dimension}D but the grid is {grid.dimension}D"
        )
    if np.dtype(dtype) not in (np.dtype('float32'), np.dtype('float64')):
        raise ConfigurationError(f"Field dtype must be float32 or float64, got {dtype}")
    if num_workers < 1 or chunk_size < 1:
        raise ConfigurationError("num_workers and chunk_size must be positive")

    n = grid.num_cells
    flat = np.full((n, grid.dimension), np.nan, dtype=dtype)
    chunks = [(start, min(start + chunk_size, n)) for start in range(0, n, chunk_size)]

    def evaluate_chunk(bounds):
        start, stop = bounds
        points = grid.index_to_physical(grid.indices(start, stop))
        flat[start:stop] = transform.displacement(points)
        return stop - start

    bar = tqdm(total=n, desc='Generating deformation field', unit='cell', disable=not progress)
    try:
        if num_workers == 1:
            for count in map(evaluate_chunk, chunks):
                bar.update(count)
        else:
            with ThreadPoolExecutor(max_workers=num_workers) as pool:
                for count in pool.map(evaluate_chunk, chunks):
                    bar.update(count)
    finally:
        bar.close()

    field = DisplacementField(vectors=flat.reshape(*grid.size, grid.dimension), grid=grid)

    populated = field.populated_cells()
    if populated != n:
        raise DeformationFieldError(
            f"Field evaluation produced {n - populated} non-finite displacement vectors"
        )

    return field
