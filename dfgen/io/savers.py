"""
Save and load deformation fields with geometry preservation.

Fields are written into a temporary directory next to the destination and
every produced file is renamed into place, so a failed write never leaves a
partial output behind. Formats with a separate data file (.mhd/.raw) keep
referring to it by its final name.
"""

import os
import shutil
import tempfile
import numpy as np
import nibabel as nib
import SimpleITK as sitk
from pathlib import Path
from typing import Optional

from dfgen.core.errors import IOFailure, MalformedInput
from dfgen.core.grid import Grid
from dfgen.deformation.field import DisplacementField

# NIfTI stores RAS world coordinates, ITK uses LPS
_LPS_TO_RAS = np.array([-1.0, -1.0, 1.0])

_VECTOR_DTYPES = (np.dtype('float32'), np.dtype('float64'))


def save_dvf(path: str,
             field: DisplacementField,
             dtype: Optional[str] = None,
             ) -> None:
    """
    Save a deformation vector field.

    Format is determined by file extension: NIfTI (.nii, .nii.gz) through
    nibabel, NumPy (.npy, .npz) and anything else through SimpleITK
    (e.g. .mha, .mhd, .nrrd).

    Args:
        path: Output file path
        field: DisplacementField to write
        dtype: Vector component type, defaults to the field's own

    Raises:
        IOFailure: If the destination cannot be created or the component
            type cannot represent the displacement vectors
    """
    path = Path(path)

    vectors = field.vectors
    if dtype is not None:
        if np.dtype(dtype) not in _VECTOR_DTYPES:
            raise IOFailure(f"Cell type {dtype} cannot represent displacement vectors")
        vectors = vectors.astype(dtype)
    elif vectors.dtype not in _VECTOR_DTYPES:
        raise IOFailure(f"Cell type {vectors.dtype} cannot represent displacement vectors")
    if not np.all(np.isfinite(vectors)):
        raise IOFailure("Refusing to write a deformation field with non-finite vectors")

    field = DisplacementField(vectors=vectors, grid=field.grid)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOFailure(f"Could not create output directory {path.parent}: {e}") from e

    try:
        tmp_dir = Path(tempfile.mkdtemp(prefix=".tmp.", dir=path.parent))
    except OSError as e:
        raise IOFailure(f"Could not create a temporary directory in {path.parent}: {e}") from e

    try:
        _write(tmp_dir / path.name, field)
        # The named file goes last: it may reference the others
        produced = sorted(tmp_dir.iterdir(), key=lambda p: p.name == path.name)
        for item in produced:
            os.replace(item, path.parent / item.name)
    except Exception as e:
        raise IOFailure(f"Could not write deformation field to {path}: {e}") from e
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)


def _write(path: Path, field: DisplacementField) -> None:
    name = path.name.lower()
    if name.endswith('.nii') or name.endswith('.nii.gz'):
        save_nifti(str(path), field)
    elif path.suffix.lower() in ['.npy', '.npz']:
        save_numpy(str(path), field)
    else:
        save_with_sitk(str(path), field)


def save_nifti(path: str, field: DisplacementField) -> None:
    """Save as a NIfTI vector image of shape (X, Y, Z, 1, D)."""
    grid = field.grid
    dim = grid.dimension

    zooms = np.ones(3)
    zooms[:dim] = grid.spacing
    origin = np.zeros(3)
    origin[:dim] = grid.origin

    affine = np.eye(4)
    affine[:3, :3] = np.diag(_LPS_TO_RAS * zooms)
    affine[:3, 3] = origin * _LPS_TO_RAS

    data = field.vectors
    if dim == 2:
        data = data[:, :, None, :]
    data = data[:, :, :, None, :]

    img = nib.Nifti1Image(data, affine)
    img.header.set_intent('vector')
    img.header.set_xyzt_units('mm')
    nib.save(img, path)


def save_numpy(path: str, field: DisplacementField) -> None:
    """Save as NumPy format (.npz with geometry, or bare .npy)."""
    path = Path(path)

    if path.suffix == '.npy':
        np.save(path, field.vectors)
    else:
        grid = field.grid
        np.savez(
            path,
            dvf=field.vectors,
            spacing=np.array(grid.spacing),
            origin=np.array(grid.origin),
        )


def save_with_sitk(path: str, field: DisplacementField) -> None:
    """Save using SimpleITK as a vector image."""
    grid = field.grid
    dim = grid.dimension

    # SimpleITK arrays are indexed (z, y, x, component)
    axes = tuple(reversed(range(dim))) + (dim,)
    image = sitk.GetImageFromArray(np.ascontiguousarray(np.transpose(field.vectors, axes)), isVector=True)

    image.SetSpacing(grid.spacing)
    image.SetOrigin(grid.origin)

    sitk.WriteImage(image, path)


def load_dvf(path: str) -> DisplacementField:
    """
    Load a deformation vector field written by save_dvf.

    Args:
        path: Path to DVF file

    Returns:
        DisplacementField
    """
    path = Path(path)

    if not path.exists():
        raise IOFailure(f"File not found: {path}")

    name = path.name.lower()
    if name.endswith('.nii') or name.endswith('.nii.gz'):
        img = nib.load(str(path))
        data = np.asarray(img.dataobj)
        if data.ndim != 5:
            raise MalformedInput(f"{path} is not a NIfTI vector image")
        dim = data.shape[-1]
        vectors = data[:, :, :, 0, :]
        if dim == 2:
            vectors = vectors[:, :, 0, :]
        zooms = np.array(img.header.get_zooms()[:3])
        origin = img.affine[:3, 3] * _LPS_TO_RAS
        grid = Grid(size=vectors.shape[:dim], spacing=tuple(zooms[:dim]),
                    origin=tuple(origin[:dim]))
    elif path.suffix == '.npz':
        data = np.load(path)
        vectors = data['dvf']
        grid = Grid(size=vectors.shape[:-1], spacing=tuple(data['spacing']),
                    origin=tuple(data['origin']))
    elif path.suffix == '.npy':
        vectors = np.load(path)
        dim = vectors.ndim - 1
        grid = Grid(size=vectors.shape[:-1], spacing=(1.0,) * dim, origin=(0.0,) * dim)
    else:
        try:
            image = sitk.ReadImage(str(path))
        except RuntimeError as e:
            raise IOFailure(f"Could not read deformation field {path}: {e}") from e
        dim = image.GetDimension()
        array = sitk.GetArrayFromImage(image)
        vectors = np.transpose(array, tuple(reversed(range(dim))) + (dim,))
        grid = Grid(size=image.GetSize(), spacing=image.GetSpacing(), origin=image.GetOrigin())

    return DisplacementField(vectors=np.ascontiguousarray(vectors), grid=grid)
