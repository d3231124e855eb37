"""
Reference image header reading.

Only the geometry and pixel type of a reference image are needed; pixel
data is never loaded. World coordinates follow the ITK (LPS) convention
for every format.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import nibabel as nib
import numpy as np
import SimpleITK as sitk

from dfgen.core.dispatch import ScalarType
from dfgen.core.errors import IOFailure, MalformedInput, UnsupportedConfiguration
from dfgen.core.grid import Grid

# NIfTI stores RAS world coordinates, ITK uses LPS
_RAS_TO_LPS = np.array([-1.0, -1.0, 1.0])

_SITK_SCALAR_TYPES = {
    sitk.sitkInt8: ScalarType.INT8,
    sitk.sitkUInt8: ScalarType.UINT8,
    sitk.sitkInt16: ScalarType.INT16,
    sitk.sitkUInt16: ScalarType.UINT16,
    sitk.sitkInt32: ScalarType.INT32,
    sitk.sitkUInt32: ScalarType.UINT32,
    sitk.sitkInt64: ScalarType.INT64,
    sitk.sitkUInt64: ScalarType.UINT64,
    sitk.sitkFloat32: ScalarType.FLOAT32,
    sitk.sitkFloat64: ScalarType.FLOAT64,
    sitk.sitkVectorInt8: ScalarType.INT8,
    sitk.sitkVectorUInt8: ScalarType.UINT8,
    sitk.sitkVectorInt16: ScalarType.INT16,
    sitk.sitkVectorUInt16: ScalarType.UINT16,
    sitk.sitkVectorInt32: ScalarType.INT32,
    sitk.sitkVectorUInt32: ScalarType.UINT32,
    sitk.sitkVectorInt64: ScalarType.INT64,
    sitk.sitkVectorUInt64: ScalarType.UINT64,
    sitk.sitkVectorFloat32: ScalarType.FLOAT32,
    sitk.sitkVectorFloat64: ScalarType.FLOAT64,
}


@dataclass(frozen=True)
class GridDescriptor:
    """Pixel type and geometry of a reference image."""
    scalar_type: ScalarType
    size: Tuple[int, ...]
    spacing: Tuple[float, ...]
    origin: Tuple[float, ...]
    direction: np.ndarray
    components: int = 1
    path: Optional[str] = None

    @property
    def dimension(self) -> int:
        return len(self.size)

    @property
    def pixel_type(self) -> str:
        return self.scalar_type.value

    @property
    def has_identity_direction(self) -> bool:
        return bool(np.allclose(self.direction, np.eye(self.dimension)))

    @property
    def grid(self) -> Grid:
        """Sampling grid; direction cosines are not part of it."""
        return Grid(size=self.size, spacing=self.spacing, origin=self.origin)


def describe(path: str) -> GridDescriptor:
    """
    Read the header of a reference image.

    Format is determined by file extension: NIfTI through nibabel, NumPy
    arrays through numpy and everything else through SimpleITK.

    Args:
        path: Path to image file

    Returns:
        GridDescriptor of the image

    Raises:
        IOFailure: If the file does not exist or cannot be read
        UnsupportedConfiguration: If the pixel type is not supported
    """
    path = Path(path)

    if not path.exists():
        raise IOFailure(f"File not found: {path}")

    name = path.name.lower()
    if name.endswith('.nii') or name.endswith('.nii.gz'):
        return describe_nifti(str(path))
    elif path.suffix.lower() in ['.npy', '.npz']:
        return describe_numpy(str(path))
    else:
        return describe_with_sitk(str(path))


def describe_with_sitk(path: str) -> GridDescriptor:
    """Read image information with SimpleITK without loading pixel data."""
    reader = sitk.ImageFileReader()
    reader.SetFileName(path)
    try:
        reader.ReadImageInformation()
    except RuntimeError as e:
        raise IOFailure(f"Could not read image header of {path}: {e}") from e

    pixel_id = reader.GetPixelID()
    if pixel_id not in _SITK_SCALAR_TYPES:
        raise UnsupportedConfiguration(
            f"Unsupported pixel type in {path}: {sitk.GetPixelIDValueAsString(pixel_id)}"
        )

    dim = reader.GetDimension()
    return GridDescriptor(
        scalar_type=_SITK_SCALAR_TYPES[pixel_id],
        size=tuple(int(s) for s in reader.GetSize()),
        spacing=tuple(reader.GetSpacing()),
        origin=tuple(reader.GetOrigin()),
        direction=np.array(reader.GetDirection()).reshape(dim, dim),
        components=int(reader.GetNumberOfComponents()),
        path=path,
    )


def describe_nifti(path: str) -> GridDescriptor:
    """Read a NIfTI header (.nii or .nii.gz)."""
    try:
        img = nib.load(path)
    except Exception as e:
        raise IOFailure(f"Could not read NIfTI header of {path}: {e}") from e

    header = img.header
    shape = img.shape

    # Trailing axes beyond the spatial ones hold vector components
    dim = min(len(shape), 3)
    if dim == 3 and shape[2] == 1 and len(shape) == 3:
        dim = 2
    components = int(np.prod(shape[3:])) if len(shape) > 3 else 1

    zooms = np.ones(3)
    spatial_zooms = header.get_zooms()[:3]
    zooms[:len(spatial_zooms)] = spatial_zooms

    affine = img.affine
    origin = affine[:3, 3] * _RAS_TO_LPS
    direction = _RAS_TO_LPS[:, None] * affine[:3, :3] / zooms

    return GridDescriptor(
        scalar_type=ScalarType.from_dtype(header.get_data_dtype()),
        size=tuple(int(s) for s in shape[:dim]),
        spacing=tuple(float(z) for z in zooms[:dim]),
        origin=tuple(float(o) for o in origin[:dim]),
        direction=direction[:dim, :dim],
        components=components,
        path=path,
    )


def describe_numpy(path: str) -> GridDescriptor:
    """
    Read a NumPy array header (.npy or .npz).

    For .npz files, expects key 'volume', optionally 'spacing', 'origin', 'direction'.
    Array axes map directly to grid axes.
    """
    path = Path(path)

    try:
        if path.suffix == '.npy':
            volume = np.load(path, mmap_mode='r')
            meta = {}
        else:
            data = np.load(path)
            volume = data['volume'] if 'volume' in data else None
            meta = {k: data[k] for k in ('spacing', 'origin', 'direction') if k in data}
    except (OSError, ValueError) as e:
        raise IOFailure(f"Could not read NumPy array {path}: {e}") from e

    if volume is None:
        raise MalformedInput(f"{path} has no 'volume' array")

    dim = volume.ndim
    return GridDescriptor(
        scalar_type=ScalarType.from_dtype(volume.dtype),
        size=tuple(int(s) for s in volume.shape),
        spacing=tuple(float(s) for s in meta.get('spacing', np.ones(dim))),
        origin=tuple(float(o) for o in meta.get('origin', np.zeros(dim))),
        direction=np.asarray(meta.get('direction', np.eye(dim)), dtype=np.float64).reshape(dim, dim),
        components=1,
        path=str(path),
    )
